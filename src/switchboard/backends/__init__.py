"""Stage backends.

The LiteLLM-backed implementation lives in ``switchboard.backends.llm`` and
is imported explicitly, so importing this package does not load litellm.
"""

from switchboard.backends.base import (
    PermissionGuard,
    RegistryPermissionSource,
    StageBackend,
    StaticPermissionSource,
    ToolPermissionSource,
)

__all__ = [
    "PermissionGuard",
    "RegistryPermissionSource",
    "StageBackend",
    "StaticPermissionSource",
    "ToolPermissionSource",
]
