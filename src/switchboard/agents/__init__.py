"""Agent descriptors, trigger predicates, registry and routing-table loading."""

from switchboard.agents.loader import load_registry, load_routing_table, parse_routing_table
from switchboard.agents.models import DEFAULT_STAGE_EFFECTS, AgentSpec, HandoffRule
from switchboard.agents.predicates import (
    ALWAYS,
    NEVER,
    AllOf,
    AnyOf,
    AtLeast,
    Below,
    Contains,
    Equals,
    Flag,
    Not,
    OneOf,
    Predicate,
    Present,
    parse_predicate,
)
from switchboard.agents.registry import AgentRegistry, CapabilityView

__all__ = [
    # Descriptors
    "AgentSpec",
    "HandoffRule",
    "DEFAULT_STAGE_EFFECTS",
    # Registry
    "AgentRegistry",
    "CapabilityView",
    # Loading
    "load_registry",
    "load_routing_table",
    "parse_routing_table",
    # Predicates
    "Predicate",
    "Flag",
    "Present",
    "Equals",
    "OneOf",
    "Contains",
    "AtLeast",
    "Below",
    "AllOf",
    "AnyOf",
    "Not",
    "ALWAYS",
    "NEVER",
    "parse_predicate",
]
