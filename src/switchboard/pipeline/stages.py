"""Stage transitions, rubric ordering and findings.

A run moves strictly forward through ANALYZE -> ASSESS -> RECOMMEND ->
DELIVER -> DONE. FAILED can be entered from any non-terminal stage.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from switchboard.core.enums import RubricCategory, Severity, Stage
from switchboard.core.errors import BackendError

NEXT_STAGE: Mapping[Stage, Stage] = {
    Stage.ANALYZE: Stage.ASSESS,
    Stage.ASSESS: Stage.RECOMMEND,
    Stage.RECOMMEND: Stage.DELIVER,
    Stage.DELIVER: Stage.DONE,
}


def can_transition(current: Stage, target: Stage) -> bool:
    """Return True if ``current -> target`` is a legal transition."""
    if current.is_terminal:
        return False
    if target is Stage.FAILED:
        return True
    return NEXT_STAGE.get(current) is target


@dataclass(frozen=True, slots=True)
class Finding:
    """One assessed issue, as reported by the backend at Assess.

    Attributes:
        id: Finding id, unique within a run.
        category: Rubric category.
        severity: Severity tier.
        summary: Short description.
        fields: Extra output fields; candidates for handoff payload fields.
        target_capability: Explicit handoff target, overriding handoff rules.
        remediation: Remediation attached at Recommend, if any.
    """

    id: str
    category: RubricCategory
    severity: Severity
    summary: str = ""
    fields: Mapping[str, Any] = field(default_factory=dict)
    target_capability: str | None = None
    remediation: Any = None

    @property
    def sort_key(self) -> tuple[int, int, str]:
        return (self.severity.rank, self.category.rank, self.id)

    def with_remediation(self, remediation: Any) -> Finding:
        return replace(self, remediation=remediation)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "category": self.category.value,
            "severity": self.severity.value,
            "summary": self.summary,
            "fields": dict(self.fields),
        }
        if self.target_capability is not None:
            data["target_capability"] = self.target_capability
        if self.remediation is not None:
            data["remediation"] = self.remediation
        return data

    @classmethod
    def from_artifact(cls, raw: Any, *, index: int) -> Finding:
        """Parse one entry of an Assess artifact's ``findings`` list.

        Raises:
            BackendError: If the entry is not a well-formed finding.
        """
        if not isinstance(raw, Mapping):
            raise BackendError(f"Finding #{index} is not an object", stage=Stage.ASSESS.value)
        try:
            category = RubricCategory(str(raw["category"]).strip().lower())
            severity = Severity.parse(raw["severity"])
        except (KeyError, ValueError) as e:
            raise BackendError(
                f"Finding #{index} has a missing or unknown category/severity",
                stage=Stage.ASSESS.value,
                details={"finding": dict(raw)},
            ) from e

        extra = raw.get("fields") or {}
        if not isinstance(extra, Mapping):
            raise BackendError(
                f"Finding #{index} fields must be an object", stage=Stage.ASSESS.value
            )
        target = raw.get("target_capability")
        return cls(
            id=str(raw.get("id") or f"finding-{index}"),
            category=category,
            severity=severity,
            summary=str(raw.get("summary", "")),
            fields=dict(extra),
            target_capability=str(target) if target else None,
        )


def order_findings(findings: Iterable[Finding]) -> tuple[Finding, ...]:
    """Order findings by severity, then by rubric category.

    Correctness < Security < Performance < Maintainability < Testing <
    Framework-adherence within a tier. The finding id is the last key, so
    the result never depends on the order the backend listed them in.
    """
    return tuple(sorted(findings, key=lambda f: f.sort_key))


__all__ = ["NEXT_STAGE", "Finding", "can_transition", "order_findings"]
