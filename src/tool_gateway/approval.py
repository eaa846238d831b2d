from __future__ import annotations

from dataclasses import dataclass

from .manifest import DataClassification, ToolDescriptor

APPROVAL_CLASSIFICATIONS = frozenset({DataClassification.RESTRICTED})


def requires_approval(tool: ToolDescriptor) -> bool:
    """True when a tool may not run without prior human approval."""
    return tool.data_classification in APPROVAL_CLASSIFICATIONS


@dataclass(frozen=True)
class ApprovalDecision:
    decision: str
    reason_code: str
    data_classification: str

    @property
    def allowed(self) -> bool:
        return self.decision == "ALLOW"


class ApprovalGate:
    """Decides, before any runner is touched, whether a call may proceed."""

    def __init__(self, *, name: str = "classification_gate") -> None:
        self.name = name

    def evaluate(self, tool: ToolDescriptor) -> ApprovalDecision:
        if requires_approval(tool):
            return ApprovalDecision(
                decision="REQUIRE_APPROVAL",
                reason_code="restricted_data_classification",
                data_classification=tool.data_classification.value,
            )
        return ApprovalDecision(
            decision="ALLOW",
            reason_code="default_allow",
            data_classification=tool.data_classification.value,
        )


__all__ = ["APPROVAL_CLASSIFICATIONS", "requires_approval", "ApprovalDecision", "ApprovalGate"]
