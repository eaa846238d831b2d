"""
Tests for the approval gate.
"""

import pytest

from tool_gateway.approval import ApprovalGate, requires_approval


class TestApprovalGate:
    @pytest.mark.parametrize(
        "tool_id,needs_approval",
        [
            ("demo.echo", False),
            ("cap.flaky", False),
            ("ops.deploy", False),
            ("secrets.rotate", True),
            ("secrets.purge", True),
        ],
    )
    def test_only_restricted_tools_need_approval(self, manifest, tool_id, needs_approval):
        assert requires_approval(manifest.get(tool_id)) is needs_approval

    def test_restricted_decision(self, manifest):
        decision = ApprovalGate().evaluate(manifest.get("secrets.rotate"))

        assert not decision.allowed
        assert decision.decision == "REQUIRE_APPROVAL"
        assert decision.reason_code == "restricted_data_classification"
        assert decision.data_classification == "RESTRICTED"

    def test_allow_decision(self, manifest):
        decision = ApprovalGate().evaluate(manifest.get("ops.deploy"))

        assert decision.allowed
        assert decision.data_classification == "CONFIDENTIAL"
