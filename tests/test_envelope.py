"""
Tests for signed call envelopes.
"""

import copy

import pytest

from conftest import SECRET, make_context, make_envelope_meta
from tool_gateway.config import CallerDefaults, EnvelopeConfig
from tool_gateway.envelope import (
    ENVELOPE_ALG,
    ENVELOPE_INVALID,
    ENVELOPE_INVALID_CONTEXT,
    ENVELOPE_INVALID_INITIATOR,
    ENVELOPE_INVALID_ROLES,
    ENVELOPE_INVALID_SIGNATURE,
    ENVELOPE_MISSING,
    ENVELOPE_SIGNATURE_MISMATCH,
    ENVELOPE_UNSUPPORTED_ALG,
    CallerContext,
    EnvelopeAuthenticator,
    sign_envelope,
    verify_envelope,
)
from tool_gateway.errors import ConfigError, EnvelopeError

DEFAULTS = CallerDefaults(initiator_id="gateway:test", roles=["reader"])


def _reason(envelope, secret=SECRET) -> str:
    with pytest.raises(EnvelopeError) as exc_info:
        verify_envelope(envelope, secret)
    return exc_info.value.reason


class TestCallerContext:
    def test_wire_form_is_camel_case(self):
        ctx = make_context(roles=frozenset({"b", "a"}), cost_center="cc-7", trace_id="t-1")

        assert ctx.to_wire() == {
            "initiatorId": "user:alice",
            "roles": ["a", "b"],
            "appId": "console",
            "environment": "staging",
            "costCenter": "cc-7",
            "traceId": "t-1",
        }

    def test_budget_key_prefers_cost_center(self):
        assert make_context().budget_key == "user:alice"
        assert make_context(cost_center="cc-7").budget_key == "cc-7"

    def test_from_wire_drops_non_string_optionals(self):
        ctx = CallerContext.from_wire({"initiatorId": "u", "roles": [], "appId": 42, "traceId": "  "})

        assert ctx.app_id is None
        assert ctx.trace_id is None

    def test_from_defaults(self):
        ctx = CallerContext.from_defaults(DEFAULTS, "trace-9")

        assert ctx.initiator_id == "gateway:test"
        assert ctx.roles == frozenset({"reader"})
        assert ctx.trace_id == "trace-9"
        assert ctx.token_ref is None


class TestSignAndVerify:
    def test_round_trip(self):
        ctx = make_context(trace_id="trace-1")
        envelope = sign_envelope(ctx, SECRET).to_dict()

        assert envelope["alg"] == ENVELOPE_ALG
        assert "=" not in envelope["signature"]
        assert verify_envelope(envelope, SECRET) == ctx

    def test_signing_requires_secret(self):
        with pytest.raises(ConfigError):
            sign_envelope(make_context(), "")

    def test_key_order_does_not_matter(self):
        envelope = make_envelope_meta()["envelope"]
        envelope["context"] = dict(reversed(list(envelope["context"].items())))

        assert verify_envelope(envelope, SECRET).initiator_id == "user:alice"

    def test_missing(self):
        assert _reason(None) == ENVELOPE_MISSING

    def test_not_an_object(self):
        assert _reason("token") == ENVELOPE_INVALID

    def test_unsupported_alg(self):
        envelope = make_envelope_meta()["envelope"]
        envelope["alg"] = "none"

        assert _reason(envelope) == ENVELOPE_UNSUPPORTED_ALG

    def test_context_must_be_object(self):
        envelope = make_envelope_meta()["envelope"]
        envelope["context"] = "user:alice"

        assert _reason(envelope) == ENVELOPE_INVALID_CONTEXT

    def test_signature_must_be_string(self):
        envelope = make_envelope_meta()["envelope"]
        envelope["signature"] = ""

        assert _reason(envelope) == ENVELOPE_INVALID_SIGNATURE

    def test_blank_initiator(self):
        envelope = make_envelope_meta()["envelope"]
        envelope["context"]["initiatorId"] = " "

        assert _reason(envelope) == ENVELOPE_INVALID_INITIATOR

    def test_roles_must_be_strings(self):
        envelope = make_envelope_meta()["envelope"]
        envelope["context"]["roles"] = ["admin", 1]

        assert _reason(envelope) == ENVELOPE_INVALID_ROLES

    def test_tampered_context(self):
        envelope = make_envelope_meta()["envelope"]
        envelope["context"]["roles"] = ["admin"]

        assert _reason(envelope) == ENVELOPE_SIGNATURE_MISMATCH

    def test_unknown_fields_are_signed(self):
        envelope = make_envelope_meta()["envelope"]
        envelope["context"]["extra"] = "smuggled"

        assert _reason(envelope) == ENVELOPE_SIGNATURE_MISMATCH

    def test_wrong_secret(self):
        assert _reason(make_envelope_meta()["envelope"], "other-secret") == ENVELOPE_SIGNATURE_MISMATCH


class TestEnvelopeAuthenticator:
    def test_require_without_secret_is_config_error(self):
        with pytest.raises(ConfigError):
            EnvelopeAuthenticator(EnvelopeConfig(secret=None, require=True), DEFAULTS)

    def test_missing_envelope_uses_defaults(self):
        auth = EnvelopeAuthenticator(EnvelopeConfig(secret=SECRET, require=False), DEFAULTS)

        ctx = auth.resolve({}, "gw-trace")

        assert ctx.initiator_id == "gateway:test"
        assert ctx.trace_id == "gw-trace"

    def test_missing_envelope_rejected_when_required(self):
        auth = EnvelopeAuthenticator(EnvelopeConfig(secret=SECRET, require=True), DEFAULTS)

        with pytest.raises(EnvelopeError) as exc_info:
            auth.resolve(None, "gw-trace")
        assert exc_info.value.reason == ENVELOPE_MISSING

    def test_bad_envelope_rejected_even_when_optional(self):
        auth = EnvelopeAuthenticator(EnvelopeConfig(secret=SECRET, require=False), DEFAULTS)
        meta = make_envelope_meta()
        meta["envelope"]["signature"] = "forged"

        with pytest.raises(EnvelopeError):
            auth.resolve(meta, "gw-trace")

    def test_envelope_trace_id_supersedes_gateway_trace(self):
        auth = EnvelopeAuthenticator(EnvelopeConfig(secret=SECRET, require=True), DEFAULTS)

        ctx = auth.resolve(make_envelope_meta(trace_id="trace-X"), "gw-trace")

        assert ctx.trace_id == "trace-X"
        assert ctx.initiator_id == "user:alice"

    def test_envelope_trace_id_is_trimmed(self):
        auth = EnvelopeAuthenticator(EnvelopeConfig(secret=SECRET, require=True), DEFAULTS)

        ctx = auth.resolve(make_envelope_meta(trace_id="  trace-X \t"), "gw-trace")

        assert ctx.trace_id == "trace-X"

    def test_gateway_trace_fills_missing_envelope_trace(self):
        auth = EnvelopeAuthenticator(EnvelopeConfig(secret=SECRET, require=True), DEFAULTS)

        assert auth.resolve(make_envelope_meta(), "gw-trace").trace_id == "gw-trace"

    def test_no_secret_ignores_envelopes(self):
        auth = EnvelopeAuthenticator(EnvelopeConfig(secret=None, require=False), DEFAULTS)
        meta = copy.deepcopy(make_envelope_meta())
        meta["envelope"]["signature"] = "forged"

        assert auth.resolve(meta, "gw-trace").initiator_id == "gateway:test"
