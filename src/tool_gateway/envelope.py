"""
Signed call envelopes.

A call envelope lets a trusted issuer attach caller identity to a
``tools/call`` request without the gateway having to trust the caller's
claims. The wire form is::

    {
      "alg": "HMAC-SHA256",
      "context": {"initiatorId": "...", "roles": [...], "traceId": "...", ...},
      "signature": "<base64url, unpadded>"
    }

The signature is HMAC-SHA256 over the canonical JSON of ``context`` (keys
sorted, no whitespace).
"""

from __future__ import annotations

import base64
import hashlib
import hmac
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from .config import CallerDefaults, EnvelopeConfig
from .errors import ConfigError, EnvelopeError
from .logging import get_logger
from .serialization import stable_json_dumps

ENVELOPE_ALG = "HMAC-SHA256"

# Verification failure reasons
ENVELOPE_MISSING = "ENVELOPE_MISSING"
ENVELOPE_INVALID = "ENVELOPE_INVALID"
ENVELOPE_UNSUPPORTED_ALG = "ENVELOPE_UNSUPPORTED_ALG"
ENVELOPE_INVALID_CONTEXT = "ENVELOPE_INVALID_CONTEXT"
ENVELOPE_INVALID_SIGNATURE = "ENVELOPE_INVALID_SIGNATURE"
ENVELOPE_INVALID_INITIATOR = "ENVELOPE_INVALID_INITIATOR"
ENVELOPE_INVALID_ROLES = "ENVELOPE_INVALID_ROLES"
ENVELOPE_SIGNATURE_MISMATCH = "ENVELOPE_SIGNATURE_MISMATCH"

_OPTIONAL_WIRE_FIELDS = {
    "tokenRef": "token_ref",
    "appId": "app_id",
    "environment": "environment",
    "costCenter": "cost_center",
    "dataClassification": "data_classification",
    "traceId": "trace_id",
}


@dataclass(frozen=True)
class CallerContext:
    """Identity, authorization and observability metadata for one call."""

    initiator_id: str
    roles: frozenset[str] = field(default_factory=frozenset)
    token_ref: str | None = None
    app_id: str | None = None
    environment: str | None = None
    cost_center: str | None = None
    data_classification: str | None = None
    trace_id: str | None = None

    @property
    def budget_key(self) -> str:
        return self.cost_center or self.initiator_id

    def with_trace_id(self, trace_id: str) -> CallerContext:
        return replace(self, trace_id=trace_id)

    def to_wire(self) -> dict[str, Any]:
        """Render the camelCase wire form that envelopes sign."""
        data: dict[str, Any] = {
            "initiatorId": self.initiator_id,
            "roles": sorted(self.roles),
        }
        for wire_key, attr in _OPTIONAL_WIRE_FIELDS.items():
            value = getattr(self, attr)
            if value is not None:
                data[wire_key] = value
        return data

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"initiator_id": self.initiator_id, "roles": sorted(self.roles)}
        for attr in _OPTIONAL_WIRE_FIELDS.values():
            value = getattr(self, attr)
            if value is not None:
                data[attr] = value
        return data

    @classmethod
    def from_defaults(cls, defaults: CallerDefaults, trace_id: str | None = None) -> CallerContext:
        return cls(
            initiator_id=defaults.initiator_id,
            roles=frozenset(defaults.roles),
            token_ref=defaults.token_ref or None,
            app_id=defaults.app_id or None,
            environment=defaults.environment or None,
            cost_center=defaults.cost_center,
            data_classification=defaults.data_classification,
            trace_id=trace_id,
        )

    @classmethod
    def from_wire(cls, payload: Mapping[str, Any]) -> CallerContext:
        """
        Parse a wire context.

        Raises:
            EnvelopeError: If initiatorId or roles are malformed
        """
        initiator = payload.get("initiatorId")
        if not isinstance(initiator, str) or not initiator.strip():
            raise EnvelopeError(ENVELOPE_INVALID_INITIATOR)
        roles = payload.get("roles")
        if not isinstance(roles, list) or any(not isinstance(r, str) for r in roles):
            raise EnvelopeError(ENVELOPE_INVALID_ROLES)

        optional = {}
        for wire_key, attr in _OPTIONAL_WIRE_FIELDS.items():
            value = payload.get(wire_key)
            optional[attr] = value if isinstance(value, str) else None
        if optional["trace_id"] is not None:
            optional["trace_id"] = optional["trace_id"].strip() or None

        return cls(initiator_id=initiator, roles=frozenset(roles), **optional)


@dataclass(frozen=True)
class CallEnvelope:
    """A caller context plus its signature."""

    context: CallerContext
    signature: str
    alg: str = ENVELOPE_ALG

    def to_dict(self) -> dict[str, Any]:
        return {"alg": self.alg, "context": self.context.to_wire(), "signature": self.signature}


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _compute_signature(payload: Mapping[str, Any], secret: str) -> str:
    message = stable_json_dumps(payload).encode("utf-8")
    return _b64url(hmac.new(secret.encode("utf-8"), message, hashlib.sha256).digest())


def sign_envelope(context: CallerContext, secret: str) -> CallEnvelope:
    """Sign a caller context. Used by trusted issuers and the CLI."""
    if not secret:
        raise ConfigError("An envelope secret is required to sign envelopes")
    return CallEnvelope(context=context, signature=_compute_signature(context.to_wire(), secret))


def verify_envelope(envelope: Any, secret: str) -> CallerContext:
    """
    Verify a wire envelope and return its caller context.

    Args:
        envelope: The decoded ``meta.envelope`` value
        secret: Shared HMAC secret

    Returns:
        The verified caller context

    Raises:
        EnvelopeError: With ``reason`` set to one of the ENVELOPE_* codes
    """
    if envelope is None:
        raise EnvelopeError(ENVELOPE_MISSING)
    if not isinstance(envelope, Mapping):
        raise EnvelopeError(ENVELOPE_INVALID)
    if envelope.get("alg") != ENVELOPE_ALG:
        raise EnvelopeError(ENVELOPE_UNSUPPORTED_ALG)

    payload = envelope.get("context")
    signature = envelope.get("signature")
    if not isinstance(payload, Mapping):
        raise EnvelopeError(ENVELOPE_INVALID_CONTEXT)
    if not isinstance(signature, str) or not signature:
        raise EnvelopeError(ENVELOPE_INVALID_SIGNATURE)

    context = CallerContext.from_wire(payload)

    # Sign what was sent, not what was parsed, so unknown fields are covered too
    expected = _compute_signature(payload, secret)
    if not hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8")):
        raise EnvelopeError(ENVELOPE_SIGNATURE_MISMATCH)
    return context


def build_caller_memo(context: CallerContext, trace_id: str, defaults: CallerDefaults) -> dict[str, Any]:
    """
    Build the memo attached to engine executions.

    Fields the context lacks are filled from ``defaults``.
    """
    initiator_id = context.initiator_id or defaults.initiator_id
    roles = sorted(context.roles) if context.roles else list(defaults.roles)

    caller: dict[str, Any] = {
        "app_id": context.app_id or defaults.app_id,
        "environment": context.environment or defaults.environment,
        "initiator_id": initiator_id,
        "trace_id": trace_id,
    }
    cost_center = context.cost_center or defaults.cost_center
    if cost_center:
        caller["cost_center"] = cost_center
    classification = context.data_classification or defaults.data_classification
    if classification:
        caller["data_classification"] = classification

    return {
        "security_context": {
            "initiator_id": initiator_id,
            "roles": roles,
            "token_ref": context.token_ref or defaults.token_ref,
            "trace_id": trace_id,
        },
        "caller_context": caller,
    }


class EnvelopeAuthenticator:
    """
    Resolves the caller context for one call.

    With ``require=False`` a missing envelope falls back to gateway
    defaults; a present envelope must still verify. With ``require=True``
    a missing envelope is rejected.
    """

    def __init__(self, config: EnvelopeConfig, defaults: CallerDefaults):
        if config.require and not config.secret:
            raise ConfigError("Envelopes are required but no envelope secret is configured")
        self._config = config
        self._defaults = defaults
        self._logger = get_logger()
        if not config.secret:
            self._logger.warning("No envelope secret configured; call envelopes will be ignored")

    @property
    def require(self) -> bool:
        return self._config.require

    def resolve(self, meta: Any, trace_id: str) -> CallerContext:
        """
        Return the caller context for a call.

        ``trace_id`` is the gateway-generated id. A verified envelope
        carrying its own trace id supersedes it.

        Raises:
            EnvelopeError: If verification fails or a required envelope is missing
        """
        envelope = meta.get("envelope") if isinstance(meta, Mapping) else None

        if not self._config.secret:
            return CallerContext.from_defaults(self._defaults, trace_id)

        if envelope is None:
            if self._config.require:
                raise EnvelopeError(ENVELOPE_MISSING)
            return CallerContext.from_defaults(self._defaults, trace_id)

        context = verify_envelope(envelope, self._config.secret)
        if context.trace_id is None:
            context = context.with_trace_id(trace_id)
        return context


__all__ = [
    "ENVELOPE_ALG",
    "ENVELOPE_MISSING",
    "ENVELOPE_INVALID",
    "ENVELOPE_UNSUPPORTED_ALG",
    "ENVELOPE_INVALID_CONTEXT",
    "ENVELOPE_INVALID_SIGNATURE",
    "ENVELOPE_INVALID_INITIATOR",
    "ENVELOPE_INVALID_ROLES",
    "ENVELOPE_SIGNATURE_MISMATCH",
    "CallerContext",
    "CallEnvelope",
    "sign_envelope",
    "verify_envelope",
    "build_caller_memo",
    "EnvelopeAuthenticator",
]
