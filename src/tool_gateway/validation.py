"""
Argument validation for tool calls.

Uses jsonschema (Draft 2020-12) against each tool's declared argument schema.
Validators are compiled lazily, once per tool, and cached.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from jsonschema import Draft202012Validator
from jsonschema.exceptions import ValidationError as JsonSchemaValidationError
from referencing.exceptions import Unresolvable

from .manifest import ToolDescriptor, ToolManifest, _thaw

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SchemaViolation:
    """One schema violation, addressed by a JSON pointer-ish path."""

    path: str
    message: str
    validator: str

    def to_dict(self) -> dict[str, str]:
        return {"path": self.path, "message": self.message, "validator": self.validator}


@dataclass
class ValidationResult:
    valid: bool
    errors: list[SchemaViolation] = field(default_factory=list)

    @classmethod
    def ok(cls) -> ValidationResult:
        return cls(valid=True)

    def __bool__(self) -> bool:
        return self.valid

    @property
    def details(self) -> list[dict[str, str]]:
        return [e.to_dict() for e in self.errors]

    @property
    def summary(self) -> str:
        return "; ".join(f"{e.path}: {e.message}" for e in self.errors)


def _format_path(error: JsonSchemaValidationError) -> str:
    if not error.absolute_path:
        return "$"
    parts = ["$"]
    for part in error.absolute_path:
        parts.append(f"[{part}]" if isinstance(part, int) else f".{part}")
    return "".join(parts)


def validate_against_schema(data: Any, schema: dict[str, Any]) -> ValidationResult:
    """Validate data against an ad-hoc JSON schema, collecting all errors."""
    return _collect(Draft202012Validator(schema), data)


def _collect(validator: Draft202012Validator, data: Any) -> ValidationResult:
    try:
        violations = [
            SchemaViolation(path=_format_path(e), message=e.message, validator=str(e.validator))
            for e in validator.iter_errors(data)
        ]
    except Unresolvable as e:
        ref = getattr(e, "ref", None) or str(e)
        logger.warning("Argument schema has an unresolvable reference: %s", ref)
        return ValidationResult(
            valid=False,
            errors=[SchemaViolation(path="$", message=f"Unresolvable schema reference: {ref}", validator="$ref")],
        )
    if not violations:
        return ValidationResult.ok()
    violations.sort(key=lambda v: (v.path, v.validator, v.message))
    return ValidationResult(valid=False, errors=violations)


class SchemaValidator:
    """
    Validates call arguments against tool argument schemas.

    Example:
        ```python
        validator = SchemaValidator(manifest)
        result = validator.validate("demo.echo", {"x": 1})
        if not result:
            print(result.details)
        ```
    """

    def __init__(self, manifest: ToolManifest):
        self._manifest = manifest
        self._validators: dict[str, Draft202012Validator] = {}

    def _validator_for(self, tool: ToolDescriptor) -> Draft202012Validator:
        validator = self._validators.get(tool.id)
        if validator is None:
            validator = Draft202012Validator(_thaw(tool.argument_schema))
            self._validators[tool.id] = validator
            logger.debug("Compiled argument validator for %s", tool.id)
        return validator

    def validate(self, tool_id: str, arguments: Any) -> ValidationResult:
        """
        Validate arguments for a tool.

        Raises:
            KeyError: If the tool is not in the manifest. Callers check
                existence first so unknown tools get their own error code.
        """
        tool = self._manifest.get(tool_id)
        if tool is None:
            raise KeyError(tool_id)
        if arguments is None:
            arguments = {}
        return _collect(self._validator_for(tool), arguments)


__all__ = [
    "SchemaViolation",
    "ValidationResult",
    "SchemaValidator",
    "validate_against_schema",
]
