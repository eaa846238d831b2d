"""
JSON schema for configuration file validation.
"""

ENVELOPE_SCHEMA = {
    "type": "object",
    "properties": {
        "secret": {"type": ["string", "null"]},
        "require": {"type": "boolean"},
    },
    "additionalProperties": False,
}

CALLER_SCHEMA = {
    "type": "object",
    "properties": {
        "initiator_id": {"type": "string", "minLength": 1},
        "roles": {"type": "array", "items": {"type": "string"}},
        "token_ref": {"type": "string"},
        "app_id": {"type": "string"},
        "environment": {"type": "string"},
        "cost_center": {"type": ["string", "null"]},
        "data_classification": {
            "enum": ["PUBLIC", "INTERNAL", "CONFIDENTIAL", "RESTRICTED", None],
        },
    },
    "additionalProperties": False,
}

WORKFLOW_SCHEMA = {
    "type": "object",
    "properties": {
        "backend": {"type": "string", "enum": ["none", "memory", "http"]},
        "engine_url": {"type": "string"},
        "namespace": {"type": "string", "minLength": 1},
        "task_queue": {"type": "string", "minLength": 1},
        "timeout_seconds": {"type": "number", "exclusiveMinimum": 0},
        "ui_url": {"type": "string"},
        "progress_activity_type": {"type": "string", "minLength": 1},
    },
    "additionalProperties": False,
}

CAPABILITY_SCHEMA = {
    "type": "object",
    "properties": {
        "runner": {"type": "string", "enum": ["local", "engine"]},
        "behavior": {"type": "string", "enum": ["await", "start"]},
        "workflow_type": {"type": "string", "minLength": 1},
        "result_timeout_seconds": {"type": "number", "exclusiveMinimum": 0},
    },
    "additionalProperties": False,
}

LOGGING_SCHEMA = {
    "type": "object",
    "properties": {
        "level": {"type": "string", "enum": ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]},
        "format": {"type": "string", "enum": ["text", "json"]},
    },
    "additionalProperties": False,
}

CONFIG_SCHEMA = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "properties": {
        "manifest_path": {"type": ["string", "null"]},
        "envelope": ENVELOPE_SCHEMA,
        "caller": CALLER_SCHEMA,
        "workflow": WORKFLOW_SCHEMA,
        "capability": CAPABILITY_SCHEMA,
        "logging": LOGGING_SCHEMA,
    },
    "additionalProperties": False,
}
