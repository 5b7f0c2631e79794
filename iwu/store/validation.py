"""Payload validation for records created through the API and the monitors."""

from typing import Any, Dict, Optional

import jsonschema

SEVERITIES = ["critical", "high", "medium", "low", "warning", "info"]


class ValidationError(Exception):
    """Raised when a payload is missing required fields or has bad values."""
    def __init__(self, message: str, field: Optional[str] = None):
        self.message = message
        self.field = field
        super().__init__(message)


_NON_EMPTY_STRING = {"type": "string", "minLength": 1, "pattern": r"\S"}

CASE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["title", "category"],
    "properties": {
        "title": _NON_EMPTY_STRING,
        "category": _NON_EMPTY_STRING,
        "scope": {"type": "string"},
        "severity": {"type": "string", "enum": SEVERITIES},
        "source_urls": {"type": "array", "items": {"type": "string"}},
    },
}

ALERT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["title"],
    "properties": {
        "title": _NON_EMPTY_STRING,
        "message": {"type": "string"},
        "severity": {"type": "string", "enum": SEVERITIES},
        "category": {"type": ["string", "null"]},
        "scope": {"type": "string"},
        "source": {"type": "string"},
        "source_url": {"type": "string"},
        "verified": {"type": "boolean"},
    },
}

TARGET_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["name", "type"],
    "properties": {
        "name": _NON_EMPTY_STRING,
        "type": _NON_EMPTY_STRING,
        "jurisdiction": {"type": ["string", "null"]},
        "threat_level": {"type": "string", "enum": SEVERITIES},
        "corruption_indicators": {"type": "array"},
        "related_cases": {"type": "array", "items": {"type": "string"}},
    },
}

EVIDENCE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["case_id", "file_name"],
    "properties": {
        "case_id": _NON_EMPTY_STRING,
        "file_name": _NON_EMPTY_STRING,
        "file_type": {"type": "string"},
        "storage_path": {"type": ["string", "null"]},
        "source_url": {"type": "string"},
    },
}


def validate_payload(payload: Any, schema: Dict[str, Any]) -> None:
    """
    Validate ``payload`` against a JSON schema.

    Raises:
        ValidationError: Naming the offending field where possible
    """
    if not isinstance(payload, dict):
        raise ValidationError("Payload must be an object")

    try:
        jsonschema.validate(payload, schema)
    except jsonschema.ValidationError as e:
        if e.validator == "required":
            prop = e.message.split("'")[1] if "'" in e.message else None
            raise ValidationError(f"Missing required field: {prop}", field=prop) from e

        field = ".".join(str(p) for p in e.absolute_path) or None
        if e.validator in ("minLength", "pattern") and field:
            raise ValidationError(f"Field '{field}' must not be empty", field=field) from e
        if field:
            raise ValidationError(f"Invalid value for '{field}': {e.message}", field=field) from e
        raise ValidationError(f"Invalid payload: {e.message}") from e
