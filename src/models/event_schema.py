from __future__ import annotations
from typing import Any, Dict, List, Tuple
from jsonschema import Draft201909Validator as Validator, exceptions as js_exc

_ITEM_ERROR = {
    "type": "object",
    "required": ["key", "reason"],
    "properties": {"key": {"type": "string"}, "reason": {"type": "string"}},
}

PROGRESS_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["type", "processed", "total"],
    "properties": {
        "type": {"const": "progress"},
        "processed": {"type": "integer", "minimum": 0},
        "total": {"type": "integer", "minimum": 0},
    },
}

COMPLETE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["type", "success", "importedCount", "failedCount", "total", "createdIds", "itemErrors", "message"],
    "properties": {
        "type": {"const": "complete"},
        "success": {"type": "boolean"},
        "importedCount": {"type": "integer", "minimum": 0},
        "failedCount": {"type": "integer", "minimum": 0},
        "total": {"type": "integer", "minimum": 0},
        "processed": {"type": "integer", "minimum": 0},
        "createdIds": {"type": "array", "items": {"type": "string"}},
        "itemErrors": {"type": "array", "items": _ITEM_ERROR},
        "warnings": {"type": "array", "items": {"type": "string"}},
        "message": {"type": "string"},
    },
}

_SCHEMAS = {"progress": PROGRESS_SCHEMA, "complete": COMPLETE_SCHEMA}
_VALIDATORS = {name: Validator(schema) for name, schema in _SCHEMAS.items()}


def _format_error(e: js_exc.ValidationError) -> str:
    """
    Compact, stable error code:
      event:<validator>:<path>[:detail]
    Example: event:required:<root>
             event:type:importedCount:expected_integer
    """
    path = "/".join(str(p) for p in e.path) or "<root>"
    detail = ""
    if e.validator == "type":
        detail = f":expected_{e.validator_value}"
    elif e.validator == "const":
        detail = f":expected_{e.validator_value}"
    elif e.validator == "minimum":
        detail = f":minimum_{e.validator_value}"
    return f"event:{e.validator}:{path}{detail}"


def validate_event(record: Any) -> Tuple[bool, List[str]]:
    """Check one decoded NDJSON record against the schema for its `type`."""
    if not isinstance(record, dict):
        return False, ["event:type:<root>:expected_object"]
    validator = _VALIDATORS.get(record.get("type"))
    if validator is None:
        return False, [f"event:unknown_type:{record.get('type')}"]
    errors = sorted(validator.iter_errors(record), key=lambda e: list(e.path))
    if not errors:
        return True, []
    return False, [_format_error(e) for e in errors]
