from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from .registry import ToolDescriptor
from .tools.errors import ToolArgumentError


def validate_arguments(descriptor: ToolDescriptor, arguments: object) -> dict[str, Any]:
    """Check ``arguments`` against the descriptor's schema and fill defaults.

    Returns a new dict; the caller's mapping is left untouched.  Fields the
    schema does not declare are passed through as-is.
    """
    if arguments is None:
        arguments = {}
    if not isinstance(arguments, dict):
        raise ToolArgumentError("Tool arguments must be an object")

    for key in descriptor.required:
        if arguments.get(key) is None:
            raise ToolArgumentError(f"Missing required argument: '{key}'")

    validated: dict[str, Any] = dict(arguments)
    for key, prop in descriptor.properties.items():
        value = arguments.get(key)
        if value is None:
            validated.pop(key, None)
            if "default" in prop:
                validated[key] = prop["default"]
            continue
        value = _coerce(key, prop, value)
        allowed = prop.get("enum")
        if allowed is not None and value not in allowed:
            raise ToolArgumentError(
                f"Invalid value for '{key}': {value!r}. Allowed: {', '.join(map(str, allowed))}"
            )
        minimum = prop.get("minimum")
        if minimum is not None and value < minimum:
            raise ToolArgumentError(f"'{key}' must be >= {minimum}, got {value}")
        validated[key] = value
    return validated


def _coerce(key: str, prop: dict[str, Any], value: Any) -> Any:
    kind = prop.get("type")
    if kind == "string":
        if isinstance(value, str):
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
    elif kind == "number":
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            try:
                return float(value.strip())
            except ValueError:
                pass
    elif kind == "integer":
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        if isinstance(value, str):
            digits = value.strip()
            if digits.startswith("-"):
                digits = digits[1:]
            if digits.isdigit():
                return int(value.strip())
    elif kind == "boolean":
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in {"true", "false"}:
            return value.strip().lower() == "true"
    elif kind == "array":
        items = _decode_structured(value, list)
        if items is None and isinstance(value, str):
            # A lone path may itself contain commas.
            if "," not in value or Path(value.strip()).exists():
                items = [value.strip()] if value.strip() else []
            else:
                items = [part.strip() for part in value.split(",") if part.strip()]
        if isinstance(items, list):
            item_kind = (prop.get("items") or {}).get("type")
            if item_kind == "string" and not all(isinstance(i, str) for i in items):
                raise ToolArgumentError(f"'{key}' must be an array of strings")
            return items
    elif kind == "object":
        mapping = _decode_structured(value, dict)
        if isinstance(mapping, dict):
            return mapping
    else:
        return value
    raise ToolArgumentError(f"'{key}' must be of type {kind}, got {type(value).__name__}")


def _decode_structured(value: Any, expected: type) -> Any:
    # Model-driven hosts sometimes send arrays/objects as JSON or YAML text.
    if isinstance(value, expected):
        return value
    if not isinstance(value, str):
        return None
    cleaned = value.strip()
    if cleaned.startswith("```") and cleaned.endswith("```"):
        cleaned = "\n".join(cleaned.splitlines()[1:-1]).strip()
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        try:
            parsed = yaml.safe_load(cleaned)
        except yaml.YAMLError:
            return None
    return parsed if isinstance(parsed, expected) else None
