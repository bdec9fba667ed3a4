"""
Config Schema Engine

Merges a plugin's declared configuration schema with the admin's sparse
overrides and turns the result into CSS custom property assignments.

`resolve` and `to_style_bindings` are permissive: they never check a
value against the field's declared type. Checking happens once, when an
admin saves a config, in `validate_config`.
"""

from __future__ import annotations

from typing import Any

from plugin_runtime.exceptions import ValidationError
from plugin_runtime.plugins.models import ConfigField, ConfigSchema

NUMERIC_TYPES = frozenset({"number", "range"})
BOOLEAN_TYPES = frozenset({"boolean", "toggle"})
TEXT_TYPES = frozenset({"string", "text", "color"})

_TRUE_STRINGS = frozenset({"true", "1", "yes", "on"})
_FALSE_STRINGS = frozenset({"false", "0", "no", "off"})


def defaults(schema: ConfigSchema) -> dict[str, Any]:
    """Declared default of every field, in schema order."""
    return {name: spec.default for name, spec in schema.items()}


def resolve(schema: ConfigSchema, user_config: dict[str, Any] | None) -> dict[str, Any]:
    """Schema defaults overridden by whatever the admin saved (right-biased merge)."""
    return {**defaults(schema), **(user_config or {})}


def _css_var_name(name: str) -> str:
    return name if name.startswith("--") else f"--{name}"


def _format_value(spec: ConfigField, value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if spec.type in NUMERIC_TYPES and spec.unit:
        return f"{value}{spec.unit}"
    return str(value)


def to_style_bindings(schema: ConfigSchema, resolved: dict[str, Any]) -> list[tuple[str, str]]:
    """
    Ordered `(variable, value)` pairs for every field bound to a CSS variable.

    Numeric fields get their declared unit appended; colors and text pass
    through untouched. Fields without a binding, or whose value is None,
    produce nothing.
    """
    bindings: list[tuple[str, str]] = []
    for name, spec in schema.items():
        if not spec.css_var:
            continue
        value = resolved.get(name, spec.default)
        if value is None:
            continue
        bindings.append((_css_var_name(spec.css_var), _format_value(spec, value)))
    return bindings


# ── Save-time validation ─────────────────────────────────────────────────────


def _coerce_number(name: str, spec: ConfigField, value: Any) -> int | float:
    if isinstance(value, bool):
        raise ValidationError(f"Field '{name}' expects a number", field=name)
    if isinstance(value, (int, float)):
        number = value
    elif isinstance(value, str):
        try:
            number = float(value) if any(c in value for c in ".eE") else int(value)
        except ValueError as exc:
            raise ValidationError(f"Field '{name}' expects a number", field=name) from exc
    else:
        raise ValidationError(f"Field '{name}' expects a number", field=name)

    if spec.min is not None and number < spec.min:
        raise ValidationError(f"Field '{name}' must be >= {spec.min}", field=name)
    if spec.max is not None and number > spec.max:
        raise ValidationError(f"Field '{name}' must be <= {spec.max}", field=name)
    return number


def _coerce_boolean(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise ValidationError(f"Field '{name}' expects a boolean", field=name)


def _option_values(spec: ConfigField) -> list[Any]:
    return [opt.get("value") if isinstance(opt, dict) else opt for opt in spec.options]


def validate_config(schema: ConfigSchema, config: dict[str, Any]) -> dict[str, Any]:
    """
    Check an admin-supplied config against the schema.

    Unknown keys are rejected. Numeric and boolean fields accept their
    string spellings and are coerced; anything that cannot be coerced,
    falls outside declared bounds, or is not one of a select's options
    raises ValidationError. Untyped/unknown field types pass through.
    """
    unknown = sorted(set(config) - set(schema))
    if unknown:
        raise ValidationError("Unknown config fields", details={"fields": unknown})

    cleaned: dict[str, Any] = {}
    for name, value in config.items():
        spec = schema[name]
        if spec.type in NUMERIC_TYPES:
            cleaned[name] = _coerce_number(name, spec, value)
        elif spec.type in BOOLEAN_TYPES:
            cleaned[name] = _coerce_boolean(name, value)
        elif spec.type in TEXT_TYPES:
            if not isinstance(value, str):
                raise ValidationError(f"Field '{name}' expects a string", field=name)
            cleaned[name] = value
        elif spec.type == "select" and spec.options:
            if value not in _option_values(spec):
                raise ValidationError(f"Field '{name}' must be one of the declared options", field=name)
            cleaned[name] = value
        else:
            cleaned[name] = value
    return cleaned
