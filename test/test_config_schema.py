"""
Config Schema Engine Tests

Test classes:
    TestParseConfigSchema  — schema shapes accepted from manifests
    TestResolve            — defaults + sparse overrides
    TestStyleBindings      — CSS variable output
    TestValidateConfig     — save-time checking and coercion
"""

import pytest

SCHEMA_DATA = {
    "title": {"type": "string", "default": "Contents"},
    "maxDepth": {"type": "number", "default": 3, "min": 1, "max": 6},
    "accentColor": {"type": "color", "default": "#3b82f6", "cssVar": "toc-accent"},
    "width": {"type": "range", "default": 240, "unit": "px", "min": 160, "max": 400, "cssVar": "--toc-width"},
    "sticky": {"type": "boolean", "default": True, "cssVar": "toc-sticky"},
    "position": {"type": "select", "default": "right", "options": [{"value": "left"}, {"value": "right"}]},
}


@pytest.fixture
def schema():
    from plugin_runtime.plugins.models import parse_config_schema

    return parse_config_schema(SCHEMA_DATA)


# ══════════════════════════════════════════════════════════════════════════════
# 1. TestParseConfigSchema
# ══════════════════════════════════════════════════════════════════════════════


class TestParseConfigSchema:
    def test_bare_mapping_keeps_declaration_order(self, schema):
        assert list(schema) == ["title", "maxDepth", "accentColor", "width", "sticky", "position"]

    def test_wrapped_schema_is_unwrapped(self):
        from plugin_runtime.plugins.models import parse_config_schema

        parsed = parse_config_schema({"schema": {"size": {"type": "number", "default": 12}}})
        assert list(parsed) == ["size"]
        assert parsed["size"].default == 12

    def test_non_mapping_yields_empty_schema(self):
        from plugin_runtime.plugins.models import parse_config_schema

        assert parse_config_schema(None) == {}
        assert parse_config_schema(["not", "a", "schema"]) == {}

    def test_field_attributes(self, schema):
        width = schema["width"]
        assert width.type == "range"
        assert width.unit == "px"
        assert width.css_var == "--toc-width"
        assert (width.min, width.max) == (160, 400)

    def test_field_to_dict_uses_camel_case(self, schema):
        assert schema["accentColor"].to_dict() == {"type": "color", "default": "#3b82f6", "cssVar": "toc-accent"}


# ══════════════════════════════════════════════════════════════════════════════
# 2. TestResolve
# ══════════════════════════════════════════════════════════════════════════════


class TestResolve:
    def test_empty_config_resolves_to_defaults(self, schema):
        from plugin_runtime.plugins.config_schema import defaults, resolve

        assert resolve(schema, {}) == defaults(schema)
        assert resolve(schema, {})["maxDepth"] == 3

    def test_none_config_resolves_to_defaults(self, schema):
        from plugin_runtime.plugins.config_schema import defaults, resolve

        assert resolve(schema, None) == defaults(schema)

    def test_single_override(self, schema):
        from plugin_runtime.plugins.config_schema import defaults, resolve

        resolved = resolve(schema, {"maxDepth": 5})
        expected = defaults(schema)
        expected["maxDepth"] = 5
        assert resolved == expected

    def test_values_are_not_type_checked(self, schema):
        """resolve never rejects: a string in a numeric field passes through."""
        from plugin_runtime.plugins.config_schema import resolve

        assert resolve(schema, {"maxDepth": "lots"})["maxDepth"] == "lots"

    def test_override_with_none_wins(self, schema):
        from plugin_runtime.plugins.config_schema import resolve

        assert resolve(schema, {"title": None})["title"] is None


# ══════════════════════════════════════════════════════════════════════════════
# 3. TestStyleBindings
# ══════════════════════════════════════════════════════════════════════════════


class TestStyleBindings:
    def test_only_bound_fields_in_schema_order(self, schema):
        from plugin_runtime.plugins.config_schema import resolve, to_style_bindings

        bindings = to_style_bindings(schema, resolve(schema, {}))
        assert bindings == [
            ("--toc-accent", "#3b82f6"),
            ("--toc-width", "240px"),
            ("--toc-sticky", "true"),
        ]

    def test_unit_appended_to_override(self, schema):
        from plugin_runtime.plugins.config_schema import resolve, to_style_bindings

        bindings = dict(to_style_bindings(schema, resolve(schema, {"width": 320})))
        assert bindings["--toc-width"] == "320px"

    def test_color_passes_through_unmodified(self, schema):
        from plugin_runtime.plugins.config_schema import resolve, to_style_bindings

        bindings = dict(to_style_bindings(schema, resolve(schema, {"accentColor": "rgb(1, 2, 3)"})))
        assert bindings["--toc-accent"] == "rgb(1, 2, 3)"

    def test_none_value_is_skipped(self, schema):
        from plugin_runtime.plugins.config_schema import resolve, to_style_bindings

        bindings = dict(to_style_bindings(schema, resolve(schema, {"accentColor": None})))
        assert "--toc-accent" not in bindings

    def test_number_without_unit(self):
        from plugin_runtime.plugins.config_schema import to_style_bindings
        from plugin_runtime.plugins.models import parse_config_schema

        schema = parse_config_schema({"ratio": {"type": "number", "default": 1.5, "cssVar": "ratio"}})
        assert to_style_bindings(schema, {"ratio": 1.5}) == [("--ratio", "1.5")]


# ══════════════════════════════════════════════════════════════════════════════
# 4. TestValidateConfig
# ══════════════════════════════════════════════════════════════════════════════


class TestValidateConfig:
    def test_valid_config_is_returned(self, schema):
        from plugin_runtime.plugins.config_schema import validate_config

        config = {"title": "On this page", "maxDepth": 4, "position": "left"}
        assert validate_config(schema, config) == config

    def test_unknown_keys_rejected(self, schema):
        from plugin_runtime.exceptions import ValidationError
        from plugin_runtime.plugins.config_schema import validate_config

        with pytest.raises(ValidationError) as exc_info:
            validate_config(schema, {"title": "x", "colour": "red"})
        assert exc_info.value.details["fields"] == ["colour"]
        assert exc_info.value.status_code == 400

    def test_numeric_strings_are_coerced(self, schema):
        from plugin_runtime.plugins.config_schema import validate_config

        cleaned = validate_config(schema, {"maxDepth": "5", "width": "250.5"})
        assert cleaned == {"maxDepth": 5, "width": 250.5}

    def test_non_numeric_rejected(self, schema):
        from plugin_runtime.exceptions import ValidationError
        from plugin_runtime.plugins.config_schema import validate_config

        with pytest.raises(ValidationError) as exc_info:
            validate_config(schema, {"maxDepth": "deep"})
        assert exc_info.value.details["field"] == "maxDepth"

    def test_bool_is_not_a_number(self, schema):
        from plugin_runtime.exceptions import ValidationError
        from plugin_runtime.plugins.config_schema import validate_config

        with pytest.raises(ValidationError):
            validate_config(schema, {"maxDepth": True})

    def test_bounds_enforced(self, schema):
        from plugin_runtime.exceptions import ValidationError
        from plugin_runtime.plugins.config_schema import validate_config

        with pytest.raises(ValidationError):
            validate_config(schema, {"maxDepth": 7})
        with pytest.raises(ValidationError):
            validate_config(schema, {"width": 100})

    def test_boolean_strings_are_coerced(self, schema):
        from plugin_runtime.plugins.config_schema import validate_config

        assert validate_config(schema, {"sticky": "false"}) == {"sticky": False}
        assert validate_config(schema, {"sticky": "on"}) == {"sticky": True}

    def test_text_fields_require_strings(self, schema):
        from plugin_runtime.exceptions import ValidationError
        from plugin_runtime.plugins.config_schema import validate_config

        with pytest.raises(ValidationError):
            validate_config(schema, {"accentColor": 123})

    def test_select_value_must_be_an_option(self, schema):
        from plugin_runtime.exceptions import ValidationError
        from plugin_runtime.plugins.config_schema import validate_config

        with pytest.raises(ValidationError):
            validate_config(schema, {"position": "top"})

    def test_unknown_field_type_passes_through(self):
        from plugin_runtime.plugins.config_schema import validate_config
        from plugin_runtime.plugins.models import parse_config_schema

        schema = parse_config_schema({"links": {"type": "list", "default": []}})
        assert validate_config(schema, {"links": ["a", "b"]}) == {"links": ["a", "b"]}
