"""
Plugin Style Renderer

Renders the `<head>` fragment the site layout embeds for enabled plugins:
one `<style data-plugin="...">` block per plugin, holding its stylesheet
and a `:root { ... }` rule with its configured CSS variables.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from jinja2 import Environment, select_autoescape

_UNSAFE_VALUE_CHARS = re.compile(r"[<>{};\r\n]")
_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9_-]")

_HEAD_TEMPLATE = """\
{%- for entry in entries %}
<style data-plugin="{{ entry.plugin_id }}">
{%- if entry.css %}
{{ entry.css | safe }}
{%- endif %}
{%- if entry.bindings %}
:root {
{%- for name, value in entry.bindings %}
  {{ name | safe }}: {{ value | safe }};
{%- endfor %}
}
{%- endif %}
</style>
{%- endfor %}
"""


@dataclass(frozen=True)
class StyleEntry:
    plugin_id: str
    css: str | None = None
    bindings: list[tuple[str, str]] = field(default_factory=list)


def sanitize_css_value(value: str) -> str:
    """Strip characters that could close the declaration, the rule or the tag."""
    return _UNSAFE_VALUE_CHARS.sub("", value).strip()


def sanitize_css_name(name: str) -> str:
    stripped = _UNSAFE_NAME_CHARS.sub("", name.lstrip("-"))
    return f"--{stripped}"


def escape_stylesheet(css: str) -> str:
    """A stylesheet must not be able to terminate its `<style>` element."""
    return re.sub(r"</", r"<\\/", css)


class StyleRenderer:
    def __init__(self) -> None:
        self._env = Environment(autoescape=select_autoescape(default=True, default_for_string=True))
        self._template = self._env.from_string(_HEAD_TEMPLATE)

    def render_head(self, entries: list[StyleEntry]) -> str:
        cleaned = [
            StyleEntry(
                plugin_id=entry.plugin_id,
                css=escape_stylesheet(entry.css) if entry.css else None,
                bindings=[(sanitize_css_name(name), sanitize_css_value(value)) for name, value in entry.bindings],
            )
            for entry in entries
        ]
        return self._template.render(entries=cleaned).strip()
