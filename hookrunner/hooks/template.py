"""Command templater - fills {placeholders} in hook commands from a data context."""
import json
import re
from typing import Any, Mapping

from hookrunner.hooks.models import RequestSnapshot
from hookrunner.hooks.rules import resolve_path

# "{{" and "}}" escape literal braces; "{a.b}" is a placeholder.
_TOKEN = re.compile(r"\{\{|\}\}|\{([^{}\s]+)\}")


def format_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"), default=str)
    return str(value)


def render(template: str, context: RequestSnapshot | Mapping[str, Any] | None) -> str:
    """Substitute placeholders. Missing values render as ""; never raises."""
    if isinstance(context, RequestSnapshot):
        data: Any = context.as_context()
    else:
        data = context or {}

    def replace(match: re.Match) -> str:
        token = match.group(0)
        if token == "{{":
            return "{"
        if token == "}}":
            return "}"
        try:
            values = resolve_path(data, match.group(1))
            return format_value(values[0]) if values else ""
        except Exception:
            return ""

    return _TOKEN.sub(replace, template)
