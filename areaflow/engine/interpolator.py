"""Placeholder interpolation: binds trigger output into reaction parameters."""

import json
import re
from typing import Any, Dict

PLACEHOLDER_PATTERN = re.compile(r"{{\s*(\w+)\s*}}")


def to_text(value: Any) -> str:
    """Canonical string form of a variable value."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"), default=str)
    return str(value)


def interpolate(template: Any, variables: Dict[str, Any]) -> Any:
    """Replace ``{{name}}`` placeholders in strings, dicts and lists.

    Unknown names are left as-is so a reaction referencing an optional
    field keeps its literal placeholder. The template is never mutated.

    Example:
        interpolate({"subject": "New: {{title}}"}, {"title": "Bug Fix"})
        # -> {"subject": "New: Bug Fix"}
    """
    if isinstance(template, str):
        def _replace(match: "re.Match[str]") -> str:
            name = match.group(1)
            if name not in variables:
                return match.group(0)
            return to_text(variables[name])

        return PLACEHOLDER_PATTERN.sub(_replace, template)
    if isinstance(template, (list, tuple)):
        return [interpolate(item, variables) for item in template]
    if isinstance(template, dict):
        return {key: interpolate(value, variables) for key, value in template.items()}
    return template
