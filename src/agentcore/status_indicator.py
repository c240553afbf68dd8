"""
Status indicator rendering.

Turns a pending tool call or a status string into the human-facing
"is typing / is thinking" payload shown by chat surfaces. Rendering is
lenient on purpose: malformed tool arguments and unresolvable template paths
degrade to empty text instead of raising.
"""

from __future__ import annotations

import json
import re
from typing import Any, Mapping, Optional

from .utils import ensure_string

# Statuses starting with this marker mean the agent is writing its reply
WRITING_STATUS_PREFIX = "✏️"
WRITING_RESPONSE_STATUS = f"{WRITING_STATUS_PREFIX} writing response"
THINKING_STATUS = "🧠 thinking"

_PLACEHOLDER = re.compile(r"\$\{([^{}]*)\}")
_PATH_TOKEN = re.compile(r"""\s*(?:\.?\s*([A-Za-z_$][\w$]*)|\[\s*(-?\d+)\s*\]|\[\s*["']([^"']*)["']\s*\])""")

_MISSING = object()


def _parse_args(args_json: Any) -> Any:
    if args_json is None:
        return {}
    if isinstance(args_json, (str, bytes, bytearray)):
        try:
            parsed = json.loads(args_json)
        except (json.JSONDecodeError, ValueError):
            return {}
        return parsed if isinstance(parsed, (dict, list)) else {}
    return args_json


def _evaluate_path(expression: str, context: Mapping[str, Any]) -> Any:
    """Resolve ``a.b[0]["c"]`` against the context, or return _MISSING."""
    expression = expression.strip()
    if not expression:
        return _MISSING

    value: Any = context
    position = 0
    while position < len(expression):
        match = _PATH_TOKEN.match(expression, position)
        if match is None or match.end() == position:
            return _MISSING
        name, index, key = match.groups()
        position = match.end()

        if name is not None or key is not None:
            attr = name if name is not None else key
            if not isinstance(value, Mapping) or attr not in value:
                return _MISSING
            value = value[attr]
        else:
            if not isinstance(value, (list, tuple)):
                return _MISSING
            try:
                value = value[int(index)]
            except IndexError:
                return _MISSING

    return value


def render_template(template: str, context: Mapping[str, Any]) -> str:
    """Substitute every ``${path}`` placeholder in ``template``."""

    def _substitute(match: re.Match) -> str:
        value = _evaluate_path(match.group(1), context)
        if value is _MISSING:
            return ""
        return ensure_string(value)

    return _PLACEHOLDER.sub(_substitute, template)


def resolve_status_indicator_text(
    tool_name: str,
    status_indicator_text: Optional[str] = None,
    args_json: Any = None,
    template_context: Optional[Mapping[str, Any]] = None,
) -> str:
    """Render the busy indicator shown while a tool call is pending.

    Args:
        tool_name: Name of the tool being called
        status_indicator_text: Optional ``${...}`` template from the tool spec
        args_json: Tool arguments as a JSON string or an already parsed value
        template_context: Extra values available to the template

    Returns:
        The rendered indicator text

    Example:
        >>> resolve_status_indicator_text("exec")
        '🛠️ exec...'
        >>> resolve_status_indicator_text(
        ...     "exec", "⚙️ ${args.command}", '{"command": "ls -la"}'
        ... )
        '⚙️ ls -la'
    """
    if not status_indicator_text:
        return f"🛠️ {tool_name}..."

    context = {"args": _parse_args(args_json), **(template_context or {})}
    return render_template(status_indicator_text, context)


def build_slack_thread_status_payload(value: Optional[str]) -> dict[str, Any]:
    """Build the Slack ``assistant.threads.setStatus`` payload for a status.

    ``None`` clears the indicator; statuses starting with the writing marker
    show "is typing...", everything else shows "is thinking...".
    """
    if value is None:
        return {"status": ""}
    if value.startswith(WRITING_STATUS_PREFIX):
        return {"status": "is typing...", "loading_messages": [f"{value}..."]}
    return {"status": "is thinking...", "loading_messages": [f"{value}..."]}
