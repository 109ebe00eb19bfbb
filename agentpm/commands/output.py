"""
Rendering for command results and errors.

Every command produces a plain data mapping plus a text rendering. The
selected format decides which one is printed: text as-is, JSON with 2-space
indentation, or XML built from the mapping. Errors go to stderr.
"""

import json
import sys
import xml.etree.ElementTree as ET
from dataclasses import asdict, is_dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from agentpm.lib.timeutil import format_timestamp
from agentpm.services.errors import LifecycleError

FORMATS = ("text", "json", "xml")
PROGRAM = "agentpm"

# Plural container tag -> item tag
_ITEM_TAGS = {
    "phases": "phase",
    "tasks": "task",
    "tests": "test",
    "events": "event",
    "items": "item",
    "blocking_items": "item",
    "pending_phases": "phase",
    "failing_tests": "test",
    "suggestions": "suggestion",
    "conditions": "condition",
    "warnings": "warning",
    "errors": "error",
    "bottlenecks": "bottleneck",
    "recommendations": "recommendation",
    "affected_phases": "phase",
    "affected_tasks": "task",
    "affected_tests": "test",
    "test_ids": "test",
}


def plain(value: Any) -> Any:
    """Convert dataclasses, enums and datetimes into JSON-ready data."""
    if is_dataclass(value) and not isinstance(value, type):
        return plain(asdict(value))
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, dict):
        return {str(k): plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [plain(v) for v in value]
    return value


def command_line(command: str) -> str:
    """Full invocation for a bare hint command."""
    return f"{PROGRAM} {command}" if command else ""


def _fill(el: ET.Element, value: Any) -> None:
    if isinstance(value, dict):
        for key, child in value.items():
            sub = ET.SubElement(el, key)
            _fill(sub, child)
    elif isinstance(value, list):
        item_tag = _ITEM_TAGS.get(el.tag, "item")
        for child in value:
            sub = ET.SubElement(el, item_tag)
            _fill(sub, child)
    elif isinstance(value, bool):
        el.text = "true" if value else "false"
    elif value is not None:
        el.text = str(value)


def to_xml(root: str, data: Any) -> str:
    el = ET.Element(root)
    _fill(el, plain(data))
    ET.indent(el, space="    ")
    return ET.tostring(el, encoding="unicode")


def render(fmt: str, root: str, data: Any, text: str) -> str:
    if fmt == "json":
        return json.dumps(plain(data), indent=2)
    if fmt == "xml":
        return to_xml(root, data)
    return text


def emit(fmt: str, root: str, data: Any, text: str) -> None:
    print(render(fmt, root, data, text))


# Errors

def error_data(error: Exception) -> dict:
    if isinstance(error, LifecycleError):
        data = error.to_dict()
        if "hint" in data and data["hint"].get("command"):
            data["hint"]["command"] = command_line(data["hint"]["command"])
        return plain(data)
    return {"type": type(error).__name__, "message": str(error)}


def error_text(error: Exception) -> str:
    if not isinstance(error, LifecycleError):
        return f"ERROR: {error}"

    lines = [f"ERROR: {error.message}"]
    report = getattr(error, "report", "")
    if report:
        lines.extend(f"  {line}" for line in report.splitlines())
    elif error.suggestion:
        lines.append(f"  Suggestion: {error.suggestion}")
    for item in getattr(error, "blocking_items", []):
        lines.append(f"  - {item.type} {item.id}: {item.name} ({item.status})")
    hint = error.hint
    if hint is not None:
        lines.append(f"  Hint: {hint.content}")
        if hint.command:
            lines.append(f"  Try: {command_line(hint.command)}")
        if hint.reference:
            lines.append(f"  See: {hint.reference}")
    return "\n".join(lines)


def emit_error(fmt: str, error: Exception) -> None:
    print(render(fmt, "error", error_data(error), error_text(error)), file=sys.stderr)
