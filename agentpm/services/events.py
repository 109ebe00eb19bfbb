"""
Event log helpers.

Events are only ever appended. Ids are `<type>_<unix seconds>`, with a
numeric suffix when that id is already taken in the epic.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from agentpm.epic.model import Epic, Event

logger = logging.getLogger(__name__)

EPIC_STARTED = "epic_started"
EPIC_COMPLETED = "epic_completed"
PHASE_STARTED = "phase_started"
PHASE_COMPLETED = "phase_completed"
TASK_STARTED = "task_started"
TASK_COMPLETED = "task_completed"
TASK_CANCELLED = "task_cancelled"
TEST_STARTED = "test_started"
TEST_PASSED = "test_passed"
TEST_FAILED = "test_failed"
TEST_CANCELLED = "test_cancelled"
BLOCKER = "blocker"

# Types accepted for manual log entries
MANUAL_EVENT_TYPES = ("implementation", "blocker", "issue", "milestone", "decision", "note")
DEFAULT_MANUAL_TYPE = "implementation"

FILE_ACTIONS = ("added", "modified", "deleted", "renamed")


@dataclass
class FileChange:
    path: str
    action: str


def _event_id(epic: Epic, event_type: str, timestamp: datetime) -> str:
    base = f"{event_type}_{int(timestamp.timestamp())}"
    taken = {e.id for e in epic.events}
    if base not in taken:
        return base
    n = 2
    while f"{base}_{n}" in taken:
        n += 1
    return f"{base}_{n}"


def append_event(epic: Epic, event_type: str, data: str, timestamp: datetime) -> Event:
    """Append a new event and return it."""
    event = Event(
        id=_event_id(epic, event_type, timestamp),
        type=event_type,
        timestamp=timestamp,
        data=data,
    )
    epic.events.append(event)
    logger.debug(f"Event {event.id}: {data}")
    return event


def parse_file_changes(value: str) -> list[FileChange]:
    """Parse `path:action,path2:action2`.

    Each part splits on its last colon, so paths may contain colons. Empty
    parts are skipped.

    Raises:
        ValueError: A part without a colon, an empty path or action, or an
            unknown action
    """
    changes = []
    for part in value.split(","):
        part = part.strip()
        if not part:
            continue
        path, sep, action = part.rpartition(":")
        if not sep:
            raise ValueError(f"invalid file format '{part}': expected 'path:action'")
        if not path or not action:
            raise ValueError(f"invalid file format '{part}': path and action cannot be empty")
        if action not in FILE_ACTIONS:
            raise ValueError(f"invalid file action '{action}': valid actions are {', '.join(FILE_ACTIONS)}")
        changes.append(FileChange(path, action))
    return changes


def with_file_changes(message: str, changes: list[FileChange]) -> str:
    """Append a `[files: path:action, ...]` suffix when there are changes."""
    if not changes:
        return message
    listed = ", ".join(f"{c.path}:{c.action}" for c in changes)
    return f"{message} [files: {listed}]"


def _label(kind: str, entity_id: str, name: str) -> str:
    if name:
        return f"{kind} {name} ({entity_id})"
    return f"{kind} {entity_id}"


def entity_event_data(kind: str, entity_id: str, name: str, verb: str, reason: str = "") -> str:
    """Human-readable payload, e.g. 'Phase Setup (P1) started'."""
    text = f"{_label(kind, entity_id, name)} {verb}"
    if reason:
        text += f": {reason}"
    return text


def epic_event_data(epic: Epic, verb: str) -> str:
    if epic.name:
        return f"Epic {epic.name} {verb}"
    return f"Epic {epic.id} {verb}"


def blocker_data(epic: Epic, test_id: str, reason: str) -> str:
    """Summary of what a failing test holds up."""
    test = epic.find_test(test_id)
    task = epic.find_task(test.task_id) if test else None
    label = _label("Test", test_id, test.name if test else "")
    if task is not None:
        text = f"{label} is failing; task {task.id} cannot be completed until it passes"
    else:
        text = f"{label} is failing; epic cannot be completed until it passes"
    if reason:
        text += f" ({reason})"
    return text


def recent_events(epic: Epic, limit: int) -> list[Event]:
    """Newest first. Events without a timestamp sort last."""
    def key(event: Event):
        ts = event.timestamp
        return (ts is not None, ts.timestamp() if ts else 0.0)

    # Stable sort on reversed input keeps later-appended events first on ties
    ordered = sorted(reversed(epic.events), key=key, reverse=True)
    return ordered[:limit]
