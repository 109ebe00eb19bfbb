"""
XML codec for epic documents.

Parsing is forgiving: unknown elements and attributes are ignored, missing
sections become empty values and legacy status tokens are mapped to the
unified vocabulary. Serialization is deterministic: fixed child order,
insertion-ordered attributes, 4-space indentation and an XML prolog.

Prose fields (descriptions, workflow, requirements, ...) hold XML fragments:
escaped text with optional inline markup. Child elements are copied
verbatim; only whitespace is normalized.
"""

import logging
import re
import xml.etree.ElementTree as ET
from datetime import datetime
from typing import Optional

from agentpm.epic.model import CurrentState, Epic, Event, Metadata, Phase, Task, Test
from agentpm.epic.status import (
    TestResult,
    parse_test_result,
    unify_epic_status,
    unify_phase_status,
    unify_task_status,
    unify_test_status,
)
from agentpm.lib.timeutil import format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)

XML_PROLOG = '<?xml version="1.0" encoding="UTF-8"?>\n'
INDENT = "    "

# Child elements that switch a <test> from inline text to the structured form
TEST_DETAIL_TAGS = {
    "description",
    "started_at",
    "passed_at",
    "failed_at",
    "cancelled_at",
    "failure_note",
    "cancellation_reason",
}


class EpicParseError(Exception):
    """The document is not well-formed XML."""

    def __init__(self, message: str, source: str = ""):
        self.source = source
        super().__init__(f"{message}" + (f" ({source})" if source else ""))


class EpicStructureError(EpicParseError):
    """Well-formed XML that is not an epic document."""


# Inline markup helpers
#
# A prose value is an XML fragment: text is escaped, inline markup is kept
# as tags. Text that is not a well-formed fragment is stored as literal text.

def _escape_text(text: str) -> str:
    return text.replace("&", "&amp;").replace("<", "&lt;")


def get_inner_xml(el: Optional[ET.Element]) -> str:
    """Content of a prose element as an XML fragment.

    Plain text is returned exactly, apart from escaping. When the element has
    child elements, the children are serialized verbatim and whitespace is
    compacted.
    """
    if el is None:
        return ""
    if len(el) == 0:
        return _escape_text(el.text or "")

    parts = [_escape_text(el.text or "")]
    for child in el:
        parts.append(ET.tostring(child, encoding="unicode"))
    return normalize_whitespace("".join(parts))


def normalize_whitespace(content: str) -> str:
    """Tabs become spaces, runs of spaces collapse, ends are trimmed."""
    content = content.replace("\t", " ")
    content = re.sub(r" {2,}", " ", content)
    return content.strip()


def set_inner_xml(el: ET.Element, content: str) -> None:
    """Fill a prose element from an XML fragment.

    Entities are decoded and inline markup becomes real child elements.
    Content that does not parse is kept as literal text.
    """
    try:
        wrapper = ET.fromstring(f"<temp>{content}</temp>")
    except ET.ParseError:
        el.text = content
        return
    el.text = wrapper.text
    for child in wrapper:
        el.append(child)


# Parsing

def _attr(el: ET.Element, name: str) -> str:
    return el.get(name, "")


def _child_text(el: ET.Element, tag: str) -> str:
    child = el.find(tag)
    if child is None:
        return ""
    return child.text or ""


def _child_time(el: ET.Element, tag: str) -> Optional[datetime]:
    """Timestamp from a child element, falling back to an attribute."""
    raw = _child_text(el, tag).strip() or _attr(el, tag)
    if not raw:
        return None
    value = parse_timestamp(raw)
    if value is None:
        logger.warning(f"Ignoring unparseable timestamp <{tag}>{raw}</{tag}>")
    return value


def parse_epic(data: bytes | str, source: str = "") -> Epic:
    """Parse an epic document.

    Raises:
        EpicParseError: If the XML is malformed
        EpicStructureError: If the root element is not <epic>
    """
    try:
        root = ET.fromstring(data)
    except ET.ParseError as e:
        raise EpicParseError(f"malformed epic XML: {e}", source) from None

    if root.tag != "epic":
        raise EpicStructureError("invalid epic file: missing <epic> root element", source)

    epic_id = _attr(root, "id")
    epic = Epic(
        id=epic_id,
        name=_attr(root, "name"),
        status=unify_epic_status(root.get("status"), f"epic {epic_id}"),
        created_at=parse_timestamp(_attr(root, "created_at")),
        assignee=_child_text(root, "assignee"),
        description=get_inner_xml(root.find("description")),
        workflow=get_inner_xml(root.find("workflow")),
        requirements=get_inner_xml(root.find("requirements")),
        dependencies=get_inner_xml(root.find("dependencies")),
    )

    meta_el = root.find("metadata")
    if meta_el is not None:
        epic.metadata = Metadata(
            created=_child_time(meta_el, "created"),
            assignee=_child_text(meta_el, "assignee"),
            estimated_effort=_child_text(meta_el, "estimated_effort"),
        )

    state_el = root.find("current_state")
    if state_el is not None:
        epic.current_state = CurrentState(
            active_phase=_child_text(state_el, "active_phase"),
            active_task=_child_text(state_el, "active_task"),
            next_action=_child_text(state_el, "next_action"),
        )

    epic.phases = [_parse_phase(el) for el in root.findall("phases/phase")]
    epic.tasks = [_parse_task(el) for el in root.findall("tasks/task")]
    epic.tests = [_parse_test(el) for el in root.findall("tests/test")]
    epic.events = [_parse_event(el) for el in root.findall("events/event")]
    return epic


def _parse_phase(el: ET.Element) -> Phase:
    phase_id = _attr(el, "id")
    return Phase(
        id=phase_id,
        name=_attr(el, "name"),
        status=unify_phase_status(el.get("status"), f"phase {phase_id}"),
        description=get_inner_xml(el.find("description")),
        deliverables=get_inner_xml(el.find("deliverables")),
        started_at=_child_time(el, "started_at"),
        completed_at=_child_time(el, "completed_at"),
    )


def _parse_task(el: ET.Element) -> Task:
    task_id = _attr(el, "id")
    return Task(
        id=task_id,
        phase_id=_attr(el, "phase_id"),
        name=_attr(el, "name"),
        status=unify_task_status(el.get("status"), f"task {task_id}"),
        assignee=_attr(el, "assignee"),
        description=get_inner_xml(el.find("description")),
        acceptance_criteria=get_inner_xml(el.find("acceptance_criteria")),
        started_at=_child_time(el, "started_at"),
        completed_at=_child_time(el, "completed_at"),
        cancelled_at=_child_time(el, "cancelled_at"),
        cancellation_reason=get_inner_xml(el.find("cancellation_reason")),
    )


def _parse_test(el: ET.Element) -> Test:
    test_id = _attr(el, "id")
    legacy_status = el.get("status")
    result = parse_test_result(el.get("result"))

    # The unified attribute wins; older files only carry `status`
    unified = el.get("test_status")
    if unified:
        test_status = unify_test_status(unified, f"test {test_id}")
    else:
        test_status = unify_test_status(legacy_status, f"test {test_id}")
        if result is None and (legacy_status or "").strip().lower() == "failed":
            result = TestResult.FAILING

    structured = any(child.tag in TEST_DETAIL_TAGS for child in el)
    if structured:
        description = get_inner_xml(el.find("description"))
    else:
        description = get_inner_xml(el)

    return Test(
        id=test_id,
        task_id=_attr(el, "task_id"),
        phase_id=_attr(el, "phase_id"),
        name=_attr(el, "name"),
        description=description,
        test_status=test_status,
        result=result,
        started_at=_child_time(el, "started_at"),
        passed_at=_child_time(el, "passed_at"),
        failed_at=_child_time(el, "failed_at"),
        cancelled_at=_child_time(el, "cancelled_at"),
        failure_note=get_inner_xml(el.find("failure_note")),
        cancellation_reason=get_inner_xml(el.find("cancellation_reason")),
    )


def _parse_event(el: ET.Element) -> Event:
    data_el = el.find("data")
    if data_el is not None:
        data = data_el.text or ""
    else:
        # Older files carry the payload as bare text
        data = el.text or ""
    return Event(
        id=_attr(el, "id"),
        type=_attr(el, "type"),
        timestamp=parse_timestamp(_attr(el, "timestamp")),
        data=data.strip(),
    )


# Serialization

class _Builder:
    """Builds the element tree and remembers which elements hold prose."""

    def __init__(self):
        self.prose: set[int] = set()

    def text(self, parent: ET.Element, tag: str, value: str) -> ET.Element:
        el = ET.SubElement(parent, tag)
        if value:
            el.text = value
        return el

    def time(self, parent: ET.Element, tag: str, value: Optional[datetime]) -> None:
        if value is not None:
            self.text(parent, tag, format_timestamp(value))

    def prose_into(self, el: ET.Element, value: str) -> ET.Element:
        set_inner_xml(el, value)
        self.prose.add(id(el))
        return el

    def prose_child(self, parent: ET.Element, tag: str, value: str) -> None:
        if value:
            self.prose_into(ET.SubElement(parent, tag), value)

    def indent(self, elem: ET.Element, level: int = 0) -> None:
        """Indent structural elements; prose content is left untouched."""
        if len(elem) == 0 or id(elem) in self.prose:
            return
        child_indent = "\n" + INDENT * (level + 1)
        if not elem.text or not elem.text.strip():
            elem.text = child_indent
        last = None
        for child in elem:
            self.indent(child, level + 1)
            if not child.tail or not child.tail.strip():
                child.tail = child_indent
            last = child
        if last is not None and not last.tail.strip():
            last.tail = "\n" + INDENT * level


def build_tree(epic: Epic) -> tuple[ET.Element, _Builder]:
    b = _Builder()
    root = ET.Element("epic")
    root.set("id", epic.id)
    root.set("name", epic.name)
    root.set("status", epic.status.value)
    if epic.created_at is not None:
        root.set("created_at", format_timestamp(epic.created_at))

    if epic.assignee:
        b.text(root, "assignee", epic.assignee)

    if epic.metadata is not None:
        meta_el = ET.SubElement(root, "metadata")
        b.time(meta_el, "created", epic.metadata.created)
        if epic.metadata.assignee:
            b.text(meta_el, "assignee", epic.metadata.assignee)
        if epic.metadata.estimated_effort:
            b.text(meta_el, "estimated_effort", epic.metadata.estimated_effort)

    if epic.current_state is not None:
        state_el = ET.SubElement(root, "current_state")
        b.text(state_el, "active_phase", epic.current_state.active_phase)
        b.text(state_el, "active_task", epic.current_state.active_task)
        b.text(state_el, "next_action", epic.current_state.next_action)

    b.prose_child(root, "description", epic.description)
    b.prose_child(root, "workflow", epic.workflow)
    b.prose_child(root, "requirements", epic.requirements)
    b.prose_child(root, "dependencies", epic.dependencies)

    phases_el = ET.SubElement(root, "phases")
    for phase in epic.phases:
        el = ET.SubElement(phases_el, "phase")
        el.set("id", phase.id)
        el.set("name", phase.name)
        el.set("status", phase.status.value)
        b.prose_child(el, "description", phase.description)
        b.prose_child(el, "deliverables", phase.deliverables)
        b.time(el, "started_at", phase.started_at)
        b.time(el, "completed_at", phase.completed_at)

    tasks_el = ET.SubElement(root, "tasks")
    for task in epic.tasks:
        el = ET.SubElement(tasks_el, "task")
        el.set("id", task.id)
        el.set("phase_id", task.phase_id)
        el.set("name", task.name)
        el.set("status", task.status.value)
        if task.assignee:
            el.set("assignee", task.assignee)
        b.prose_child(el, "description", task.description)
        b.prose_child(el, "acceptance_criteria", task.acceptance_criteria)
        b.time(el, "started_at", task.started_at)
        b.time(el, "completed_at", task.completed_at)
        b.time(el, "cancelled_at", task.cancelled_at)
        b.prose_child(el, "cancellation_reason", task.cancellation_reason)

    tests_el = ET.SubElement(root, "tests")
    for test in epic.tests:
        el = ET.SubElement(tests_el, "test")
        el.set("id", test.id)
        el.set("task_id", test.task_id)
        if test.phase_id:
            el.set("phase_id", test.phase_id)
        el.set("name", test.name)
        el.set("status", test.test_status.value)
        el.set("test_status", test.test_status.value)
        if test.result is not None:
            el.set("result", test.result.value)

        if not test.has_details:
            if test.description:
                b.prose_into(el, test.description)
            continue

        b.prose_child(el, "description", test.description)
        b.time(el, "started_at", test.started_at)
        b.time(el, "passed_at", test.passed_at)
        b.time(el, "failed_at", test.failed_at)
        b.time(el, "cancelled_at", test.cancelled_at)
        b.prose_child(el, "failure_note", test.failure_note)
        b.prose_child(el, "cancellation_reason", test.cancellation_reason)

    events_el = ET.SubElement(root, "events")
    for event in epic.events:
        el = ET.SubElement(events_el, "event")
        el.set("id", event.id)
        el.set("type", event.type)
        if event.timestamp is not None:
            el.set("timestamp", format_timestamp(event.timestamp))
        if event.data:
            b.text(el, "data", event.data)

    return root, b


def serialize_epic(epic: Epic) -> bytes:
    """Render an epic as a UTF-8 XML document."""
    root, builder = build_tree(epic)
    builder.indent(root)
    body = ET.tostring(root, encoding="unicode")
    return (XML_PROLOG + body.replace(" />", "/>") + "\n").encode("utf-8")
