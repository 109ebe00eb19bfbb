"""Tests for agentpm.epic.xmlcodec module."""

import pytest

from agentpm.epic.model import Epic, Event, Test
from agentpm.epic.status import (
    EpicStatus,
    PhaseStatus,
    TaskStatus,
    TestResult,
    TestStatus,
)
from agentpm.epic.xmlcodec import (
    EpicParseError,
    EpicStructureError,
    get_inner_xml,
    normalize_whitespace,
    parse_epic,
    serialize_epic,
)

from conftest import CREATED, NOW

LEGACY_EPIC = """<?xml version="1.0" encoding="UTF-8"?>
<epic id="8" name="Legacy Epic" status="active" created_at="2025-08-16T10:00:00Z">
    <assignee>agent_claude</assignee>
    <description>Old <b>style</b>   epic</description>
    <unknown_section>ignored</unknown_section>
    <phases>
        <phase id="P1" name="Setup" status="completed"/>
        <phase id="P2" name="Build" status="active"/>
        <phase id="P3" name="Ship" status="planning"/>
        <phase id="P4" name="Later" status="on_hold"/>
    </phases>
    <tasks>
        <task id="T1" phase_id="P1" name="Init" status="completed"/>
        <task id="T2" phase_id="P2" name="Code" status="active" extra="x"/>
    </tasks>
    <tests>
        <test id="TS1" task_id="T1" name="Init ok" status="passed">Repository exists</test>
        <test id="TS2" task_id="T2" name="Code ok" status="failed">Compiles</test>
    </tests>
    <events>
        <event id="e1" type="note" timestamp="2025-08-16T11:00:00Z"><data>wrapped payload</data></event>
    </events>
</epic>
"""


class TestParse:
    """Forgiving parse of current and legacy documents."""

    def test_legacy_statuses_are_unified(self):
        epic = parse_epic(LEGACY_EPIC)
        assert epic.status == EpicStatus.WIP
        assert [p.status for p in epic.phases] == [
            PhaseStatus.DONE, PhaseStatus.WIP, PhaseStatus.PENDING, PhaseStatus.PENDING,
        ]
        assert [t.status for t in epic.tasks] == [TaskStatus.DONE, TaskStatus.WIP]

    def test_legacy_test_outcomes(self):
        epic = parse_epic(LEGACY_EPIC)
        passed, failed = epic.tests
        assert passed.test_status == TestStatus.DONE
        assert passed.is_passing
        assert failed.test_status == TestStatus.WIP
        assert failed.result == TestResult.FAILING

    def test_fields_and_inline_text(self):
        epic = parse_epic(LEGACY_EPIC)
        assert epic.id == "8"
        assert epic.assignee == "agent_claude"
        assert epic.created_at == CREATED
        assert epic.tests[0].description == "Repository exists"

    def test_inline_markup_preserved_and_whitespace_normalized(self):
        epic = parse_epic(LEGACY_EPIC)
        assert epic.description == "Old <b>style</b> epic"

    def test_wrapped_event_data(self):
        epic = parse_epic(LEGACY_EPIC)
        assert epic.events[0].data == "wrapped payload"

    def test_missing_sections_are_empty(self):
        epic = parse_epic('<epic id="1" name="Bare"/>')
        assert epic.phases == [] and epic.tasks == [] and epic.tests == [] and epic.events == []
        assert epic.status == EpicStatus.PENDING
        assert epic.current_state is None
        assert epic.created_at is None

    def test_unknown_status_does_not_fail_load(self):
        epic = parse_epic('<epic id="1" name="x"><phases><phase id="P1" status="bogus"/></phases></epic>')
        assert epic.phases[0].status == PhaseStatus.PENDING

    def test_wrong_root_is_structural_error(self):
        with pytest.raises(EpicStructureError) as exc:
            parse_epic("<project/>", source="p.xml")
        assert "missing <epic> root element" in str(exc.value)
        assert exc.value.source == "p.xml"

    def test_malformed_xml(self):
        with pytest.raises(EpicParseError):
            parse_epic("<epic id='1'>")

    def test_unified_test_status_wins_over_legacy(self):
        xml = '<epic id="1"><tests><test id="X" task_id="T" status="failed" test_status="done" result="passing"/></tests></epic>'
        test = parse_epic(xml).tests[0]
        assert test.test_status == TestStatus.DONE
        assert test.result == TestResult.PASSING


class TestSerialize:
    """Deterministic output."""

    def test_prolog_and_indentation(self, epic):
        text = serialize_epic(epic).decode("utf-8")
        assert text.startswith('<?xml version="1.0" encoding="UTF-8"?>\n<epic id="E1"')
        assert '\n    <phases>\n        <phase id="P1" name="Setup" status="pending"/>' in text
        assert text.endswith("</epic>\n")

    def test_child_order(self, epic):
        epic.workflow = "Phases in order"
        text = serialize_epic(epic).decode("utf-8")
        positions = [text.index(f"<{tag}") for tag in (
            "metadata", "current_state", "description", "workflow", "phases", "tasks", "tests", "events",
        )]
        assert positions == sorted(positions)

    def test_empty_events_always_emitted(self, epic):
        assert "<events/>" in serialize_epic(epic).decode("utf-8")

    def test_simple_test_is_inline(self, epic):
        text = serialize_epic(epic).decode("utf-8")
        assert 'name="Repo exists" status="pending" test_status="pending">Repository is initialized</test>' in text

    def test_detailed_test_uses_description_child(self, epic):
        epic.tests[0].failure_note = "boom"
        epic.tests[0].failed_at = NOW
        text = serialize_epic(epic).decode("utf-8")
        assert "<description>Repository is initialized</description>" in text
        assert "<failed_at>2025-08-16T15:30:00Z</failed_at>" in text
        assert "<failure_note>boom</failure_note>" in text

    def test_timestamps_use_z_suffix(self, epic):
        text = serialize_epic(epic).decode("utf-8")
        assert 'created_at="2025-08-16T10:00:00Z"' in text

    def test_legacy_tokens_re_emitted_canonically(self):
        text = serialize_epic(parse_epic(LEGACY_EPIC)).decode("utf-8")
        assert 'status="active"' not in text
        assert 'status="completed"' not in text
        assert '<phase id="P2" name="Build" status="wip"/>' in text


class TestRoundTrip:
    def test_load_save_load_is_idempotent(self):
        first = parse_epic(LEGACY_EPIC)
        second = parse_epic(serialize_epic(first))
        assert second == first

    def test_serialization_is_stable(self, epic):
        once = serialize_epic(epic)
        assert serialize_epic(parse_epic(once)) == once

    def test_markup_survives_round_trip(self):
        epic = Epic("1", "x", description="Use <code>make test</code> then <em>ship</em>")
        epic.tests.append(Test("TS", "T", description="Check <b>bold</b> output"))
        again = parse_epic(serialize_epic(epic))
        assert again.description == "Use <code>make test</code> then <em>ship</em>"
        assert again.tests[0].description == "Check <b>bold</b> output"

    def test_plain_text_kept_exactly(self):
        epic = Epic("1", "x", description="two  spaces\tand tab")
        assert parse_epic(serialize_epic(epic)).description == "two  spaces\tand tab"

    def test_cancellation_reason_round_trips(self, epic):
        epic.tasks[1].status = TaskStatus.CANCELLED
        epic.tasks[1].cancelled_at = NOW
        epic.tasks[1].cancellation_reason = "Not needed"
        epic.events.append(Event("task_cancelled_1", "task_cancelled", NOW, "Task T1b cancelled"))
        again = parse_epic(serialize_epic(epic))
        assert again.tasks[1].cancellation_reason == "Not needed"
        assert again.tasks[1].cancelled_at == NOW
        assert again.events == epic.events


class TestInnerXml:
    def test_none_is_empty(self):
        assert get_inner_xml(None) == ""

    def test_normalize_whitespace(self):
        assert normalize_whitespace("\t a   b  ") == "a b"


class TestEscapedProse:
    """Prose values are XML fragments in both directions."""

    def test_mixed_content_with_entity_in_leading_text(self):
        xml = '<epic id="1"><description>R&amp;D uses <code>make</code> here</description></epic>'
        epic = parse_epic(xml)
        assert epic.description == "R&amp;D uses <code>make</code> here"
        text = serialize_epic(epic).decode("utf-8")
        assert "<description>R&amp;D uses <code>make</code> here</description>" in text
        assert parse_epic(text).description == epic.description

    def test_phase_markup_after_escaped_less_than(self):
        xml = (
            '<epic id="1"><phases><phase id="P1" name="x" status="pending">'
            "<description>if a &lt; b then <b>stop</b></description>"
            "</phase></phases></epic>"
        )
        epic = parse_epic(xml)
        assert epic.phases[0].description == "if a &lt; b then <b>stop</b>"
        text = serialize_epic(epic).decode("utf-8")
        assert "<description>if a &lt; b then <b>stop</b></description>" in text
        assert parse_epic(text).phases[0].description == "if a &lt; b then <b>stop</b>"

    def test_escaped_literal_stays_literal(self):
        xml = "<epic id=\"1\"><description>literal &lt;b&gt;tag&lt;/b&gt;</description></epic>"
        epic = parse_epic(xml)
        assert epic.description == "literal &lt;b>tag&lt;/b>"
        text = serialize_epic(epic).decode("utf-8")
        assert "<description>literal &lt;b&gt;tag&lt;/b&gt;</description>" in text
        assert "<b>" not in text
        assert parse_epic(text).description == epic.description

    def test_text_that_is_not_a_fragment_is_stored_literally(self):
        epic = Epic("1", "x", description="R&D for a < b")
        text = serialize_epic(epic).decode("utf-8")
        assert "<description>R&amp;D for a &lt; b</description>" in text
        assert parse_epic(text).description == "R&amp;D for a &lt; b"

    def test_inline_test_text_is_escaped(self):
        epic = Epic("1", "x", tests=[Test("TS", "T", description="x &amp; y")])
        text = serialize_epic(epic).decode("utf-8")
        assert ">x &amp; y</test>" in text
        assert parse_epic(text).tests[0].description == "x &amp; y"


class TestEventData:
    def test_payload_written_in_data_child(self):
        epic = Epic("1", "x", events=[Event("note_1", "note", NOW, "Chose <SQLite> & WAL")])
        text = serialize_epic(epic).decode("utf-8")
        assert "<data>Chose &lt;SQLite&gt; &amp; WAL</data>" in text
        assert parse_epic(text).events[0].data == "Chose <SQLite> & WAL"

    def test_empty_payload_has_no_data_child(self):
        epic = Epic("1", "x", events=[Event("note_1", "note", NOW, "")])
        assert "<data" not in serialize_epic(epic).decode("utf-8")

    def test_bare_text_payload_still_read(self):
        xml = '<epic id="1"><events><event id="e" type="note">old style</event></events></epic>'
        assert parse_epic(xml).events[0].data == "old style"
