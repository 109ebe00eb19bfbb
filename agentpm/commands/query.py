"""
Read-only commands: status, current, pending, failing, events, related,
impact, insights, show, validate.
"""

from agentpm.commands.context import CommandContext
from agentpm.commands.output import emit, plain
from agentpm.epic.structure import validate_structure
from agentpm.lib.timeutil import format_timestamp

_ICONS = {"passed": "+", "failed": "x", "warning": "!"}


def cmd_status(args, ctx: CommandContext) -> int:
    query = ctx.query()
    report = query.epic_status()

    lines = [
        f"Epic: {report.name} ({report.id})",
        f"Status: {report.status.value}",
        f"Progress: {report.completion_percentage}% complete",
        f"Phases: {report.completed_phases}/{report.total_phases} done",
        f"Tests: {report.passing_tests} passing, {report.failing_tests} failing",
    ]
    if report.current_phase:
        lines.append(f"Current phase: {report.current_phase}")
    if report.current_task:
        lines.append(f"Current task: {report.current_task}")
    emit(ctx.format, "status", report, "\n".join(lines))
    return 0


def cmd_current(args, ctx: CommandContext) -> int:
    query = ctx.query()
    work = query.current_state()

    lines = [f"Epic status: {work.epic_status.value}"]
    lines.append(f"Active phase: {work.active_phase or '(none)'}")
    lines.append(f"Active task: {work.active_task or '(none)'}")
    if work.failing_tests:
        lines.append(f"Failing tests: {work.failing_tests}")
    lines.append(f"Next action: {work.next_action}")
    emit(ctx.format, "current_state", work, "\n".join(lines))
    return 0


def cmd_pending(args, ctx: CommandContext) -> int:
    pending = ctx.query().pending_work()

    lines = []
    for title, items in (("Phases", pending.phases), ("Tasks", pending.tasks), ("Tests", pending.tests)):
        lines.append(f"{title} ({len(items)}):")
        for item in items:
            scope = f" [{item.phase_id}]" if item.phase_id else ""
            lines.append(f"  {item.id}: {item.name} ({item.status}){scope}")
    emit(ctx.format, "pending_work", pending, "\n".join(lines))
    return 0


def cmd_failing(args, ctx: CommandContext) -> int:
    failing = ctx.query().failing_tests()

    if not failing:
        text = "No failing tests."
    else:
        lines = [f"Failing tests ({len(failing)}):"]
        for test in failing:
            lines.append(f"  {test.id}: {test.name} [{test.phase_id}/{test.task_id}]")
            if test.failure_note:
                lines.append(f"    Failure: {test.failure_note}")
        text = "\n".join(lines)
    emit(ctx.format, "failing_tests", {"tests": failing}, text)
    return 0


def cmd_events(args, ctx: CommandContext) -> int:
    recent = ctx.query().recent_events(args.limit)

    if not recent:
        text = "No events found."
    else:
        lines = []
        for event in recent:
            when = format_timestamp(event.timestamp) if event.timestamp else "-"
            lines.append(f"{when}  {event.type:<16} {event.data}")
        text = "\n".join(lines)
    emit(ctx.format, "events", {"events": recent}, text)
    return 0


def cmd_related(args, ctx: CommandContext) -> int:
    items = ctx.query().related_items(args.type, args.id)

    if not items:
        text = f"No items related to {args.type} {args.id}."
    else:
        lines = [f"Related to {args.type} {args.id}:"]
        lines.extend(f"  {i.relationship:<10} {i.type} {i.id}: {i.name}" for i in items)
        text = "\n".join(lines)
    emit(ctx.format, "related_items", {"items": items}, text)
    return 0


def cmd_impact(args, ctx: CommandContext) -> int:
    analysis = ctx.query().analyze_impact(args.type, args.id)

    lines = [analysis.description, f"Risk: {analysis.risk_level}"]
    if analysis.affected_phases:
        lines.append(f"Phases: {', '.join(analysis.affected_phases)}")
    if analysis.affected_tasks:
        lines.append(f"Tasks: {', '.join(analysis.affected_tasks)}")
    if analysis.affected_tests:
        lines.append(f"Tests: {', '.join(analysis.affected_tests)}")
    emit(ctx.format, "impact_analysis", analysis, "\n".join(lines))
    return 0


def cmd_insights(args, ctx: CommandContext) -> int:
    insight = ctx.query().progress_insights()

    lines = [f"Velocity: {insight.velocity:.2f}", f"Estimate: {insight.estimated_completion}"]
    if insight.bottlenecks:
        lines.append("Bottlenecks:")
        lines.extend(f"  - {b}" for b in insight.bottlenecks)
    if insight.recommendations:
        lines.append("Recommendations:")
        lines.extend(f"  - {r}" for r in insight.recommendations)
    emit(ctx.format, "progress_insights", insight, "\n".join(lines))
    return 0


def cmd_validate(args, ctx: CommandContext) -> int:
    """Structural validation; exit 1 when errors are found."""
    epic = ctx.storage.load_epic(ctx.epic_file())
    report = validate_structure(epic)

    lines = [report.message]
    if report.errors:
        lines.append("Errors:")
        lines.extend(f"  - {e}" for e in report.errors)
    if report.warnings:
        lines.append("Warnings:")
        lines.extend(f"  - {w}" for w in report.warnings)
    lines.append("Checks performed:")
    for name, status in report.checks.items():
        lines.append(f"  {_ICONS.get(status, '?')} {name}: {status}")
    emit(ctx.format, "validation_result", report.to_dict(), "\n".join(lines))
    return 0 if report.valid else 1


_CHILD_KINDS = {"epic": ("phase", "task", "test"), "phase": ("task", "test"), "task": ("test",), "test": ()}

_DETAIL_LABELS = (
    ("assignee", "Assignee"),
    ("result", "Result"),
    ("description", "Description"),
    ("deliverables", "Deliverables"),
    ("acceptance_criteria", "Acceptance criteria"),
    ("workflow", "Workflow"),
    ("requirements", "Requirements"),
    ("dependencies", "Dependencies"),
    ("failure_note", "Failure"),
    ("cancellation_reason", "Cancellation reason"),
    ("created_at", "Created"),
    ("started_at", "Started"),
    ("completed_at", "Completed"),
    ("passed_at", "Passed"),
    ("failed_at", "Failed"),
    ("cancelled_at", "Cancelled"),
)


def _summary_line(item) -> str:
    line = f"  {item.id}: {item.name} [{item.status}]"
    if item.description:
        line += f" - {item.description}"
    return line


def cmd_show(args, ctx: CommandContext) -> int:
    """Entity context: the entity, its parents and children, and more with --full."""
    context = ctx.query().show(args.type, args.id or "", args.full)
    details = plain(context.details)

    lines = [f"{context.type.capitalize()}: {context.name} ({context.id})", f"Status: {context.status}"]
    for key, label in _DETAIL_LABELS:
        if details.get(key):
            lines.append(f"{label}: {details[key]}")

    for parent in context.parents:
        lines.append(f"Parent {parent.type}: {parent.id} - {parent.name} [{parent.status}]")

    for kind in _CHILD_KINDS[context.type]:
        items = [c for c in context.children if c.type == kind]
        title = f"{kind.capitalize()}s"
        lines.append(f"{title} ({len(items)}):")
        lines.extend(_summary_line(i) for i in items)
        if not items:
            lines.append("  (none)")

    progress = context.progress
    if progress is not None:
        lines.append(
            f"Progress: {progress.completed_tasks}/{progress.total_tasks} tasks done "
            f"({progress.completion_percentage}%), {progress.passed_tests}/{progress.total_tests} tests passed "
            f"({progress.test_coverage_percentage}%)"
        )

    if context.siblings:
        lines.append(f"Sibling {context.type}s ({len(context.siblings)}):")
        lines.extend(_summary_line(s) for s in context.siblings)

    if context.full:
        lines.append(f"Events ({len(context.events)}):")
        for event in context.events:
            when = format_timestamp(event.timestamp) if event.timestamp else "-"
            lines.append(f"  {when}  {event.type:<16} {event.data}")

    emit(ctx.format, f"{context.type}_context", context, "\n".join(lines))
    return 0
