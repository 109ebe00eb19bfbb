"""
Epic, phase and task transition commands, plus start-next.
"""

from agentpm.commands.context import CommandContext
from agentpm.commands.output import emit
from agentpm.services.lifecycle import (
    CancelTaskRequest,
    CompleteEpicRequest,
    CompletePhaseRequest,
    CompleteTaskRequest,
    EntityResult,
    StartEpicRequest,
    StartNextRequest,
    StartPhaseRequest,
    StartTaskRequest,
)


def _emit_entity(ctx: CommandContext, result: EntityResult) -> int:
    emit(ctx.format, f"{result.entity_type}_{result.operation}", result, result.message)
    return 0


def cmd_start_epic(args, ctx: CommandContext) -> int:
    result = ctx.lifecycle().start_epic(StartEpicRequest(ctx.epic_file(), ctx.timestamp))
    emit(ctx.format, "epic_started", result, result.message)
    return 0


def cmd_done_epic(args, ctx: CommandContext) -> int:
    result = ctx.lifecycle().complete_epic(CompleteEpicRequest(ctx.epic_file(), ctx.timestamp))
    s = result.summary
    text = "\n".join([
        result.message,
        f"Summary: {s.total_phases} phases, {s.total_tasks} tasks, {s.total_tests} tests "
        f"({s.passing_tests} passing)",
        f"Duration: {s.duration}",
    ])
    emit(ctx.format, "epic_completed", result, text)
    return 0


def cmd_start_phase(args, ctx: CommandContext) -> int:
    service = ctx.lifecycle()
    return _emit_entity(ctx, service.start_phase(StartPhaseRequest(ctx.epic_file(), args.id, ctx.timestamp)))


def cmd_done_phase(args, ctx: CommandContext) -> int:
    service = ctx.lifecycle()
    return _emit_entity(ctx, service.complete_phase(CompletePhaseRequest(ctx.epic_file(), args.id, ctx.timestamp)))


def cmd_start_task(args, ctx: CommandContext) -> int:
    service = ctx.lifecycle()
    return _emit_entity(ctx, service.start_task(StartTaskRequest(ctx.epic_file(), args.id, ctx.timestamp)))


def cmd_done_task(args, ctx: CommandContext) -> int:
    service = ctx.lifecycle()
    return _emit_entity(ctx, service.complete_task(CompleteTaskRequest(ctx.epic_file(), args.id, ctx.timestamp)))


def cmd_cancel_task(args, ctx: CommandContext) -> int:
    service = ctx.lifecycle()
    request = CancelTaskRequest(ctx.epic_file(), args.id, args.reason, ctx.timestamp)
    return _emit_entity(ctx, service.cancel_task(request))


def cmd_start_next(args, ctx: CommandContext) -> int:
    result = ctx.lifecycle().start_next(StartNextRequest(ctx.epic_file(), ctx.timestamp))
    emit(ctx.format, "start_next", result, result.message)
    return 0
