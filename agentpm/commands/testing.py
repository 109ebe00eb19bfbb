"""
Test transition commands: start-test, pass-test, fail-test, cancel-test.

pass-test and fail-test accept several ids and apply all-or-nothing.
"""

from agentpm.commands.context import CommandContext
from agentpm.commands.output import emit
from agentpm.services.lifecycle import (
    CancelTestRequest,
    FailTestRequest,
    FailTestsRequest,
    PassTestRequest,
    PassTestsRequest,
    StartTestRequest,
)


def cmd_start_test(args, ctx: CommandContext) -> int:
    result = ctx.lifecycle().start_test(StartTestRequest(ctx.epic_file(), args.id, ctx.timestamp))
    emit(ctx.format, "test_started", result, result.message)
    return 0


def cmd_pass_test(args, ctx: CommandContext) -> int:
    service = ctx.lifecycle()
    if len(args.ids) == 1:
        result = service.pass_test(PassTestRequest(ctx.epic_file(), args.ids[0], ctx.timestamp))
    else:
        result = service.pass_tests(PassTestsRequest(ctx.epic_file(), args.ids, ctx.timestamp))
    emit(ctx.format, "test_passed", result, result.message)
    return 0


def cmd_fail_test(args, ctx: CommandContext) -> int:
    service = ctx.lifecycle()
    if len(args.ids) == 1:
        result = service.fail_test(FailTestRequest(ctx.epic_file(), args.ids[0], args.reason, ctx.timestamp))
    else:
        result = service.fail_tests(FailTestsRequest(ctx.epic_file(), args.ids, args.reason, ctx.timestamp))
    emit(ctx.format, "test_failed", result, result.message)
    return 0


def cmd_cancel_test(args, ctx: CommandContext) -> int:
    request = CancelTestRequest(ctx.epic_file(), args.id, args.reason, ctx.timestamp)
    result = ctx.lifecycle().cancel_test(request)
    emit(ctx.format, "test_cancelled", result, result.message)
    return 0
