"""
agentpm log - Record a manual event in the epic's activity log.
"""

from agentpm.commands.context import CommandContext
from agentpm.commands.output import emit
from agentpm.services.lifecycle import LogEventRequest


def cmd_log(args, ctx: CommandContext) -> int:
    request = LogEventRequest(ctx.epic_file(), args.message, args.type, ctx.timestamp, files=args.files)
    result = ctx.lifecycle().log_event(request)
    emit(ctx.format, "event_logged", result, result.message)
    return 0
