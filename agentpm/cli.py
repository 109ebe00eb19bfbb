#!/usr/bin/env python3
"""agentpm CLI entrypoint."""

import sys
import argparse

from agentpm.commands import lifecycle as cmd_lifecycle_module
from agentpm.commands import log as cmd_log_module
from agentpm.commands import project as cmd_project_module
from agentpm.commands import query as cmd_query_module
from agentpm.commands import testing as cmd_testing_module
from agentpm.commands.context import CommandContext
from agentpm.commands.output import FORMATS, emit_error
from agentpm.epic.xmlcodec import EpicParseError
from agentpm.lib.config import DEFAULT_CONFIG_PATH, ConfigError
from agentpm.services.errors import LifecycleError
from agentpm.services.query import NoEpicLoaded
from agentpm.storage.base import StorageError


def run_command(args, handler) -> int:
    """Build the command context, run handler and map failures to exit codes.

    Exit codes: 0 success, 1 refused or failed operation, 2 usage or
    configuration problem.
    """
    fmt = getattr(args, 'format', 'text')
    try:
        ctx = CommandContext.from_args(args)
        return handler(args, ctx)
    except (LifecycleError, StorageError, EpicParseError, NoEpicLoaded) as e:
        emit_error(fmt, e)
        return 1
    except (ConfigError, ValueError) as e:
        emit_error(fmt, e)
        return 2


# Project

def cmd_init(args):
    return run_command(args, cmd_project_module.cmd_init)


def cmd_config(args):
    return run_command(args, cmd_project_module.cmd_config)


def cmd_switch(args):
    return run_command(args, cmd_project_module.cmd_switch)


# Queries

def cmd_status(args):
    return run_command(args, cmd_query_module.cmd_status)


def cmd_current(args):
    return run_command(args, cmd_query_module.cmd_current)


def cmd_pending(args):
    return run_command(args, cmd_query_module.cmd_pending)


def cmd_failing(args):
    return run_command(args, cmd_query_module.cmd_failing)


def cmd_events(args):
    return run_command(args, cmd_query_module.cmd_events)


def cmd_related(args):
    return run_command(args, cmd_query_module.cmd_related)


def cmd_impact(args):
    return run_command(args, cmd_query_module.cmd_impact)


def cmd_insights(args):
    return run_command(args, cmd_query_module.cmd_insights)


def cmd_show(args):
    return run_command(args, cmd_query_module.cmd_show)


def cmd_validate(args):
    return run_command(args, cmd_query_module.cmd_validate)


# Lifecycle

def cmd_start_epic(args):
    return run_command(args, cmd_lifecycle_module.cmd_start_epic)


def cmd_done_epic(args):
    return run_command(args, cmd_lifecycle_module.cmd_done_epic)


def cmd_start_phase(args):
    return run_command(args, cmd_lifecycle_module.cmd_start_phase)


def cmd_done_phase(args):
    return run_command(args, cmd_lifecycle_module.cmd_done_phase)


def cmd_start_task(args):
    return run_command(args, cmd_lifecycle_module.cmd_start_task)


def cmd_done_task(args):
    return run_command(args, cmd_lifecycle_module.cmd_done_task)


def cmd_cancel_task(args):
    return run_command(args, cmd_lifecycle_module.cmd_cancel_task)


def cmd_start_next(args):
    return run_command(args, cmd_lifecycle_module.cmd_start_next)


def cmd_start_test(args):
    return run_command(args, cmd_testing_module.cmd_start_test)


def cmd_pass_test(args):
    return run_command(args, cmd_testing_module.cmd_pass_test)


def cmd_fail_test(args):
    return run_command(args, cmd_testing_module.cmd_fail_test)


def cmd_cancel_test(args):
    return run_command(args, cmd_testing_module.cmd_cancel_test)


def cmd_log(args):
    return run_command(args, cmd_log_module.cmd_log)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='agentpm', description='Agent project tracker')
    parser.add_argument('--config', '-c', default=DEFAULT_CONFIG_PATH, help='Configuration file')
    parser.add_argument('--file', '-f', help='Epic file (overrides current_epic from config)')
    parser.add_argument('--format', choices=FORMATS, default='text', help='Output format')
    parser.add_argument('--time', help='Timestamp override (RFC 3339 or YYYY-MM-DDTHH:MM:SS)')

    subparsers = parser.add_subparsers(dest='command', required=True)

    # agentpm init
    p_init = subparsers.add_parser('init', help='Create project configuration')
    p_init.add_argument('--epic', required=True, help='Epic file to track')
    p_init.add_argument('--id', help='Epic ID when creating a new epic file')
    p_init.add_argument('--name', help='Epic name when creating a new epic file')
    p_init.add_argument('--assignee', help='Default assignee')
    p_init.add_argument('--project', help='Project name')
    p_init.add_argument('--force', action='store_true', help='Overwrite existing configuration')
    p_init.set_defaults(func=cmd_init)

    # agentpm config
    p_config = subparsers.add_parser('config', help='Show configuration')
    p_config.set_defaults(func=cmd_config)

    # agentpm switch
    p_switch = subparsers.add_parser('switch', help='Switch current epic')
    p_switch.add_argument('epic', nargs='?', help='Epic file to switch to')
    p_switch.add_argument('--back', action='store_true', help='Switch back to the previous epic')
    p_switch.set_defaults(func=cmd_switch)

    # agentpm status
    p_status = subparsers.add_parser('status', help='Show epic status and progress')
    p_status.set_defaults(func=cmd_status)

    # agentpm current
    p_current = subparsers.add_parser('current', help='Show active work and next action')
    p_current.set_defaults(func=cmd_current)

    # agentpm pending
    p_pending = subparsers.add_parser('pending', help='List pending phases, tasks and tests')
    p_pending.set_defaults(func=cmd_pending)

    # agentpm failing
    p_failing = subparsers.add_parser('failing', help='List failing tests')
    p_failing.set_defaults(func=cmd_failing)

    # agentpm events
    p_events = subparsers.add_parser('events', help='Show recent events')
    p_events.add_argument('--limit', '-n', type=int, default=10, help='Number of events (1-100)')
    p_events.set_defaults(func=cmd_events)

    # agentpm related
    p_related = subparsers.add_parser('related', help='Show items related to an entity')
    p_related.add_argument('type', choices=['phase', 'task', 'test'], help='Entity type')
    p_related.add_argument('id', help='Entity ID')
    p_related.set_defaults(func=cmd_related)

    # agentpm impact
    p_impact = subparsers.add_parser('impact', help='Analyze impact of changing an entity')
    p_impact.add_argument('type', choices=['phase', 'task', 'test'], help='Entity type')
    p_impact.add_argument('id', help='Entity ID')
    p_impact.set_defaults(func=cmd_impact)

    # agentpm insights
    p_insights = subparsers.add_parser('insights', help='Show velocity, bottlenecks and recommendations')
    p_insights.set_defaults(func=cmd_insights)

    # agentpm show
    p_show = subparsers.add_parser('show', help='Show an entity with its parents and children')
    p_show.add_argument('type', choices=['epic', 'phase', 'task', 'test'], help='Entity type')
    p_show.add_argument('id', nargs='?', help='Entity ID (not needed for epic)')
    p_show.add_argument('--full', action='store_true', help='Include siblings, all details and related events')
    p_show.set_defaults(func=cmd_show)

    # agentpm validate
    p_validate = subparsers.add_parser('validate', help='Validate epic structure')
    p_validate.set_defaults(func=cmd_validate)

    # agentpm start-epic / done-epic
    p_start_epic = subparsers.add_parser('start-epic', help='Start the epic')
    p_start_epic.set_defaults(func=cmd_start_epic)

    p_done_epic = subparsers.add_parser('done-epic', help='Complete the epic')
    p_done_epic.set_defaults(func=cmd_done_epic)

    # agentpm start-phase / done-phase
    p_start_phase = subparsers.add_parser('start-phase', help='Start a phase')
    p_start_phase.add_argument('id', help='Phase ID')
    p_start_phase.set_defaults(func=cmd_start_phase)

    p_done_phase = subparsers.add_parser('done-phase', help='Complete a phase')
    p_done_phase.add_argument('id', help='Phase ID')
    p_done_phase.set_defaults(func=cmd_done_phase)

    # agentpm start-task / done-task / cancel-task
    p_start_task = subparsers.add_parser('start-task', help='Start a task')
    p_start_task.add_argument('id', help='Task ID')
    p_start_task.set_defaults(func=cmd_start_task)

    p_done_task = subparsers.add_parser('done-task', help='Complete a task')
    p_done_task.add_argument('id', help='Task ID')
    p_done_task.set_defaults(func=cmd_done_task)

    p_cancel_task = subparsers.add_parser('cancel-task', help='Cancel a task')
    p_cancel_task.add_argument('id', help='Task ID')
    p_cancel_task.add_argument('reason', help='Cancellation reason')
    p_cancel_task.set_defaults(func=cmd_cancel_task)

    # agentpm start-test / pass-test / fail-test / cancel-test
    p_start_test = subparsers.add_parser('start-test', help='Start a test')
    p_start_test.add_argument('id', help='Test ID')
    p_start_test.set_defaults(func=cmd_start_test)

    p_pass_test = subparsers.add_parser('pass-test', help='Mark tests as passed')
    p_pass_test.add_argument('ids', nargs='+', help='Test IDs')
    p_pass_test.set_defaults(func=cmd_pass_test)

    p_fail_test = subparsers.add_parser('fail-test', help='Mark tests as failed')
    p_fail_test.add_argument('ids', nargs='+', help='Test IDs')
    p_fail_test.add_argument('--reason', '-r', default='', help='Failure reason')
    p_fail_test.set_defaults(func=cmd_fail_test)

    p_cancel_test = subparsers.add_parser('cancel-test', help='Cancel a test')
    p_cancel_test.add_argument('id', help='Test ID')
    p_cancel_test.add_argument('reason', help='Cancellation reason')
    p_cancel_test.set_defaults(func=cmd_cancel_test)

    # agentpm start-next
    p_start_next = subparsers.add_parser('start-next', help='Start the next available task')
    p_start_next.set_defaults(func=cmd_start_next)

    # agentpm log
    p_log = subparsers.add_parser('log', help='Log an event')
    p_log.add_argument('message', help='Event message')
    p_log.add_argument('--type', '-t', default='implementation', help='Event type')
    p_log.add_argument('--files', default='', help='Changed files as path:action,... (added, modified, deleted, renamed)')
    p_log.set_defaults(func=cmd_log)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == '__main__':
    sys.exit(main())
