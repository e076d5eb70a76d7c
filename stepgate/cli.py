#!/usr/bin/env python3
"""stepgate CLI entrypoint."""

import sys
import logging
import argparse
from pathlib import Path

from stepgate.lib.config import load_config
from stepgate.commands import run as cmd_run_module
from stepgate.commands import resume as cmd_resume_module
from stepgate.commands import status as cmd_status_module
from stepgate.commands import list as cmd_list_module
from stepgate.commands import skip as cmd_skip_module
from stepgate.commands import guidelines as cmd_guidelines_module


def get_config(args):
    """Load config from --config or the nearest stepgate.yaml."""
    path = Path(args.config) if args.config else None
    if path is not None and not path.exists():
        print(f"ERROR: Config file not found: {path}")
        sys.exit(2)
    return load_config(path)


def setup_logging(config, verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, config.log_level, logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def cmd_run(args, config):
    return cmd_run_module.cmd_run(args, config)


def cmd_resume(args, config):
    return cmd_resume_module.cmd_resume(args, config)


def cmd_status(args, config):
    return cmd_status_module.cmd_status(args, config)


def cmd_list(args, config):
    return cmd_list_module.cmd_list(args, config)


def cmd_skip(args, config):
    return cmd_skip_module.cmd_skip(args, config)


def cmd_guidelines(args, config):
    return cmd_guidelines_module.cmd_guidelines(args, config)


def main(argv=None):
    parser = argparse.ArgumentParser(prog='stepgate', description='Plan, approve and execute tasks with a human in the loop')
    parser.add_argument('--config', '-c', help='Path to stepgate.yaml')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging to stderr')
    subparsers = parser.add_subparsers(dest='command', required=True)

    # stepgate run
    p_run = subparsers.add_parser('run', help='Start a new task')
    p_run.add_argument('request', nargs='+', help='What should be done')
    p_run.add_argument('--id', help='Task ID (generated from the request if omitted)')
    p_run.set_defaults(func=cmd_run)

    # stepgate resume
    p_resume = subparsers.add_parser('resume', help='Resume a paused or interrupted task')
    p_resume.add_argument('id', help='Task ID')
    p_resume.set_defaults(func=cmd_resume)

    # stepgate status
    p_status = subparsers.add_parser('status', help='Show task status')
    p_status.add_argument('id', help='Task ID')
    p_status.set_defaults(func=cmd_status)

    # stepgate list
    p_list = subparsers.add_parser('list', help='List tasks')
    p_list.add_argument('--all', '-a', action='store_true', help='Include archived tasks')
    p_list.set_defaults(func=cmd_list)

    # stepgate skip
    p_skip = subparsers.add_parser('skip', help='Skip a pending subtask of a paused task')
    p_skip.add_argument('id', help='Task ID')
    p_skip.add_argument('subtask', nargs='?', type=int, help='Subtask number (next pending if omitted)')
    p_skip.add_argument('-m', '--message', help='Reason for skipping')
    p_skip.set_defaults(func=cmd_skip)

    # stepgate guidelines
    p_guidelines = subparsers.add_parser('guidelines', help='Show guidelines that apply to a context')
    p_guidelines.add_argument('context', nargs='+', help='Task or subtask description')
    p_guidelines.add_argument('--full', action='store_true', help='Print document text')
    p_guidelines.set_defaults(func=cmd_guidelines)

    args = parser.parse_args(argv)
    config = get_config(args)
    setup_logging(config, args.verbose)
    return args.func(args, config)


if __name__ == '__main__':
    sys.exit(main())
