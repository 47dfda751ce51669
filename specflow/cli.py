#!/usr/bin/env python3
"""feature CLI entrypoint."""

import sys
import logging
import argparse

from specflow.lib.config import resolve_root
from specflow.lib.signals import StorageUnavailable
from specflow.workflow.engine import Engine
from specflow.commands.output import EXIT_STORAGE
from specflow.commands import new as cmd_new_module
from specflow.commands import list as cmd_list_module
from specflow.commands import status as cmd_status_module
from specflow.commands import advance as cmd_advance_module
from specflow.commands import analyze as cmd_analyze_module
from specflow.commands import revise as cmd_revise_module
from specflow.commands import approve as cmd_approve_module
from specflow.commands import clarify as cmd_clarify_module
from specflow.commands import constitution as cmd_constitution_module
from specflow.commands import abandon as cmd_abandon_module
from specflow.commands import archive as cmd_archive_module


def get_engine(args) -> Engine:
    """Engine for --root, $SPECFLOW_ROOT or ./.specflow"""
    return Engine(resolve_root(args.root))


def cmd_new(args):
    return cmd_new_module.cmd_new(args, get_engine(args))


def cmd_list(args):
    return cmd_list_module.cmd_list(args, get_engine(args))


def cmd_status(args):
    return cmd_status_module.cmd_status(args, get_engine(args))


def cmd_advance(args):
    return cmd_advance_module.cmd_advance(args, get_engine(args))


def cmd_analyze(args):
    return cmd_analyze_module.cmd_analyze(args, get_engine(args))


def cmd_revise(args):
    return cmd_revise_module.cmd_revise(args, get_engine(args))


def cmd_approve(args):
    return cmd_approve_module.cmd_approve(args, get_engine(args))


def cmd_clarify_list(args):
    return cmd_clarify_module.cmd_clarify_list(args, get_engine(args))


def cmd_clarify_ask(args):
    return cmd_clarify_module.cmd_clarify_ask(args, get_engine(args))


def cmd_clarify_answer(args):
    return cmd_clarify_module.cmd_clarify_answer(args, get_engine(args))


def cmd_constitution_show(args):
    return cmd_constitution_module.cmd_constitution_show(args, get_engine(args))


def cmd_constitution_set(args):
    return cmd_constitution_module.cmd_constitution_set(args, get_engine(args))


def cmd_constitution_approve(args):
    return cmd_constitution_module.cmd_constitution_approve(args, get_engine(args))


def cmd_abandon(args):
    return cmd_abandon_module.cmd_abandon(args, get_engine(args))


def cmd_archive(args):
    return cmd_archive_module.cmd_archive(args, get_engine(args))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='feature', description='Spec-driven feature workflow')
    parser.add_argument('--root', '-r', help='Engine root directory (default: $SPECFLOW_ROOT or ./.specflow)')
    parser.add_argument('--verbose', '-v', action='store_true', help='Log engine activity to stderr')
    subparsers = parser.add_subparsers(dest='command', required=True)

    # feature new
    p_new = subparsers.add_parser('new', help='Create a feature')
    p_new.add_argument('id', help='Feature ID (e.g., 001-user-authentication)')
    p_new.set_defaults(func=cmd_new)

    # feature list
    p_list = subparsers.add_parser('list', help='List features')
    p_list.set_defaults(func=cmd_list)

    # feature status
    p_status = subparsers.add_parser('status', help='Show feature status')
    p_status.add_argument('id', help='Feature ID')
    p_status.set_defaults(func=cmd_status)

    # feature advance
    p_advance = subparsers.add_parser('advance', help='Move a feature to its next phase')
    p_advance.add_argument('id', help='Feature ID')
    p_advance.add_argument('phase', help='Target phase (e.g., Clarify, Plan, Done)')
    p_advance.set_defaults(func=cmd_advance)

    # feature analyze
    p_analyze = subparsers.add_parser('analyze', help='Run consistency analysis')
    p_analyze.add_argument('id', help='Feature ID')
    p_analyze.add_argument('--speculative', action='store_true',
                           help='Analyze latest (unapproved) revisions without persisting')
    p_analyze.add_argument('--markdown', action='store_true', help='Print the full markdown report')
    p_analyze.set_defaults(func=cmd_analyze)

    # feature revise
    p_revise = subparsers.add_parser('revise', help='Write a new artifact revision')
    p_revise.add_argument('id', help='Feature ID')
    p_revise.add_argument('kind', help='Artifact kind (spec, clarifications, plan, tasks)')
    p_revise.add_argument('--file', '-f', help='Read body from file (default: stdin)')
    p_revise.add_argument('--question', '-q', action='append', help='Open question (repeatable)')
    p_revise.set_defaults(func=cmd_revise)

    # feature approve
    p_approve = subparsers.add_parser('approve', help='Approve an artifact revision')
    p_approve.add_argument('id', help='Feature ID')
    p_approve.add_argument('kind', help='Artifact kind')
    p_approve.add_argument('--revision', type=int, help='Revision number (default: latest)')
    p_approve.set_defaults(func=cmd_approve)

    # feature clarify
    p_clarify = subparsers.add_parser('clarify', help='Manage open questions')
    clarify_sub = p_clarify.add_subparsers(dest='clarify_cmd', required=True)

    p_clarify_list = clarify_sub.add_parser('list', help='List open questions')
    p_clarify_list.add_argument('id', help='Feature ID')
    p_clarify_list.set_defaults(func=cmd_clarify_list)

    p_clarify_ask = clarify_sub.add_parser('ask', help='Open a question')
    p_clarify_ask.add_argument('id', help='Feature ID')
    p_clarify_ask.add_argument('kind', help='spec or clarifications')
    p_clarify_ask.add_argument('question', help='Question text')
    p_clarify_ask.add_argument('--context', '-c', help='Background for whoever answers')
    p_clarify_ask.set_defaults(func=cmd_clarify_ask)

    p_clarify_answer = clarify_sub.add_parser('answer', help='Answer a question')
    p_clarify_answer.add_argument('id', help='Feature ID')
    p_clarify_answer.add_argument('kind', help='spec or clarifications')
    p_clarify_answer.add_argument('question_id', help='Question ID (e.g., Q-001)')
    p_clarify_answer.add_argument('--answer', '-a', help='Answer text (prompts if not provided)')
    p_clarify_answer.add_argument('--by', default='human', help='Who answered')
    p_clarify_answer.set_defaults(func=cmd_clarify_answer)

    # feature constitution
    p_constitution = subparsers.add_parser('constitution', help='Manage the project constitution')
    p_constitution.set_defaults(func=cmd_constitution_show)
    constitution_sub = p_constitution.add_subparsers(dest='constitution_cmd')

    p_constitution_show = constitution_sub.add_parser('show', help='Show the approved constitution')
    p_constitution_show.set_defaults(func=cmd_constitution_show)

    p_constitution_set = constitution_sub.add_parser('set', help='Write a new constitution revision')
    p_constitution_set.add_argument('--file', '-f', help='Read body from file (default: stdin)')
    p_constitution_set.set_defaults(func=cmd_constitution_set)

    p_constitution_approve = constitution_sub.add_parser('approve', help='Approve a constitution revision')
    p_constitution_approve.add_argument('--revision', type=int, help='Revision number (default: latest)')
    p_constitution_approve.set_defaults(func=cmd_constitution_approve)

    # feature abandon
    p_abandon = subparsers.add_parser('abandon', help='Abandon a feature')
    p_abandon.add_argument('id', help='Feature ID')
    p_abandon.set_defaults(func=cmd_abandon)

    # feature archive
    p_archive = subparsers.add_parser('archive', help='Archive a Done or Abandoned feature')
    p_archive.add_argument('id', help='Feature ID')
    p_archive.set_defaults(func=cmd_archive)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    try:
        return args.func(args)
    except StorageUnavailable as e:
        print(f"StorageUnavailable: {e}", file=sys.stderr)
        return EXIT_STORAGE


if __name__ == '__main__':
    sys.exit(main())
