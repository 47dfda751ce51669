"""
Shared output helpers for commands.
"""

import sys

from specflow.lib.signals import Outcome

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_ANALYSIS_FAILED = 2
EXIT_STORAGE = 3


def emit(outcome: Outcome) -> int:
    """Print an Outcome and return its exit code.

    Success goes to stdout, failure signals to stderr in their one-line form.
    """
    if outcome.ok:
        if outcome.message:
            print(outcome.message)
        return EXIT_OK
    print(outcome.render(), file=sys.stderr)
    return EXIT_FAILURE


def read_body(path: str | None) -> str:
    """Artifact body from a file, or stdin when path is None or '-'."""
    if path is None or path == "-":
        return sys.stdin.read()
    with open(path, encoding="utf-8") as f:
        return f.read()
