"""Execution context detection: is anyone at a terminal?"""
import sys
from dataclasses import dataclass
from typing import IO, Optional


@dataclass(frozen=True)
class ExecutionContext:
    """Interactivity of the current invocation's standard streams."""
    stdin_is_interactive: bool
    stdout_is_interactive: bool
    has_explicit_override: bool = False

    @property
    def is_interactive(self) -> bool:
        return self.stdin_is_interactive and self.stdout_is_interactive


def _is_tty(stream: Optional[IO]) -> bool:
    if stream is None:
        return False
    try:
        return bool(stream.isatty())
    except (AttributeError, ValueError, OSError):
        # missing, closed or detached stream
        return False


def classify(stdin: Optional[IO] = None, stdout: Optional[IO] = None, override: bool = False) -> ExecutionContext:
    """
    Inspect the standard streams of this invocation.

    Streams are read at call time so a long-lived process whose streams were
    reattached gets a fresh answer. Never cache the result beyond a single
    invocation.

    Args:
        stdin: Input stream to inspect (default: sys.stdin)
        stdout: Output stream to inspect (default: sys.stdout)
        override: Whether the caller passed an explicit override flag

    Returns:
        ExecutionContext
    """
    return ExecutionContext(
        stdin_is_interactive=_is_tty(sys.stdin if stdin is None else stdin),
        stdout_is_interactive=_is_tty(sys.stdout if stdout is None else stdout),
        has_explicit_override=override,
    )
