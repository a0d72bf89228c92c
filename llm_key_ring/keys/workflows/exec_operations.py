"""Workflow for running a command with keys injected into its environment."""
import logging
from typing import Optional, Sequence

from ..domains.context import ExecutionContext
from ..domains.injector import inject
from ..domains.providers import ProviderTable
from ..domains.store import KeyStore

logger = logging.getLogger(__name__)


def exec_with_injected_keys(
    store: KeyStore,
    command: Sequence[str],
    keys: Optional[Sequence[str]] = None,
    context: Optional[ExecutionContext] = None,
    providers: Optional[ProviderTable] = None,
) -> int:
    """
    Run `command` with keys in its environment and wait for it.

    Returns:
        The child's exit code, or 128 + signal number if a signal killed it
    """
    child = inject(store, command, keys=keys, context=context, providers=providers)
    try:
        code = child.wait()
    except KeyboardInterrupt:
        # the child shares our terminal and received the same signal
        code = child.wait()
    return exit_status(code)


def exit_status(returncode: int) -> int:
    """Popen reports death by signal N as -N; shells report it as 128 + N."""
    if returncode < 0:
        return 128 - returncode
    return returncode
