"""Access guard: the single decision point before a secret can be exposed.

Every path that could put a raw value somewhere a reader might see it asks
`authorize` first. The guard owns no secret state.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .context import ExecutionContext
from .errors import AccessDeniedError
from .models import KeyKind

logger = logging.getLogger(__name__)

NON_INTERACTIVE_GUIDANCE = (
    "This prevents automated agents from extracting raw API keys via pipe. "
    "Use --force-plain to override (at your own risk)."
)


class Operation(str, Enum):
    DISPLAY = "display"      # raw value to a readable stream (--show, --plain)
    CLIPBOARD = "clipboard"
    READ = "read"            # masked single read
    LIST = "list"
    TEMPLATE = "template"
    INJECT = "inject"


# Paths that may select keys implicitly (by provider or pattern).
BULK_OPERATIONS = frozenset({Operation.LIST, Operation.TEMPLATE, Operation.INJECT})


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[str] = None
    warning: Optional[str] = None
    silent: bool = False
    guidance: Optional[str] = None

    @classmethod
    def allow(cls, warning: Optional[str] = None) -> "Decision":
        return cls(True, warning=warning)

    @classmethod
    def deny(cls, reason: str, silent: bool = False, guidance: Optional[str] = None) -> "Decision":
        return cls(False, reason=reason, silent=silent, guidance=guidance)

    def enforce(self) -> bool:
        """
        Apply the decision.

        Returns:
            True if allowed, False for a silent denial (skip the operation)

        Raises:
            AccessDeniedError: For a hard denial
        """
        if self.allowed:
            if self.warning:
                logger.warning(f"Warning: {self.warning}")
            return True
        if self.silent:
            logger.debug(f"Skipped: {self.reason}")
            return False
        raise AccessDeniedError(self.reason, self.guidance)


def authorize(
    operation: Operation,
    kind: KeyKind,
    context: ExecutionContext,
    override: bool = False,
    elevated: bool = False,
) -> Decision:
    """
    Decide whether an operation on a key of the given kind may proceed.

    Rules, first match wins:
    1. DISPLAY in a non-interactive context is denied unless overridden, in
       which case it is allowed with a warning the caller must surface.
    2. CLIPBOARD is silently denied when stdout is not a terminal.
    3. Admin keys on listing, template and injection paths are denied unless
       elevated scope was requested. Template and injection never request it.
    4. Everything else is allowed.

    Args:
        operation: What the caller is about to do
        kind: Classification of the key involved
        context: Execution context of this invocation
        override: Explicit override flag (e.g. --force-plain)
        elevated: Caller explicitly asked to include admin keys

    Returns:
        Decision
    """
    override = override or context.has_explicit_override

    if operation == Operation.DISPLAY and not context.is_interactive:
        if override:
            return Decision.allow(warning="outputting raw key value in non-interactive environment.")
        return Decision.deny(
            "--plain and --show are blocked in non-interactive environments.",
            guidance=NON_INTERACTIVE_GUIDANCE,
        )

    if operation == Operation.CLIPBOARD and not context.stdout_is_interactive:
        return Decision.deny("clipboard skipped: stdout is not a terminal", silent=True)

    if operation in BULK_OPERATIONS and kind == KeyKind.ADMIN:
        if operation == Operation.LIST and elevated:
            return Decision.allow()
        return Decision.deny(
            f"Admin keys cannot be used for {operation.value}. Only runtime keys are allowed.",
        )

    return Decision.allow()
