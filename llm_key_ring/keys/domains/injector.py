"""Run a child process with keys in its environment and nowhere else."""
import logging
import os
import subprocess
from typing import Dict, List, Mapping, Optional, Sequence

from .context import ExecutionContext, classify
from .errors import AccessDeniedError, ValidationError
from .guard import Operation, authorize
from .models import Identifier
from .providers import ProviderTable, group_runtime_candidates
from .store import KeyStore, Name

logger = logging.getLogger(__name__)


def select_default_keys(store: KeyStore, providers: ProviderTable) -> List[Identifier]:
    """One runtime key per known provider, the lowest label of each."""
    grouped = group_runtime_candidates(store.enumerate())
    selected = []
    for provider in sorted(grouped):
        if providers.env_var_for(provider) is None:
            continue
        idents = grouped[provider]
        if len(idents) > 1:
            others = ", ".join(str(i) for i in idents[1:])
            logger.warning(f"Warning: using {idents[0]} for {providers.env_var_for(provider)}; also available: {others}")
        selected.append(idents[0])
    return selected


def plan_environment(keys: Sequence[Identifier], providers: ProviderTable) -> Dict[Identifier, str]:
    """
    Map each key to its environment variable.

    Raises:
        ValidationError: If a provider has no variable or two keys collide
    """
    plan: Dict[Identifier, str] = {}
    claimed: Dict[str, Identifier] = {}
    for ident in keys:
        var = providers.env_var_for(ident.provider)
        if var is None:
            raise ValidationError(
                f"No environment variable is known for provider '{ident.provider}' ({ident}). "
                f"Add it under 'providers:' in config.yml."
            )
        if var in claimed and claimed[var] != ident:
            raise ValidationError(f"{claimed[var]} and {ident} both map to {var}; pass only one of them")
        claimed[var] = ident
        plan[ident] = var
    return plan


def inject(
    store: KeyStore,
    command: Sequence[str],
    keys: Optional[Sequence[Name]] = None,
    context: Optional[ExecutionContext] = None,
    providers: Optional[ProviderTable] = None,
    env: Optional[Mapping[str, str]] = None,
    **popen_kwargs,
) -> subprocess.Popen:
    """
    Spawn `command` with the given keys exported in its environment only.

    The parent's os.environ is never modified and nothing is written to disk
    or to a stream.

    Args:
        store: Key store to read from
        command: Program and arguments
        keys: Key names to inject (default: one runtime key per known provider)
        context: Execution context (default: classify())
        providers: Provider table (default: built-in)
        env: Base environment for the child (default: copy of os.environ)

    Returns:
        The child's Popen handle

    Raises:
        ValidationError: Empty command, unknown provider, or variable collision
        AccessDeniedError: If an admin key is requested
        KeyNotFoundError: If a requested key does not exist
    """
    if not command:
        raise ValidationError("No command given. Usage: lkr exec -- <command> [args...]")

    context = context or classify()
    providers = providers or ProviderTable.default()

    if keys:
        idents = [Identifier.parse(k) for k in keys]
    else:
        idents = select_default_keys(store, providers)

    plan = plan_environment(idents, providers)

    child_env = dict(os.environ if env is None else env)
    try:
        for ident, var in plan.items():
            with store.fetch(ident) as envelope:
                if not authorize(Operation.INJECT, envelope.kind, context).allowed:
                    raise AccessDeniedError(
                        f"Admin key '{ident}' cannot be injected. Only runtime keys are allowed."
                    )
                child_env[var] = envelope.expose_secret()

        logger.info(f"Injecting {len(plan)} key(s) into {command[0]}: {', '.join(sorted(plan.values()))}")
        return subprocess.Popen(list(command), env=child_env, **popen_kwargs)
    finally:
        child_env.clear()
