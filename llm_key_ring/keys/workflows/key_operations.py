"""Workflow for key operations: set, get, list, delete."""
import json
import logging
import sys
from dataclasses import dataclass
from enum import Enum
from typing import IO, List, Optional

from ..domains.clipboard import ClipboardEscrow
from ..domains.context import ExecutionContext, classify
from ..domains.errors import ClipboardUnavailableError, KeyNotFoundError
from ..domains.guard import Operation, authorize
from ..domains.models import Identifier, KeyEntry, KeyKind
from ..domains.store import KeyStore

logger = logging.getLogger(__name__)


class Sink(str, Enum):
    CLIPBOARD = "clipboard"  # masked line, raw value to clipboard
    DISPLAY = "display"      # raw line only
    PLAIN = "plain"          # raw value only, no newline
    JSON = "json"            # JSON object; masked value + clipboard, or raw value alone with show


@dataclass
class GetResult:
    """Outcome of a get. Never carries the raw value."""
    identifier: Identifier
    kind: KeyKind
    masked_value: str
    clipboard: bool
    warning: Optional[str] = None


def store_set(store: KeyStore, name: str, value: str, kind: KeyKind = KeyKind.RUNTIME, force: bool = False) -> Identifier:
    """
    Store a key.

    Args:
        store: Key store
        name: Key name in provider:label format
        value: Key value (surrounding whitespace is stripped)
        kind: runtime or admin
        force: Overwrite an existing key

    Returns:
        The stored identifier

    Raises:
        ValidationError: Malformed name or empty value
        KeyAlreadyExistsError: Key exists and force is False
        StoreError: Keychain failure
    """
    ident = Identifier.parse(name)
    store.put(ident, value.strip(), kind, force=force)
    return ident


def _needs_display(sink: Sink, show: bool) -> bool:
    return sink in (Sink.DISPLAY, Sink.PLAIN) or (sink == Sink.JSON and show)


def _uses_clipboard(sink: Sink, show: bool) -> bool:
    # a raw value goes to exactly one sink
    return not _needs_display(sink, show)


def store_get(
    store: KeyStore,
    name: str,
    sink: Sink = Sink.CLIPBOARD,
    context: Optional[ExecutionContext] = None,
    escrow: Optional[ClipboardEscrow] = None,
    out: Optional[IO] = None,
    show: bool = False,
) -> GetResult:
    """
    Retrieve a key and deliver it to the requested sink.

    The guard is consulted before the key is fetched. Raw values are written
    to `out` while the envelope is open and are never returned.

    Raises:
        AccessDeniedError: Raw output requested in a non-interactive context
        KeyNotFoundError: No such key
    """
    context = context or classify()
    out = out or sys.stdout
    ident = Identifier.parse(name)

    warning = None
    if _needs_display(sink, show):
        # kind is not known before the fetch; rule 1 does not depend on it
        decision = authorize(Operation.DISPLAY, KeyKind.RUNTIME, context)
        decision.enforce()
        warning = decision.warning

    with store.fetch(ident) as envelope:
        authorize(Operation.READ, envelope.kind, context).enforce()
        masked = envelope.masked()

        clipboard = False
        if escrow is not None and _uses_clipboard(sink, show):
            try:
                clipboard = escrow.place(envelope, context) is not None
            except ClipboardUnavailableError as e:
                logger.warning(f"Warning: clipboard unavailable ({str(e).splitlines()[0]})")

        if sink == Sink.PLAIN:
            out.write(envelope.expose_secret())
            out.flush()
        elif sink == Sink.DISPLAY:
            out.write(envelope.expose_secret() + "\n")
        elif sink == Sink.JSON:
            obj = {
                "name": str(ident),
                "kind": str(envelope.kind),
                "value": envelope.expose_secret() if show else masked,
                "clipboard": clipboard,
            }
            out.write(json.dumps(obj, indent=2) + "\n")
        else:
            out.write(f"  {masked}  ({envelope.kind})\n")

        return GetResult(ident, envelope.kind, masked, clipboard, warning)


def store_list(store: KeyStore, include_admin: bool = False, context: Optional[ExecutionContext] = None) -> List[KeyEntry]:
    """
    List stored keys with masked values, sorted by name.

    Admin keys are included only when explicitly requested.
    """
    context = context or classify()
    entries = []
    for ident, kind in store.enumerate():
        if not authorize(Operation.LIST, kind, context, elevated=include_admin).allowed:
            continue
        try:
            envelope = store.fetch(ident)
        except KeyNotFoundError:
            # removed since enumerate
            continue
        with envelope:
            entries.append(KeyEntry(
                name=str(ident),
                provider=ident.provider,
                label=ident.label,
                kind=envelope.kind,
                masked_value=envelope.masked(),
            ))
    return sorted(entries, key=lambda e: e.name)


def store_delete(store: KeyStore, name: str) -> Identifier:
    ident = Identifier.parse(name)
    store.delete(ident)
    logger.info(f"Removed {ident}")
    return ident


def suggest_similar(store: KeyStore, name: str) -> List[str]:
    """Names that look like what the user meant: same provider or same first characters."""
    provider = name.split(":", 1)[0]
    head = name[:4]
    suggestions = []
    for ident, _ in store.enumerate():
        full = str(ident)
        if (head and head in full) or ident.provider == provider:
            suggestions.append(full)
    return suggestions
