"""Key store interface and the in-memory implementation."""
import json
import logging
import threading
from typing import Dict, List, Protocol, Tuple, Union

from .envelope import SecretEnvelope
from .errors import KeyAlreadyExistsError, KeyNotFoundError, StoreError, ValidationError
from .models import Identifier, KeyKind

logger = logging.getLogger(__name__)

Name = Union[str, Identifier]


class KeyStore(Protocol):
    """
    Capability interface over a credential backend.

    Implementations: KeychainStore (OS keychain via `keyring`) and MemoryStore.
    """

    def put(self, name: Name, value: str, kind: KeyKind = KeyKind.RUNTIME, force: bool = False) -> None:
        ...

    def fetch(self, name: Name) -> SecretEnvelope:
        ...

    def delete(self, name: Name) -> None:
        ...

    def enumerate(self) -> List[Tuple[Identifier, KeyKind]]:
        ...

    def exists(self, name: Name) -> bool:
        ...


def validate_value(value: str) -> None:
    """Reject empty or whitespace-only values."""
    if not value or value.strip() == "":
        raise ValidationError("Empty value is not allowed")


def encode_payload(value: str, kind: KeyKind) -> str:
    """Serialize a stored record: {"value": ..., "kind": "runtime"|"admin"}."""
    return json.dumps({"value": value, "kind": str(kind)})


def decode_payload(ident: Identifier, payload: str) -> SecretEnvelope:
    """
    Turn a stored record back into an envelope.

    Raises:
        StoreError: If the payload is not a valid record. The payload itself
            is never included in the message.
    """
    try:
        record = json.loads(payload)
        value = record["value"]
        kind = KeyKind(record["kind"])
    except (ValueError, KeyError, TypeError):
        raise StoreError(f"Stored record for {ident} is malformed") from None
    if not isinstance(value, str):
        raise StoreError(f"Stored record for {ident} is malformed")
    return SecretEnvelope(ident, kind, value)


class MemoryStore:
    """In-memory key store for tests and embedding."""

    def __init__(self):
        self._keys: Dict[Identifier, Tuple[bytearray, KeyKind]] = {}
        self._lock = threading.Lock()

    def put(self, name: Name, value: str, kind: KeyKind = KeyKind.RUNTIME, force: bool = False) -> None:
        ident = Identifier.parse(name)
        validate_value(value)
        with self._lock:
            if not force and ident in self._keys:
                raise KeyAlreadyExistsError(str(ident))
            previous = self._keys.get(ident)
            self._keys[ident] = (bytearray(value.encode("utf-8")), kind)
        if previous is not None:
            _zero(previous[0])
        logger.debug(f"Stored {ident} (kind: {kind}) in memory store")

    def fetch(self, name: Name) -> SecretEnvelope:
        ident = Identifier.parse(name)
        with self._lock:
            if ident not in self._keys:
                raise KeyNotFoundError(str(ident))
            buf, kind = self._keys[ident]
            return SecretEnvelope(ident, kind, buf)

    def delete(self, name: Name) -> None:
        ident = Identifier.parse(name)
        with self._lock:
            if ident not in self._keys:
                raise KeyNotFoundError(str(ident))
            buf, _ = self._keys.pop(ident)
        _zero(buf)

    def enumerate(self) -> List[Tuple[Identifier, KeyKind]]:
        with self._lock:
            return sorted((ident, kind) for ident, (_, kind) in self._keys.items())

    def exists(self, name: Name) -> bool:
        ident = Identifier.parse(name)
        with self._lock:
            return ident in self._keys


def _zero(buf: bytearray) -> None:
    for i in range(len(buf)):
        buf[i] = 0
