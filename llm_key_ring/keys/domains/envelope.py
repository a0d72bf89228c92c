"""In-memory holder for a fetched secret.

The value lives in a bytearray that is overwritten with zeros when the
envelope's scope ends. Python strings cannot be wiped, so callers should
prefer `expose_bytes()` and keep any `expose_secret()` result short-lived.
"""
import logging
from typing import Union

from .models import Identifier, KeyKind, mask_value

logger = logging.getLogger(__name__)


class SecretEnvelope:
    """
    A secret value plus its classification.

    Use as a context manager:

        with store.fetch(ident) as envelope:
            use(envelope.expose_secret())

    Formatting the envelope never shows the value.
    """

    __slots__ = ("identifier", "kind", "_buf", "_wiped")

    def __init__(self, identifier: Identifier, kind: KeyKind, value: Union[str, bytes, bytearray]):
        self.identifier = identifier
        self.kind = kind
        if isinstance(value, str):
            self._buf = bytearray(value.encode("utf-8"))
        else:
            self._buf = bytearray(value)
        self._wiped = False

    def __enter__(self) -> "SecretEnvelope":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.wipe()

    def __del__(self):
        # __init__ may not have completed
        if getattr(self, "_buf", None) is not None:
            self._zero()

    def _ensure_live(self) -> None:
        if self._wiped:
            raise RuntimeError(f"Envelope for {self.identifier} has already been wiped")

    def expose_secret(self) -> str:
        """Return the raw value. Keep the result in the narrowest scope possible."""
        self._ensure_live()
        return self._buf.decode("utf-8")

    def expose_bytes(self) -> memoryview:
        """Return a read-only view of the raw value without copying it."""
        self._ensure_live()
        return memoryview(self._buf).toreadonly()

    def masked(self) -> str:
        self._ensure_live()
        return mask_value(self._buf.decode("utf-8"))

    def _zero(self) -> None:
        buf = self._buf
        for i in range(len(buf)):
            buf[i] = 0
        self._wiped = True

    def wipe(self) -> None:
        """Overwrite the backing buffer with zeros. Safe to call more than once."""
        already = self._wiped
        self._zero()
        if not already:
            logger.debug(f"Wiped envelope for {self.identifier}")

    @property
    def wiped(self) -> bool:
        return self._wiped

    def _buffer_snapshot(self) -> bytes:
        """Test hook: copy of the backing buffer as it is now."""
        return bytes(self._buf)

    def __repr__(self) -> str:
        return f"SecretEnvelope({self.identifier}, kind={self.kind}, value=<redacted>)"

    __str__ = __repr__

    def __format__(self, format_spec: str) -> str:
        return repr(self)

    def __reduce__(self):
        raise TypeError("SecretEnvelope cannot be serialized")

    def __len__(self) -> int:
        return len(self._buf)
