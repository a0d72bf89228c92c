"""Clipboard escrow: copy a key, then clear it later only if it is still ours.

The clear runs in a detached interpreter so the command that placed the key
can exit immediately:

    python -m llm_key_ring.keys.domains.clipboard

reads an escrow token as JSON on stdin, waits out the TTL, and clears the
clipboard only if it still holds the escrowed content and no newer placement
has superseded it.
"""
import hashlib
import json
import logging
import os
import platform
import shutil
import subprocess
import sys
import time
import uuid
from dataclasses import asdict, dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Protocol

from .atomic_writer import write_atomic
from .context import ExecutionContext
from .envelope import SecretEnvelope
from .errors import ClipboardUnavailableError, WriteError
from .guard import Operation, authorize
from .models import config_dir

logger = logging.getLogger(__name__)

CLEAR_AFTER_SECONDS = 30

def escrow_state_path() -> Path:
    """Holds only the newest token id and its placement time, never a value or hash."""
    return config_dir() / "clipboard-escrow.json"


class ClipboardBackend(Protocol):
    def copy(self, data: bytes) -> None:
        ...

    def paste(self) -> bytes:
        ...

    def clear(self) -> None:
        ...


class SystemClipboard:
    """Clipboard access through the platform's command line tools."""

    def __init__(self):
        self._copy_cmd, self._paste_cmd, self._clear_cmd = self._detect()

    @staticmethod
    def _detect():
        system = platform.system()
        if system == "Darwin":
            return ["pbcopy"], ["pbpaste"], None
        if system == "Windows":
            return ["clip"], ["powershell", "-NoProfile", "-Command", "Get-Clipboard"], None
        if os.getenv("WAYLAND_DISPLAY") and shutil.which("wl-copy"):
            return ["wl-copy"], ["wl-paste", "--no-newline"], ["wl-copy", "--clear"]
        if shutil.which("xclip"):
            return ["xclip", "-selection", "clipboard"], ["xclip", "-selection", "clipboard", "-o"], None
        if shutil.which("xsel"):
            return ["xsel", "--clipboard", "--input"], ["xsel", "--clipboard", "--output"], None
        return None, None, None

    @property
    def available(self) -> bool:
        return self._copy_cmd is not None

    def _require(self) -> None:
        if not self.available:
            raise ClipboardUnavailableError()

    def copy(self, data: bytes) -> None:
        self._require()
        # xclip/wl-copy fork to serve the selection; they must not inherit our pipes
        try:
            result = subprocess.run(
                self._copy_cmd,
                input=bytes(data),
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                check=False,
            )
        except OSError:
            raise ClipboardUnavailableError() from None
        if result.returncode != 0:
            raise ClipboardUnavailableError()

    def paste(self) -> bytes:
        self._require()
        try:
            result = subprocess.run(self._paste_cmd, capture_output=True, check=False)
        except OSError:
            raise ClipboardUnavailableError() from None
        if result.returncode != 0:
            # xclip/xsel exit non-zero on an empty selection
            return b""
        out = result.stdout
        if platform.system() == "Windows":
            out = out.rstrip(b"\r\n")
        return out

    def clear(self) -> None:
        if self._clear_cmd:
            self._require()
            subprocess.run(self._clear_cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL, check=False)
        else:
            self.copy(b"")


class MemoryClipboard:
    """In-process clipboard for tests."""

    def __init__(self, content: bytes = b""):
        self.content = content

    def copy(self, data: bytes) -> None:
        self.content = bytes(data)

    def paste(self) -> bytes:
        return self.content

    def clear(self) -> None:
        self.content = b""


def content_hash(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


@dataclass(frozen=True)
class EscrowToken:
    """A pending clear. Exists only until the clear fires or is skipped."""
    token_id: str
    content_hash: str
    placed_at: float
    ttl: int

    @property
    def deadline(self) -> float:
        return self.placed_at + self.ttl

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, text: str) -> "EscrowToken":
        data = json.loads(text)
        return cls(
            token_id=str(data["token_id"]),
            content_hash=str(data["content_hash"]),
            placed_at=float(data["placed_at"]),
            ttl=int(data["ttl"]),
        )


class ClearOutcome(str, Enum):
    CLEARED = "cleared"
    CHANGED = "changed"          # user put something else there
    SUPERSEDED = "superseded"    # a newer placement owns the clipboard
    UNAVAILABLE = "unavailable"


def _read_current_token_id(state_path: Path) -> Optional[str]:
    try:
        with open(state_path, "r") as f:
            return json.load(f).get("token_id")
    except FileNotFoundError:
        return None
    except (OSError, ValueError, AttributeError) as e:
        logger.debug(f"Unreadable escrow state {state_path}: {e}")
        return None


def _record_current_token(token: EscrowToken, state_path: Path) -> None:
    state_path.parent.mkdir(parents=True, exist_ok=True)
    write_atomic(state_path, json.dumps({"token_id": token.token_id, "placed_at": token.placed_at}))


def _forget_token(token: EscrowToken, state_path: Path) -> None:
    if _read_current_token_id(state_path) == token.token_id:
        try:
            state_path.unlink()
        except FileNotFoundError:
            pass


def clear_if_unchanged(token: EscrowToken, backend: ClipboardBackend, state_path: Path = None) -> ClearOutcome:
    """
    Clear the clipboard if it still holds the escrowed content.

    Args:
        token: Escrow token from the placement
        backend: Clipboard to inspect and clear
        state_path: Escrow state file (default: escrow_state_path())

    Returns:
        ClearOutcome describing what happened
    """
    state_path = Path(state_path or escrow_state_path())

    current = _read_current_token_id(state_path)
    if current is not None and current != token.token_id:
        return ClearOutcome.SUPERSEDED

    try:
        present = backend.paste()
        if content_hash(present) != token.content_hash:
            outcome = ClearOutcome.CHANGED
        else:
            backend.clear()
            outcome = ClearOutcome.CLEARED
    except ClipboardUnavailableError:
        outcome = ClearOutcome.UNAVAILABLE

    _forget_token(token, state_path)
    return outcome


def spawn_clear_process(token: EscrowToken, state_path: Path) -> None:
    """Start a detached interpreter that clears the clipboard after the TTL."""
    proc = subprocess.Popen(
        [sys.executable, "-m", __name__, "--state", str(state_path)],
        stdin=subprocess.PIPE,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        close_fds=True,
        start_new_session=True,
    )
    proc.stdin.write(token.to_json().encode("utf-8"))
    proc.stdin.close()
    logger.debug(f"Spawned clipboard clear worker (pid {proc.pid})")


Spawner = Callable[[EscrowToken, Path], None]


class ClipboardEscrow:
    """Places one key on the clipboard at a time and schedules its removal."""

    def __init__(
        self,
        backend: Optional[ClipboardBackend] = None,
        ttl: int = CLEAR_AFTER_SECONDS,
        state_path: Optional[Path] = None,
        spawn: Optional[Spawner] = None,
    ):
        self.backend = backend if backend is not None else SystemClipboard()
        self.ttl = ttl
        self.state_path = Path(state_path or escrow_state_path())
        self.spawn = spawn or spawn_clear_process
        self.pending: Optional[EscrowToken] = None

    def place(self, envelope: SecretEnvelope, context: ExecutionContext) -> Optional[EscrowToken]:
        """
        Schedule a clear, then copy the envelope's value.

        The clear worker is started before anything reaches the clipboard, so
        a failure to record or spawn it leaves the clipboard untouched.

        Returns:
            EscrowToken, or None when the guard skipped the clipboard

        Raises:
            ClipboardUnavailableError: If no clipboard tool is usable or the
                clear could not be scheduled
        """
        if not authorize(Operation.CLIPBOARD, envelope.kind, context).enforce():
            return None

        data = envelope.expose_bytes()
        token = EscrowToken(
            token_id=uuid.uuid4().hex,
            content_hash=content_hash(data),
            placed_at=time.time(),
            ttl=self.ttl,
        )
        try:
            _record_current_token(token, self.state_path)
            self.spawn(token, self.state_path)
        except (OSError, WriteError) as e:
            _forget_token(token, self.state_path)
            raise ClipboardUnavailableError(f"Could not schedule clipboard clear: {e}") from None

        try:
            self.backend.copy(data)
        except ClipboardUnavailableError:
            _forget_token(token, self.state_path)
            raise
        # a newer placement makes any earlier pending clear moot
        self.pending = token
        logger.info(f"Copied {envelope.identifier} to clipboard; clears in {self.ttl}s")
        return token


def main(argv: Optional[List[str]] = None) -> int:
    """Clear worker entrypoint. Reads a token on stdin, waits, clears."""
    import argparse

    parser = argparse.ArgumentParser(prog="lkr-clipboard-clear")
    parser.add_argument("--state")
    args = parser.parse_args(argv)

    try:
        token = EscrowToken.from_json(sys.stdin.read())
    except (ValueError, KeyError, TypeError):
        return 2

    delay = token.deadline - time.time()
    if delay > 0:
        time.sleep(delay)

    outcome = clear_if_unchanged(token, SystemClipboard(), args.state)
    return 0 if outcome != ClearOutcome.UNAVAILABLE else 1


if __name__ == "__main__":
    sys.exit(main())
