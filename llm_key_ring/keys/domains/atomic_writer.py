"""Atomic, owner-only file writes."""
import logging
import os
import subprocess
import tempfile
from pathlib import Path
from typing import Optional, Union

from .errors import WriteError

logger = logging.getLogger(__name__)

Contents = Union[str, bytes, bytearray, memoryview]


def write_atomic(path: Union[str, Path], contents: Contents, mode: int = 0o600) -> None:
    """
    Write `contents` to `path` so no reader ever sees a partial file.

    A temp file is created next to the target, restricted to `mode` before
    any byte is written, flushed and fsynced, then renamed over the target.
    On any failure the temp file is removed and the target is untouched.

    Args:
        path: Target file
        contents: Data to write (str is encoded as UTF-8)
        mode: Permission bits for the new file (default owner read/write)

    Raises:
        WriteError: If any step fails
    """
    target = Path(path)
    parent = target.parent if str(target.parent) else Path(".")
    data = contents.encode("utf-8") if isinstance(contents, str) else contents

    try:
        fd, tmp_name = tempfile.mkstemp(prefix=".lkr-gen-", suffix=".tmp", dir=parent)
    except OSError as e:
        raise WriteError(f"Cannot write to '{parent}': {e.strerror or e}") from None

    try:
        with os.fdopen(fd, "wb") as f:
            if hasattr(os, "fchmod"):
                os.fchmod(f.fileno(), mode)
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, target)
    except OSError as e:
        _discard(tmp_name)
        raise WriteError(f"Cannot write '{target}': {e.strerror or e}") from None
    except BaseException:
        _discard(tmp_name)
        raise

    _fsync_dir(parent)
    logger.info(f"Wrote {target} (mode {oct(mode)})")


def _discard(tmp_name: str) -> None:
    try:
        os.unlink(tmp_name)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Could not remove temp file {tmp_name}: {e}")


def _fsync_dir(directory: Path) -> None:
    """Persist the rename. Not every platform allows opening a directory."""
    try:
        dir_fd = os.open(directory, os.O_RDONLY)
    except OSError:
        return
    try:
        os.fsync(dir_fd)
    except OSError:
        pass
    finally:
        os.close(dir_fd)


def check_ignored(path: Union[str, Path]) -> Optional[bool]:
    """
    Check whether git's ignore rules cover `path`.

    Returns:
        True if ignored, False if not, None outside a git repository or
        when git is unavailable
    """
    target = Path(path)
    cwd = target.parent if str(target.parent) else Path(".")
    try:
        result = subprocess.run(
            ["git", "check-ignore", "-q", target.name],
            cwd=cwd,
            capture_output=True,
            check=False,
        )
    except (FileNotFoundError, NotADirectoryError, PermissionError) as e:
        logger.debug(f"git check-ignore unavailable: {e}")
        return None

    # 0 = ignored, 1 = not ignored, 128 = not a repo / fatal
    if result.returncode == 0:
        return True
    if result.returncode == 1:
        return False
    return None
