"""Atomic file writes for restore and import.

A restore or import never leaves a half-written file behind: content goes
to a temp file beside the destination, which then replaces the target with
a single rename (atomic on POSIX and Windows).

Failures come back as Err(RestoreError) with code INTERNAL_ERROR.
"""

import logging
import os
import tempfile
from pathlib import Path

from claude_restore.errors import INTERNAL_ERROR, Err, Ok, Result, RestoreError, fail

logger = logging.getLogger(__name__)

# Restored project files get ordinary permissions
DEFAULT_MODE = 0o644


def _write_failure(action: str, path: Path, e: OSError) -> Err[RestoreError]:
    if isinstance(e, PermissionError):
        logger.error(f"Permission denied {action} {path}: {e}")
        return fail(INTERNAL_ERROR, f"Permission denied {action} {path}", path=str(path))

    logger.error(f"Failed {action} {path}: {e}")
    return fail(INTERNAL_ERROR, f"Failed {action} {path}: {e}", path=str(path), error=str(e))


def atomic_write_bytes(
    path: Path,
    content: bytes,
    mode: int = DEFAULT_MODE,
) -> Result[Path, RestoreError]:
    """Atomically write bytes to a file, creating parent directories.

    Args:
        path: Destination file
        content: Exact bytes to store
        mode: Permissions of the new file

    Returns:
        Ok(path), or Err(RestoreError) if any filesystem step failed
    """
    path = Path(path)
    staging: str | None = None

    try:
        path.parent.mkdir(parents=True, exist_ok=True)

        # Same directory as the target, so the rename never crosses devices
        fd, staging = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as out:
                out.write(content)
            os.chmod(staging, mode)
            os.replace(staging, path)
        except BaseException:
            _discard(staging)
            raise
    except OSError as e:
        return _write_failure("writing", path, e)

    logger.debug(f"Wrote {len(content)} bytes to {path}")
    return Ok(path)


def atomic_write_text(
    path: Path,
    content: str,
    mode: int = DEFAULT_MODE,
) -> Result[Path, RestoreError]:
    """Atomically write UTF-8 text to a file."""
    return atomic_write_bytes(path, content.encode("utf-8"), mode)


def atomic_copy_file(
    source: Path,
    dest: Path,
    mode: int = DEFAULT_MODE,
) -> Result[Path, RestoreError]:
    """Copy a backup blob's bytes verbatim to dest.

    Example:
        result = atomic_copy_file(history / "abc@v2", target / "src/index.ts")
    """
    try:
        content = Path(source).read_bytes()
    except OSError as e:
        return _write_failure("reading", Path(source), e)

    return atomic_write_bytes(dest, content, mode)


def _discard(staging: str) -> None:
    try:
        os.unlink(staging)
    except FileNotFoundError:
        pass
