"""Path safety and restore-path resolution.

Every write made by a restore or an import goes through this module first.

Security:
- Targets inside a private root (the assistant's own data directory) are
  rejected, after ~ expansion, canonicalization and case folding
- Any '..' in a path is rejected as traversal. This is a literal substring
  check, so it also catches segments a naive join would silently resolve
- All checks run before any directory is created or file written
"""

import logging
import os
import re
from pathlib import Path
from typing import Iterable

from claude_restore.errors import (
    PATH_TRAVERSAL,
    REQUIRED_FIELD_MISSING,
    UNSAFE_TARGET,
    Result,
    RestoreError,
    fail,
    ok,
)

logger = logging.getLogger(__name__)

_DRIVE_PREFIX = re.compile(r"^[A-Za-z]:")


def expand_home(path: str) -> str:
    """Replace a leading ~ with the user's home directory."""
    if not path.startswith("~"):
        return path

    rest = path[1:].lstrip("/\\")
    home = Path.home()
    return str(home / rest) if rest else str(home)


def has_traversal(path: str) -> bool:
    """True if the literal path text contains a parent-directory marker."""
    return ".." in path


def is_safe_component(name: str) -> bool:
    """True if name is a single, non-traversing path component.

    Used for identifiers that come from URLs (project and conversation ids).
    """
    return bool(name) and not has_traversal(name) and "/" not in name and "\\" not in name


def _canonical(path: str) -> str:
    return os.path.normcase(str(Path(expand_home(path)).resolve())).casefold()


def is_under_private_root(path: str, private_roots: Iterable[Path]) -> bool:
    """True if path is, or lies below, any of the private roots."""
    candidate = _canonical(path)
    for root in private_roots:
        protected = _canonical(str(root)).rstrip(os.sep)
        if candidate == protected or candidate.startswith(protected + os.sep):
            return True
    return False


def validate_target(
    target: str | None, private_roots: Iterable[Path]
) -> Result[Path, RestoreError]:
    """Check that a restore/import target directory is safe to write to.

    Returns:
        Ok(expanded target path), or Err with REQUIRED_FIELD_MISSING,
        UNSAFE_TARGET or PATH_TRAVERSAL
    """
    if not target or not isinstance(target, str):
        return fail(REQUIRED_FIELD_MISSING, "targetDir is required")

    expanded = expand_home(target)

    if is_under_private_root(expanded, private_roots):
        logger.warning(f"Rejected target inside private root: {target}")
        return fail(
            UNSAFE_TARGET,
            "Restore target cannot be inside the Claude data directory - this is not allowed for safety",
            target=target,
        )

    if has_traversal(target) or has_traversal(expanded):
        logger.warning(f"Rejected target with path traversal: {target}")
        return fail(
            PATH_TRAVERSAL,
            "Path traversal detected - '..' is not allowed in paths",
            target=target,
        )

    return ok(Path(expanded))


def _is_absolute(normalized: str) -> bool:
    return normalized.startswith("/") or bool(_DRIVE_PREFIX.match(normalized))


def _strip_root(normalized: str) -> str:
    return _DRIVE_PREFIX.sub("", normalized).lstrip("/")


def resolve_restore_path(file_path: str, target_dir: str | Path, reference_cwd: str) -> Path:
    """Rebase a recorded file path onto target_dir.

    Paths may use either separator convention and may come from another OS.

    - Absolute under reference_cwd: keep the part below reference_cwd
    - Absolute elsewhere: drop the drive letter and leading separators
    - Relative: join as is

    Does not validate target_dir; callers run validate_target first.
    """
    normalized = file_path.replace("\\", "/")
    cwd = reference_cwd.replace("\\", "/").rstrip("/")

    if _is_absolute(normalized):
        if cwd and (normalized == cwd or normalized.startswith(cwd + "/")):
            relative = normalized[len(cwd):].lstrip("/")
        else:
            relative = _strip_root(normalized)
    else:
        relative = normalized

    parts = [part for part in relative.split("/") if part and part != "."]
    return Path(target_dir).joinpath(*parts)

