"""Checkpoint restore.

Restoring a checkpoint copies its backup blobs back onto disk:

    validate input -> locate conversation -> locate history
        -> locate checkpoint -> validate target -> ensure target -> copy files

Any stage before the copy can fail the whole request, including a single
entry with an unsafe path. Copies are independent: entries without a
backup, or whose blob is missing, are skipped silently; nothing already
copied is rolled back.

Also serves single backed-up files for preview (load_backup_blob).
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any, Iterable

from claude_restore.atomic import atomic_copy_file
from claude_restore.config import AppConfig
from claude_restore.errors import (
    INTERNAL_ERROR,
    INVALID_FORMAT,
    MISSING_PARAMETER,
    NO_TARGET_DIRECTORY,
    NOT_FOUND,
    PATH_TRAVERSAL,
    UNSAFE_TARGET,
    Result,
    RestoreError,
    fail,
    ok,
)
from claude_restore.paths import (
    expand_home,
    has_traversal,
    is_under_private_root,
    resolve_restore_path,
    validate_target,
)
from claude_restore.projects import history_dir, locate_conversation
from claude_restore.transcript import (
    Checkpoint,
    FileBackup,
    extract_cwd,
    find_checkpoint_by_message_id,
    read_log,
)

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    "ts": "text/typescript",
    "tsx": "text/typescript",
    "js": "text/javascript",
    "jsx": "text/javascript",
    "json": "application/json",
    "md": "text/markdown",
    "html": "text/html",
    "css": "text/css",
    "py": "text/x-python",
    "rs": "text/x-rust",
    "go": "text/x-go",
    "java": "text/x-java",
    "c": "text/x-c",
    "cpp": "text/x-c++",
    "h": "text/x-c",
    "hpp": "text/x-c++",
    "sh": "text/x-shellscript",
    "yml": "text/yaml",
    "yaml": "text/yaml",
    "toml": "text/toml",
    "xml": "text/xml",
    "sql": "text/x-sql",
}
BINARY_CONTENT_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class RestoreRequest:
    """What to restore, and where."""

    project_id: str
    conversation_id: str
    checkpoint_message_id: str
    target_dir: str | None = None
    files: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Any) -> Result["RestoreRequest", RestoreError]:
        """Validate a JSON request body."""
        if not isinstance(data, dict):
            return fail(INVALID_FORMAT, "Request body must be a JSON object")

        required = ("conversationId", "projectId", "checkpointMessageId")
        missing = [name for name in required if not data.get(name) or not isinstance(data[name], str)]
        if missing:
            return fail(
                MISSING_PARAMETER,
                "Missing required fields: conversationId, projectId, checkpointMessageId",
                missing=missing,
            )

        target_dir = data.get("targetDir")
        if target_dir is not None and not isinstance(target_dir, str):
            return fail(INVALID_FORMAT, "targetDir must be a string")

        files = data.get("files") or []
        if not isinstance(files, list) or not all(isinstance(f, str) for f in files):
            return fail(INVALID_FORMAT, "files must be a list of file paths")

        return ok(
            cls(
                project_id=data["projectId"],
                conversation_id=data["conversationId"],
                checkpoint_message_id=data["checkpointMessageId"],
                target_dir=target_dir or None,
                files=tuple(files),
            )
        )


@dataclass(frozen=True)
class RestoreResult:
    """Outcome of a restore. Entries without a backup are not failures."""

    count: int
    files: list[str]
    target_dir: str
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": True,
            "count": self.count,
            "files": self.files,
            "targetDir": self.target_dir,
        }
        if self.errors:
            data["errors"] = self.errors
        return data


@dataclass(frozen=True)
class BackupBlob:
    """Content of one backed-up file, ready to serve."""

    file_path: str
    version: int
    content: bytes
    content_type: str


def _load_checkpoint(log_path: Path, message_id: str) -> Result[tuple[Checkpoint, str], RestoreError]:
    """Find a checkpoint and the conversation's working directory."""
    records = read_log(log_path)
    checkpoint = find_checkpoint_by_message_id(records, message_id)
    if checkpoint is None:
        return fail(NOT_FOUND, "Checkpoint not found", checkpointMessageId=message_id)

    return ok((checkpoint, extract_cwd(records)))


def restore_checkpoint(config: AppConfig, request: RestoreRequest) -> Result[RestoreResult, RestoreError]:
    """Copy a checkpoint's backed-up files into a target directory.

    Without an explicit target the files go back to the conversation's
    original working directory.
    """
    located = locate_conversation(config, request.project_id, request.conversation_id)
    if located.is_err():
        return located

    backups = history_dir(config, request.conversation_id)
    if not backups.is_dir():
        return fail(NOT_FOUND, "History not found for this conversation", conversationId=request.conversation_id)

    loaded = _load_checkpoint(located.unwrap(), request.checkpoint_message_id)
    if loaded.is_err():
        return loaded
    checkpoint, project_cwd = loaded.unwrap()

    target = expand_home(request.target_dir) if request.target_dir else project_cwd
    if not target:
        return fail(NO_TARGET_DIRECTORY, "No target directory specified and no CWD found in conversation")

    validated = validate_target(target, config.private_roots)
    if validated.is_err():
        return validated
    target_dir = validated.unwrap()

    entries = checkpoint.files.items()
    if request.files:
        wanted = set(request.files)
        entries = [(path, backup) for path, backup in entries if path in wanted]

    planned = _plan_copies(config, entries, backups, target_dir, project_cwd)
    if planned.is_err():
        return planned
    copies = planned.unwrap()

    try:
        target_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        return fail(INTERNAL_ERROR, f"Cannot create target directory {target_dir}: {e}")

    restored: list[str] = []
    errors: list[str] = []

    for file_path, blob, dest in copies:
        result = atomic_copy_file(blob, dest)
        if result.is_err():
            errors.append(f"Failed to restore {file_path}: {result.err().message}")
            continue
        restored.append(str(dest))

    logger.info(
        f"Restored {len(restored)}/{len(entries)} files from checkpoint "
        f"{request.checkpoint_message_id} to {target_dir}"
    )
    return ok(
        RestoreResult(
            count=len(restored),
            files=restored,
            target_dir=str(target_dir),
            errors=errors,
        )
    )


def _plan_copies(
    config: AppConfig,
    entries: Iterable[tuple[str, FileBackup]],
    backups: Path,
    target_dir: Path,
    project_cwd: str,
) -> Result[list[tuple[str, Path, Path]], RestoreError]:
    """Pair every restorable entry with its blob and destination.

    Entries without a usable blob are dropped. A single unsafe entry fails
    the whole plan, so nothing is written for that request.
    """
    copies = []
    for file_path, backup in entries:
        if not backup.backup_file_name or has_traversal(backup.backup_file_name):
            continue

        blob = backups / backup.backup_file_name
        if not blob.is_file():
            continue

        if has_traversal(file_path):
            logger.warning(f"Refusing restore of {file_path}: path traversal")
            return fail(
                PATH_TRAVERSAL,
                "Path traversal detected - '..' is not allowed in paths",
                filePath=file_path,
            )

        dest = resolve_restore_path(file_path, target_dir, project_cwd)
        if is_under_private_root(str(dest), config.private_roots):
            logger.warning(f"Refusing restore of {file_path}: destination inside private root")
            return fail(
                UNSAFE_TARGET,
                "Cannot write to the Claude data directory",
                filePath=file_path,
            )

        copies.append((file_path, blob, dest))
    return ok(copies)


def guess_content_type(file_path: str) -> str:
    """Content type for previewing a file, from its extension."""
    suffix = PurePosixPath(file_path.replace("\\", "/")).suffix.lstrip(".").lower()
    return CONTENT_TYPES.get(suffix, "text/plain")


def load_backup_blob(
    config: AppConfig,
    project_id: str,
    conversation_id: str,
    message_id: str,
    file_path: str,
) -> Result[BackupBlob, RestoreError]:
    """Backed-up content of one file at one checkpoint."""
    located = locate_conversation(config, project_id, conversation_id)
    if located.is_err():
        return located

    loaded = _load_checkpoint(located.unwrap(), message_id)
    if loaded.is_err():
        return loaded
    checkpoint, _ = loaded.unwrap()

    backup = checkpoint.files.get(file_path)
    if backup is None:
        return fail(NOT_FOUND, "File not found in checkpoint", filePath=file_path)

    if not backup.backup_file_name:
        return fail(
            NOT_FOUND,
            "No backup file available for this file (file was tracked but not yet backed up)",
            filePath=file_path,
        )

    blob: Path = history_dir(config, conversation_id) / backup.backup_file_name
    if has_traversal(backup.backup_file_name) or not blob.is_file():
        return fail(NOT_FOUND, "Backup file not found on disk", filePath=file_path)

    content = blob.read_bytes()
    try:
        content.decode("utf-8")
        content_type = f"{guess_content_type(file_path)}; charset=utf-8"
    except UnicodeDecodeError:
        content_type = BINARY_CONTENT_TYPE

    return ok(
        BackupBlob(
            file_path=file_path,
            version=backup.version,
            content=content,
            content_type=content_type,
        )
    )
