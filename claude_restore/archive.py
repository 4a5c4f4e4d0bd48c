"""Export and import of archive bundles.

An archive bundle is a self-contained JSON document:

    {"exportedAt": "2026-01-15T10:00:00+00:00",
     "type": "global" | "project" | "conversation" | "checkpoint",
     "projectId": ..., "conversationId": ..., "checkpointMessageId": ...,
     "files": [{"path": "...", "content": "..."}]}

Content is always text. Files that are not valid UTF-8 are left out of
exports; this is a known lossy boundary.

Bundle paths always use '/'. Project and conversation bundles store backup
blobs under the reserved "file-history/<conversationId>/" prefix.

Import validates the whole bundle before touching disk. Failures of single
files are collected and reported next to the count of files written.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from claude_restore.atomic import atomic_write_text
from claude_restore.config import AppConfig
from claude_restore.errors import (
    INVALID_FORMAT,
    NOT_FOUND,
    PATH_TRAVERSAL,
    TYPE_MISMATCH,
    Result,
    RestoreError,
    fail,
    ok,
)
from claude_restore.paths import (
    has_traversal,
    is_safe_component,
    is_under_private_root,
    resolve_restore_path,
    validate_target,
)
from claude_restore.projects import LOG_SUFFIX, history_dir, locate_conversation
from claude_restore.transcript import find_checkpoint_by_message_id, read_log

logger = logging.getLogger(__name__)

BUNDLE_TYPES = ("global", "project", "conversation", "checkpoint")
HISTORY_PREFIX = "file-history/"
STRATEGIES = ("merge", "replace")

# Replaced in download filenames
FILENAME_UNSAFE = re.compile(r"[^A-Za-z0-9._-]")


@dataclass(frozen=True)
class ArchiveFile:
    """One file in a bundle."""

    path: str
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"path": self.path, "content": self.content}


@dataclass(frozen=True)
class ArchiveBundle:
    """A portable collection of files plus scope metadata."""

    type: str
    files: list[ArchiveFile]
    exported_at: str = field(default_factory=lambda: datetime.now(UTC).isoformat())
    claude_root: str | None = None
    project_id: str | None = None
    conversation_id: str | None = None
    checkpoint_message_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"exportedAt": self.exported_at, "type": self.type}
        for key, value in (
            ("claudeRoot", self.claude_root),
            ("projectId", self.project_id),
            ("conversationId", self.conversation_id),
            ("checkpointMessageId", self.checkpoint_message_id),
        ):
            if value is not None:
                data[key] = value
        data["files"] = [f.to_dict() for f in self.files]
        return data

    @property
    def filename(self) -> str:
        """Download name for this bundle."""
        stamp = int(datetime.now(UTC).timestamp() * 1000)
        if self.type == "project":
            return f"claude-project-{_name_part(self.project_id, 20)}-{stamp}.json"
        if self.type == "conversation":
            return f"claude-conversation-{_name_part(self.conversation_id, 8)}-{stamp}.json"
        if self.type == "checkpoint":
            return f"claude-checkpoint-{_name_part(self.checkpoint_message_id, 8)}-{stamp}.json"
        return f"claude-backup-{stamp}.json"


def _name_part(value: str | None, limit: int) -> str:
    return FILENAME_UNSAFE.sub("_", (value or "")[:limit])


@dataclass(frozen=True)
class ImportResult:
    """Outcome of an import. Succeeds only if no file failed."""

    files_imported: int
    message: str
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": self.success,
            "filesImported": self.files_imported,
            "message": self.message,
        }
        if self.errors:
            data["errors"] = self.errors
        return data


# =============================================================================
# Export
# =============================================================================


def collect_files(directory: Path, base_path: str = "") -> list[ArchiveFile]:
    """Recursively collect the text files under a directory.

    Paths in the result are relative to directory, prefixed with base_path.
    Symbolic links are not followed.
    """
    if not directory.is_dir():
        return []

    files = []
    for entry in sorted(directory.iterdir()):
        relative = f"{base_path}/{entry.name}" if base_path else entry.name

        if entry.is_symlink():
            logger.debug(f"Skipping symlink: {entry}")
        elif entry.is_dir():
            files.extend(collect_files(entry, relative))
        elif entry.is_file():
            try:
                files.append(ArchiveFile(path=relative, content=entry.read_text(encoding="utf-8")))
            except UnicodeDecodeError:
                logger.debug(f"Skipping binary file: {entry}")
            except OSError as e:
                logger.warning(f"Skipping unreadable file {entry}: {e}")

    return files


def _history_files(config: AppConfig, conversation_id: str) -> list[ArchiveFile]:
    return collect_files(history_dir(config, conversation_id), f"{HISTORY_PREFIX}{conversation_id}")


def export_global(config: AppConfig) -> Result[ArchiveBundle, RestoreError]:
    """Bundle every text file of the Claude data directory."""
    files = collect_files(config.claude_root)
    logger.info(f"Exported {len(files)} files from {config.claude_root}")
    return ok(ArchiveBundle(type="global", files=files, claude_root=str(config.claude_root)))


def export_project(config: AppConfig, project_id: str) -> Result[ArchiveBundle, RestoreError]:
    """Bundle a project's logs and the backups of each of its conversations."""
    if not is_safe_component(project_id):
        return fail(PATH_TRAVERSAL, "Invalid projectId", projectId=project_id)

    project_dir = config.projects_root / project_id
    if not project_dir.is_dir():
        return fail(NOT_FOUND, "Project not found", projectId=project_id)

    files = collect_files(project_dir)
    for log_path in sorted(project_dir.iterdir()):
        if log_path.is_file() and log_path.name.endswith(LOG_SUFFIX):
            files.extend(_history_files(config, log_path.name[: -len(LOG_SUFFIX)]))

    logger.info(f"Exported project {project_id}: {len(files)} files")
    return ok(ArchiveBundle(type="project", files=files, project_id=project_id))


def export_conversation(
    config: AppConfig, project_id: str, conversation_id: str
) -> Result[ArchiveBundle, RestoreError]:
    """Bundle one conversation log and its backups."""
    located = locate_conversation(config, project_id, conversation_id)
    if located.is_err():
        return located

    files = [
        ArchiveFile(
            path=f"{conversation_id}{LOG_SUFFIX}",
            content=located.unwrap().read_text(encoding="utf-8", errors="replace"),
        )
    ]
    files.extend(_history_files(config, conversation_id))

    return ok(
        ArchiveBundle(
            type="conversation",
            files=files,
            project_id=project_id,
            conversation_id=conversation_id,
        )
    )


def export_checkpoint(
    config: AppConfig, project_id: str, conversation_id: str, message_id: str
) -> Result[ArchiveBundle, RestoreError]:
    """Bundle the backed-up files of one checkpoint under their original paths.

    The log is re-read here so an export never depends on an earlier listing.
    """
    located = locate_conversation(config, project_id, conversation_id)
    if located.is_err():
        return located

    checkpoint = find_checkpoint_by_message_id(read_log(located.unwrap()), message_id)
    if checkpoint is None:
        return fail(NOT_FOUND, "Checkpoint not found", checkpointMessageId=message_id)

    backups = history_dir(config, conversation_id)
    files = []
    for file_path, backup in checkpoint.files.items():
        if not backup.backup_file_name or has_traversal(backup.backup_file_name):
            continue

        blob = backups / backup.backup_file_name
        if not blob.is_file():
            continue

        try:
            files.append(ArchiveFile(path=file_path, content=blob.read_text(encoding="utf-8")))
        except UnicodeDecodeError:
            logger.debug(f"Skipping binary backup for {file_path}")

    return ok(
        ArchiveBundle(
            type="checkpoint",
            files=files,
            project_id=project_id,
            conversation_id=conversation_id,
            checkpoint_message_id=message_id,
        )
    )


# =============================================================================
# Import
# =============================================================================


def validate_bundle(data: Any) -> Result[ArchiveBundle, RestoreError]:
    """Check the structure of an uploaded bundle."""
    invalid = fail(INVALID_FORMAT, "Invalid import data format")

    if not isinstance(data, dict):
        return invalid
    if not isinstance(data.get("exportedAt"), str):
        return invalid
    if data.get("type") not in BUNDLE_TYPES:
        return invalid

    raw_files = data.get("files")
    if not isinstance(raw_files, list):
        return invalid
    for item in raw_files:
        if not isinstance(item, dict):
            return invalid
        if not isinstance(item.get("path"), str) or not isinstance(item.get("content"), str):
            return invalid

    def optional(key: str) -> str | None:
        value = data.get(key)
        return value if isinstance(value, str) else None

    return ok(
        ArchiveBundle(
            type=data["type"],
            files=[ArchiveFile(path=item["path"], content=item["content"]) for item in raw_files],
            exported_at=data["exportedAt"],
            claude_root=optional("claudeRoot"),
            project_id=optional("projectId"),
            conversation_id=optional("conversationId"),
            checkpoint_message_id=optional("checkpointMessageId"),
        )
    )


def _load_bundle(data: Any, expected_type: str) -> Result[ArchiveBundle, RestoreError]:
    validated = validate_bundle(data)
    if validated.is_err():
        return validated
    bundle = validated.unwrap()

    if bundle.type != expected_type:
        return fail(
            TYPE_MISMATCH,
            f"Expected {expected_type} export type, got: {bundle.type}",
            expected=expected_type,
            actual=bundle.type,
        )

    unsafe = [f.path for f in bundle.files if has_traversal(f.path)]
    if unsafe:
        logger.warning(f"Rejected bundle with traversing paths: {unsafe}")
        return fail(
            PATH_TRAVERSAL,
            "Path traversal detected - '..' is not allowed in paths",
            paths=unsafe,
        )

    return ok(bundle)


def _write(dest: Path, file: ArchiveFile, errors: list[str]) -> bool:
    result = atomic_write_text(dest, file.content)
    if result.is_err():
        errors.append(f"Failed to write {file.path}: {result.err().message}")
        return False
    return True


def import_global(
    config: AppConfig, data: Any, strategy: str = "merge"
) -> Result[ImportResult, RestoreError]:
    """Write a global bundle back into the Claude data directory.

    merge keeps files that already exist; replace overwrites them.
    """
    if strategy not in STRATEGIES:
        return fail(INVALID_FORMAT, f"Unknown import strategy: {strategy}", strategy=strategy)

    loaded = _load_bundle(data, "global")
    if loaded.is_err():
        return loaded
    bundle = loaded.unwrap()

    imported = 0
    errors: list[str] = []
    for file in bundle.files:
        dest = resolve_restore_path(file.path, config.claude_root, "")
        if strategy == "merge" and dest.exists():
            logger.debug(f"Keeping existing {dest}")
            continue
        if _write(dest, file, errors):
            imported += 1

    logger.info(f"Global import ({strategy}): {imported} files, {len(errors)} errors")
    return ok(
        ImportResult(
            files_imported=imported,
            message=f"Imported {imported} files ({strategy} mode)",
            errors=errors,
        )
    )


def import_conversation(
    config: AppConfig, project_id: str, data: Any
) -> Result[ImportResult, RestoreError]:
    """Write a conversation bundle into a project.

    Backup blobs (file-history/...) go to the history store; everything
    else goes into the project directory.
    """
    if not is_safe_component(project_id):
        return fail(PATH_TRAVERSAL, "Invalid projectId", projectId=project_id)

    loaded = _load_bundle(data, "conversation")
    if loaded.is_err():
        return loaded
    bundle = loaded.unwrap()

    project_dir = config.projects_root / project_id
    project_dir.mkdir(parents=True, exist_ok=True)

    imported = 0
    errors: list[str] = []
    for file in bundle.files:
        if file.path.startswith(HISTORY_PREFIX):
            dest = resolve_restore_path(file.path[len(HISTORY_PREFIX):], config.history_root, "")
        else:
            dest = resolve_restore_path(file.path, project_dir, "")
        if _write(dest, file, errors):
            imported += 1

    logger.info(f"Imported conversation into {project_id}: {imported} files")
    return ok(
        ImportResult(
            files_imported=imported,
            message=f"Imported conversation with {imported} files",
            errors=errors,
        )
    )


def import_checkpoint(
    config: AppConfig, data: Any, target_dir: str | None
) -> Result[ImportResult, RestoreError]:
    """Write a checkpoint bundle's files under a target directory."""
    loaded = _load_bundle(data, "checkpoint")
    if loaded.is_err():
        return loaded
    bundle = loaded.unwrap()

    validated = validate_target(target_dir, config.private_roots)
    if validated.is_err():
        return validated
    target = validated.unwrap()

    imported = 0
    errors: list[str] = []
    for file in bundle.files:
        dest = resolve_restore_path(file.path, target, "")
        if is_under_private_root(str(dest), config.private_roots):
            errors.append(f"Skipped {file.path}: Cannot write to the Claude data directory")
            continue
        if _write(dest, file, errors):
            imported += 1

    logger.info(f"Checkpoint import: {imported} files to {target}")
    return ok(
        ImportResult(
            files_imported=imported,
            message=f"Restored {imported} files to {target}",
            errors=errors,
        )
    )
