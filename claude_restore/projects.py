"""Projects and conversations on disk.

Claude Code stores each project's logs in a directory named after the
project's real path:

- '/' becomes '-'
- '/_' (separator before an underscore-prefixed folder) becomes '--'

e.g. "/mnt/c/Users/me/work/_tools/AI" <-> "-mnt-c-Users-me-work--tools-AI"

The encoding is lossy (other characters such as '_' inside a folder name
are also written as '-' by Claude Code), so decoding is best effort and
only used for display. It must stay compatible with Claude Code's encoder.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from claude_restore.config import AppConfig
from claude_restore.errors import NOT_FOUND, PATH_TRAVERSAL, Result, RestoreError, fail, ok
from claude_restore.paths import is_safe_component
from claude_restore.transcript import extract_conversation_metadata, read_log

logger = logging.getLogger(__name__)

LOG_SUFFIX = ".jsonl"
AGENT_PREFIX = "agent-"


def decode_project_name(encoded: str) -> str:
    """Project directory name -> readable path (best effort)."""
    if not encoded.startswith("-"):
        return encoded
    return encoded.replace("--", "/_").replace("-", "/")


def encode_project_name(path: str) -> str:
    """Filesystem path -> project directory name."""
    return path.replace("/_", "--").replace("/", "-")


def get_project_display_name(decoded: str) -> str:
    """Last component of a decoded project path."""
    parts = [part for part in decoded.split("/") if part]
    return parts[-1] if parts else decoded


@dataclass(frozen=True)
class Project:
    """A directory of conversation logs."""

    id: str
    name: str
    path: Path

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "displayName": get_project_display_name(self.name),
            "path": str(self.path),
        }


@dataclass(frozen=True)
class Conversation:
    """One conversation log file."""

    id: str
    filename: str
    mtime: datetime
    git_branch: str | None = None
    files_modified: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "filename": self.filename,
            "mtime": self.mtime.isoformat(),
            "gitBranch": self.git_branch,
            "filesModified": self.files_modified,
        }


def list_projects(config: AppConfig) -> list[Project]:
    """All project directories, sorted by id."""
    root = config.projects_root
    if not root.is_dir():
        return []

    return [
        Project(id=entry.name, name=decode_project_name(entry.name), path=entry)
        for entry in sorted(root.iterdir())
        if entry.is_dir()
    ]


def list_conversations(config: AppConfig, project_id: str) -> Result[list[Conversation], RestoreError]:
    """Conversations of a project, newest first.

    Sub-agent logs (agent-*.jsonl) carry no snapshots and are skipped.
    """
    if not is_safe_component(project_id):
        return fail(PATH_TRAVERSAL, "Invalid project id", projectId=project_id)

    project_dir = config.projects_root / project_id
    if not project_dir.is_dir():
        return ok([])

    conversations = []
    for log_path in project_dir.iterdir():
        name = log_path.name
        if name.startswith(AGENT_PREFIX) or not name.endswith(LOG_SUFFIX) or not log_path.is_file():
            continue

        git_branch = None
        files_modified = None
        try:
            metadata = extract_conversation_metadata(read_log(log_path))
            git_branch = metadata.git_branch
            files_modified = metadata.files_modified
        except OSError as e:
            logger.warning(f"Could not read {log_path}: {e}")

        conversations.append(
            Conversation(
                id=name[: -len(LOG_SUFFIX)],
                filename=name,
                mtime=datetime.fromtimestamp(log_path.stat().st_mtime, UTC),
                git_branch=git_branch,
                files_modified=files_modified,
            )
        )

    conversations.sort(key=lambda c: c.mtime, reverse=True)
    return ok(conversations)


def locate_conversation(
    config: AppConfig, project_id: str, conversation_id: str
) -> Result[Path, RestoreError]:
    """Path of an existing conversation log."""
    for name, value in (("projectId", project_id), ("conversationId", conversation_id)):
        if not is_safe_component(value):
            return fail(PATH_TRAVERSAL, f"Invalid {name}", **{name: value})

    log_path = config.projects_root / project_id / f"{conversation_id}{LOG_SUFFIX}"
    if not log_path.is_file():
        return fail(NOT_FOUND, "Conversation not found", conversationId=conversation_id)
    return ok(log_path)


def history_dir(config: AppConfig, conversation_id: str) -> Path:
    """Backup blob directory of a conversation."""
    return config.history_root / conversation_id
