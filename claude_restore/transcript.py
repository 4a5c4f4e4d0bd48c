"""Event-log parsing and checkpoint extraction.

Conversation logs are JSONL files written by Claude Code. Most records are
chat turns; the ones this module cares about are "file-history-snapshot"
records, which list every tracked file and the backup blob holding its
content at that point in the conversation:

    {"type": "file-history-snapshot", "messageId": "msg-002",
     "snapshot": {"timestamp": "...", "trackedFileBackups": {
         "src/index.ts": {"backupFileName": "abc@v2", "version": 2,
                          "backupTime": "..."}}}}

The log is produced by an external, evolving process. Parsing is tolerant:
blank lines, malformed JSON and non-object values are skipped silently.

Checkpoints are derived on demand from the parsed records and never cached.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

logger = logging.getLogger(__name__)

SNAPSHOT_TYPE = "file-history-snapshot"


@dataclass(frozen=True)
class LogRecord:
    """One decoded line of a conversation log.

    Every field is optional; unknown fields are dropped.
    """

    type: str = ""
    cwd: str = ""
    message_id: str = ""
    git_branch: str = ""
    timestamp: str = ""
    snapshot: dict[str, Any] | None = None

    @classmethod
    def from_jsonl(cls, data: Any) -> "LogRecord | None":
        """Build a record from a decoded JSON value, or None for non-objects."""
        if not isinstance(data, dict):
            return None

        snapshot = data.get("snapshot")
        return cls(
            type=_text(data.get("type")),
            cwd=_text(data.get("cwd")),
            message_id=_text(data.get("messageId")),
            git_branch=_text(data.get("gitBranch")),
            timestamp=_text(data.get("timestamp")),
            snapshot=snapshot if isinstance(snapshot, dict) else None,
        )

    @property
    def tracked_file_backups(self) -> dict[str, Any] | None:
        """The snapshot's tracked file map, or None when absent."""
        if self.type != SNAPSHOT_TYPE or self.snapshot is None:
            return None
        backups = self.snapshot.get("trackedFileBackups")
        return backups if isinstance(backups, dict) else None


@dataclass(frozen=True)
class FileBackup:
    """State of one tracked file at a checkpoint.

    backup_file_name is None when the file was tracked but never backed up.
    """

    backup_file_name: str | None
    version: int = 0
    backup_time: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> "FileBackup":
        if not isinstance(data, dict):
            return cls(backup_file_name=None)

        name = data.get("backupFileName")
        version = data.get("version", 0)
        return cls(
            backup_file_name=name if isinstance(name, str) and name else None,
            version=version if isinstance(version, int) else 0,
            backup_time=_text(data.get("backupTime")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "backupFileName": self.backup_file_name,
            "version": self.version,
            "backupTime": self.backup_time,
        }


@dataclass(frozen=True)
class Checkpoint:
    """Snapshot of tracked file backups at one message of a conversation."""

    message_id: str
    timestamp: str
    files: dict[str, FileBackup] = field(default_factory=dict)

    @property
    def file_count(self) -> int:
        return len(self.files)

    @classmethod
    def from_record(cls, record: LogRecord) -> "Checkpoint":
        backups = record.tracked_file_backups or {}
        return cls(
            message_id=record.message_id,
            timestamp=_text((record.snapshot or {}).get("timestamp")) or record.timestamp,
            files={path: FileBackup.from_dict(info) for path, info in backups.items()},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "messageId": self.message_id,
            "timestamp": self.timestamp,
            "fileCount": self.file_count,
            "files": {path: backup.to_dict() for path, backup in self.files.items()},
        }


@dataclass(frozen=True)
class ConversationMetadata:
    """Summary of a conversation log."""

    git_branch: str | None
    files_modified: int


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def parse_jsonl(content: str) -> list[LogRecord]:
    """Parse log text into records, one per decodable non-blank line."""
    records = []
    for line in content.split("\n"):
        line = line.strip()
        if not line:
            continue

        try:
            data = json.loads(line)
        except json.JSONDecodeError:
            # Truncated or foreign lines are expected
            continue

        record = LogRecord.from_jsonl(data)
        if record is not None:
            records.append(record)

    return records


def read_log(path: Path) -> list[LogRecord]:
    """Read and parse a conversation log from disk."""
    content = path.read_text(encoding="utf-8", errors="replace")
    records = parse_jsonl(content)
    logger.debug(f"Parsed {len(records)} records from {path}")
    return records


def extract_cwd(records: Iterable[LogRecord]) -> str:
    """Working directory of the first record that has one, else ''."""
    for record in records:
        if record.cwd:
            return record.cwd
    return ""


def extract_checkpoints(records: Iterable[LogRecord]) -> list[Checkpoint]:
    """All checkpoints in log order.

    Any snapshot record with a trackedFileBackups mapping counts, including
    an empty one.
    """
    return [
        Checkpoint.from_record(record)
        for record in records
        if record.tracked_file_backups is not None
    ]


def find_checkpoint_by_message_id(
    records: Iterable[LogRecord], message_id: str
) -> Checkpoint | None:
    """First checkpoint whose messageId matches, or None."""
    for record in records:
        if record.message_id == message_id and record.tracked_file_backups is not None:
            return Checkpoint.from_record(record)
    return None


def extract_conversation_metadata(records: Iterable[LogRecord]) -> ConversationMetadata:
    """First git branch seen on a user record, and distinct tracked file count."""
    git_branch = None
    all_files: set[str] = set()

    for record in records:
        if record.type == "user" and record.git_branch and git_branch is None:
            git_branch = record.git_branch

        backups = record.tracked_file_backups
        if backups is not None:
            all_files.update(backups.keys())

    return ConversationMetadata(git_branch=git_branch, files_modified=len(all_files))
