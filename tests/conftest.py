"""Shared fixtures: a throwaway Claude data directory.

Layout:
    <tmp>/.claude/projects/test-project/conv-001.jsonl   two checkpoints
    <tmp>/.claude/projects/test-project/conv-002.jsonl   older, no checkpoints
    <tmp>/.claude/projects/test-project/agent-xyz.jsonl  sub-agent log
    <tmp>/.claude/file-history/conv-001/                 backup blobs
"""

import json
import os
from pathlib import Path

import pytest

from claude_restore.config import AppConfig

PROJECT_ID = "test-project"
CONVERSATION_ID = "conv-001"
PROJECT_CWD = "/home/user/project"

INDEX_V1 = "console.log('v1');\n"
INDEX_V2 = "console.log('Hello World');\n"
README_V1 = "# Test Project\n"


def write_log(path: Path, records: list, extra_lines: tuple[str, ...] = ()) -> Path:
    """Write records as JSONL, followed by any raw extra lines."""
    path.parent.mkdir(parents=True, exist_ok=True)
    lines = [json.dumps(r) if not isinstance(r, str) else r for r in records]
    lines.extend(extra_lines)
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def snapshot(message_id: str, files: dict, timestamp: str = "2026-01-15T10:00:00Z") -> dict:
    """A file-history-snapshot record."""
    return {
        "type": "file-history-snapshot",
        "messageId": message_id,
        "snapshot": {
            "messageId": message_id,
            "timestamp": timestamp,
            "trackedFileBackups": files,
        },
    }


def backup(name: str | None, version: int = 1) -> dict:
    return {"backupFileName": name, "version": version, "backupTime": "2026-01-15T10:00:00Z"}


@pytest.fixture
def conversation_records() -> list:
    """Records of conv-001, in log order."""
    return [
        {
            "type": "user",
            "cwd": PROJECT_CWD,
            "gitBranch": "main",
            "timestamp": "2026-01-15T09:59:00Z",
            "message": {"role": "user", "content": "Fix the greeting"},
        },
        snapshot(
            "msg-001",
            {
                f"{PROJECT_CWD}/src/index.ts": backup("index-hash@v1", 1),
                "notes.txt": backup(None, 1),
            },
            timestamp="2026-01-15T10:00:00Z",
        ),
        "this line is not json {",
        "",
        {"type": "assistant", "message": {"role": "assistant", "content": "Done"}},
        snapshot(
            "msg-002",
            {
                f"{PROJECT_CWD}/src/index.ts": backup("index-hash@v2", 2),
                "README.md": backup("readme-hash@v1", 1),
            },
            timestamp="2026-01-15T10:05:00Z",
        ),
    ]


@pytest.fixture
def claude_root(tmp_path: Path, conversation_records: list) -> Path:
    """Populated Claude data directory."""
    root = tmp_path / ".claude"
    project_dir = root / "projects" / PROJECT_ID

    write_log(project_dir / f"{CONVERSATION_ID}.jsonl", conversation_records)
    older = write_log(
        project_dir / "conv-002.jsonl",
        [{"type": "user", "cwd": PROJECT_CWD, "gitBranch": "feature/x"}],
    )
    os.utime(older, (1_700_000_000, 1_700_000_000))
    write_log(project_dir / "agent-xyz.jsonl", [{"type": "user"}])
    (project_dir / "notes.txt").write_text("not a log")

    history = root / "file-history" / CONVERSATION_ID
    history.mkdir(parents=True)
    (history / "index-hash@v1").write_text(INDEX_V1)
    (history / "index-hash@v2").write_text(INDEX_V2)
    (history / "readme-hash@v1").write_text(README_V1)

    return root


@pytest.fixture
def config(claude_root: Path) -> AppConfig:
    return AppConfig(claude_root=claude_root, port=0)


@pytest.fixture
def target_dir(tmp_path: Path) -> Path:
    """Empty restore destination outside the data directory."""
    return tmp_path / "restore-output"
