"""Tests for claude_restore.archive module."""

from pathlib import Path

import pytest

from claude_restore.archive import (
    ArchiveBundle,
    ArchiveFile,
    ImportResult,
    collect_files,
    export_checkpoint,
    export_conversation,
    export_global,
    export_project,
    import_checkpoint,
    import_conversation,
    import_global,
    validate_bundle,
)
from claude_restore.config import AppConfig
from claude_restore.errors import (
    INVALID_FORMAT,
    NOT_FOUND,
    PATH_TRAVERSAL,
    REQUIRED_FIELD_MISSING,
    TYPE_MISMATCH,
    UNSAFE_TARGET,
)
from conftest import CONVERSATION_ID, INDEX_V2, PROJECT_CWD, PROJECT_ID, README_V1


def bundle(bundle_type: str, files: dict[str, str], **extra) -> dict:
    data = {
        "exportedAt": "2026-01-15T10:00:00+00:00",
        "type": bundle_type,
        "files": [{"path": path, "content": content} for path, content in files.items()],
    }
    data.update(extra)
    return data


def paths(archive: ArchiveBundle) -> list[str]:
    return [f.path for f in archive.files]


# =============================================================================
# Export
# =============================================================================


class TestCollectFiles:
    """Tests for collect_files()."""

    def test_recursive_with_prefix(self, tmp_path: Path):
        (tmp_path / "b").mkdir()
        (tmp_path / "b" / "c.txt").write_text("c")
        (tmp_path / "a.txt").write_text("a")

        files = collect_files(tmp_path, "root")

        assert files == [ArchiveFile("root/a.txt", "a"), ArchiveFile("root/b/c.txt", "c")]

    def test_skips_binary_files(self, tmp_path: Path):
        (tmp_path / "image.png").write_bytes(b"\x89PNG\xff\xfe")
        (tmp_path / "notes.md").write_text("# notes")

        assert [f.path for f in collect_files(tmp_path)] == ["notes.md"]

    def test_missing_directory(self, tmp_path: Path):
        assert collect_files(tmp_path / "nope") == []

    def test_does_not_follow_symlinks(self, tmp_path: Path):
        outside = tmp_path / "outside"
        outside.mkdir()
        (outside / "key.txt").write_text("secret")
        store = tmp_path / "store"
        store.mkdir()
        (store / "kept.txt").write_text("kept")
        (store / "dir-link").symlink_to(outside, target_is_directory=True)
        (store / "file-link.txt").symlink_to(outside / "key.txt")

        assert [f.path for f in collect_files(store)] == ["kept.txt"]


class TestExportGlobal:
    """Tests for export_global()."""

    def test_bundles_whole_root(self, config: AppConfig):
        archive = export_global(config).unwrap()

        assert archive.type == "global"
        assert archive.claude_root == str(config.claude_root)
        assert f"projects/{PROJECT_ID}/conv-001.jsonl" in paths(archive)
        assert f"file-history/{CONVERSATION_ID}/index-hash@v2" in paths(archive)

    def test_skips_looping_and_outward_links(self, config: AppConfig, tmp_path: Path):
        secret = tmp_path / "secret"
        secret.mkdir()
        (secret / "key.txt").write_text("private")
        (config.claude_root / "loop").symlink_to(config.claude_root, target_is_directory=True)
        (config.claude_root / "link-out").symlink_to(secret, target_is_directory=True)

        exported = paths(export_global(config).unwrap())

        assert not [p for p in exported if p.startswith(("loop/", "link-out/"))]
        assert f"projects/{PROJECT_ID}/conv-001.jsonl" in exported

    def test_to_dict_shape(self, config: AppConfig):
        data = export_global(config).unwrap().to_dict()

        assert set(data) == {"exportedAt", "type", "claudeRoot", "files"}
        assert all(set(f) == {"path", "content"} for f in data["files"])

    def test_filename(self, config: AppConfig):
        name = export_global(config).unwrap().filename

        assert name.startswith("claude-backup-")
        assert name.endswith(".json")

    def test_filename_replaces_header_characters(self):
        archive = ArchiveBundle(type="checkpoint", files=[], checkpoint_message_id='a"\r\nb c')

        assert archive.filename.startswith("claude-checkpoint-a___b_c-")

    def test_filename_replaces_separators(self):
        archive = ArchiveBundle(type="project", files=[], project_id="../../etc")

        assert archive.filename.startswith("claude-project-.._.._etc-")


class TestExportProject:
    """Tests for export_project()."""

    def test_logs_and_history(self, config: AppConfig):
        archive = export_project(config, PROJECT_ID).unwrap()

        assert archive.project_id == PROJECT_ID
        assert "conv-001.jsonl" in paths(archive)
        assert "notes.txt" in paths(archive)
        assert f"file-history/{CONVERSATION_ID}/readme-hash@v1" in paths(archive)
        assert archive.filename.startswith(f"claude-project-{PROJECT_ID}-")

    def test_missing_project(self, config: AppConfig):
        result = export_project(config, "nope")

        assert result.error.code == NOT_FOUND
        assert result.error.message == "Project not found"

    def test_rejects_traversal(self, config: AppConfig):
        assert export_project(config, "..").error.code == PATH_TRAVERSAL


class TestExportConversation:
    """Tests for export_conversation()."""

    def test_log_and_history(self, config: AppConfig):
        archive = export_conversation(config, PROJECT_ID, CONVERSATION_ID).unwrap()

        assert paths(archive) == [
            "conv-001.jsonl",
            f"file-history/{CONVERSATION_ID}/index-hash@v1",
            f"file-history/{CONVERSATION_ID}/index-hash@v2",
            f"file-history/{CONVERSATION_ID}/readme-hash@v1",
        ]
        assert archive.to_dict()["conversationId"] == CONVERSATION_ID
        assert archive.filename.startswith("claude-conversation-conv-001-")

    def test_missing_conversation(self, config: AppConfig):
        assert export_conversation(config, PROJECT_ID, "conv-999").error.code == NOT_FOUND


class TestExportCheckpoint:
    """Tests for export_checkpoint()."""

    def test_files_under_original_paths(self, config: AppConfig):
        archive = export_checkpoint(config, PROJECT_ID, CONVERSATION_ID, "msg-002").unwrap()

        contents = {f.path: f.content for f in archive.files}
        assert contents == {
            f"{PROJECT_CWD}/src/index.ts": INDEX_V2,
            "README.md": README_V1,
        }
        assert archive.checkpoint_message_id == "msg-002"
        assert archive.filename.startswith("claude-checkpoint-msg-002-")

    def test_skips_files_without_backup(self, config: AppConfig):
        archive = export_checkpoint(config, PROJECT_ID, CONVERSATION_ID, "msg-001").unwrap()

        assert paths(archive) == [f"{PROJECT_CWD}/src/index.ts"]

    def test_unknown_checkpoint(self, config: AppConfig):
        result = export_checkpoint(config, PROJECT_ID, CONVERSATION_ID, "nope")

        assert result.error.code == NOT_FOUND
        assert result.error.message == "Checkpoint not found"


# =============================================================================
# Import
# =============================================================================


class TestValidateBundle:
    """Tests for validate_bundle()."""

    def test_valid(self):
        result = validate_bundle(bundle("global", {"a.txt": "a"}, claudeRoot="/x"))

        archive = result.unwrap()
        assert archive.files == [ArchiveFile("a.txt", "a")]
        assert archive.claude_root == "/x"

    @pytest.mark.parametrize(
        "data",
        [
            None,
            [],
            {"type": "global", "files": []},
            {"exportedAt": "t", "type": "everything", "files": []},
            {"exportedAt": "t", "type": "global"},
            {"exportedAt": "t", "type": "global", "files": ["a.txt"]},
            {"exportedAt": "t", "type": "global", "files": [{"path": "a.txt"}]},
            {"exportedAt": "t", "type": "global", "files": [{"path": 1, "content": "x"}]},
        ],
    )
    def test_invalid(self, data):
        result = validate_bundle(data)

        assert result.error.code == INVALID_FORMAT
        assert result.error.message == "Invalid import data format"


class TestImportGlobal:
    """Tests for import_global()."""

    def test_writes_new_files(self, config: AppConfig):
        data = bundle("global", {"projects/new-project/conv-9.jsonl": "{}\n"})

        imported = import_global(config, data).unwrap()

        assert imported.files_imported == 1
        assert imported.message == "Imported 1 files (merge mode)"
        assert (config.projects_root / "new-project" / "conv-9.jsonl").read_text() == "{}\n"

    def test_merge_keeps_existing(self, config: AppConfig):
        """merge never overwrites; skipped files are not failures."""
        existing = config.projects_root / PROJECT_ID / "notes.txt"
        data = bundle("global", {f"projects/{PROJECT_ID}/notes.txt": "imported"})

        imported = import_global(config, data, "merge").unwrap()

        assert imported.files_imported == 0
        assert imported.success
        assert existing.read_text() == "not a log"

    def test_replace_overwrites(self, config: AppConfig):
        existing = config.projects_root / PROJECT_ID / "notes.txt"
        data = bundle("global", {f"projects/{PROJECT_ID}/notes.txt": "imported"})

        imported = import_global(config, data, "replace").unwrap()

        assert imported.files_imported == 1
        assert imported.message == "Imported 1 files (replace mode)"
        assert existing.read_text() == "imported"

    def test_round_trip(self, config: AppConfig, tmp_path: Path):
        """An exported root imports into an empty root unchanged."""
        exported = export_global(config).unwrap().to_dict()
        fresh = AppConfig(claude_root=tmp_path / "fresh")

        imported = import_global(fresh, exported).unwrap()

        assert imported.files_imported == len(exported["files"])
        assert (fresh.history_root / CONVERSATION_ID / "index-hash@v2").read_text() == INDEX_V2

    def test_type_mismatch(self, config: AppConfig):
        result = import_global(config, bundle("checkpoint", {}))

        assert result.error.code == TYPE_MISMATCH
        assert result.error.message == "Expected global export type, got: checkpoint"

    def test_invalid_format(self, config: AppConfig):
        assert import_global(config, {"files": "nope"}).error.code == INVALID_FORMAT

    def test_unknown_strategy(self, config: AppConfig):
        assert import_global(config, bundle("global", {}), "overwrite").error.code == INVALID_FORMAT

    def test_traversal_rejects_whole_bundle(self, config: AppConfig):
        """One bad path means nothing is written."""
        data = bundle("global", {"projects/ok.txt": "ok", "../escape.txt": "evil"})

        result = import_global(config, data)

        assert result.error.code == PATH_TRAVERSAL
        assert not (config.projects_root / "ok.txt").exists()
        assert not (config.claude_root.parent / "escape.txt").exists()


class TestImportConversation:
    """Tests for import_conversation()."""

    def test_routes_history_files(self, config: AppConfig):
        data = bundle("conversation", {
            "conv-new.jsonl": '{"type": "user"}\n',
            "file-history/conv-new/abc@v1": "restored",
        })

        imported = import_conversation(config, "imported-project", data).unwrap()

        assert imported.files_imported == 2
        assert imported.message == "Imported conversation with 2 files"
        assert (config.projects_root / "imported-project" / "conv-new.jsonl").exists()
        assert (config.history_root / "conv-new" / "abc@v1").read_text() == "restored"

    def test_round_trip_into_other_project(self, config: AppConfig):
        exported = export_conversation(config, PROJECT_ID, CONVERSATION_ID).unwrap().to_dict()

        import_conversation(config, "copy", exported).unwrap()

        original = config.projects_root / PROJECT_ID / "conv-001.jsonl"
        assert (config.projects_root / "copy" / "conv-001.jsonl").read_text() == original.read_text()

    def test_type_mismatch(self, config: AppConfig):
        result = import_conversation(config, PROJECT_ID, bundle("global", {}))

        assert result.error.code == TYPE_MISMATCH

    def test_rejects_bad_project_id(self, config: AppConfig):
        result = import_conversation(config, "../x", bundle("conversation", {}))

        assert result.error.code == PATH_TRAVERSAL

    def test_rejects_traversing_paths(self, config: AppConfig):
        data = bundle("conversation", {"file-history/../../../evil": "x"})

        assert import_conversation(config, PROJECT_ID, data).error.code == PATH_TRAVERSAL


class TestImportCheckpoint:
    """Tests for import_checkpoint()."""

    def test_rebases_files(self, config: AppConfig, target_dir: Path):
        data = bundle("checkpoint", {
            "/home/user/project/src/index.ts": INDEX_V2,
            "README.md": README_V1,
        })

        imported = import_checkpoint(config, data, str(target_dir)).unwrap()

        assert imported.files_imported == 2
        assert imported.message == f"Restored 2 files to {target_dir}"
        assert (target_dir / "home" / "user" / "project" / "src" / "index.ts").read_text() == INDEX_V2
        assert (target_dir / "README.md").read_text() == README_V1

    def test_requires_target(self, config: AppConfig):
        result = import_checkpoint(config, bundle("checkpoint", {}), None)

        assert result.error.code == REQUIRED_FIELD_MISSING

    def test_rejects_private_root_target(self, config: AppConfig):
        result = import_checkpoint(config, bundle("checkpoint", {"a": "b"}), str(config.claude_root))

        assert result.error.code == UNSAFE_TARGET

    def test_bundle_checked_before_target(self, config: AppConfig):
        result = import_checkpoint(config, bundle("global", {}), None)

        assert result.error.code == TYPE_MISMATCH

    def test_private_root_destination_reported(self, tmp_path: Path):
        """A file that would land in a private root is skipped with an error."""
        target = tmp_path / "out"
        config = AppConfig(claude_root=target / "nested" / ".claude")
        data = bundle("checkpoint", {"nested/.claude/settings.json": "{}", "ok.txt": "ok"})

        imported = import_checkpoint(config, data, str(target)).unwrap()

        assert imported.files_imported == 1
        assert not imported.success
        assert imported.errors == [
            "Skipped nested/.claude/settings.json: Cannot write to the Claude data directory"
        ]
        assert not (target / "nested" / ".claude" / "settings.json").exists()
        assert imported.to_dict()["success"] is False


class TestImportResult:
    """Tests for ImportResult."""

    def test_to_dict(self):
        assert ImportResult(files_imported=3, message="done").to_dict() == {
            "success": True,
            "filesImported": 3,
            "message": "done",
        }
