"""REST API for browsing conversations and restoring checkpoints.

Uses Python's built-in http.server; requests are handled one at a time.

Endpoints:
    GET  /api/health                                        - Health check
    GET  /api/projects                                      - List projects
    GET  /api/projects/:id/conversations                    - List conversations
    GET  /api/conversations/:id/checkpoints?projectId=      - cwd + checkpoints
    GET  /api/blob?projectId=&conversationId=&checkpointMessageId=&filePath=
    POST /api/restore                                       - Restore a checkpoint
    GET  /api/export/global                                 - Export data root
    GET  /api/export/projects/:id                           - Export project
    GET  /api/export/projects/:id/conversations/:cid        - Export conversation
    GET  /api/export/checkpoint?projectId=&conversationId=&checkpointMessageId=
    POST /api/import/global                                 - {data, strategy?}
    POST /api/import/projects/:id/conversations             - {data}
    POST /api/import/checkpoint                             - {data, targetDir}
"""

from __future__ import annotations

import json
import logging
from http.server import BaseHTTPRequestHandler
from pathlib import Path
from typing import Any
from urllib.parse import parse_qs, quote, unquote, urlparse

from claude_restore import __version__
from claude_restore.config import AppConfig
from claude_restore.errors import (
    INTERNAL_ERROR,
    INVALID_FORMAT,
    MISSING_PARAMETER,
    Result,
    RestoreError,
    fail,
    ok,
)

logger = logging.getLogger(__name__)


def serialize(obj: Any) -> Any:
    """Convert result objects to JSON-compatible values."""
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if isinstance(obj, (list, tuple)):
        return [serialize(item) for item in obj]
    if isinstance(obj, dict):
        return {k: serialize(v) for k, v in obj.items()}
    if isinstance(obj, Path):
        return str(obj)
    return obj


class RestoreAPIHandler(BaseHTTPRequestHandler):
    """HTTP request handler for the restore REST API."""

    # Will be set by server
    config: AppConfig = AppConfig()

    def _send_json(self, data: Any, status: int = 200, headers: dict[str, str] | None = None) -> None:
        """Send JSON response."""
        body = json.dumps(serialize(data), indent=2).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        for name, value in (headers or {}).items():
            self.send_header(name, value)
        self.end_headers()
        self.wfile.write(body)

    def _send_error(self, status: int, message: str, code: str | None = None) -> None:
        """Send error response."""
        data = {"error": message}
        if code:
            data["code"] = code
        self._send_json(data, status)

    def _send_failure(self, error: RestoreError) -> None:
        self._send_error(error.status, error.message, error.code)

    def _send_result(self, result: Result[Any, RestoreError]) -> None:
        if result.is_err():
            self._send_failure(result.err())
        else:
            self._send_json(result.unwrap())

    def _get_query_params(self) -> dict[str, str]:
        """Parse query parameters."""
        parsed = urlparse(self.path)
        params = parse_qs(parsed.query)
        return {k: v[0] for k, v in params.items()}

    def _get_path_parts(self) -> list[str]:
        """Get decoded path parts after /api/."""
        path = urlparse(self.path).path.strip("/")
        if path.startswith("api/"):
            path = path[4:]
        return [unquote(part) for part in path.split("/")] if path else []

    def _require_params(self, params: dict[str, str], names: tuple[str, ...]) -> Result[None, RestoreError]:
        missing = [name for name in names if not params.get(name)]
        if missing:
            return fail(
                MISSING_PARAMETER,
                f"Missing required query parameters: {', '.join(names)}",
                missing=missing,
            )
        return ok(None)

    def _read_json_body(self) -> Result[dict[str, Any], RestoreError]:
        try:
            content_length = int(self.headers.get("Content-Length", 0))
            body = json.loads(self.rfile.read(content_length).decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError, ValueError) as e:
            return fail(INVALID_FORMAT, f"Invalid JSON: {e}")

        if not isinstance(body, dict):
            return fail(INVALID_FORMAT, "Request body must be a JSON object")
        return ok(body)

    def do_GET(self) -> None:  # noqa: N802 - required by BaseHTTPRequestHandler
        """Handle GET requests."""
        self._dispatch(self._route_get)

    def do_POST(self) -> None:  # noqa: N802 - required by BaseHTTPRequestHandler
        """Handle POST requests."""
        self._dispatch(self._route_post)

    def _dispatch(self, route) -> None:
        parts = self._get_path_parts()
        try:
            route(parts, self._get_query_params())
        except Exception as e:
            logger.exception(f"Error handling {self.command} {self.path}")
            self._send_error(500, str(e), INTERNAL_ERROR)

    def _route_get(self, parts: list[str], params: dict[str, str]) -> None:
        if not parts or parts == ["health"]:
            self._send_json({"status": "ok", "version": __version__})
            return

        # Route to handlers
        resource = parts[0]

        if parts == ["projects"]:
            self._handle_projects()
        elif resource == "projects" and len(parts) == 3 and parts[2] == "conversations":
            self._handle_conversations(parts[1])
        elif resource == "conversations" and len(parts) == 3 and parts[2] == "checkpoints":
            self._handle_checkpoints(parts[1], params)
        elif parts == ["blob"]:
            self._handle_blob(params)
        elif resource == "export":
            self._handle_export(parts[1:], params)
        else:
            self._send_error(404, f"Unknown resource: {'/'.join(parts)}")

    def _route_post(self, parts: list[str], params: dict[str, str]) -> None:
        if parts == ["restore"]:
            self._handle_restore()
        elif parts == ["import", "global"]:
            self._handle_import_global()
        elif len(parts) == 4 and parts[:2] == ["import", "projects"] and parts[3] == "conversations":
            self._handle_import_conversation(parts[2])
        elif parts == ["import", "checkpoint"]:
            self._handle_import_checkpoint()
        else:
            self._send_error(404, f"Cannot POST to: {'/'.join(parts)}")

    # =========================================================================
    # Browsing
    # =========================================================================

    def _handle_projects(self) -> None:
        """GET /api/projects"""
        from claude_restore.projects import list_projects

        self._send_json(list_projects(self.config))

    def _handle_conversations(self, project_id: str) -> None:
        """GET /api/projects/:id/conversations"""
        from claude_restore.projects import list_conversations

        self._send_result(list_conversations(self.config, project_id))

    def _handle_checkpoints(self, conversation_id: str, params: dict[str, str]) -> None:
        """GET /api/conversations/:id/checkpoints?projectId="""
        from claude_restore.projects import locate_conversation
        from claude_restore.transcript import extract_checkpoints, extract_cwd, read_log

        project_id = params.get("projectId")
        if not project_id:
            self._send_error(400, "Missing projectId query parameter", MISSING_PARAMETER)
            return

        located = locate_conversation(self.config, project_id, conversation_id)
        if located.is_err():
            self._send_failure(located.err())
            return

        records = read_log(located.unwrap())
        self._send_json({
            "cwd": extract_cwd(records),
            "checkpoints": extract_checkpoints(records),
        })

    def _handle_blob(self, params: dict[str, str]) -> None:
        """GET /api/blob - content of one backed-up file."""
        from claude_restore.restore import load_backup_blob

        names = ("projectId", "conversationId", "checkpointMessageId", "filePath")
        required = self._require_params(params, names)
        if required.is_err():
            self._send_failure(required.err())
            return

        result = load_backup_blob(self.config, *(params[name] for name in names))
        if result.is_err():
            self._send_failure(result.err())
            return

        blob = result.unwrap()
        self.send_response(200)
        self.send_header("Content-Type", blob.content_type)
        self.send_header("Content-Length", str(len(blob.content)))
        self.send_header("X-File-Path", quote(blob.file_path, safe="/\\: "))
        self.send_header("X-Backup-Version", str(blob.version))
        self.end_headers()
        self.wfile.write(blob.content)

    # =========================================================================
    # Restore
    # =========================================================================

    def _handle_restore(self) -> None:
        """POST /api/restore"""
        from claude_restore.restore import RestoreRequest, restore_checkpoint

        body = self._read_json_body()
        if body.is_err():
            self._send_failure(body.err())
            return

        request = RestoreRequest.from_dict(body.unwrap())
        if request.is_err():
            self._send_failure(request.err())
            return

        self._send_result(restore_checkpoint(self.config, request.unwrap()))

    # =========================================================================
    # Export / import
    # =========================================================================

    def _handle_export(self, scope: list[str], params: dict[str, str]) -> None:
        """GET /api/export/..."""
        from claude_restore import archive

        if scope == ["global"]:
            result = archive.export_global(self.config)
        elif len(scope) == 2 and scope[0] == "projects":
            result = archive.export_project(self.config, scope[1])
        elif len(scope) == 4 and scope[0] == "projects" and scope[2] == "conversations":
            result = archive.export_conversation(self.config, scope[1], scope[3])
        elif scope == ["checkpoint"]:
            names = ("projectId", "conversationId", "checkpointMessageId")
            result = self._require_params(params, names)
            if result.is_ok():
                result = archive.export_checkpoint(self.config, *(params[name] for name in names))
        else:
            self._send_error(404, f"Unknown export: {'/'.join(scope)}")
            return

        if result.is_err():
            self._send_failure(result.err())
            return

        bundle = result.unwrap()
        self._send_json(
            bundle,
            headers={"Content-Disposition": f'attachment; filename="{bundle.filename}"'},
        )

    def _handle_import_global(self) -> None:
        """POST /api/import/global"""
        from claude_restore.archive import import_global

        body = self._read_json_body()
        if body.is_err():
            self._send_failure(body.err())
            return

        data = body.unwrap()
        self._send_result(import_global(self.config, data.get("data"), data.get("strategy") or "merge"))

    def _handle_import_conversation(self, project_id: str) -> None:
        """POST /api/import/projects/:id/conversations"""
        from claude_restore.archive import import_conversation

        body = self._read_json_body()
        if body.is_err():
            self._send_failure(body.err())
            return

        self._send_result(import_conversation(self.config, project_id, body.unwrap().get("data")))

    def _handle_import_checkpoint(self) -> None:
        """POST /api/import/checkpoint"""
        from claude_restore.archive import import_checkpoint

        body = self._read_json_body()
        if body.is_err():
            self._send_failure(body.err())
            return

        data = body.unwrap()
        self._send_result(import_checkpoint(self.config, data.get("data"), data.get("targetDir")))

    def log_message(self, format: str, *args) -> None:
        """Suppress default logging, use our logger."""
        logger.debug(f"{self.address_string()} - {format % args}")
