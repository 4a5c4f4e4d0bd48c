"""Local web server for the restore UI.

One listener answers both /api/* (see api.py) and the bundled single-page
interface under static/. Requests are handled one at a time.

Usage:
    from claude_restore.config import AppConfig
    from claude_restore.ui.server import run_server
    run_server(AppConfig.load(port=3000))
"""

from __future__ import annotations

import logging
import mimetypes
import signal
import threading
import webbrowser
from http.server import HTTPServer
from pathlib import Path
from urllib.parse import unquote, urlparse

from claude_restore.config import AppConfig
from claude_restore.ui.api import RestoreAPIHandler

logger = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).parent / "static"
INDEX_PAGE = "index.html"

SHUTDOWN_SIGNALS = ("SIGINT", "SIGTERM", "SIGHUP")
BROWSER_DELAY = 0.5


class RestoreUIHandler(RestoreAPIHandler):
    """API handler that also serves the bundled UI assets."""

    static_dir: Path = STATIC_DIR

    def do_GET(self) -> None:  # noqa: N802 - required by BaseHTTPRequestHandler
        request_path = urlparse(self.path).path
        if request_path == "/api" or request_path.startswith("/api/"):
            super().do_GET()
        else:
            self._serve_asset(unquote(request_path).strip("/") or INDEX_PAGE)

    def _locate_asset(self, name: str) -> Path | None:
        """Asset path inside static_dir, or None if name escapes it."""
        root = self.static_dir.resolve()
        candidate = (root / name).resolve()
        return candidate if candidate.is_relative_to(root) else None

    def _serve_asset(self, name: str) -> None:
        asset = self._locate_asset(name)
        if asset is None:
            logger.warning(f"Refused static path outside UI directory: {name}")
            self._send_error(403, "Forbidden")
            return

        if not asset.is_file():
            self._send_error(404, "Not Found")
            return

        try:
            body = asset.read_bytes()
        except OSError as e:
            logger.error(f"Cannot read UI asset {asset}: {e}")
            self._send_error(500, f"Failed to load {name}")
            return

        content_type = mimetypes.guess_type(asset.name)[0] or "application/octet-stream"
        if content_type.startswith("text/"):
            content_type += "; charset=utf-8"

        self.send_response(200)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)


def create_handler(config: AppConfig, static_dir: Path | None = None):
    """Create a handler class with config and static dir bound."""

    class BoundHandler(RestoreUIHandler):
        pass

    BoundHandler.config = config
    BoundHandler.static_dir = static_dir or STATIC_DIR
    return BoundHandler


def create_server(config: AppConfig, static_dir: Path | None = None) -> HTTPServer:
    """Bind an HTTP server to the configured host and port."""
    return HTTPServer((config.host, config.port), create_handler(config, static_dir))


def _raise_interrupt(signum, frame) -> None:
    raise KeyboardInterrupt(signal.Signals(signum).name)


def _install_signal_handlers() -> None:
    for name in SHUTDOWN_SIGNALS:
        # SIGHUP does not exist on Windows
        if hasattr(signal, name):
            signal.signal(getattr(signal, name), _raise_interrupt)


def run_server(config: AppConfig, open_browser: bool = True) -> None:
    """Serve until Ctrl+C or a termination signal.

    Args:
        config: Runtime configuration (data root, host, port)
        open_browser: Open the UI in a browser once listening
    """
    httpd = create_server(config)
    url = f"http://localhost:{httpd.server_address[1]}"
    _install_signal_handlers()

    logger.info(f"Claude Restore UI listening on {url}")
    logger.info(f"Using Claude root: {config.claude_root}")

    if open_browser:
        opener = threading.Timer(BROWSER_DELAY, webbrowser.open, args=(url,))
        opener.daemon = True
        opener.start()

    try:
        httpd.serve_forever()
    except KeyboardInterrupt as e:
        logger.info(f"Received {str(e) or 'SIGINT'}, shutting down gracefully...")
    finally:
        httpd.server_close()


def run_server_background(config: AppConfig) -> HTTPServer:
    """Start serving on a daemon thread and return the bound server.

    Used by the test suite. Stop it with shutdown() then server_close().
    """
    httpd = create_server(config)
    threading.Thread(target=httpd.serve_forever, name="claude-restore-http", daemon=True).start()

    logger.info(f"Server running in background at http://localhost:{httpd.server_address[1]}")
    return httpd
