"""Configuration for claude-restore.

Layout consumed by the service
------------------------------
<claude_root>/                     # Assistant data root (default ~/.claude)
├── projects/<encoded-path>/       # One directory per project
│   └── <conversation-id>.jsonl    # One event log per conversation
└── file-history/<conversation-id>/
    └── <hash>@v<N>                # Backup blobs referenced by checkpoints

Settings cascade (highest priority first):
1. Command-line flags (--claude-root, --port, --host)
2. Environment (CLAUDE_RESTORE_ROOT, CLAUDE_RESTORE_PORT)
3. ~/.claude-restore/config.yaml
4. Built-in defaults

AppConfig is immutable. Build it once at startup and pass it to whatever
needs it.
"""

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

import yaml

DEFAULT_CLAUDE_ROOT = Path.home() / ".claude"
DEFAULT_PORT = 3000
DEFAULT_HOST = "127.0.0.1"

CONFIG_DIR = Path.home() / ".claude-restore"
CONFIG_PATH = CONFIG_DIR / "config.yaml"

ENV_ROOT = "CLAUDE_RESTORE_ROOT"
ENV_PORT = "CLAUDE_RESTORE_PORT"


class ConfigError(ValueError):
    """Raised when a configuration value cannot be used."""


@dataclass(frozen=True)
class AppConfig:
    """Runtime configuration: data root and listening address."""

    claude_root: Path = DEFAULT_CLAUDE_ROOT
    port: int = DEFAULT_PORT
    host: str = DEFAULT_HOST

    @property
    def projects_root(self) -> Path:
        return self.claude_root / "projects"

    @property
    def history_root(self) -> Path:
        return self.claude_root / "file-history"

    @property
    def private_roots(self) -> tuple[Path, ...]:
        """Directories that restore and checkpoint import must never write into.

        The configured root is always protected; the real ~/.claude is
        protected too when the service points somewhere else.
        """
        roots = [self.claude_root]
        if self.claude_root != DEFAULT_CLAUDE_ROOT:
            roots.append(DEFAULT_CLAUDE_ROOT)
        return tuple(roots)

    @classmethod
    def load(
        cls,
        claude_root: str | Path | None = None,
        port: int | str | None = None,
        host: str | None = None,
        config_path: Path | None = None,
    ) -> "AppConfig":
        """Build the configuration from file, environment and explicit overrides."""
        config = cls._from_file(config_path or CONFIG_PATH)

        if env_root := os.environ.get(ENV_ROOT):
            config = replace(config, claude_root=Path(env_root).expanduser())
        if env_port := os.environ.get(ENV_PORT):
            config = replace(config, port=_parse_port(env_port))

        if claude_root:
            config = replace(config, claude_root=Path(claude_root).expanduser())
        if port is not None:
            config = replace(config, port=_parse_port(port))
        if host:
            config = replace(config, host=host)

        return config

    @classmethod
    def _from_file(cls, path: Path) -> "AppConfig":
        if not path.exists():
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ConfigError(f"{path} must contain a mapping")

        return cls._from_dict(data)

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> "AppConfig":
        # Only known keys are honoured
        root = data.get("claude_root")
        return cls(
            claude_root=Path(root).expanduser() if root else DEFAULT_CLAUDE_ROOT,
            port=_parse_port(data.get("port", DEFAULT_PORT)),
            host=data.get("host") or DEFAULT_HOST,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "claude_root": str(self.claude_root),
            "projects_root": str(self.projects_root),
            "history_root": str(self.history_root),
            "host": self.host,
            "port": self.port,
        }


def _parse_port(value: int | str) -> int:
    try:
        port = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid port: {value!r}") from None
    if not 0 <= port <= 65535:
        raise ConfigError(f"Port out of range: {port}")
    return port
