"""Claude Restore: browse Claude Code conversations and restore file checkpoints."""

__version__ = "1.0.0"
