"""Claude Restore UI module.

Provides a local web interface and REST API over the Claude data directory.

Usage:
    claude-restore serve                       # Start web UI on localhost:3000
    claude-restore serve --port 8080           # Custom port
    claude-restore serve --claude-root ~/alt   # Different data root
"""
