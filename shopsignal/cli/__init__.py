# ==============================================================================
# CLI Commands Module
# ==============================================================================
"""
CLI commands for shopsignal.

Commands are organized into separate modules:
- shared.py: Colors, icons and file helpers
- config.py: Configuration display
- replay.py: Scripted session replay
- db.py: Sink schema management
- status.py: Backend health
"""

from shopsignal.cli.shared import C, Colors, I, Icons, fail, load_json_file, ok

__all__ = ["C", "Colors", "I", "Icons", "fail", "load_json_file", "ok"]
