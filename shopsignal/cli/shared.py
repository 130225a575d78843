# ==============================================================================
# Shared Utilities for CLI Commands
# ==============================================================================
"""
ANSI colors, status icons and small helpers shared by the CLI command modules.
"""

import json
from pathlib import Path
from typing import Any

import typer


class Colors:
    """ANSI color codes for terminal output."""

    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    CYAN = "\033[36m"
    WHITE = "\033[37m"

    BRIGHT_RED = "\033[91m"
    BRIGHT_GREEN = "\033[92m"
    BRIGHT_YELLOW = "\033[93m"


class Icons:
    """Status icons using Unicode symbols."""

    CHECK = "✓"
    CROSS = "✗"
    WARN = "!"
    BULLET = "•"
    ARROW = "→"


# Module-level aliases for convenience
C, I = Colors, Icons


def ok(message: str) -> None:
    print(f"{C.BRIGHT_GREEN}{I.CHECK} {message}{C.RESET}")


def fail(message: str) -> None:
    print(f"{C.BRIGHT_RED}{I.CROSS} {message}{C.RESET}")


def load_json_file(path: Path) -> Any:
    """Read a JSON document, or JSON lines when the file has one object per line."""
    if not path.exists():
        fail(f"File not found: {path}")
        raise typer.Exit(1)
    text = path.read_text(encoding="utf-8")
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass
    try:
        return [json.loads(line) for line in text.splitlines() if line.strip()]
    except json.JSONDecodeError as e:
        fail(f"Invalid JSON in {path}: {e}")
        raise typer.Exit(1) from e
