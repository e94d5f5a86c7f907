"""Output formatting utilities for the gitsync CLI."""

from __future__ import annotations

import json
from enum import Enum
from typing import Any

__all__ = [
    "OutputFormat",
    "format_error",
    "format_json",
    "format_success",
    "format_warning",
]


class OutputFormat(str, Enum):
    """Supported output formats for CLI commands."""

    TEXT = "text"
    JSON = "json"


def format_error(
    message: str, details: list[str] | None = None, suggestion: str | None = None
) -> str:
    """Format an error message with optional details and suggestion.

    Example:
        >>> print(format_error("Push failed", details=["kind: conflict"]))
        Error: Push failed
          kind: conflict
    """
    lines = [f"Error: {message}"]

    if details:
        for detail in details:
            lines.append(f"  {detail}")

    if suggestion:
        lines.append(f"Suggestion: {suggestion}")

    return "\n".join(lines)


def format_success(message: str) -> str:
    """Format a success message.

    Example:
        >>> format_success("Pushed main")
        'Success: Pushed main'
    """
    return f"Success: {message}"


def format_warning(message: str) -> str:
    return f"Warning: {message}"


def format_json(data: Any) -> str:
    """Format data as indented JSON.

    Raises:
        TypeError: If data is not JSON-serializable.
    """
    return json.dumps(data, indent=2)
