"""Utility functions shared by the log, history and analysis modules."""

import json
import logging
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)


def tail_lines(lines: list[str], max_lines: int) -> tuple[list[str], bool]:
    """Keep only the last ``max_lines`` lines.

    Failures are usually reported at the end of a log stream, so the head is
    what gets dropped.

    Args:
        lines: Lines in stream order
        max_lines: Maximum number of lines to keep (values < 1 keep nothing)

    Returns:
        Tuple of (kept lines, whether anything was dropped)
    """
    if max_lines < 1:
        return [], bool(lines)
    if len(lines) <= max_lines:
        return list(lines), False
    return lines[-max_lines:], True


def split_log_lines(text: str) -> list[str]:
    """Split raw log text into lines, dropping a single trailing newline."""
    if not text:
        return []
    return text.splitlines()


def extract_log_content(body: str) -> str:
    """Return the raw log text from a job log response body.

    The log endpoint answers either with plain text or with a JSON envelope
    whose ``content`` field holds the log.
    """
    stripped = body.lstrip()
    if not stripped.startswith("{"):
        return body

    try:
        payload: Any = json.loads(stripped)
    except json.JSONDecodeError:
        logger.debug("Log body looks like JSON but does not parse, using raw body")
        return body

    if isinstance(payload, dict) and isinstance(payload.get("content"), str):
        content: str = payload["content"]
        return content
    return body


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse a Buildkite ISO-8601 timestamp (``2024-01-01T10:00:00.000Z``)."""
    if not value:
        return None

    normalized = value.strip()
    if normalized.endswith("Z"):
        normalized = normalized[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(normalized)
    except ValueError:
        logger.debug(f"Unparseable timestamp: {value!r}")
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def seconds_between(start: datetime, end: datetime) -> int:
    """Whole seconds elapsed from ``start`` to ``end``."""
    return int((end - start).total_seconds())
