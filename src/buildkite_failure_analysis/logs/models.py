from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from ..utils import tail_lines

if TYPE_CHECKING:
    from ..buildkite.client import BuildkiteClient
    from ..buildkite.models import RunContext


class LogSource(str, Enum):
    """Where the content of a log bundle came from."""

    API_JOB = "api-job"
    API_BUILD_MULTI_JOB = "api-build-multi-job"
    AGENT_ENVIRONMENT_SUMMARY = "agent-environment-summary"
    SYSTEM_LOG_FILE = "system-log-file"
    SYNTHETIC_FALLBACK = "synthetic-fallback"

    @property
    def is_real_log(self) -> bool:
        """Whether the bundle holds actual log output rather than a summary."""
        return self in (LogSource.API_JOB, LogSource.API_BUILD_MULTI_JOB, LogSource.SYSTEM_LOG_FILE)


class AnalysisScope(str, Enum):
    """Whether analysis covers the current step or every job of the build."""

    STEP = "step"
    BUILD = "build"


@dataclass
class LogBundle:
    """Bounded log content with its provenance."""

    lines: list[str]
    source: LogSource
    truncated: bool = False

    @classmethod
    def from_lines(cls, lines: list[str], source: LogSource, max_lines: int) -> "LogBundle":
        """Create a bundle keeping only the last ``max_lines`` lines."""
        kept, dropped = tail_lines(lines, max_lines)
        return cls(lines=kept, source=source, truncated=dropped)

    @property
    def text(self) -> str:
        return "\n".join(self.lines)

    @property
    def line_count(self) -> int:
        return len(self.lines)

    def is_empty(self) -> bool:
        return not any(line.strip() for line in self.lines)


@dataclass
class FetchContext:
    """Inputs shared by every log acquisition strategy."""

    run: "RunContext"
    scope: AnalysisScope
    max_lines: int
    client: "BuildkiteClient | None" = None
    notes: list[str] = field(default_factory=list)

    def note(self, message: str) -> None:
        """Record a diagnostic about a strategy that did not produce logs."""
        self.notes.append(message)
