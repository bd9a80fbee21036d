from dataclasses import dataclass
from enum import Enum


class Trend(str, Enum):
    """Current duration relative to the historical average."""

    MUCH_SLOWER = "much_slower"
    SLOWER = "slower"
    NORMAL = "normal"
    MUCH_FASTER = "much_faster"


class ComparisonLevel(str, Enum):
    STEP = "step"
    BUILD = "build"


@dataclass
class HistorySample:
    """Duration of one previous build or of the matching step in it."""

    build_number: int
    duration_seconds: int
    label: str
    level: ComparisonLevel = ComparisonLevel.BUILD
    state: str = ""


@dataclass
class CurrentDuration:
    """Duration of the current job or build.

    ``partial`` is set while it is still running and the value is measured up to now.
    """

    seconds: int
    partial: bool = False


_TREND_DESCRIPTIONS = {
    Trend.MUCH_SLOWER: "⚠️  Current {unit} is significantly slower than average",
    Trend.SLOWER: "📈 Current {unit} is slower than average",
    Trend.MUCH_FASTER: "⚡ Current {unit} is significantly faster than average",
    Trend.NORMAL: "✅ Current {unit} time is normal",
}


@dataclass
class DurationStats:
    """Summary statistics of historical durations compared to the current one."""

    average: int
    minimum: int
    maximum: int
    sample_count: int
    current: int
    current_vs_average_delta: int
    trend: Trend
    level: ComparisonLevel = ComparisonLevel.BUILD
    partial: bool = False

    @property
    def unit(self) -> str:
        return "step" if self.level is ComparisonLevel.STEP else "build"

    def describe_trend(self) -> str:
        return _TREND_DESCRIPTIONS[self.trend].format(unit=self.unit)

    def to_text(self, samples: list[HistorySample], current_label: str, step_key: str = "") -> str:
        """Render the comparison block embedded in the analysis prompt."""
        is_step = self.level is ComparisonLevel.STEP
        lines: list[str] = []

        if is_step:
            lines.append("Step Time Comparison Analysis:")
            lines.append(f"Current Step: {current_label} ({self.current}s)")
            if step_key:
                lines.append(f"Step Key: {step_key}")
        else:
            lines.append("Build Time Comparison Analysis:")
            lines.append(f"Current Build: {current_label} ({self.current}s)")
        lines.append("")

        lines.append("Recent Step History:" if is_step else "Recent Build History:")
        for sample in samples:
            state = f" ({sample.state})" if sample.state else ""
            lines.append(f"Build #{sample.build_number}: {sample.duration_seconds}s{state} - {sample.label[:60]}")
        lines.append("")

        lines.append("Step Time Statistics:" if is_step else "Build Time Statistics:")
        lines.append(f"- Average: {self.average}s (over {self.sample_count} {self.unit}s)")
        lines.append(f"- Fastest: {self.minimum}s")
        lines.append(f"- Slowest: {self.maximum}s")
        lines.append(f"- Current vs Average: {self.current_vs_average_delta}s difference")
        lines.append(f"- Trend: {self.describe_trend()}")

        if is_step:
            lines.extend(
                [
                    "",
                    "Step Performance Factors:",
                    "- Check for code changes affecting this specific step",
                    "- Look for dependency changes that might impact this step",
                    "- Examine resource contention or system load during step execution",
                ]
            )

        return "\n".join(lines)

    def partial_note(self, subject: str) -> str | None:
        """Note for a still-running ``subject`` ("step" or "build"); the history may be at the other level."""
        if not self.partial:
            return None
        return (
            f"Note: {subject.capitalize()} is still running - "
            f"comparing partial time to historical complete {self.unit}s"
        )
