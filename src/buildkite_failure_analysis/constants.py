# Rough chars-per-token ratio used when sizing prompt content
CHARS_PER_TOKEN = 4

PLUGIN_ENV_PREFIX = "BUILDKITE_PLUGIN_CLAUDE_ANALYSIS"

BUILDKITE_API_URL = "https://api.buildkite.com"
ANTHROPIC_API_URL = "https://api.anthropic.com"
ANTHROPIC_API_VERSION = "2023-06-01"

DEFAULT_MODEL = "claude-sonnet-4-20250514"
DEFAULT_MAX_OUTPUT_TOKENS = 4000
CONNECTIVITY_TIMEOUT = 10

# Per-job budget in build scope: max(max_lines // divisor, floor)
PER_JOB_LINE_DIVISOR = 10
PER_JOB_LINE_FLOOR = 100

# Duration trend threshold (seconds) around the historical average
TREND_THRESHOLD_SECONDS = 60

# Extra builds requested so that unfinished builds or builds without the step can be skipped
HISTORY_MARGIN = 10
STEP_HISTORY_MARGIN = 15
HISTORY_LOOKBACK_DAYS = 30

FINISHED_BUILD_STATES = frozenset({"passed", "failed", "canceled", "finished"})

MANUAL_TRIGGER_MARKER = "[claude-analyze]"
MANUAL_TRIGGER_ENV = "CLAUDE_ANALYZE"

LOG_UNAVAILABLE_PLACEHOLDER = "[Logs unavailable for this job]"

LOCAL_LOG_PATHS = (
    "/tmp/buildkite-agent.log",
    "{checkout}/buildkite.log",
    "/var/log/buildkite-agent/buildkite-agent.log",
    "{home}/.buildkite-agent/buildkite-agent.log",
    "/opt/homebrew/var/log/buildkite-agent.log",
)

ANNOTATION_CONTEXT_PREFIX = "claude-analysis"
ANNOTATION_STYLES = ("info", "warning", "error", "success")
