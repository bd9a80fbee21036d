import logging
import os
from dataclasses import dataclass, field

from litellm import model_cost

from .buildkite.token import resolve_token
from .constants import (
    ANTHROPIC_API_URL,
    BUILDKITE_API_URL,
    DEFAULT_MAX_OUTPUT_TOKENS,
    DEFAULT_MODEL,
    PLUGIN_ENV_PREFIX,
)
from .logs.models import AnalysisScope
from .trigger import TRIGGER_POLICIES

logger = logging.getLogger(__name__)

ANALYSIS_LEVELS = tuple(scope.value for scope in AnalysisScope)


def _plugin_env(name: str, default: str = "") -> str:
    """Read a plugin option (``BUILDKITE_PLUGIN_<PLUGIN>_<NAME>``)."""
    return os.getenv(f"{PLUGIN_ENV_PREFIX}_{name}", default)


def _plugin_env_int(name: str, default: int) -> int | None:
    raw = _plugin_env(name, "")
    if not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return None


def _plugin_env_bool(name: str, default: bool) -> bool:
    raw = _plugin_env(name, "")
    if not raw.strip():
        return default
    return raw.strip().lower() in ("true", "1", "yes", "on")


@dataclass
class Config:
    """Configuration for the build analyzer, read from plugin environment variables."""

    api_key: str = field(default_factory=lambda: _plugin_env("API_KEY"))
    model: str = field(default_factory=lambda: _plugin_env("MODEL", DEFAULT_MODEL))
    api_base_url: str = field(default_factory=lambda: _plugin_env("API_BASE_URL", ANTHROPIC_API_URL))

    trigger: str = field(default_factory=lambda: _plugin_env("TRIGGER", "on-failure"))
    analysis_level: str = field(default_factory=lambda: _plugin_env("ANALYSIS_LEVEL", "step"))
    # None marks an unparseable value; reported by validate()
    max_log_lines: int | None = field(default_factory=lambda: _plugin_env_int("MAX_LOG_LINES", 1000))
    timeout: int | None = field(default_factory=lambda: _plugin_env_int("TIMEOUT", 60))

    annotate: bool = field(default_factory=lambda: _plugin_env_bool("ANNOTATE", True))
    custom_prompt: str = field(default_factory=lambda: _plugin_env("CUSTOM_PROMPT"))
    agent_file: str = field(default_factory=lambda: _plugin_env("AGENT_FILE", "false"))

    compare_builds: bool = field(default_factory=lambda: _plugin_env_bool("COMPARE_BUILDS", False))
    comparison_range: int | None = field(default_factory=lambda: _plugin_env_int("COMPARISON_RANGE", 5))

    buildkite_api_token: str = field(default_factory=lambda: _plugin_env("BUILDKITE_API_TOKEN"))
    buildkite_api_url: str = field(default_factory=lambda: os.getenv("BUILDKITE_API_URL", BUILDKITE_API_URL))

    @property
    def scope(self) -> AnalysisScope:
        return AnalysisScope(self.analysis_level)

    def resolve_api_key(self) -> str | None:
        """LLM API key from the plugin option, else ANTHROPIC_API_KEY."""
        return resolve_token(self.api_key, "ANTHROPIC_API_KEY")

    def resolve_buildkite_token(self) -> str | None:
        """Buildkite API token from the plugin option, else BUILDKITE_API_TOKEN."""
        return resolve_token(self.buildkite_api_token, "BUILDKITE_API_TOKEN")

    def validate(self) -> list[str]:
        """Validate configuration and return list of errors."""
        errors = []

        if not self.resolve_api_key():
            errors.append("api_key is required (set the api_key option or ANTHROPIC_API_KEY)")
        if not self.model.startswith("claude-"):
            errors.append("model must be a valid Claude model starting with 'claude-'")
        if self.trigger not in TRIGGER_POLICIES:
            errors.append(f"trigger must be one of: {', '.join(TRIGGER_POLICIES)}. Got: {self.trigger}")
        if self.analysis_level not in ANALYSIS_LEVELS:
            errors.append(f"analysis_level must be one of: {', '.join(ANALYSIS_LEVELS)}. Got: {self.analysis_level}")
        if self.max_log_lines is None or self.max_log_lines < 1:
            errors.append("max_log_lines must be a positive integer")
        if self.timeout is None or self.timeout < 1:
            errors.append("timeout must be a positive integer")
        if self.compare_builds and (self.comparison_range is None or self.comparison_range < 1):
            errors.append("comparison_range must be a positive integer")

        return errors

    def warnings(self) -> list[str]:
        """Non-fatal configuration problems that reduce functionality."""
        warnings = []
        has_token = self.resolve_buildkite_token() is not None

        if self.analysis_level == AnalysisScope.BUILD.value and not has_token:
            warnings.append(
                "build-level analysis works best with a Buildkite API token. "
                "Set buildkite_api_token or ensure BUILDKITE_API_TOKEN environment variable is available"
            )
        if self.compare_builds and not has_token:
            warnings.append(
                "build comparison requires a Buildkite API token. "
                "Set buildkite_api_token or ensure BUILDKITE_API_TOKEN environment variable is available"
            )
        return warnings

    def _lookup_model(self, key: str) -> int | None:
        """Find a limit for the configured model in LiteLLM's model database."""
        candidates = [f"anthropic/{self.model}", self.model]
        for candidate in candidates:
            if candidate in model_cost:
                value: int | None = model_cost[candidate].get(key)
                if value:
                    return value

        for model_key in model_cost.keys():
            if self.model in model_key:
                value = model_cost[model_key].get(key)
                if value:
                    return value
        return None

    def detect_model_context_limit(self) -> int:
        """Query model's context window from LiteLLM database."""
        try:
            limit = self._lookup_model("max_input_tokens")
        except Exception as e:
            logger.warning(f"Error querying context limit: {e}, using 200K default")
            return 200_000

        if limit:
            logger.debug(f"Detected context for {self.model}: {limit:,} tokens")
            return limit
        logger.warning(f"Model {self.model} not in database, using 200K default")
        return 200_000

    def detect_max_output_tokens(self) -> int:
        """Requested output tokens, capped by the model's own output limit when known."""
        try:
            limit = self._lookup_model("max_output_tokens")
        except Exception as e:
            logger.debug(f"Error querying output limit: {e}")
            return DEFAULT_MAX_OUTPUT_TOKENS

        if limit:
            return min(DEFAULT_MAX_OUTPUT_TOKENS, limit)
        return DEFAULT_MAX_OUTPUT_TOKENS
