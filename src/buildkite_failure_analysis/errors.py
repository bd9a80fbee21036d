"""Exception types raised across the analysis pipeline."""


class ConfigurationError(Exception):
    """Invalid or missing configuration detected before any network call."""


class UnknownTriggerError(ConfigurationError):
    """Trigger policy is not one of the supported values."""

    def __init__(self, policy: str) -> None:
        super().__init__(f"Unknown trigger: {policy}")
        self.policy = policy


class AnalysisFailure(Exception):
    """The LLM request failed or its response could not be parsed."""


class NetworkUnavailable(AnalysisFailure):
    """Pre-flight connectivity check to the LLM endpoint failed."""
