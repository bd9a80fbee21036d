from dataclasses import dataclass


@dataclass
class AnalysisResult:
    """Outcome of an LLM analysis request: the answer text or a failure."""

    text: str | None = None
    error: str | None = None
    network_unavailable: bool = False

    @classmethod
    def success(cls, text: str) -> "AnalysisResult":
        return cls(text=text)

    @classmethod
    def failure(cls, error: str, network_unavailable: bool = False) -> "AnalysisResult":
        return cls(error=error, network_unavailable=network_unavailable)

    @property
    def ok(self) -> bool:
        return self.text is not None and self.error is None
