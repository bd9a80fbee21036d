import logging
from collections.abc import Callable
from typing import Any

import requests

from ..constants import (
    ANTHROPIC_API_URL,
    ANTHROPIC_API_VERSION,
    CONNECTIVITY_TIMEOUT,
    DEFAULT_MAX_OUTPUT_TOKENS,
)
from ..errors import AnalysisFailure, NetworkUnavailable
from ..security.leak_detector import describe_secret
from .models import AnalysisResult

logger = logging.getLogger(__name__)

Extractor = Callable[[dict[str, Any]], str | None]


def _text_from_blocks(blocks: Any) -> str | None:
    if not isinstance(blocks, list):
        return None
    texts = [
        block["text"]
        for block in blocks
        if isinstance(block, dict) and isinstance(block.get("text"), str) and block["text"].strip()
    ]
    return "\n\n".join(texts) if texts else None


def extract_content_blocks(payload: dict[str, Any]) -> str | None:
    """Current Messages API shape: ``{"content": [{"type": "text", "text": ...}]}``."""
    return _text_from_blocks(payload.get("content"))


def extract_completion(payload: dict[str, Any]) -> str | None:
    """Legacy Text Completions shape: ``{"completion": ...}``."""
    completion = payload.get("completion")
    return completion if isinstance(completion, str) and completion.strip() else None


def extract_flat_content(payload: dict[str, Any]) -> str | None:
    """Alternate shape with the answer as a plain string: ``{"content": "..."}``."""
    content = payload.get("content")
    return content if isinstance(content, str) and content.strip() else None


def extract_role_echo(payload: dict[str, Any]) -> str | None:
    """Assistant message wrapped one level down, e.g. ``{"role": "assistant", "message": {...}}``."""
    if payload.get("role") != "assistant":
        return None

    for key in ("message", "delta", "output"):
        nested = payload.get(key)
        if isinstance(nested, dict):
            text = extract_content_blocks(nested) or extract_flat_content(nested)
            if text:
                return text
            if isinstance(nested.get("text"), str) and nested["text"].strip():
                text_value: str = nested["text"]
                return text_value

    text = payload.get("text")
    return text if isinstance(text, str) and text.strip() else None


RESPONSE_EXTRACTORS: tuple[Extractor, ...] = (
    extract_content_blocks,
    extract_completion,
    extract_flat_content,
    extract_role_echo,
)


def extract_response_text(payload: Any) -> str | None:
    """Try each known response shape in order; first non-empty text wins."""
    if not isinstance(payload, dict):
        return None
    for extractor in RESPONSE_EXTRACTORS:
        text = extractor(payload)
        if text:
            logger.debug(f"Parsed LLM response with {extractor.__name__}")
            return text
    return None


def _api_error_message(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return f"{error.get('type', 'error')}: {error['message']}"
    return str(payload)[:200]


class AnalysisClient:
    """Client for the Anthropic Messages API."""

    def __init__(
        self,
        api_key: str,
        model: str,
        timeout: int = 60,
        base_url: str = ANTHROPIC_API_URL,
        max_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS,
    ) -> None:
        """Initialize the client.

        Args:
            api_key: Anthropic API key
            model: Model id (``claude-*``)
            timeout: Request timeout in seconds
            base_url: API base URL
            max_tokens: Maximum output tokens requested
        """
        self.model = model
        self.timeout = timeout
        self.base_url = base_url.rstrip("/")
        self.max_tokens = max_tokens
        self.session = requests.Session()
        self.session.headers.update(
            {
                "Content-Type": "application/json",
                "x-api-key": api_key,
                "anthropic-version": ANTHROPIC_API_VERSION,
            }
        )
        logger.debug(f"Analysis client for {model} using key {describe_secret(api_key)}")

    def check_connectivity(self) -> None:
        """Probe the API host before sending the real request.

        Any HTTP answer counts as reachable; only transport errors fail.

        Raises:
            NetworkUnavailable: If the host cannot be reached
        """
        try:
            requests.get(self.base_url, timeout=CONNECTIVITY_TIMEOUT)
        except requests.RequestException as e:
            raise NetworkUnavailable(f"Network connectivity test failed - cannot reach {self.base_url}: {e}") from e

    def _create_payload(self, prompt: str) -> dict[str, Any]:
        return {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }

    def _post(self, prompt: str) -> dict[str, Any]:
        """Send the prompt and return the decoded response body.

        Raises:
            AnalysisFailure: On transport errors, non-2xx status or a non-JSON body
        """
        url = f"{self.base_url}/v1/messages"
        try:
            response = self.session.post(url, json=self._create_payload(prompt), timeout=self.timeout)
        except requests.Timeout as e:
            raise AnalysisFailure(f"LLM API request timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise AnalysisFailure(f"LLM API request failed: {e}") from e

        if not response.ok:
            raise AnalysisFailure(
                f"LLM API call failed with HTTP {response.status_code}: {_api_error_message(response)}"
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise AnalysisFailure(f"LLM API returned a non-JSON body (HTTP {response.status_code})") from e

        if not isinstance(payload, dict):
            raise AnalysisFailure(f"LLM API returned unexpected JSON type {type(payload).__name__}")
        return payload

    def analyze(self, prompt: str, check_network: bool = True) -> AnalysisResult:
        """Send the prompt and extract the answer text.

        Failures are returned as a failed result rather than raised.
        """
        logger.info(f"Analyzing with {self.model} (prompt: {len(prompt):,} chars, timeout: {self.timeout}s)")

        try:
            if check_network:
                self.check_connectivity()
            payload = self._post(prompt)
        except NetworkUnavailable as e:
            logger.error(str(e))
            return AnalysisResult.failure(str(e), network_unavailable=True)
        except AnalysisFailure as e:
            logger.error(f"Analysis failed: {e}")
            return AnalysisResult.failure(str(e))

        text = extract_response_text(payload)
        if text is None:
            keys = ", ".join(sorted(payload.keys())) or "none"
            message = f"Could not parse LLM response (top-level keys: {keys})"
            logger.error(message)
            return AnalysisResult.failure(message)

        usage = payload.get("usage")
        if isinstance(usage, dict):
            logger.info(
                f"LLM usage - input: {usage.get('input_tokens', '?')}, output: {usage.get('output_tokens', '?')}"
            )
        return AnalysisResult.success(text.strip())
