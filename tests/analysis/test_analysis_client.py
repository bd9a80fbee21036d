import pytest
import requests

from buildkite_failure_analysis.analysis.client import AnalysisClient, extract_response_text

API_KEY = "sk-ant-REDACTED"


def _response(mocker, status: int = 200, payload=None, text: str = ""):
    response = mocker.Mock()
    response.status_code = status
    response.ok = 200 <= status < 300
    response.text = text
    if payload is None:
        response.json.side_effect = ValueError("Expecting value")
    else:
        response.json.return_value = payload
    return response


@pytest.fixture
def client(mocker):
    mocker.patch("buildkite_failure_analysis.analysis.client.requests.get")
    return AnalysisClient(api_key=API_KEY, model="claude-test", timeout=30, max_tokens=2048)


class TestExtractResponseText:
    """Tests for tolerant response parsing."""

    def test_content_blocks(self):
        payload = {
            "content": [
                {"type": "text", "text": "Root cause: missing fixture."},
                {"type": "tool_use", "id": "t1"},
                {"type": "text", "text": "Fix: add it."},
            ]
        }

        assert extract_response_text(payload) == "Root cause: missing fixture.\n\nFix: add it."

    def test_completion(self):
        assert extract_response_text({"completion": "legacy answer"}) == "legacy answer"

    def test_flat_content(self):
        assert extract_response_text({"content": "plain answer"}) == "plain answer"

    def test_role_echo(self):
        payload = {"role": "assistant", "message": {"content": [{"type": "text", "text": "nested answer"}]}}

        assert extract_response_text(payload) == "nested answer"

    def test_blocks_win_over_completion(self):
        """Test extractors are tried in a fixed order."""
        payload = {"content": [{"type": "text", "text": "from blocks"}], "completion": "from completion"}

        assert extract_response_text(payload) == "from blocks"

    def test_empty_blocks_fall_through(self):
        payload = {"content": [{"type": "text", "text": "   "}], "completion": "fallback"}

        assert extract_response_text(payload) == "fallback"

    def test_unrecognized(self):
        assert extract_response_text({"id": "msg_1", "type": "message"}) is None
        assert extract_response_text(["not", "a", "dict"]) is None


class TestAnalysisClient:
    """Tests for AnalysisClient requests and failure handling."""

    def test_headers(self, client):
        assert client.session.headers["x-api-key"] == API_KEY
        assert client.session.headers["anthropic-version"] == "2023-06-01"

    def test_success(self, mocker, client):
        payload = {
            "content": [{"type": "text", "text": "  The test timed out.  "}],
            "usage": {"input_tokens": 10, "output_tokens": 5},
        }
        client.session.post = mocker.Mock(return_value=_response(mocker, payload=payload))

        result = client.analyze("Analyze this")

        assert result.ok
        assert result.text == "The test timed out."
        client.session.post.assert_called_once_with(
            "https://api.anthropic.com/v1/messages",
            json={
                "model": "claude-test",
                "max_tokens": 2048,
                "messages": [{"role": "user", "content": "Analyze this"}],
            },
            timeout=30,
        )

    def test_non_2xx_is_failure(self, mocker, client):
        """Test an HTTP error returns a failure carrying the status."""
        error = {"type": "error", "error": {"type": "authentication_error", "message": "invalid x-api-key"}}
        client.session.post = mocker.Mock(return_value=_response(mocker, status=401, payload=error))

        result = client.analyze("prompt")

        assert not result.ok
        assert "HTTP 401" in result.error
        assert "invalid x-api-key" in result.error
        assert result.network_unavailable is False

    def test_timeout_is_failure(self, mocker, client):
        client.session.post = mocker.Mock(side_effect=requests.Timeout("slow"))

        result = client.analyze("prompt")

        assert not result.ok
        assert "timed out after 30s" in result.error

    def test_non_json_body(self, mocker, client):
        client.session.post = mocker.Mock(return_value=_response(mocker, text="<html>"))

        result = client.analyze("prompt")

        assert not result.ok
        assert "non-JSON" in result.error

    def test_unparseable_payload(self, mocker, client):
        """Test an unknown response shape reports the keys it saw."""
        client.session.post = mocker.Mock(return_value=_response(mocker, payload={"id": "x", "stop_reason": "end"}))

        result = client.analyze("prompt")

        assert not result.ok
        assert result.error == "Could not parse LLM response (top-level keys: id, stop_reason)"

    def test_connectivity_failure_short_circuits(self, mocker):
        """Test the real request is never sent when the host is unreachable."""
        mocker.patch(
            "buildkite_failure_analysis.analysis.client.requests.get",
            side_effect=requests.ConnectionError("no route to host"),
        )
        client = AnalysisClient(api_key=API_KEY, model="claude-test")
        client.session.post = mocker.Mock()

        result = client.analyze("prompt")

        assert not result.ok
        assert result.network_unavailable is True
        client.session.post.assert_not_called()

    def test_connectivity_check_can_be_skipped(self, mocker):
        get = mocker.patch("buildkite_failure_analysis.analysis.client.requests.get")
        client = AnalysisClient(api_key=API_KEY, model="claude-test")
        client.session.post = mocker.Mock(return_value=_response(mocker, payload={"completion": "ok"}))

        result = client.analyze("prompt", check_network=False)

        assert result.ok
        get.assert_not_called()

    def test_key_never_logged(self, mocker, caplog):
        caplog.set_level("DEBUG")
        mocker.patch(
            "buildkite_failure_analysis.analysis.client.requests.get",
            side_effect=requests.ConnectionError("unreachable"),
        )

        AnalysisClient(api_key=API_KEY, model="claude-test").analyze("prompt")

        assert API_KEY not in caplog.text
