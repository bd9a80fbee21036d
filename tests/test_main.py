"""Unit tests for main module."""

import os

import pytest
from click.testing import CliRunner

from buildkite_failure_analysis.analysis.analyzer import BuildAnalyzer
from buildkite_failure_analysis.analysis.client import AnalysisClient
from buildkite_failure_analysis.analysis.models import AnalysisResult
from buildkite_failure_analysis.buildkite.client import BuildkiteClient
from buildkite_failure_analysis.main import cli


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, mocker):
    """Start every command from an environment with no Buildkite or credential variables."""
    for name in list(os.environ):
        if name.startswith("BUILDKITE_") or name in ("ANTHROPIC_API_KEY", "CLAUDE_ANALYZE"):
            monkeypatch.delenv(name, raising=False)
    mocker.patch("buildkite_failure_analysis.config.model_cost", {})
    mocker.patch("buildkite_failure_analysis.logs.strategies.shutil.which", return_value=None)
    mocker.patch("buildkite_failure_analysis.logs.strategies.candidate_log_paths", return_value=[])


@pytest.fixture
def job_env(monkeypatch):
    values = {
        "ANTHROPIC_API_KEY": "sk-ant-test-key-value",
        "BUILDKITE_ORGANIZATION_SLUG": "acme",
        "BUILDKITE_PIPELINE_SLUG": "web",
        "BUILDKITE_BUILD_NUMBER": "42",
        "BUILDKITE_BUILD_ID": "build-uuid",
        "BUILDKITE_JOB_ID": "job-1",
        "BUILDKITE_LABEL": "Unit tests",
        "BUILDKITE_COMMAND_EXIT_STATUS": "1",
    }
    for name, value in values.items():
        monkeypatch.setenv(name, value)
    return values


class TestAnalyzeCommand:
    """Tests for the analyze command."""

    def test_missing_api_key_exits_with_error(self):
        result = CliRunner().invoke(cli, ["analyze"])

        assert result.exit_code == 1

    def test_trigger_not_met_skips(self, mocker, job_env, monkeypatch):
        monkeypatch.setenv("BUILDKITE_COMMAND_EXIT_STATUS", "0")
        analyze = mocker.patch.object(AnalysisClient, "analyze")

        result = CliRunner().invoke(cli, ["analyze"])

        assert result.exit_code == 0
        analyze.assert_not_called()

    def test_success_prints_and_annotates(self, mocker, job_env):
        mocker.patch.object(AnalysisClient, "analyze", return_value=AnalysisResult.success("Flaky network test."))
        post = mocker.patch("buildkite_failure_analysis.main.post_annotation", return_value=True)

        result = CliRunner().invoke(cli, ["analyze"])

        assert result.exit_code == 0
        assert "Flaky network test." in result.output
        body, style, context = post.call_args[0]
        assert "Flaky network test." in body
        assert style == "error"
        assert context == "claude-analysis-build-uuid"

    def test_no_annotate(self, mocker, job_env):
        mocker.patch.object(AnalysisClient, "analyze", return_value=AnalysisResult.success("ok"))
        post = mocker.patch("buildkite_failure_analysis.main.post_annotation")

        result = CliRunner().invoke(cli, ["analyze", "--no-annotate"])

        assert result.exit_code == 0
        post.assert_not_called()

    def test_analysis_failure_never_fails_the_step(self, mocker, job_env):
        """Test an LLM failure still exits 0 and posts a warning annotation."""
        mocker.patch.object(
            AnalysisClient, "analyze", return_value=AnalysisResult.failure("LLM API call failed with HTTP 500: boom")
        )
        post = mocker.patch("buildkite_failure_analysis.main.post_annotation", return_value=False)

        result = CliRunner().invoke(cli, ["analyze"])

        assert result.exit_code == 0
        assert "Analysis failed" in result.output
        assert post.call_args[0][1] == "warning"

    def test_unexpected_error_never_fails_the_step(self, mocker, job_env):
        mocker.patch.object(BuildAnalyzer, "forward", side_effect=RuntimeError("unexpected"))
        post = mocker.patch("buildkite_failure_analysis.main.post_annotation", return_value=True)

        result = CliRunner().invoke(cli, ["analyze"])

        assert result.exit_code == 0
        assert "unexpected" in result.output
        assert post.call_args[0][1] == "warning"

    def test_api_key_not_printed(self, mocker, job_env):
        mocker.patch.object(
            AnalysisClient, "analyze", return_value=AnalysisResult.success(f"key was {job_env['ANTHROPIC_API_KEY']}")
        )
        mocker.patch("buildkite_failure_analysis.main.post_annotation", return_value=True)

        result = CliRunner().invoke(cli, ["analyze"])

        assert job_env["ANTHROPIC_API_KEY"] not in result.output


class TestValidateCommand:
    def test_invalid(self):
        assert CliRunner().invoke(cli, ["validate"]).exit_code == 1

    def test_valid(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-test")

        assert CliRunner().invoke(cli, ["validate"]).exit_code == 0


class TestShouldRunCommand:
    """Tests for the should-run command."""

    def test_failed_command(self, monkeypatch):
        monkeypatch.setenv("BUILDKITE_COMMAND_EXIT_STATUS", "2")

        result = CliRunner().invoke(cli, ["should-run"])

        assert result.exit_code == 0
        assert result.output.strip() == "true"

    def test_passed_command(self):
        result = CliRunner().invoke(cli, ["should-run"])

        assert result.exit_code == 1
        assert result.output.strip() == "false"

    def test_manual_marker(self, monkeypatch):
        monkeypatch.setenv("BUILDKITE_MESSAGE", "Investigate slowness [claude-analyze]")

        result = CliRunner().invoke(cli, ["should-run", "--trigger", "manual"])

        assert result.exit_code == 0

    def test_build_scope_counts_failures_elsewhere(self, mocker, monkeypatch):
        """Test a passing step runs in build scope when another job of the build failed."""
        for name, value in {
            "BUILDKITE_API_TOKEN": "bkua_token_value",
            "BUILDKITE_ORGANIZATION_SLUG": "acme",
            "BUILDKITE_PIPELINE_SLUG": "web",
            "BUILDKITE_BUILD_NUMBER": "42",
            "BUILDKITE_COMMAND_EXIT_STATUS": "0",
            "BUILDKITE_PLUGIN_CLAUDE_ANALYSIS_ANALYSIS_LEVEL": "build",
        }.items():
            monkeypatch.setenv(name, value)
        has_failures = mocker.patch.object(BuildkiteClient, "build_has_failures", return_value=True)

        result = CliRunner().invoke(cli, ["should-run"])

        assert result.exit_code == 0
        assert result.output.strip() == "true"
        has_failures.assert_called_once_with("42")

    def test_step_scope_ignores_other_jobs(self, mocker, monkeypatch):
        monkeypatch.setenv("BUILDKITE_API_TOKEN", "bkua_token_value")
        monkeypatch.setenv("BUILDKITE_ORGANIZATION_SLUG", "acme")
        monkeypatch.setenv("BUILDKITE_PIPELINE_SLUG", "web")
        monkeypatch.setenv("BUILDKITE_BUILD_NUMBER", "42")
        has_failures = mocker.patch.object(BuildkiteClient, "build_has_failures", return_value=True)

        result = CliRunner().invoke(cli, ["should-run"])

        assert result.exit_code == 1
        has_failures.assert_not_called()

    def test_unknown_trigger(self):
        assert CliRunner().invoke(cli, ["should-run", "--trigger", "sometimes"]).exit_code == 2
