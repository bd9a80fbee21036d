from typing import Any

import pytest

from buildkite_failure_analysis.buildkite.models import RunContext


@pytest.fixture
def run_context() -> RunContext:
    return RunContext(
        organization_slug="acme",
        pipeline_slug="web",
        build_number="42",
        build_id="build-uuid",
        job_id="job-current",
        label=":pytest: Unit tests",
        branch="main",
        commit="abc123",
        message="Fix flaky test",
        command="make test",
        exit_status=1,
        build_url="https://buildkite.com/acme/web/builds/42",
        step_key="unit-tests",
        checkout_path="/var/lib/buildkite/builds/web",
        working_directory="/var/lib/buildkite/builds/web",
    )


def make_job(job_id: str, name: str = "", **overrides: Any) -> dict[str, Any]:
    job = {
        "id": job_id,
        "type": "script",
        "name": name or f"Job {job_id}",
        "state": "passed",
        "step_key": None,
        "started_at": "2024-05-01T10:00:00.000Z",
        "finished_at": "2024-05-01T10:02:00.000Z",
    }
    job.update(overrides)
    return job


def make_build(number: int, jobs: list[dict[str, Any]] | None = None, **overrides: Any) -> dict[str, Any]:
    build = {
        "number": number,
        "state": "passed",
        "message": f"Commit for build {number}",
        "started_at": "2024-05-01T10:00:00.000Z",
        "finished_at": "2024-05-01T10:05:00.000Z",
        "jobs": jobs or [],
    }
    build.update(overrides)
    return build


@pytest.fixture
def job_payload():
    """Factory for Buildkite job JSON objects."""
    return make_job


@pytest.fixture
def build_payload():
    """Factory for Buildkite build JSON objects."""
    return make_build
