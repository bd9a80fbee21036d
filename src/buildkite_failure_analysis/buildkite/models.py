import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..constants import MANUAL_TRIGGER_ENV
from ..utils import parse_timestamp, seconds_between


def _parse_exit_status(value: str | None) -> int | None:
    if value is None or value.strip() == "":
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


@dataclass(frozen=True)
class RunContext:
    """Immutable snapshot of the Buildkite job environment for one run."""

    organization_slug: str = ""
    pipeline_slug: str = ""
    build_number: str = ""
    build_id: str = ""
    job_id: str = ""
    label: str = ""
    branch: str = ""
    commit: str = ""
    message: str = ""
    command: str = ""
    exit_status: int | None = None
    build_url: str = ""
    step_key: str = ""
    checkout_path: str = ""
    working_directory: str = ""
    manual_trigger: bool = False

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "RunContext":
        """Build the context from ``BUILDKITE_*`` variables."""
        env = os.environ if environ is None else environ
        return cls(
            organization_slug=env.get("BUILDKITE_ORGANIZATION_SLUG", ""),
            pipeline_slug=env.get("BUILDKITE_PIPELINE_SLUG", ""),
            build_number=env.get("BUILDKITE_BUILD_NUMBER", ""),
            build_id=env.get("BUILDKITE_BUILD_ID", ""),
            job_id=env.get("BUILDKITE_JOB_ID", ""),
            label=env.get("BUILDKITE_LABEL", ""),
            branch=env.get("BUILDKITE_BRANCH", ""),
            commit=env.get("BUILDKITE_COMMIT", ""),
            message=env.get("BUILDKITE_MESSAGE", ""),
            command=env.get("BUILDKITE_COMMAND", ""),
            exit_status=_parse_exit_status(env.get("BUILDKITE_COMMAND_EXIT_STATUS")),
            build_url=env.get("BUILDKITE_BUILD_URL", ""),
            step_key=env.get("BUILDKITE_STEP_KEY", ""),
            checkout_path=env.get("BUILDKITE_BUILD_CHECKOUT_PATH", ""),
            working_directory=os.getcwd(),
            manual_trigger=env.get(MANUAL_TRIGGER_ENV, "false").lower() == "true",
        )

    @property
    def has_build_coordinates(self) -> bool:
        """Whether organization, pipeline and build number are all known."""
        return bool(self.organization_slug and self.pipeline_slug and self.build_number)

    @property
    def effective_exit_status(self) -> int:
        """Exit status used for triggering; unknown counts as success."""
        return self.exit_status if self.exit_status is not None else 0


@dataclass
class JobRecord:
    """A single job of a Buildkite build."""

    id: str
    name: str
    state: str
    type: str = "script"
    started_at: datetime | None = None
    finished_at: datetime | None = None
    step_key: str | None = None
    soft_failed: bool = False

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "JobRecord":
        job_id = str(data.get("id", ""))
        return cls(
            id=job_id,
            name=data.get("name") or data.get("label") or job_id,
            state=data.get("state") or "unknown",
            type=data.get("type") or "script",
            started_at=parse_timestamp(data.get("started_at")),
            finished_at=parse_timestamp(data.get("finished_at")),
            step_key=data.get("step_key"),
            soft_failed=bool(data.get("soft_failed", False)),
        )

    @property
    def duration(self) -> int | None:
        """Seconds from start to finish, if both timestamps are known."""
        if self.started_at is None or self.finished_at is None:
            return None
        return seconds_between(self.started_at, self.finished_at)

    @property
    def has_failed(self) -> bool:
        return self.state == "failed" or self.soft_failed


@dataclass
class BuildRecord:
    """A Buildkite build with its jobs."""

    number: int
    state: str
    jobs: list[JobRecord] = field(default_factory=list)
    message: str = ""
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "BuildRecord":
        return cls(
            number=int(data.get("number", 0)),
            state=data.get("state") or "unknown",
            jobs=[JobRecord.from_api(job) for job in data.get("jobs") or [] if isinstance(job, dict)],
            message=data.get("message") or "",
            started_at=parse_timestamp(data.get("started_at")),
            finished_at=parse_timestamp(data.get("finished_at")),
        )

    @property
    def duration(self) -> int | None:
        """Seconds from start to finish, if both timestamps are known."""
        if self.started_at is None or self.finished_at is None:
            return None
        return seconds_between(self.started_at, self.finished_at)

    @property
    def script_jobs(self) -> list[JobRecord]:
        """Command jobs only; wait, block and trigger jobs carry no logs."""
        return [job for job in self.jobs if job.type == "script"]

    def find_job_by_step_key(self, step_key: str) -> JobRecord | None:
        for job in self.jobs:
            if job.step_key == step_key:
                return job
        return None
