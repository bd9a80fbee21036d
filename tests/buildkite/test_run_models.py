from buildkite_failure_analysis.buildkite.models import BuildRecord, JobRecord, RunContext


class TestRunContext:
    """Tests for RunContext.from_env."""

    def test_from_env(self):
        env = {
            "BUILDKITE_ORGANIZATION_SLUG": "acme",
            "BUILDKITE_PIPELINE_SLUG": "web",
            "BUILDKITE_BUILD_NUMBER": "42",
            "BUILDKITE_JOB_ID": "job-1",
            "BUILDKITE_COMMAND_EXIT_STATUS": "2",
            "BUILDKITE_MESSAGE": "Retry [claude-analyze]",
            "BUILDKITE_STEP_KEY": "tests",
        }

        run = RunContext.from_env(env)

        assert run.organization_slug == "acme"
        assert run.build_number == "42"
        assert run.exit_status == 2
        assert run.step_key == "tests"
        assert run.has_build_coordinates is True
        assert run.manual_trigger is False

    def test_manual_flag(self):
        run = RunContext.from_env({"CLAUDE_ANALYZE": "true"})

        assert run.manual_trigger is True

    def test_missing_exit_status_counts_as_success(self):
        """Test an unset or invalid exit status is treated as 0 for triggering."""
        assert RunContext.from_env({}).effective_exit_status == 0
        assert RunContext.from_env({"BUILDKITE_COMMAND_EXIT_STATUS": "abc"}).exit_status is None

    def test_missing_coordinates(self):
        run = RunContext.from_env({"BUILDKITE_ORGANIZATION_SLUG": "acme"})

        assert run.has_build_coordinates is False


class TestJobRecord:
    """Tests for JobRecord parsing and duration."""

    def test_duration_requires_both_timestamps(self, job_payload):
        finished = JobRecord.from_api(job_payload("a"))
        running = JobRecord.from_api(job_payload("b", finished_at=None))

        assert finished.duration == 120
        assert running.duration is None

    def test_name_falls_back_to_label_then_id(self):
        assert JobRecord.from_api({"id": "x", "label": "Deploy"}).name == "Deploy"
        assert JobRecord.from_api({"id": "x"}).name == "x"


class TestBuildRecord:
    """Tests for BuildRecord helpers."""

    def test_script_jobs_and_step_lookup(self, build_payload, job_payload):
        build = BuildRecord.from_api(
            build_payload(
                7,
                jobs=[
                    job_payload("a", step_key="lint"),
                    {"id": "w", "type": "waiter"},
                    job_payload("b", step_key="test"),
                ],
            )
        )

        assert [job.id for job in build.script_jobs] == ["a", "b"]
        found = build.find_job_by_step_key("test")
        assert found is not None and found.id == "b"
        assert build.find_job_by_step_key("deploy") is None
