import logging
from datetime import date
from typing import Any

import requests

from ..constants import BUILDKITE_API_URL
from ..utils import extract_log_content
from .models import BuildRecord, JobRecord

logger = logging.getLogger(__name__)


class BuildkiteClient:
    """Client for the Buildkite REST API.

    Every request failure (non-2xx, timeout, connection error, bad JSON) is a
    soft failure: methods log the cause and return None instead of raising.
    """

    def __init__(
        self,
        api_token: str,
        organization_slug: str,
        pipeline_slug: str,
        api_url: str = BUILDKITE_API_URL,
        timeout: int = 30,
    ) -> None:
        """Initialize Buildkite client.

        Args:
            api_token: Buildkite API access token (sent as a bearer token)
            organization_slug: Organization slug
            pipeline_slug: Pipeline slug
            api_url: Base URL of the Buildkite REST API
            timeout: Per-request timeout in seconds
        """
        self.organization_slug = organization_slug
        self.pipeline_slug = pipeline_slug
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({"Authorization": f"Bearer {api_token}"})

    @property
    def pipeline_url(self) -> str:
        return f"{self.api_url}/v2/organizations/{self.organization_slug}/pipelines/{self.pipeline_slug}"

    def _get(self, url: str, params: dict[str, Any] | None = None) -> requests.Response | None:
        """Perform a GET request, returning None on any failure.

        Args:
            url: Absolute URL
            params: Optional query parameters

        Returns:
            The successful response or None
        """
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.Timeout:
            logger.warning(f"Buildkite API request timed out after {self.timeout}s: {url}")
            return None
        except requests.RequestException as e:
            logger.warning(f"Buildkite API request failed: {url}: {e}")
            return None

        if not response.ok:
            logger.warning(f"Buildkite API call failed with HTTP {response.status_code}: {url}")
            return None
        return response

    def _get_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        response = self._get(url, params=params)
        if response is None:
            return None
        try:
            return response.json()
        except ValueError as e:
            logger.warning(f"Buildkite API returned invalid JSON for {url}: {e}")
            return None

    def check_token(self) -> bool:
        """Check that the token is accepted by the API."""
        data = self._get_json(f"{self.api_url}/v2/access-token")
        if not isinstance(data, dict):
            return False
        scopes = data.get("scopes") or []
        logger.debug(f"Buildkite token scopes: {scopes}")
        return True

    def get_build(self, build_number: int | str) -> BuildRecord | None:
        """Fetch a build with its job list."""
        data = self._get_json(f"{self.pipeline_url}/builds/{build_number}")
        if not isinstance(data, dict):
            return None
        try:
            return BuildRecord.from_api(data)
        except (TypeError, ValueError) as e:
            logger.warning(f"Failed to parse build #{build_number}: {e}")
            return None

    def get_job(self, build_number: int | str, job_id: str) -> JobRecord | None:
        """Fetch a single job by looking it up in its build."""
        build = self.get_build(build_number)
        if build is None:
            return None
        for job in build.jobs:
            if job.id == job_id:
                return job
        logger.debug(f"Job {job_id} not found in build #{build_number}")
        return None

    def get_job_log(self, build_number: int | str, job_id: str) -> str | None:
        """Fetch the raw log text of a job.

        Returns:
            Log text with any JSON envelope removed, or None on failure
        """
        response = self._get(f"{self.pipeline_url}/builds/{build_number}/jobs/{job_id}/log")
        if response is None:
            return None
        return extract_log_content(response.text)

    def list_builds(self, per_page: int, finished_from: date | None = None) -> list[BuildRecord] | None:
        """List recent builds of the pipeline.

        Args:
            per_page: Number of builds to request
            finished_from: Only builds finished on or after this date

        Returns:
            Builds in API order, or None on failure
        """
        params: dict[str, Any] = {"per_page": per_page}
        if finished_from is not None:
            params["finished_from"] = finished_from.isoformat()

        data = self._get_json(f"{self.pipeline_url}/builds", params=params)
        if not isinstance(data, list):
            return None

        builds = []
        for item in data:
            if not isinstance(item, dict):
                continue
            try:
                builds.append(BuildRecord.from_api(item))
            except (TypeError, ValueError) as e:
                logger.debug(f"Skipping unparseable build entry: {e}")
        return builds

    def build_has_failures(self, build_number: int | str) -> bool:
        """Check whether any command job in the build failed or soft-failed."""
        build = self.get_build(build_number)
        if build is None:
            return False
        return any(job.has_failed for job in build.script_jobs)
