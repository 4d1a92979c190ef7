"""
Remote Build Dispatcher - GitHub Actions compilation backend.

Triggers the compile workflow with a self-describing job id and later finds
the run again by scanning recent runs for that id. The CI platform is the
only system of record: no local job table, no persistent side channel.

Correlation order: run name -> display title -> head commit message.
The workflow sets `run-name: "Compile <agent> - Job <job_id>"`, so the name
is the most reliable match.

Security:
- Token injected via CompilerConfig, never logged
- Artifact downloads only from the configured API host
"""
import json
import logging
import re
from typing import Any, Iterable, Optional
from urllib.parse import urlparse

import httpx

from agentify.core.config import CompilerConfig
from agentify.core.errors import ArtifactDownloadError, DispatchError
from agentify.core.jobs import CompilationJob, generate_job_id, job_created_at
from agentify.core.metrics import metrics
from agentify.core.normalizer import BuildSpec
from agentify.schemas.compile import BuildTarget, JobStatus

logger = logging.getLogger(__name__)

USER_AGENT = "agentify-compiler/1.0"
ARTIFACT_CONTENT_TYPES = ("application/zip", "application/octet-stream", "application/x-zip-compressed")

# Workflow input values for each build target
WORKFLOW_BUILD_TARGETS = {
    BuildTarget.WASM: "wasm",
    BuildTarget.NATIVE_PLUGIN: "go",
}

RUN_NAME_PATTERN = re.compile(r"^Compile (?P<agent>.+?) - Job ")


# =============================================================================
# Pure correlation helpers
# =============================================================================

def find_run_for_job(runs: Iterable[dict[str, Any]], job_id: str) -> Optional[tuple[dict[str, Any], str]]:
    """
    Find the workflow run carrying `job_id`.

    Returns (run, matched_field) or None. Each run is checked name first,
    then display_title, then head_commit.message.
    """
    if not job_id:
        return None
    for run in runs:
        if job_id in (run.get("name") or ""):
            return run, "name"
        if job_id in (run.get("display_title") or ""):
            return run, "display_title"
        head_commit = run.get("head_commit") or {}
        if job_id in (head_commit.get("message") or ""):
            return run, "head_commit"
    return None


def map_run_status(status: Optional[str], conclusion: Optional[str]) -> JobStatus:
    """Map a GitHub Actions run status/conclusion onto JobStatus."""
    if status in ("queued", "in_progress"):
        return JobStatus.IN_PROGRESS
    if status == "completed":
        return JobStatus.COMPLETED if conclusion == "success" else JobStatus.FAILED
    return JobStatus.PENDING


def find_plugin_artifact(artifacts: Iterable[dict[str, Any]], job_id: str) -> Optional[dict[str, Any]]:
    """First unexpired artifact whose name mentions 'plugin' or the job id."""
    for artifact in artifacts:
        if artifact.get("expired"):
            continue
        name = artifact.get("name") or ""
        if "plugin" in name or job_id in name:
            return artifact
    return None


def first_failing_step(jobs: Iterable[dict[str, Any]]) -> Optional[str]:
    """Name of the first failed step (or failed job if no step is marked)."""
    for job in jobs:
        if job.get("conclusion") != "failure":
            continue
        for step in job.get("steps") or []:
            if step.get("conclusion") == "failure":
                return step.get("name")
        return job.get("name")
    return None


def agent_name_from_run(run: dict[str, Any]) -> Optional[str]:
    """Recover the agent name the workflow embedded in its run name."""
    for text in (run.get("name"), run.get("display_title")):
        match = RUN_NAME_PATTERN.match(text or "")
        if match:
            return match.group("agent").strip() or None
    return None


def artifact_download_path(job_id: str) -> str:
    """Resolver-facing download URL for a job's artifact."""
    return f"/download/artifact/{job_id}"


# =============================================================================
# Dispatcher
# =============================================================================

class RemoteBuildDispatcher:
    """Dispatches builds to GitHub Actions and observes their runs."""

    def __init__(
        self,
        config: CompilerConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._config = config
        self._transport = transport

    @classmethod
    def from_config(
        cls,
        config: CompilerConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> Optional["RemoteBuildDispatcher"]:
        """
        Create a dispatcher, or None when no GitHub token is configured.

        Called per request; the missing token is reported once at startup.
        """
        if not config.remote_enabled:
            return None
        return cls(config, transport=transport)

    @property
    def config(self) -> CompilerConfig:
        return self._config

    @property
    def _repo_path(self) -> str:
        return f"/repos/{self._config.github_owner}/{self._config.github_repo}"

    def _get_http_client(self) -> httpx.AsyncClient:
        """Create HTTP client with GitHub headers."""
        headers = {
            "User-Agent": USER_AGENT,
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self._config.github_token:
            headers["Authorization"] = f"Bearer {self._config.github_token}"

        return httpx.AsyncClient(
            base_url=self._config.github_api_url,
            timeout=self._config.http_timeout_s,
            headers=headers,
            follow_redirects=True,
            transport=self._transport,
        )

    async def _get_json(self, client: httpx.AsyncClient, path: str, **params: Any) -> dict[str, Any]:
        try:
            response = await client.get(path, params=params or None)
        except httpx.TimeoutException:
            raise DispatchError("GitHub API request timed out")
        except httpx.HTTPError as e:
            raise DispatchError(f"GitHub API request failed: {type(e).__name__}")

        if response.status_code != 200:
            raise DispatchError(f"GitHub API returned HTTP {response.status_code} for {path}")
        try:
            return response.json()
        except ValueError:
            raise DispatchError(f"GitHub API returned invalid JSON for {path}")

    # -------------------------------------------------------------------------
    # Trigger
    # -------------------------------------------------------------------------

    async def trigger(self, spec: BuildSpec) -> str:
        """
        Trigger the compile workflow for a BuildSpec.

        Returns:
            The job id embedded in the workflow run

        Raises:
            DispatchError: missing credentials or the dispatch was rejected
        """
        if not self._config.github_token:
            raise DispatchError("GitHub Actions is not configured (GITHUB_TOKEN missing)")

        job_id = generate_job_id()
        payload = {
            "ref": self._config.workflow_ref,
            "inputs": {
                "job_id": job_id,
                "agent_name": spec.display_name,
                "config": json.dumps(spec.to_dict(), separators=(",", ":")),
                "build_target": WORKFLOW_BUILD_TARGETS[spec.build_target],
                "platform": spec.platform.value,
            },
        }
        path = f"{self._repo_path}/actions/workflows/{self._config.workflow_id}/dispatches"

        logger.info(
            f"dispatch_start job_id={job_id} workflow={self._config.workflow_id} "
            f"target={spec.build_target.value} platform={spec.platform.value}"
        )
        try:
            async with self._get_http_client() as client:
                response = await client.post(path, json=payload)
        except httpx.TimeoutException:
            metrics.inc("dispatch_error_total")
            raise DispatchError("GitHub Actions dispatch timed out")
        except httpx.HTTPError as e:
            metrics.inc("dispatch_error_total")
            raise DispatchError(f"GitHub Actions dispatch failed: {type(e).__name__}")

        if response.status_code != 204:
            metrics.inc("dispatch_error_total")
            raise DispatchError(
                f"GitHub Actions rejected the workflow dispatch: HTTP {response.status_code}"
            )

        metrics.inc("dispatch_total")
        logger.info(f"dispatch_done job_id={job_id}")
        return job_id

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    async def get_status(self, job_id: str) -> CompilationJob:
        """
        Observe the current state of a job on the CI platform.

        A run that is not visible yet is reported as pending, not as an error:
        run creation lags the dispatch call.

        Raises:
            DispatchError: the GitHub API could not be queried
        """
        job = CompilationJob(job_id=job_id)
        created = job_created_at(job_id)
        if created:
            job.created_at = created

        async with self._get_http_client() as client:
            runs_data = await self._get_json(
                client,
                f"{self._repo_path}/actions/workflows/{self._config.workflow_id}/runs",
                per_page=self._config.runs_page_size,
            )
            runs = runs_data.get("workflow_runs") or []

            match = find_run_for_job(runs, job_id)
            if match is None:
                logger.info(f"status_run_not_found job_id={job_id} runs_scanned={len(runs)}")
                job.log(
                    f"Workflow run for {job_id} not visible yet "
                    f"({len(runs)} recent runs scanned); it may still be starting"
                )
                return job

            run, matched_field = match
            job.run_id = run.get("id")
            job.run_url = run.get("html_url")
            job.agent_name = agent_name_from_run(run)
            job.status = map_run_status(run.get("status"), run.get("conclusion"))
            job.log(f"Matched workflow run {job.run_id} by {matched_field} "
                    f"(status={run.get('status')}, conclusion={run.get('conclusion')})")

            if job.status == JobStatus.COMPLETED:
                await self._attach_artifact(client, job)
            elif job.status == JobStatus.FAILED:
                await self._attach_failure(client, job, run.get("conclusion"))

        logger.info(f"status_checked job_id={job_id} status={job.status.value}")
        return job

    async def _attach_artifact(self, client: httpx.AsyncClient, job: CompilationJob) -> None:
        data = await self._get_json(client, f"{self._repo_path}/actions/runs/{job.run_id}/artifacts")
        artifact = find_plugin_artifact(data.get("artifacts") or [], job.job_id)
        if artifact is None or not artifact.get("archive_download_url"):
            # Success without output is an integrity fault, not a transient state
            logger.error(f"artifact_missing job_id={job.job_id} run_id={job.run_id}")
            metrics.inc("integrity_error_total")
            job.mark_failed("artifact not found", integrity_error=True)
            return

        job.mark_completed(
            download_url=artifact_download_path(job.job_id),
            raw_artifact_locator=artifact["archive_download_url"],
        )
        job.log(f"Artifact ready: {artifact.get('name')} ({artifact.get('size_in_bytes', 0)} bytes)")

    async def _attach_failure(
        self,
        client: httpx.AsyncClient,
        job: CompilationJob,
        conclusion: Optional[str],
    ) -> None:
        error = f"Compilation failed (conclusion: {conclusion})"
        try:
            data = await self._get_json(client, f"{self._repo_path}/actions/runs/{job.run_id}/jobs")
        except DispatchError as e:
            # Step detail is diagnostic only; the failed status stands
            logger.warning(f"failed_step_lookup_failed job_id={job.job_id} error={e.message}")
        else:
            step = first_failing_step(data.get("jobs") or [])
            if step:
                error = f"Compilation failed in step: {step}"
        job.mark_failed(error)

    # -------------------------------------------------------------------------
    # Download
    # -------------------------------------------------------------------------

    async def download_artifact(self, locator: str) -> tuple[bytes, Optional[str]]:
        """
        Download artifact bytes from a raw locator using the stored token.

        Returns:
            (content, content_type)

        Raises:
            ArtifactDownloadError: locator outside the API host, or download failed
        """
        api_host = urlparse(self._config.github_api_url).hostname
        if urlparse(locator).hostname != api_host:
            raise ArtifactDownloadError("Artifact locator is not on the configured GitHub API host")

        try:
            async with self._get_http_client() as client:
                response = await client.get(locator)
        except httpx.TimeoutException:
            raise ArtifactDownloadError("Artifact download timed out")
        except httpx.HTTPError as e:
            raise ArtifactDownloadError(f"Artifact download failed: {type(e).__name__}")

        if response.status_code != 200:
            raise ArtifactDownloadError(f"Artifact download failed: HTTP {response.status_code}")

        content_type = response.headers.get("content-type")
        logger.info(f"artifact_downloaded size={len(response.content)}")
        return response.content, content_type
