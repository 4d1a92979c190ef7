"""
HTTP client for the compile API.

Implements the client-side half of job tracking: after POST /compile
answers with a job id, poll GET /compile/status every 5 seconds for at most
60 attempts. Network and HTTP errors count as attempts and are retried;
running out of attempts yields a failed job whose error mentions the
timeout.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

import httpx

from agentify.core.config import CompilerConfig
from agentify.core.errors import DispatchError
from agentify.core.jobs import CompilationJob
from agentify.core.tracker import CLIENT_MAX_ATTEMPTS, POLL_INTERVAL_S, poll_until_terminal
from agentify.schemas.compile import CompileResponse, JobStatus

logger = logging.getLogger(__name__)


class CompileClient:
    """Async client for a running compile service."""

    def __init__(
        self,
        base_url: str,
        interval: float = POLL_INTERVAL_S,
        max_attempts: int = CLIENT_MAX_ATTEMPTS,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._base_url = base_url.rstrip("/")
        self._interval = interval
        self._max_attempts = max_attempts
        self._timeout = timeout
        self._transport = transport
        self._sleep = sleep

    @classmethod
    def from_config(
        cls,
        base_url: str,
        config: CompilerConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "CompileClient":
        """Client using the configured poll interval and attempt budget."""
        return cls(
            base_url,
            interval=config.poll_interval_s,
            max_attempts=config.client_max_attempts,
            timeout=config.http_timeout_s,
            transport=transport,
        )

    def _get_http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            headers={"Accept": "application/json"},
            transport=self._transport,
        )

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            return response.json().get("message") or f"HTTP {response.status_code}"
        except ValueError:
            return f"HTTP {response.status_code}"

    async def compile(
        self,
        agent_config: dict[str, Any],
        advanced_settings: Optional[dict[str, Any]] = None,
        selected_platform: Optional[str] = None,
        build_target: Optional[str] = None,
    ) -> CompileResponse:
        """
        POST /compile.

        Raises:
            DispatchError: the service rejected the request or was unreachable
        """
        body = {
            "agentConfig": agent_config,
            "advancedSettings": advanced_settings,
            "selectedPlatform": selected_platform,
            "buildTarget": build_target,
        }
        try:
            async with self._get_http_client() as client:
                response = await client.post(
                    "/compile", json={k: v for k, v in body.items() if v is not None}
                )
        except httpx.HTTPError as e:
            raise DispatchError(f"Compile request failed: {type(e).__name__}")

        if response.status_code != 200:
            raise DispatchError(self._error_message(response))
        try:
            return CompileResponse.model_validate(response.json())
        except ValueError:
            raise DispatchError("Compile response was not a valid compile result")

    async def get_status(self, job_id: str) -> CompilationJob:
        """
        One GET /compile/status observation.

        Raises:
            DispatchError: transport failure or non-200 answer (retried by
                wait_for_completion)
        """
        try:
            async with self._get_http_client() as client:
                response = await client.get("/compile/status", params={"jobId": job_id})
        except httpx.HTTPError as e:
            raise DispatchError(f"Status request failed: {type(e).__name__}")

        if response.status_code != 200:
            raise DispatchError(self._error_message(response))

        try:
            data = response.json()
            status = JobStatus(data.get("status", "pending"))
        except (ValueError, AttributeError):
            # Proxy error pages and the like: one failed attempt, not a crash
            raise DispatchError("Status response was not a valid status document")
        job = CompilationJob(job_id=job_id, status=status)
        job.logs.extend(data.get("logs") or [])
        if job.status == JobStatus.COMPLETED:
            job.download_url = data.get("downloadUrl")
        elif job.status == JobStatus.FAILED:
            job.error_message = data.get("error") or "GitHub Actions compilation failed"
        return job

    async def wait_for_completion(self, job_id: str) -> CompilationJob:
        """Poll until the job is terminal or the attempt budget is spent."""

        def _on_poll(attempt: int, job: CompilationJob) -> None:
            logger.info(
                f"compile_status_checked job_id={job_id} attempt={attempt}/{self._max_attempts} "
                f"status={job.status.value}"
            )

        return await poll_until_terminal(
            job_id,
            self.get_status,
            interval=self._interval,
            max_attempts=self._max_attempts,
            sleep=self._sleep,
            on_poll=_on_poll,
        )

    async def compile_and_wait(self, agent_config: dict[str, Any], **kwargs: Any) -> CompilationJob:
        """
        Compile and, for a remote build, wait for it to finish.

        A local build is already finished when POST /compile returns.
        """
        result = await self.compile(agent_config, **kwargs)
        if not result.job_id:
            job = CompilationJob(job_id=result.filename or "local", status=JobStatus.COMPLETED)
            job.download_url = result.download_url
            job.logs.extend(result.logs or [])
            return job
        return await self.wait_for_completion(result.job_id)
