"""
Compilation Orchestrator - normalize, build locally, fall back to CI.

Local and remote attempts are strictly sequential for one spec: the remote
dispatch starts only after the local attempt has failed. Progress events are
best effort and never affect the outcome.
"""
import asyncio
import logging
from typing import Optional

from agentify.core.config import CompilerConfig
from agentify.core.dispatcher import RemoteBuildDispatcher
from agentify.core.errors import CompilationError, CompileError, DispatchError, InvalidConfigError
from agentify.core.local_builder import LocalBuildAdapter
from agentify.core.metrics import metrics
from agentify.core.normalizer import BuildSpec, normalize_config
from agentify.core.progress import ProgressNotifier
from agentify.schemas.compile import (
    CompilationMethod,
    CompileRequest,
    CompileResponse,
    JobStatus,
    ProgressStatus,
)

logger = logging.getLogger(__name__)

REMOTE_STARTED_MESSAGE = (
    "Compilation started via GitHub Actions. Check the GitHub Actions tab in your "
    "repository for progress and download the artifact when complete."
)

# Only native plugins are served from /download/plugin
LOCAL_DOWNLOAD_SUFFIXES = (".so", ".dll", ".dylib")


class CompilationOrchestrator:
    """Runs one compile request end to end."""

    def __init__(
        self,
        config: CompilerConfig,
        local_builder: LocalBuildAdapter,
        dispatcher: Optional[RemoteBuildDispatcher],
        notifier: ProgressNotifier,
    ):
        self._config = config
        self._local_builder = local_builder
        self._dispatcher = dispatcher
        self._notifier = notifier

    def normalize(self, request: CompileRequest) -> BuildSpec:
        """Build the canonical spec for a compile request."""
        if not request.agent_config:
            raise InvalidConfigError("Missing agent configuration")
        return normalize_config(
            request.agent_config,
            allow_synthesized_name=self._config.allow_synthesized_name,
            namespace=self._config.agent_namespace,
            overrides={
                "advancedSettings": request.advanced_settings,
                "build_target": request.build_target,
                "platform": request.selected_platform,
            },
        )

    async def compile(self, request: CompileRequest) -> CompileResponse:
        """
        Compile an agent, locally if possible, else via GitHub Actions.

        Raises:
            InvalidConfigError: the configuration could not be normalized
            DispatchError: local build failed and the fallback did too
        """
        metrics.inc("compile_requests_total")
        self._notifier.publish("initialization", 10, "Initializing compiler service...")

        self._notifier.publish("configuration", 30, "Processing agent configuration...")
        try:
            spec = self.normalize(request)
        except InvalidConfigError as e:
            self._notifier.publish(
                "configuration", 30, f"Configuration conversion failed: {e.message}",
                status=ProgressStatus.ERROR,
            )
            raise

        logger.info(
            f"compile_start agent={spec.agent_name} target={spec.build_target.value} "
            f"platform={spec.platform.value}"
        )

        self._notifier.publish("compilation", 50, "Starting local compilation...")
        try:
            result = await asyncio.to_thread(self._local_builder.attempt_local_build, spec)
        except OSError as e:
            local_error = CompileError(f"Local build failed: {type(e).__name__}")
            logger.warning(f"local_build_io_error error_type={type(e).__name__}")
            return await self._fall_back(spec, local_error)
        except CompilationError as local_error:
            return await self._fall_back(spec, local_error)

        metrics.inc("local_build_success_total")
        self._notifier.publish(
            "compilation", 90, "Local compilation completed successfully",
            status=ProgressStatus.COMPLETED,
        )
        download_url = None
        if result.filename.endswith(LOCAL_DOWNLOAD_SUFFIXES):
            download_url = f"/download/plugin/{result.filename}"
        logger.info(f"compile_done method=local filename={result.filename}")
        return CompileResponse(
            message="Agent compiled successfully",
            compilation_method=CompilationMethod.LOCAL,
            status=JobStatus.COMPLETED,
            plugin_path=str(result.artifact_path),
            download_url=download_url,
            filename=result.filename,
            logs=result.logs,
        )

    async def _fall_back(self, spec: BuildSpec, local_error: CompilationError) -> CompileResponse:
        logger.info(f"local_build_unavailable reason={type(local_error).__name__}")
        metrics.inc("local_build_fallback_total")
        self._notifier.publish(
            "compilation", 60, "Local compilation failed, using GitHub Actions fallback...",
        )
        return await self._compile_remote(spec, local_error)

    async def _compile_remote(self, spec: BuildSpec, local_error: CompilationError) -> CompileResponse:
        if self._dispatcher is None:
            message = (
                f"Compilation failed: {local_error.message}. GitHub Actions fallback is not "
                f"configured. Please ensure GITHUB_TOKEN and the other required environment "
                f"variables are set."
            )
            self._notifier.publish("compilation", 0, message, status=ProgressStatus.ERROR)
            raise DispatchError(message)

        self._notifier.publish("compilation", 70, "Triggering GitHub Actions compilation...")
        try:
            job_id = await self._dispatcher.trigger(spec)
        except DispatchError as e:
            message = (
                f"Compilation failed: {local_error.message}. "
                f"GitHub Actions compilation failed: {e.message}"
            )
            self._notifier.publish("compilation", 0, message, status=ProgressStatus.ERROR)
            raise DispatchError(message) from e

        self._notifier.publish(
            "compilation", 80,
            "GitHub Actions compilation started. Check GitHub Actions tab for progress...",
            job_id=job_id,
        )
        logger.info(f"compile_dispatched job_id={job_id}")
        return CompileResponse(
            message=REMOTE_STARTED_MESSAGE,
            compilation_method=CompilationMethod.GITHUB_ACTIONS,
            status=JobStatus.IN_PROGRESS,
            job_id=job_id,
            github_actions_url=self._config.actions_url,
        )
