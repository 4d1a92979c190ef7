"""
FastAPI dependency providers.

Configuration is read from the environment once per process; every
component receives it from here. Tests swap components through
app.dependency_overrides.
"""
from functools import lru_cache
from typing import Optional, TypeVar

from fastapi import Depends

from agentify.core.artifact_resolver import ArtifactResolver
from agentify.core.compile_service import CompilationOrchestrator
from agentify.core.config import CompilerConfig, get_compiler_config
from agentify.core.dispatcher import RemoteBuildDispatcher
from agentify.core.errors import CompilerUnavailableError
from agentify.core.local_builder import LocalBuildAdapter
from agentify.core.progress import ProgressNotifier, progress_notifier
from agentify.core.requests_store import BuildRequestStore
from agentify.core.tracker import JobStatusTracker

T = TypeVar("T")


@lru_cache
def get_config() -> CompilerConfig:
    return get_compiler_config()


def get_notifier() -> ProgressNotifier:
    return progress_notifier


def get_dispatcher(config: CompilerConfig = Depends(get_config)) -> Optional[RemoteBuildDispatcher]:
    """The GitHub Actions dispatcher, or None when no token is configured."""
    return RemoteBuildDispatcher.from_config(config)


def require_remote(component: Optional[T]) -> T:
    """
    Unwrap a GitHub-backed component or fail with 503.

    Called inside handlers, after input validation, so a malformed request
    gets its 400 even when no compiler is configured.
    """
    if component is None:
        raise CompilerUnavailableError("GitHub Actions compiler not available")
    return component


def get_local_builder(config: CompilerConfig = Depends(get_config)) -> LocalBuildAdapter:
    return LocalBuildAdapter(config)


def get_orchestrator(
    config: CompilerConfig = Depends(get_config),
    local_builder: LocalBuildAdapter = Depends(get_local_builder),
    dispatcher: Optional[RemoteBuildDispatcher] = Depends(get_dispatcher),
    notifier: ProgressNotifier = Depends(get_notifier),
) -> CompilationOrchestrator:
    return CompilationOrchestrator(config, local_builder, dispatcher, notifier)


def get_tracker(
    config: CompilerConfig = Depends(get_config),
    dispatcher: Optional[RemoteBuildDispatcher] = Depends(get_dispatcher),
) -> Optional[JobStatusTracker]:
    if dispatcher is None:
        return None
    return JobStatusTracker(dispatcher.get_status, interval=config.poll_interval_s)


def get_resolver(
    dispatcher: Optional[RemoteBuildDispatcher] = Depends(get_dispatcher),
) -> Optional[ArtifactResolver]:
    if dispatcher is None:
        return None
    return ArtifactResolver(dispatcher)


def get_request_store() -> BuildRequestStore:
    return BuildRequestStore()
