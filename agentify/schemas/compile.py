"""
Pydantic schemas and enums for the compile, status, download and stream APIs.

Wire format is camelCase (the browser client's convention); Python fields are
snake_case with aliases.
"""
from enum import Enum
from typing import Any, Optional, List

from pydantic import BaseModel, ConfigDict, Field


class BuildTarget(str, Enum):
    """Artifact kind produced by a build."""
    WASM = "wasm"
    NATIVE_PLUGIN = "native-plugin"


class Platform(str, Enum):
    """Target operating system."""
    LINUX = "linux"
    WINDOWS = "windows"
    DARWIN = "darwin"


class JobStatus(str, Enum):
    """Compilation job status."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class ProgressStatus(str, Enum):
    """Status carried by a progress event."""
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ERROR = "error"


class CompilationMethod(str, Enum):
    """Where the build actually ran."""
    LOCAL = "local"
    GITHUB_ACTIONS = "github-actions"


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# =============================================================================
# Request Schemas
# =============================================================================

class CompileRequest(_CamelModel):
    """Request body for POST /compile."""
    agent_config: Optional[dict[str, Any]] = Field(
        default=None,
        alias="agentConfig",
        description="Agent configuration as edited in the UI",
    )
    advanced_settings: Optional[dict[str, Any]] = Field(
        default=None,
        alias="advancedSettings",
        description="Resource limits, isolation and access flags",
    )
    selected_platform: Optional[str] = Field(
        default=None,
        alias="selectedPlatform",
        description="linux, windows, darwin (or mac)",
        max_length=32,
    )
    build_target: Optional[str] = Field(
        default=None,
        alias="buildTarget",
        description="wasm or native-plugin",
        max_length=32,
    )


class WaitRequest(_CamelModel):
    """Request body for POST /compile/status."""
    job_id: str = Field(..., alias="jobId", min_length=1, max_length=128)
    timeout_ms: Optional[int] = Field(
        default=None,
        alias="timeoutMs",
        ge=0,
        description="Wait budget; capped by server configuration",
    )


class StreamRequest(_CamelModel):
    """Request body for POST /stream."""
    type: str = Field(..., max_length=64)
    data: Optional[dict[str, Any]] = None
    user_id: Optional[str] = Field(default=None, alias="userId", max_length=128)


# =============================================================================
# Response Schemas
# =============================================================================

class CompileResponse(_CamelModel):
    """Response for POST /compile."""
    success: bool = True
    message: str
    compilation_method: CompilationMethod = Field(..., alias="compilationMethod")
    status: Optional[JobStatus] = None
    job_id: Optional[str] = Field(default=None, alias="jobId")
    plugin_path: Optional[str] = Field(default=None, alias="pluginPath")
    download_url: Optional[str] = Field(default=None, alias="downloadUrl")
    filename: Optional[str] = None
    logs: Optional[List[str]] = None
    github_actions_url: Optional[str] = Field(default=None, alias="githubActionsUrl")


class StatusResponse(_CamelModel):
    """Response for GET/POST /compile/status."""
    success: bool
    status: JobStatus
    download_url: Optional[str] = Field(default=None, alias="downloadUrl")
    error: Optional[str] = None
    logs: Optional[List[str]] = None
    message: Optional[str] = None


class StreamAck(_CamelModel):
    """Response for POST /stream."""
    success: bool = True
    message: str
    request_id: Optional[str] = Field(default=None, alias="requestId")
