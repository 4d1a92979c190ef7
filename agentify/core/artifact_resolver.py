"""
Artifact Resolver - serve finished build outputs.

Remote artifacts are re-served from the CI platform on demand (no local
copy); local plugins are served from the plugins directory. Every
identifier is validated before it reaches the network or the filesystem.
"""
import hashlib
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from agentify.core.dispatcher import ARTIFACT_CONTENT_TYPES, RemoteBuildDispatcher
from agentify.core.errors import (
    IntegrityError,
    InvalidIdentifierError,
    NotFoundError,
    NotReadyError,
)
from agentify.core.jobs import JOB_ID_PATTERN
from agentify.core.metrics import metrics
from agentify.schemas.compile import JobStatus

logger = logging.getLogger(__name__)

_JOB_ID_CHARS = re.compile(r"^[A-Za-z0-9_-]+$")
_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9_-]")

MAX_IDENTIFIER_LENGTH = 128

PLUGIN_CONTENT_TYPES = {
    ".so": "application/x-sharedlib",
    ".dll": "application/x-msdownload",
    ".dylib": "application/x-mach-binary",
}


# =============================================================================
# Validation
# =============================================================================

def validate_job_id(job_id: Optional[str]) -> str:
    """Reject anything but [A-Za-z0-9_-]; in particular no path segments."""
    if not job_id:
        raise InvalidIdentifierError("Job ID is required")
    if len(job_id) > MAX_IDENTIFIER_LENGTH or ".." in job_id or not _JOB_ID_CHARS.match(job_id):
        raise InvalidIdentifierError("Invalid job ID format")
    return job_id


def sanitize_filename_part(value: str) -> str:
    return _UNSAFE_FILENAME_CHARS.sub("_", value)


def artifact_filename(job_id: str, agent_name: Optional[str]) -> str:
    """
    Download filename for a remote artifact: <agent>-plugin-<job_id>.zip.

    Without an agent name the job id's timestamp part stands in.
    """
    if agent_name:
        base = sanitize_filename_part(agent_name)
    else:
        match = JOB_ID_PATTERN.match(job_id)
        base = f"agent-{match.group(1) if match else sanitize_filename_part(job_id)}"
    return f"{base}-plugin-{job_id}.zip"


def validate_plugin_filename(filename: Optional[str]) -> str:
    """
    Check a local plugin filename without touching the filesystem.

    Rejects traversal and separators outright; only shared-library
    extensions are served.
    """
    if not filename:
        raise InvalidIdentifierError("Filename is required")
    if ".." in filename or "/" in filename or "\\" in filename:
        raise InvalidIdentifierError("Invalid filename")
    if len(filename) > MAX_IDENTIFIER_LENGTH:
        raise InvalidIdentifierError("Invalid filename")
    if Path(filename).suffix.lower() not in PLUGIN_CONTENT_TYPES:
        raise InvalidIdentifierError("Invalid file type")
    return filename


# =============================================================================
# Results
# =============================================================================

@dataclass
class ResolvedArtifact:
    """Artifact bytes ready to be served."""
    content: bytes
    filename: str
    content_type: str = "application/zip"

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def sha256(self) -> str:
        return hashlib.sha256(self.content).hexdigest()


@dataclass
class LocalPlugin:
    """A locally built plugin on disk."""
    path: Path
    content_type: str

    @property
    def filename(self) -> str:
        return self.path.name


# =============================================================================
# Resolvers
# =============================================================================

class ArtifactResolver:
    """Fetches completed remote artifacts through the dispatcher."""

    def __init__(self, dispatcher: RemoteBuildDispatcher):
        self._dispatcher = dispatcher

    async def resolve(self, job_id: str) -> ResolvedArtifact:
        """
        Raises:
            InvalidIdentifierError: malformed job id
            IntegrityError: run succeeded but produced no artifact
            NotReadyError: job not completed yet (or failed)
            ArtifactDownloadError: the CI platform download failed
        """
        validate_job_id(job_id)
        job = await self._dispatcher.get_status(job_id)

        if job.integrity_error:
            raise IntegrityError(job.error_message or "artifact not found")
        if job.status != JobStatus.COMPLETED or not job.raw_artifact_locator:
            raise NotReadyError(f"Artifact not ready (status: {job.status.value})")

        content, content_type = await self._dispatcher.download_artifact(job.raw_artifact_locator)

        if content_type and content_type.split(";")[0].strip().lower() not in ARTIFACT_CONTENT_TYPES:
            logger.warning(f"artifact_unexpected_content_type job_id={job_id} content_type={content_type}")

        artifact = ResolvedArtifact(
            content=content,
            filename=artifact_filename(job_id, job.agent_name),
        )
        metrics.inc("artifact_download_total")
        logger.info(f"artifact_resolved job_id={job_id} size={artifact.size}")
        return artifact


def resolve_local_plugin(filename: str, plugins_dir: Path) -> LocalPlugin:
    """
    Locate a locally built plugin.

    Raises:
        InvalidIdentifierError: bad name or extension (checked first)
        NotFoundError: no such plugin
    """
    validate_plugin_filename(filename)

    base = Path(plugins_dir).resolve()
    path = (base / filename).resolve()
    if path.parent != base:
        raise InvalidIdentifierError("Invalid filename")
    if not path.is_file():
        raise NotFoundError("Plugin file not found")

    return LocalPlugin(path=path, content_type=PLUGIN_CONTENT_TYPES[path.suffix.lower()])
