"""
CompilationJob - observed state of one remotely dispatched build.

There is no local job table: the CI platform is the system of record and a
job is rebuilt from it on every status query. Logs only job_id and status,
never the raw artifact locator.
"""
import re
import secrets
import string
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, List

from agentify.schemas.compile import BuildTarget, JobStatus, Platform

JOB_ID_PATTERN = re.compile(r"^compile-(\d+)-[a-z0-9]+$")
_JOB_ID_ALPHABET = string.ascii_lowercase + string.digits
JOB_ID_SUFFIX_LENGTH = 9


def generate_job_id(now_ms: Optional[int] = None) -> str:
    """
    Generate a job id safe to embed in CI run names and commit messages.

    Format: compile-<epoch ms>-<9 base36 chars>
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    suffix = "".join(secrets.choice(_JOB_ID_ALPHABET) for _ in range(JOB_ID_SUFFIX_LENGTH))
    return f"compile-{now_ms}-{suffix}"


def job_created_at(job_id: str) -> Optional[datetime]:
    """Recover the creation time embedded in a generated job id."""
    match = JOB_ID_PATTERN.match(job_id)
    if not match:
        return None
    return datetime.fromtimestamp(int(match.group(1)) / 1000, tz=timezone.utc)


@dataclass
class CompilationJob:
    """Tracked state of one dispatched remote build."""
    job_id: str
    status: JobStatus = JobStatus.PENDING
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    build_target: Optional[BuildTarget] = None
    platform: Optional[Platform] = None
    download_url: Optional[str] = None
    # Internal pointer for fetching bytes; never sent to clients
    raw_artifact_locator: Optional[str] = None
    error_message: Optional[str] = None
    logs: List[str] = field(default_factory=list)
    agent_name: Optional[str] = None
    run_id: Optional[int] = None
    run_url: Optional[str] = None
    integrity_error: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def log(self, line: str) -> None:
        """Append a log line (logs are append-only)."""
        self.logs.append(line)

    def mark_completed(self, download_url: str, raw_artifact_locator: str) -> None:
        self.status = JobStatus.COMPLETED
        self.download_url = download_url
        self.raw_artifact_locator = raw_artifact_locator
        self.error_message = None

    def mark_failed(self, error: str, integrity_error: bool = False) -> None:
        self.status = JobStatus.FAILED
        self.error_message = error
        self.download_url = None
        self.raw_artifact_locator = None
        self.integrity_error = integrity_error

    def to_public_dict(self) -> dict[str, Any]:
        """Client-facing view (omits the raw artifact locator)."""
        return {
            "jobId": self.job_id,
            "status": self.status.value,
            "createdAt": self.created_at.isoformat(),
            "buildTarget": self.build_target.value if self.build_target else None,
            "platform": self.platform.value if self.platform else None,
            "downloadUrl": self.download_url,
            "error": self.error_message,
            "logs": list(self.logs),
            "agentName": self.agent_name,
            "runUrl": self.run_url,
        }


def timeout_job(job_id: str, message: str = "Compilation timeout", logs: Optional[List[str]] = None) -> CompilationJob:
    """Synthetic terminal job returned when a polling budget runs out."""
    job = CompilationJob(job_id=job_id, logs=list(logs or []))
    created = job_created_at(job_id)
    if created:
        job.created_at = created
    job.mark_failed(message)
    return job
