"""
Pytest configuration and fixtures.
"""
import json
import os
import re
import sys
import tempfile

# Configure the environment before importing the app: the database engine
# is created at import time and no test may reach the real GitHub API.
_TEST_DATA_DIR = tempfile.mkdtemp(prefix="agentify-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_DATA_DIR}/agentify.db"
os.environ["PLUGINS_DIR"] = os.path.join(_TEST_DATA_DIR, "plugins")
os.environ["WORKSPACES_DIR"] = os.path.join(_TEST_DATA_DIR, "workspaces")
os.environ["LOCAL_BUILD_ENABLED"] = "false"
os.environ.pop("GITHUB_TOKEN", None)

import httpx
import pytest
from fastapi.testclient import TestClient

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from main import app
from agentify.core.config import CompilerConfig
from agentify.core.dispatcher import RemoteBuildDispatcher
from agentify.core.progress import ProgressNotifier

API = "https://api.github.com"
REPO_PATH = "/repos/guiperry/next-agentify"


class FakeGitHub:
    """
    In-memory stand-in for the GitHub Actions REST API.

    Serve it to httpx through `transport`; every request is recorded.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.dispatches: list[dict] = []
        self.dispatch_status = 204
        self.runs: list[dict] = []
        self.runs_status = 200
        self.artifacts: dict[int, list[dict]] = {}
        self.artifacts_status = 200
        self.jobs: dict[int, list[dict]] = {}
        self.archives: dict[str, tuple[bytes, str]] = {}
        self.archive_status = 200

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.method == "POST" and path.endswith("/dispatches"):
            self.dispatches.append(json.loads(request.content))
            return httpx.Response(self.dispatch_status)

        if re.search(r"/actions/workflows/[^/]+/runs$", path):
            if self.runs_status != 200:
                return httpx.Response(self.runs_status, json={"message": "error"})
            return httpx.Response(200, json={"total_count": len(self.runs), "workflow_runs": self.runs})

        match = re.search(r"/actions/runs/(\d+)/artifacts$", path)
        if match:
            if self.artifacts_status != 200:
                return httpx.Response(self.artifacts_status, json={"message": "error"})
            artifacts = self.artifacts.get(int(match.group(1)), [])
            return httpx.Response(200, json={"total_count": len(artifacts), "artifacts": artifacts})

        match = re.search(r"/actions/runs/(\d+)/jobs$", path)
        if match:
            jobs = self.jobs.get(int(match.group(1)), [])
            return httpx.Response(200, json={"total_count": len(jobs), "jobs": jobs})

        if path in self.archives:
            if self.archive_status != 200:
                return httpx.Response(self.archive_status)
            content, content_type = self.archives[path]
            return httpx.Response(200, content=content, headers={"content-type": content_type})

        return httpx.Response(404, json={"message": "Not Found"})

    def add_run(
        self,
        job_id: str,
        agent: str = "Demo Bot",
        status: str = "queued",
        conclusion=None,
        run_id: int = 101,
    ) -> dict:
        run = {
            "id": run_id,
            "name": f"Compile {agent} - Job {job_id}",
            "display_title": f"Compile {agent} - Job {job_id}",
            "status": status,
            "conclusion": conclusion,
            "html_url": f"https://github.com/guiperry/next-agentify/actions/runs/{run_id}",
            "head_commit": {"message": "Update workflow"},
        }
        self.runs.insert(0, run)
        return run

    def add_artifact(
        self,
        run_id: int,
        job_id: str,
        content: bytes = b"PK\x03\x04plugin-bytes",
        content_type: str = "application/zip",
        artifact_id: int = 555,
    ) -> dict:
        path = f"{REPO_PATH}/actions/artifacts/{artifact_id}/zip"
        artifact = {
            "id": artifact_id,
            "name": f"agent-plugin-{job_id}",
            "size_in_bytes": len(content),
            "expired": False,
            "archive_download_url": f"{API}{path}",
        }
        self.artifacts.setdefault(run_id, []).append(artifact)
        self.archives[path] = (content, content_type)
        return artifact


@pytest.fixture
def github():
    """Fresh fake GitHub API."""
    return FakeGitHub()


@pytest.fixture
def compiler_config(tmp_path):
    """Config with a token, isolated directories and a fast poll interval."""
    return CompilerConfig(
        github_token="test-token",
        plugins_dir=tmp_path / "plugins",
        workspaces_dir=tmp_path / "workspaces",
        poll_interval_s=0.01,
        wait_timeout_ms=1000,
    )


@pytest.fixture
def dispatcher(compiler_config, github):
    """Dispatcher wired to the fake GitHub API."""
    return RemoteBuildDispatcher(compiler_config, transport=github.transport)


@pytest.fixture
def notifier():
    return ProgressNotifier()


@pytest.fixture
def client():
    """Create a test client; dependency overrides are reset afterwards."""
    yield TestClient(app)
    app.dependency_overrides.clear()
