"""
Compiler configuration from environment variables.
All settings are optional with safe defaults.

Loaded once at the edge (app startup, CLI) and injected into components;
nothing below this module reads os.environ.
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

PROJECT_ROOT = Path(__file__).parent.parent.parent
DATA_DIR = PROJECT_ROOT / "data"

DEFAULT_GITHUB_API_URL = "https://api.github.com"
DEFAULT_GITHUB_OWNER = "guiperry"
DEFAULT_GITHUB_REPO = "next-agentify"
DEFAULT_WORKFLOW_ID = "compile-plugin.yml"


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class CompilerConfig:
    """Compiler configuration (immutable)."""
    github_token: Optional[str] = None  # Never logged
    github_owner: str = DEFAULT_GITHUB_OWNER
    github_repo: str = DEFAULT_GITHUB_REPO
    workflow_id: str = DEFAULT_WORKFLOW_ID
    workflow_ref: str = "main"
    github_api_url: str = DEFAULT_GITHUB_API_URL
    runs_page_size: int = 50
    http_timeout_s: int = 30
    # Local toolchain builds are off by default: the service usually runs
    # somewhere without Go installed.
    local_build_enabled: bool = False
    local_build_timeout_s: int = 300
    plugins_dir: Path = DATA_DIR / "plugins"
    workspaces_dir: Path = DATA_DIR / "workspaces"
    agent_namespace: str = "agentify"
    allow_synthesized_name: bool = True
    poll_interval_s: float = 5.0
    wait_timeout_ms: int = 300_000
    client_max_attempts: int = 60
    sse_heartbeat_s: float = 30.0
    database_url: str = f"sqlite:///{DATA_DIR / 'agentify.db'}"

    @property
    def remote_enabled(self) -> bool:
        """Check if GitHub Actions dispatch is configured."""
        return bool(self.github_token and self.github_owner and self.github_repo)

    @property
    def actions_url(self) -> str:
        """Human-facing Actions page for the build repository."""
        return f"https://github.com/{self.github_owner}/{self.github_repo}/actions"


def get_compiler_config() -> CompilerConfig:
    """Load compiler configuration from environment."""
    return CompilerConfig(
        github_token=os.getenv("GITHUB_TOKEN") or None,
        github_owner=os.getenv("GITHUB_OWNER") or DEFAULT_GITHUB_OWNER,
        github_repo=os.getenv("GITHUB_REPO") or DEFAULT_GITHUB_REPO,
        workflow_id=os.getenv("GITHUB_WORKFLOW_ID") or DEFAULT_WORKFLOW_ID,
        workflow_ref=os.getenv("GITHUB_REF_NAME") or "main",
        github_api_url=(os.getenv("GITHUB_API_URL") or DEFAULT_GITHUB_API_URL).rstrip("/"),
        runs_page_size=int(os.getenv("GITHUB_RUNS_PAGE_SIZE", "50")),
        http_timeout_s=int(os.getenv("GITHUB_HTTP_TIMEOUT_S", "30")),
        local_build_enabled=_env_bool("LOCAL_BUILD_ENABLED", False),
        local_build_timeout_s=int(os.getenv("LOCAL_BUILD_TIMEOUT_S", "300")),
        plugins_dir=Path(os.getenv("PLUGINS_DIR") or DATA_DIR / "plugins"),
        workspaces_dir=Path(os.getenv("WORKSPACES_DIR") or DATA_DIR / "workspaces"),
        agent_namespace=os.getenv("AGENT_NAMESPACE") or "agentify",
        allow_synthesized_name=_env_bool("ALLOW_SYNTHESIZED_NAME", True),
        poll_interval_s=float(os.getenv("COMPILE_POLL_INTERVAL_S", "5")),
        wait_timeout_ms=int(os.getenv("COMPILE_WAIT_TIMEOUT_MS", "300000")),
        client_max_attempts=int(os.getenv("COMPILE_CLIENT_MAX_ATTEMPTS", "60")),
        sse_heartbeat_s=float(os.getenv("SSE_HEARTBEAT_S", "30")),
        database_url=os.getenv("DATABASE_URL") or f"sqlite:///{DATA_DIR / 'agentify.db'}",
    )
