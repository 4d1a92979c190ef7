"""
Local Build Adapter - compile an agent with a toolchain on this machine.

Fails fast and deterministically where no toolchain exists (the usual case
for this service); that failure is what triggers the remote fallback, so it
must never block on a missing tool. Toolchain presence is checked with
shutil.which before anything is spawned.

Security:
- No shell=True anywhere
- Only subprocess.run([...]) with timeouts
- Sanitized environment
- Isolated workspace per build, removed afterwards
"""
import json
import logging
import os
import shutil
import subprocess
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from agentify.core.config import CompilerConfig
from agentify.core.errors import CompileError, ToolchainUnavailableError
from agentify.core.normalizer import BuildSpec
from agentify.schemas.compile import BuildTarget, Platform

logger = logging.getLogger(__name__)

MAX_LOG_CHARS = 64 * 1024

PLUGIN_EXTENSIONS = {
    Platform.LINUX: ".so",
    Platform.WINDOWS: ".dll",
    Platform.DARWIN: ".dylib",
}

GO_MOD = "module agentify/agent\n\ngo 1.21\n"

# Entry point for the generated agent; the BuildSpec is embedded as agent.json
GO_MAIN = """package main

import (
	_ "embed"
	"encoding/json"
	"fmt"
)

//go:embed agent.json
var agentConfig []byte

// AgentConfig returns the embedded build specification.
func AgentConfig() []byte {
	return agentConfig
}

func main() {
	var cfg map[string]interface{}
	if err := json.Unmarshal(agentConfig, &cfg); err != nil {
		panic(err)
	}
	fmt.Println(cfg["agent_name"])
}
"""


@dataclass
class CommandResult:
    """Result of a subprocess command."""
    command: list[str]
    exit_code: int
    stdout: str
    stderr: str
    duration_ms: int
    timed_out: bool = False


@dataclass
class LocalBuildResult:
    """Output of a successful local build."""
    artifact_path: Path
    logs: list[str] = field(default_factory=list)

    @property
    def filename(self) -> str:
        return self.artifact_path.name


def _sanitize_env(workspace: Path, toolchain_dir: str, extra: Optional[dict] = None) -> dict:
    """Create a sanitized environment for subprocess execution."""
    safe_env = {
        "PATH": f"{toolchain_dir}:/usr/local/bin:/usr/bin:/bin",
        "HOME": str(workspace),
        "LANG": "C.UTF-8",
        "LC_ALL": "C.UTF-8",
        "GOCACHE": str(workspace / ".cache"),
        "GOPATH": str(workspace / ".gopath"),
        "GOFLAGS": "-mod=mod",
        "GOTOOLCHAIN": "local",
    }
    if extra:
        safe_env.update(extra)
    return safe_env


def run_command(
    cmd: list[str],
    cwd: Path,
    env: dict,
    timeout: int,
) -> CommandResult:
    """
    Execute a command safely with no shell.

    Args:
        cmd: Command as list of strings (NO shell=True!)
        cwd: Working directory
        env: Complete environment for the child
        timeout: Timeout in seconds
    """
    if not isinstance(cmd, list) or not cmd:
        raise CompileError("Command must be a non-empty list")

    start = time.monotonic()
    timed_out = False
    try:
        result = subprocess.run(
            cmd,
            cwd=str(cwd),
            env=env,
            capture_output=True,
            timeout=timeout,
            text=True,
        )
        stdout = result.stdout or ""
        stderr = result.stderr or ""
        exit_code = result.returncode
    except subprocess.TimeoutExpired as e:
        stdout = e.stdout.decode("utf-8", errors="replace") if isinstance(e.stdout, bytes) else (e.stdout or "")
        stderr = e.stderr.decode("utf-8", errors="replace") if isinstance(e.stderr, bytes) else (e.stderr or "")
        exit_code = -1
        timed_out = True
        logger.warning(f"command_timeout cmd={cmd[0]} timeout={timeout}")
    except (OSError, subprocess.SubprocessError) as e:
        stdout = ""
        stderr = str(e)
        exit_code = -1

    if len(stdout) > MAX_LOG_CHARS:
        stdout = stdout[:MAX_LOG_CHARS] + f"\n... (truncated, {len(stdout)} total chars)"
    if len(stderr) > MAX_LOG_CHARS:
        stderr = stderr[:MAX_LOG_CHARS] + f"\n... (truncated, {len(stderr)} total chars)"

    return CommandResult(
        command=cmd,
        exit_code=exit_code,
        stdout=stdout,
        stderr=stderr,
        duration_ms=int((time.monotonic() - start) * 1000),
        timed_out=timed_out,
    )


class WorkspaceManager:
    """Manages isolated workspaces for local builds."""

    def __init__(self, base_dir: Path):
        self._base_dir = Path(base_dir)

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def create_workspace(self, build_id: str) -> Path:
        """Create an isolated workspace directory for a build."""
        workspace = self._base_dir / build_id
        workspace.mkdir(parents=True, exist_ok=True)
        logger.info(f"workspace_created build_id={build_id}")
        return workspace

    def cleanup_workspace(self, build_id: str) -> bool:
        """Remove workspace for a build."""
        workspace = self._base_dir / build_id
        if workspace.exists():
            shutil.rmtree(workspace, ignore_errors=True)
            logger.info(f"workspace_cleaned build_id={build_id}")
            return True
        return False


class LocalBuildAdapter:
    """Builds agent artifacts with a local Go (or TinyGo) toolchain."""

    def __init__(
        self,
        config: CompilerConfig,
        which: Callable[[str], Optional[str]] = shutil.which,
        runner: Callable[..., CommandResult] = run_command,
    ):
        self._config = config
        self._which = which
        self._runner = runner
        self._workspaces = WorkspaceManager(config.workspaces_dir)
        self._logs: list[str] = []

    def _log(self, line: str) -> None:
        self._logs.append(line)

    def get_compilation_logs(self) -> list[str]:
        """Logs of the most recent build attempt."""
        return list(self._logs)

    def check_toolchain(self) -> dict[str, bool]:
        """Which build tools are on PATH (no process is spawned)."""
        return {tool: self._which(tool) is not None for tool in ("go", "tinygo", "gcc")}

    def _build_command(self, spec: BuildSpec, output: Path) -> tuple[list[str], dict, str]:
        """Pick the compiler, arguments and target env for a spec."""
        if spec.build_target == BuildTarget.WASM:
            tinygo = self._which("tinygo")
            if tinygo:
                return [tinygo, "build", "-target=wasi", "-o", str(output), "."], {}, tinygo
            go = self._which("go")
            return [go, "build", "-o", str(output), "."], {"GOOS": "wasip1", "GOARCH": "wasm"}, go

        go = self._which("go")
        return (
            [go, "build", "-buildmode=plugin", "-o", str(output), "."],
            {"GOOS": spec.platform.value, "CGO_ENABLED": "1"},
            go,
        )

    def attempt_local_build(self, spec: BuildSpec) -> LocalBuildResult:
        """
        Build `spec` locally.

        Raises:
            ToolchainUnavailableError: local builds disabled or no toolchain
            CompileError: the toolchain failed or the workspace was unwritable
        """
        self._logs = []

        if not self._config.local_build_enabled:
            self._log("Local compilation disabled in this environment")
            raise ToolchainUnavailableError(
                "Local compilation not available in this environment"
            )

        toolchain = self.check_toolchain()
        if not toolchain["go"] and not (spec.build_target == BuildTarget.WASM and toolchain["tinygo"]):
            self._log(f"Toolchain check: {toolchain}")
            raise ToolchainUnavailableError("Go toolchain not found on PATH")

        build_id = f"build-{int(time.time() * 1000)}"
        if spec.build_target == BuildTarget.WASM:
            extension = ".wasm"
        else:
            extension = PLUGIN_EXTENSIONS[spec.platform]
        output_name = f"{spec.slug}_{build_id}{extension}"

        try:
            workspace = self._workspaces.create_workspace(build_id)
            (workspace / "go.mod").write_text(GO_MOD)
            (workspace / "main.go").write_text(GO_MAIN)
            (workspace / "agent.json").write_text(json.dumps(spec.to_dict(), indent=2))

            output = workspace / output_name
            cmd, target_env, tool_path = self._build_command(spec, output)
            env = _sanitize_env(workspace, os.path.dirname(tool_path), target_env)

            self._log(f"[{datetime.now(timezone.utc).isoformat()}] {' '.join(cmd[:3])} ...")
            logger.info(f"local_build_start build_id={build_id} target={spec.build_target.value}")
            result = self._runner(cmd, cwd=workspace, env=env, timeout=self._config.local_build_timeout_s)

            if result.stdout:
                self._log(result.stdout)
            if result.stderr:
                self._log(result.stderr)

            if result.timed_out:
                raise CompileError(
                    f"Local build timed out after {self._config.local_build_timeout_s}s"
                )
            if result.exit_code != 0 or not output.exists():
                tail = result.stderr.strip().splitlines()[-1:] or [""]
                raise CompileError(f"Local build failed (exit {result.exit_code}): {tail[0]}")

            plugins_dir = Path(self._config.plugins_dir)
            plugins_dir.mkdir(parents=True, exist_ok=True)
            artifact_path = plugins_dir / output_name
            shutil.move(str(output), str(artifact_path))

            self._log(f"Built {output_name} in {result.duration_ms}ms")
            logger.info(f"local_build_done build_id={build_id} duration_ms={result.duration_ms}")
            return LocalBuildResult(artifact_path=artifact_path, logs=self.get_compilation_logs())
        except OSError as e:
            # Unwritable or full disk: a local failure like any other
            self._log(f"Filesystem error: {e}")
            logger.warning(f"local_build_io_error build_id={build_id} error_type={type(e).__name__}")
            raise CompileError(f"Local build failed: {type(e).__name__}: {e.strerror or e}")
        finally:
            self._workspaces.cleanup_workspace(build_id)
