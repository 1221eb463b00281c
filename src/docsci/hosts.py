# hosts.py
# Environment provisioning: one disposable execution host per job run.
from __future__ import annotations

import os
import shutil
import signal
import subprocess
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from .config import Settings
from .errors import TOOL_HINTS, ProvisioningError
from .model import Job


LOCAL_IMAGES = ("ubuntu-latest", "ubuntu-22.04", "ubuntu-24.04", "local")
DOCKER_PREFIX = "docker://"
CONTAINER_WORKDIR = "/workspace"

# variables carried over from the invoking process; everything else is dropped
PASSTHROUGH_ENV = (
    "PATH",
    "HOME",
    "USER",
    "LANG",
    "LC_ALL",
    "TMPDIR",
    "SHELL",
    "NVM_DIR",
    "HTTP_PROXY",
    "HTTPS_PROXY",
    "NO_PROXY",
)

# what `timeout(1)` reports, used when a step runs past its limit
TIMEOUT_EXIT_CODE = 124


def shell_command(shell: str, cmd: str) -> List[str]:
    """argv for running `cmd` through the job's shell, fail-fast like hosted runners."""
    if shell == "bash":
        return ["bash", "--noprofile", "--norc", "-eo", "pipefail", "-c", cmd]
    if shell == "sh":
        return ["sh", "-e", "-c", cmd]
    return [shell, "-c", cmd]


def base_env(job: Job, workspace: Path) -> Dict[str, str]:
    env = {k: v for k, v in os.environ.items() if k in PASSTHROUGH_ENV or k.startswith("LC_")}
    env.update(
        {
            "CI": "true",
            "DOCSCI": "true",
            "DOCSCI_JOB": job.name,
            "DOCSCI_WORKSPACE": str(workspace),
        }
    )
    env.update({k: str(v) for k, v in (job.env or {}).items()})
    return env


class Host:
    """A provisioned execution host with its own workspace and environment."""

    kind = "local"

    def __init__(self, job: Job, workspace: Path):
        self.job = job
        self.workspace = workspace
        self.env: Dict[str, str] = base_env(job, workspace)

    @property
    def image(self) -> str:
        return self.job.runs_on

    def prepend_path(self, directory: str | Path) -> None:
        """Make `directory` win PATH lookups for all later steps."""
        current = self.env.get("PATH", "")
        self.env["PATH"] = f"{directory}{os.pathsep}{current}" if current else str(directory)

    def resolve_cwd(self, cwd: str | None) -> Path:
        path = (self.workspace / (cwd or ".")).resolve()
        if not path.is_relative_to(self.workspace.resolve()):
            raise ValueError(f"working directory escapes the workspace: {cwd}")
        return path

    def run(
        self,
        cmd: str,
        *,
        cwd: str | None = None,
        shell: str = "bash",
        timeout: Optional[float] = None,
    ) -> subprocess.CompletedProcess:
        """Run `cmd` and capture its output. Never raises on a non-zero exit."""
        path = self.resolve_cwd(cwd)
        if not path.exists():
            raise FileNotFoundError(f"[{self.job.name}] working directory not found: {path}")
        return _run_captured(shell_command(shell, cmd), cwd=str(path), env=self.env, timeout=timeout)

    def teardown(self, keep: bool = False) -> None:
        if not keep:
            shutil.rmtree(self.workspace, ignore_errors=True)


class DockerHost(Host):
    """Steps run in throw-away containers of `image` with the workspace mounted."""

    kind = "docker"

    def __init__(self, job: Job, workspace: Path, image: str):
        super().__init__(job, workspace)
        self.container_image = image
        # PATH inside the container belongs to the image, not to us
        self.env.pop("PATH", None)
        self.env.pop("HOME", None)
        self.env["DOCSCI_WORKSPACE"] = CONTAINER_WORKDIR

    @property
    def image(self) -> str:
        return self.container_image

    def prepend_path(self, directory: str | Path) -> None:
        self.env["PATH"] = f"{directory}:$PATH"

    def run(
        self,
        cmd: str,
        *,
        cwd: str | None = None,
        shell: str = "bash",
        timeout: Optional[float] = None,
    ) -> subprocess.CompletedProcess:
        path = self.resolve_cwd(cwd)
        if not path.exists():
            raise FileNotFoundError(f"[{self.job.name}] working directory not found: {path}")

        rel = path.relative_to(self.workspace.resolve()).as_posix()
        container_cwd = CONTAINER_WORKDIR if rel == "." else f"{CONTAINER_WORKDIR}/{rel}"

        argv = ["docker", "run", "--rm"]
        argv += ["-v", f"{self.workspace.resolve()}:{CONTAINER_WORKDIR}"]
        argv += ["-w", container_cwd]

        script = cmd
        path_override = self.env.get("PATH")
        for key, value in self.env.items():
            if key == "PATH":
                continue
            argv += ["-e", f"{key}={value}"]
        if path_override:
            # expand $PATH inside the container
            script = f'export PATH="{path_override}"\n{cmd}'

        argv.append(self.container_image)
        argv += shell_command(shell, script)
        return _run_captured(argv, cwd=None, env=None, timeout=timeout)


def _run_captured(
    argv: List[str],
    *,
    cwd: Optional[str],
    env: Optional[Dict[str, str]],
    timeout: Optional[float],
) -> subprocess.CompletedProcess:
    """
    Run `argv` in its own process group and capture its output.

    On timeout the whole group is killed, so nothing the step started
    keeps running past the timeout.
    """
    try:
        proc = subprocess.Popen(
            argv,
            cwd=cwd,
            env=env,
            text=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            start_new_session=True,
        )
    except FileNotFoundError as e:
        # the shell itself is missing; report it like a shell would
        return subprocess.CompletedProcess(argv, 127, "", f"{e}\nHint: {TOOL_HINTS.get(argv[0], '')}")

    try:
        stdout, stderr = proc.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        _kill_group(proc)
        stdout, stderr = proc.communicate()
        stderr = (stderr or "") + f"\nstep timed out after {timeout:.0f}s"
        return subprocess.CompletedProcess(argv, TIMEOUT_EXIT_CODE, stdout or "", stderr)
    except BaseException:
        _kill_group(proc)
        proc.wait()
        raise
    return subprocess.CompletedProcess(argv, proc.returncode, stdout, stderr)


def _kill_group(proc: subprocess.Popen) -> None:
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass


def _check_docker_available(job: Job) -> None:
    try:
        subprocess.run(
            ["docker", "version", "--format", "{{.Server.Version}}"],
            capture_output=True,
            check=True,
        )
    except (subprocess.CalledProcessError, FileNotFoundError):
        raise ProvisioningError(
            job.name,
            "Docker is not available",
            hint=TOOL_HINTS["docker"],
        )


def _new_workspace(job: Job, settings: Settings) -> Path:
    root = Path(settings.work_dir)
    try:
        root.mkdir(parents=True, exist_ok=True)
        return Path(tempfile.mkdtemp(prefix=f"{job.name}-", dir=root)).resolve()
    except OSError as e:
        raise ProvisioningError(job.name, f"cannot create workspace under {root}: {e}")


def create_host(job: Job, settings: Settings) -> Host:
    image = job.runs_on
    if image.startswith(DOCKER_PREFIX):
        container_image = image[len(DOCKER_PREFIX):]
        if not container_image:
            raise ProvisioningError(job.name, "empty docker image in runs-on")
        _check_docker_available(job)
        return DockerHost(job, _new_workspace(job, settings), container_image)
    if image in LOCAL_IMAGES:
        return Host(job, _new_workspace(job, settings))
    raise ProvisioningError(
        job.name,
        f"no host available for runs-on {image!r}",
        supported=", ".join(LOCAL_IMAGES) + f", {DOCKER_PREFIX}<image>",
    )


@contextmanager
def provision(job: Job, settings: Settings) -> Iterator[Host]:
    """Acquire a clean host for `job` and tear it down afterwards."""
    host = create_host(job, settings)
    try:
        yield host
    finally:
        host.teardown(keep=settings.keep_workspace)
