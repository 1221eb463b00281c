"""Tests for execution host provisioning."""

import subprocess

import pytest

from docsci import hosts
from docsci.dsl import job, sh
from docsci.errors import TOOL_HINTS, ProvisioningError
from docsci.hosts import DockerHost, Host, create_host, provision, shell_command


def test_shell_command_bash_is_fail_fast():
    assert shell_command("bash", "yarn build") == [
        "bash", "--noprofile", "--norc", "-eo", "pipefail", "-c", "yarn build",
    ]
    assert shell_command("sh", "true") == ["sh", "-e", "-c", "true"]
    assert shell_command("zsh", "true") == ["zsh", "-c", "true"]


def test_local_host_scrubs_environment(settings, monkeypatch):
    monkeypatch.setenv("SECRET_TOKEN", "hunter2")
    monkeypatch.setenv("LC_TIME", "C")
    with provision(job("j", sh("x", "true"), env={"A": 1}), settings) as host:
        assert isinstance(host, Host)
        assert "SECRET_TOKEN" not in host.env
        assert host.env["LC_TIME"] == "C"
        assert host.env["CI"] == "true"
        assert host.env["A"] == "1"
        assert host.env["DOCSCI_WORKSPACE"] == str(host.workspace)
        workspace = host.workspace
        assert workspace.is_dir()
        assert list(workspace.iterdir()) == []
    assert not workspace.exists()


def test_working_directory_cannot_escape(settings):
    with provision(job("j", sh("x", "true")), settings) as host:
        with pytest.raises(ValueError):
            host.resolve_cwd("../..")


def test_unknown_image(settings):
    with pytest.raises(ProvisioningError) as info:
        create_host(job("j", sh("x", "true"), runs_on="macos-14"), settings)
    assert info.value.kind == "provisioning"
    assert "macos-14" in info.value.message


def test_docker_unavailable(settings, monkeypatch):
    def no_docker(*args, **kwargs):
        raise FileNotFoundError("docker")

    monkeypatch.setattr(hosts.subprocess, "run", no_docker)
    with pytest.raises(ProvisioningError) as info:
        create_host(job("j", sh("x", "true"), runs_on="docker://node:18"), settings)
    assert info.value.hint == TOOL_HINTS["docker"]


def test_docker_host_runs_steps_in_container(settings, monkeypatch):
    monkeypatch.setattr(hosts, "_check_docker_available", lambda job: None)
    seen = {}

    def fake_run(argv, *, cwd, env, timeout):
        seen["argv"] = argv
        return subprocess.CompletedProcess(argv, 0, "ok", "")

    monkeypatch.setattr(hosts, "_run_captured", fake_run)

    with provision(job("j", sh("x", "true"), runs_on="docker://node:18"), settings) as host:
        assert isinstance(host, DockerHost)
        assert host.image == "node:18"
        (host.workspace / "docs").mkdir()
        host.prepend_path("/opt/node/bin")
        host.run("yarn build", cwd="./docs", timeout=60)

    argv = seen["argv"]
    assert argv[:3] == ["docker", "run", "--rm"]
    assert argv[argv.index("-w") + 1] == "/workspace/docs"
    assert "node:18" in argv
    assert argv[-1] == 'export PATH="/opt/node/bin:$PATH"\nyarn build'
    assert not any(a.startswith("PATH=") for a in argv)
