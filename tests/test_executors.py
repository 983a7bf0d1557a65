from pathlib import Path
import subprocess

import pytest

from stagehand_automation import executors as executors_mod
from stagehand_automation.executors import LocalExecutor, SshExecutor
from stagehand_automation.types import HostConfig


class FakeRun:
    def __init__(self, returncode: int = 0, stdout: str = "", stderr: str = ""):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.calls: list[dict] = []

    def __call__(self, argv, **kwargs):
        self.calls.append({"argv": argv, **kwargs})
        return subprocess.CompletedProcess(argv, self.returncode, self.stdout, self.stderr)


def ssh_host(user: str = "deploy") -> HostConfig:
    return HostConfig(
        name="203.0.113.10",
        address="203.0.113.10",
        user=user,
        port=2222,
        identity_file=Path("/keys/id_rsa"),
        connect_timeout=5,
    )


def test_ssh_command_line(monkeypatch):
    fake = FakeRun(stdout="ok\n")
    monkeypatch.setattr(executors_mod.subprocess, "run", fake)
    executor = SshExecutor(ssh_host())

    result = executor.run(["systemctl", "is-active", "docker"], mutable=False)

    argv = fake.calls[0]["argv"]
    assert argv[0] == "ssh"
    assert argv[argv.index("-i") + 1] == "/keys/id_rsa"
    assert argv[argv.index("-p") + 1] == "2222"
    assert "StrictHostKeyChecking=accept-new" in argv
    assert "BatchMode=yes" in argv
    assert "ConnectTimeout=5" in argv
    assert argv[-3:] == ["deploy@203.0.113.10", "--", "sudo -n systemctl is-active docker"]
    assert result.stdout == "ok\n"


def test_root_login_skips_sudo_and_env_is_passed_inline(monkeypatch):
    fake = FakeRun()
    monkeypatch.setattr(executors_mod.subprocess, "run", fake)
    executor = SshExecutor(ssh_host("root"))

    executor.run(["apt-get", "update"], env={"DEBIAN_FRONTEND": "noninteractive"})

    assert fake.calls[0]["argv"][-1] == "env DEBIAN_FRONTEND=noninteractive apt-get update"
    assert fake.calls[0]["env"] is None


def test_ssh_transport_failure_is_a_connection_error(monkeypatch):
    fake = FakeRun(returncode=255, stderr="ssh: connect to host 203.0.113.10 port 2222: Connection refused\n")
    monkeypatch.setattr(executors_mod.subprocess, "run", fake)
    executor = SshExecutor(ssh_host())

    with pytest.raises(ConnectionError) as excinfo:
        executor.run(["test", "-e", "/usr/local/backups"], check=False, mutable=False)
    assert "Connection refused" in str(excinfo.value)


def test_nonzero_exit_raises_when_checked(monkeypatch):
    monkeypatch.setattr(executors_mod.subprocess, "run", FakeRun(returncode=1, stderr="nope"))
    executor = SshExecutor(ssh_host())

    with pytest.raises(subprocess.CalledProcessError):
        executor.run(["false"])


def test_dry_run_skips_mutating_commands(monkeypatch):
    fake = FakeRun()
    monkeypatch.setattr(executors_mod.subprocess, "run", fake)
    executor = SshExecutor(ssh_host(), dry_run=True)

    result = executor.run(["ufw", "--force", "enable"])

    assert fake.calls == []
    assert result.stderr == "skipped (dry-run)"


def test_append_line_passes_fact_as_argument(monkeypatch):
    fake = FakeRun()
    monkeypatch.setattr(executors_mod.subprocess, "run", fake)
    executor = SshExecutor(ssh_host("root"))

    executor.append_line(Path("/usr/local/backups/firewall.after"), "80/tcp")

    remote = fake.calls[0]["argv"][-1]
    assert remote.startswith("sh -c ")
    assert remote.endswith(" sh 80/tcp /usr/local/backups/firewall.after")


def test_reachable_uses_plain_login(monkeypatch):
    fake = FakeRun()
    monkeypatch.setattr(executors_mod.subprocess, "run", fake)

    assert SshExecutor(ssh_host()).reachable() is True
    assert fake.calls[0]["argv"][-2:] == ["deploy@203.0.113.10", "true"]


def test_ssh_requires_address():
    with pytest.raises(ValueError):
        SshExecutor(HostConfig("nowhere"))


def test_local_file_primitives(tmp_path: Path):
    executor = LocalExecutor(HostConfig("local"))
    target = tmp_path / "facts"

    assert executor.read_file(target) is None
    executor.append_line(target, "a:absent")
    executor.append_line(target, "b:present")
    assert executor.read_file(target) == "a:absent\nb:present\n"
    assert executor.remove_path(target) is True
    assert executor.remove_path(target) is False
