from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence
import logging
import os
import shlex
import shutil
import stat
import subprocess

from .types import HostConfig

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    command: list[str]
    stdout: str
    stderr: str
    returncode: int


class Executor:
    """Base executor abstraction used by mutations and the marker store."""

    def __init__(self, host: HostConfig, *, dry_run: bool = False):
        self.host = host
        self.dry_run = dry_run

    def run(
        self,
        command: Sequence[str],
        *,
        check: bool = True,
        mutable: bool = True,
        env: Optional[dict[str, str]] = None,
        timeout: Optional[float] = None,
        input: Optional[str] = None,
    ) -> CommandResult:
        """Run ``command`` and optionally skip it during dry-runs."""

        cmd_list = [str(part) for part in command]
        if self.dry_run and mutable:
            return CommandResult(cmd_list, "", "skipped (dry-run)", 0)

        argv, exec_env = self._prepare(cmd_list, env=env)
        logger.debug("host=%s run=%s", self.host.name, shlex.join(cmd_list))
        proc = subprocess.run(
            argv,
            capture_output=True,
            text=True,
            check=False,
            env=exec_env,
            timeout=timeout,
            input=input,
        )
        self._check_transport(proc)
        if check and proc.returncode != 0:
            raise subprocess.CalledProcessError(
                proc.returncode,
                cmd_list,
                proc.stdout,
                proc.stderr,
            )
        return CommandResult(cmd_list, proc.stdout, proc.stderr, proc.returncode)

    def _prepare(
        self, command: list[str], *, env: Optional[dict[str, str]]
    ) -> tuple[list[str], Optional[dict[str, str]]]:
        exec_env = None
        if env:
            exec_env = os.environ.copy()
            exec_env.update(env)
        return command, exec_env

    def _check_transport(self, proc: subprocess.CompletedProcess) -> None:
        return None

    # File primitives -----------------------------------------------------
    def read_file(self, path: Path) -> Optional[str]:
        raise NotImplementedError

    def write_file(self, path: Path, *, content: str, mode: Optional[int]) -> tuple[bool, str]:
        raise NotImplementedError

    def append_line(self, path: Path, line: str) -> None:
        raise NotImplementedError

    def ensure_directory(
        self, path: Path, *, mode: Optional[int], owner: Optional[str] = None
    ) -> tuple[bool, str]:
        raise NotImplementedError

    def remove_path(self, path: Path) -> bool:
        raise NotImplementedError

    def exists(self, path: Path) -> bool:
        raise NotImplementedError

    def is_writable(self, path: Path) -> bool:
        raise NotImplementedError


class LocalExecutor(Executor):
    """Executor that acts directly on the local host."""

    def read_file(self, path: Path) -> Optional[str]:
        try:
            return path.read_text()
        except FileNotFoundError:
            return None

    def write_file(self, path: Path, *, content: str, mode: Optional[int]) -> tuple[bool, str]:
        current = self.read_file(path)
        changed = False
        reasons: list[str] = []

        if current != content:
            changed = True
            reasons.append("content")
            if not self.dry_run:
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_text(content)

        if mode is not None:
            existing_mode = self._file_mode(path)
            if existing_mode != mode:
                changed = True
                reasons.append(f"mode->{mode:04o}")
                if not self.dry_run:
                    # ``chmod`` fails if the file is absent, so guard it.
                    if path.exists():
                        os.chmod(path, mode)
        detail = ", ".join(reasons) if reasons else "noop"
        return changed, detail

    def append_line(self, path: Path, line: str) -> None:
        if self.dry_run:
            return
        with path.open("a") as handle:
            handle.write(f"{line}\n")

    def ensure_directory(
        self, path: Path, *, mode: Optional[int], owner: Optional[str] = None
    ) -> tuple[bool, str]:  # type: ignore[override]
        changed = False
        reasons: list[str] = []

        if not path.exists():
            changed = True
            reasons.append("created")
            if not self.dry_run:
                path.mkdir(parents=True, exist_ok=True)
        elif not path.is_dir():
            changed = True
            reasons.append("replaced-non-dir")
            if not self.dry_run:
                self.remove_path(path)
                path.mkdir(parents=True, exist_ok=True)

        if mode is not None:
            existing_mode = self._file_mode(path)
            if existing_mode != mode:
                changed = True
                reasons.append(f"mode->{mode:04o}")
                if not self.dry_run and path.exists():
                    os.chmod(path, mode)

        if owner and path.exists() and path.owner() != owner:
            changed = True
            reasons.append(f"owner->{owner}")
            if not self.dry_run:
                shutil.chown(path, user=owner, group=owner)
        detail = ", ".join(reasons) if reasons else "noop"
        return changed, detail

    def remove_path(self, path: Path) -> bool:
        if not path.exists():
            return False
        if self.dry_run:
            return True
        if path.is_dir():
            shutil.rmtree(path)
        else:
            path.unlink()
        return True

    def exists(self, path: Path) -> bool:
        return path.exists()

    def is_writable(self, path: Path) -> bool:
        return os.access(path, os.W_OK)

    @staticmethod
    def _file_mode(path: Path) -> Optional[int]:
        try:
            return stat.S_IMODE(path.stat().st_mode)
        except FileNotFoundError:
            return None


class SshExecutor(Executor):
    """Executor that runs every command on a remote host through the ``ssh`` CLI."""

    def __init__(self, host: HostConfig, *, dry_run: bool = False, ssh_binary: str = "ssh"):
        super().__init__(host, dry_run=dry_run)
        if not host.address:
            raise ValueError(f"host '{host.name}' has no address for an ssh connection")
        self.ssh_binary = ssh_binary

    @property
    def target(self) -> str:
        return f"{self.host.user}@{self.host.address}"

    def ssh_options(self) -> list[str]:
        opts: list[str] = []
        if self.host.identity_file:
            opts += ["-i", str(Path(self.host.identity_file).expanduser())]
            opts += ["-o", "IdentitiesOnly=yes"]
        opts += [
            "-o",
            "StrictHostKeyChecking=accept-new",
            "-o",
            "BatchMode=yes",
            "-p",
            str(self.host.port),
        ]
        if self.host.connect_timeout:
            opts += ["-o", f"ConnectTimeout={self.host.connect_timeout}"]
        return opts

    def reachable(self) -> bool:
        """Return True when the login user can open a session (no privilege escalation)."""
        argv = [self.ssh_binary, *self.ssh_options(), self.target, "true"]
        proc = subprocess.run(argv, capture_output=True, text=True, check=False)
        return proc.returncode == 0

    def _prepare(
        self, command: list[str], *, env: Optional[dict[str, str]]
    ) -> tuple[list[str], Optional[dict[str, str]]]:
        remote = list(command)
        if env:
            remote = ["env", *(f"{k}={v}" for k, v in env.items()), *remote]
        if self.host.become and self.host.user != "root":
            remote = ["sudo", "-n", *remote]
        return [self.ssh_binary, *self.ssh_options(), self.target, "--", shlex.join(remote)], None

    def _check_transport(self, proc: subprocess.CompletedProcess) -> None:
        # ssh reserves 255 for its own failures; a probe must not read it as "absent".
        if proc.returncode == 255:
            message = (proc.stderr or "").strip().splitlines()
            reason = message[-1] if message else "connection failed"
            raise ConnectionError(f"ssh {self.target}: {reason}")

    # File primitives -----------------------------------------------------
    def read_file(self, path: Path) -> Optional[str]:
        result = self.run(["cat", str(path)], check=False, mutable=False)
        if result.returncode == 0:
            return result.stdout
        if not self.exists(path):
            return None
        raise subprocess.CalledProcessError(
            result.returncode, result.command, result.stdout, result.stderr
        )

    def write_file(self, path: Path, *, content: str, mode: Optional[int]) -> tuple[bool, str]:
        current = self.read_file(path)
        changed = False
        reasons: list[str] = []

        if current != content:
            changed = True
            reasons.append("content")
            self.run(["mkdir", "-p", str(path.parent)])
            self.run(["tee", str(path)], input=content)

        if mode is not None:
            existing = self._file_mode(path)
            if existing != mode:
                changed = True
                reasons.append(f"mode->{mode:04o}")
                self.run(["chmod", f"{mode:04o}", str(path)])
        detail = ", ".join(reasons) if reasons else "noop"
        return changed, detail

    def append_line(self, path: Path, line: str) -> None:
        self.run(["sh", "-c", 'printf "%s\\n" "$1" >> "$2"', "sh", line, str(path)])

    def ensure_directory(
        self, path: Path, *, mode: Optional[int], owner: Optional[str] = None
    ) -> tuple[bool, str]:  # type: ignore[override]
        changed = False
        reasons: list[str] = []

        probe = self.run(["test", "-d", str(path)], check=False, mutable=False)
        if probe.returncode != 0:
            changed = True
            reasons.append("created")
            self.run(["mkdir", "-p", str(path)])

        if mode is not None and self._file_mode(path) != mode:
            changed = True
            reasons.append(f"mode->{mode:04o}")
            self.run(["chmod", f"{mode:04o}", str(path)])

        if owner:
            current = self.run(["stat", "-c", "%U", str(path)], check=False, mutable=False)
            if current.returncode != 0 or current.stdout.strip() != owner:
                changed = True
                reasons.append(f"owner->{owner}")
                self.run(["chown", f"{owner}:{owner}", str(path)])
        detail = ", ".join(reasons) if reasons else "noop"
        return changed, detail

    def remove_path(self, path: Path) -> bool:
        if not self.exists(path):
            return False
        self.run(["rm", "-rf", str(path)])
        return True

    def exists(self, path: Path) -> bool:
        result = self.run(["test", "-e", str(path)], check=False, mutable=False)
        return result.returncode == 0

    def is_writable(self, path: Path) -> bool:
        result = self.run(["test", "-w", str(path)], check=False, mutable=False)
        return result.returncode == 0

    def _file_mode(self, path: Path) -> Optional[int]:
        result = self.run(["stat", "-c", "%a", str(path)], check=False, mutable=False)
        if result.returncode != 0:
            return None
        try:
            return int(result.stdout.strip(), 8)
        except ValueError:
            return None

