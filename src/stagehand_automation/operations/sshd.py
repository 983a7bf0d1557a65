from __future__ import annotations

import logging
import re
from pathlib import Path

from .base import Mutation
from .service import SystemCtl
from ..executors import Executor

logger = logging.getLogger(__name__)

DEFAULT_SSHD_CONFIG = Path("/etc/ssh/sshd_config")


def set_directive(text: str, directive: str, value: str) -> str:
    """Set ``directive`` to ``value``, uncommenting the first occurrence or appending it."""
    pattern = re.compile(rf"^\s*#?\s*{re.escape(directive)}\b.*$", re.IGNORECASE)
    lines = text.splitlines()
    replaced = False
    for index, line in enumerate(lines):
        if pattern.match(line):
            if replaced:
                continue
            lines[index] = f"{directive} {value}"
            replaced = True
    if not replaced:
        lines.append(f"{directive} {value}")
    return "\n".join(lines) + "\n"


def directive_value(text: str, directive: str) -> str | None:
    pattern = re.compile(rf"^\s*{re.escape(directive)}\s+(\S+)\s*$", re.IGNORECASE)
    for line in text.splitlines():
        match = pattern.match(line)
        if match:
            return match.group(1)
    return None


class SshdDirectiveMutation(Mutation):
    """Pin one sshd_config directive and restart sshd.

    Rollback writes ``revert_value`` (sshd's permissive default) back.
    """

    def __init__(
        self,
        directive: str,
        value: str,
        *,
        revert_value: str = "yes",
        config_path: Path = DEFAULT_SSHD_CONFIG,
        service: str = "sshd",
    ):
        super().__init__(f"{directive} {value}")
        self.directive = directive
        self.value = value
        self.revert_value = revert_value
        self.config_path = Path(config_path)
        self.service = service
        self.systemctl = SystemCtl()

    def probe(self, executor: Executor) -> bool:
        text = executor.read_file(self.config_path)
        if text is None:
            return False
        return directive_value(text, self.directive) == self.value

    def apply(self, executor: Executor) -> str:
        self._write(executor, self.value)
        return f"{self.directive} {self.value}, {self.service} restarted"

    def reverse(self, executor: Executor) -> str:
        self._write(executor, self.revert_value)
        return f"{self.directive} {self.revert_value}, {self.service} restarted"

    def _write(self, executor: Executor, value: str) -> None:
        text = executor.read_file(self.config_path)
        if text is None:
            raise FileNotFoundError(f"{self.config_path} does not exist")
        executor.write_file(self.config_path, content=set_directive(text, self.directive, value), mode=None)
        logger.debug("Restarting %s after %s=%s", self.service, self.directive, value)
        self.systemctl.restart(executor, self.service)
