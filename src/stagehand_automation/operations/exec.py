from __future__ import annotations

from pathlib import Path
from typing import Any, Sequence
from string import Template

from .base import Mutation
from ..executors import Executor


class ExecMutation(Mutation):
    """Run a command guarded by the path it ``creates``, mirroring Puppet's exec.

    The mutation counts as applied when ``creates`` exists; rollback removes it.
    """

    def __init__(
        self,
        mutation_id: str,
        command: str | Sequence[str],
        *,
        creates: Path,
        variables: dict[str, Any] | None = None,
        timeout: float | None = None,
    ):
        super().__init__(mutation_id)
        self.creates = Path(creates)
        self.command = self._render(command, dict(variables or {}))
        self.timeout = timeout

    def probe(self, executor: Executor) -> bool:
        return executor.exists(self.creates)

    def apply(self, executor: Executor) -> str:
        executor.run(self.command, timeout=self.timeout)
        return f"created {self.creates}"

    def reverse(self, executor: Executor) -> str:
        executor.remove_path(self.creates)
        return f"removed {self.creates}"

    @staticmethod
    def _render(command: str | Sequence[str], context: dict[str, Any]) -> list[str]:
        if isinstance(command, str):
            return ["sh", "-c", Template(command).safe_substitute(context)]
        if isinstance(command, Sequence):
            return [Template(str(part)).safe_substitute(context) for part in command]
        raise ValueError("exec command must be a string or list")
