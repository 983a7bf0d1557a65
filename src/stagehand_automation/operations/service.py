from __future__ import annotations

import logging
from dataclasses import dataclass

from .base import Mutation
from ..executors import Executor

logger = logging.getLogger(__name__)


@dataclass
class SystemCtl:
    executable: str = "systemctl"

    def is_enabled(self, executor: Executor, service: str) -> bool:
        result = executor.run([self.executable, "is-enabled", service], check=False, mutable=False)
        return result.returncode == 0

    def is_active(self, executor: Executor, service: str) -> bool:
        result = executor.run([self.executable, "is-active", service], check=False, mutable=False)
        return result.returncode == 0

    def enable(self, executor: Executor, service: str) -> None:
        executor.run([self.executable, "enable", service])

    def disable(self, executor: Executor, service: str) -> None:
        executor.run([self.executable, "disable", service])

    def start(self, executor: Executor, service: str) -> None:
        executor.run([self.executable, "start", service])

    def stop(self, executor: Executor, service: str) -> None:
        executor.run([self.executable, "stop", service])

    def restart(self, executor: Executor, service: str) -> None:
        executor.run([self.executable, "restart", service])


class ServiceEnabledMutation(Mutation):
    """Enable and start a systemd unit; rollback stops and disables it."""

    present_label = "enabled"
    absent_label = "disabled"

    def __init__(
        self,
        service: str,
        *,
        restart: bool = False,
        stop_on_reverse: bool = True,
    ):
        if not service:
            raise ValueError("service mutation requires a unit name")
        unit = service if "." in service else f"{service}.service"
        super().__init__(unit)
        self.service = unit
        self.restart = restart
        self.stop_on_reverse = stop_on_reverse
        self.systemctl = SystemCtl()

    def probe(self, executor: Executor) -> bool:
        return self.systemctl.is_enabled(executor, self.service)

    def apply(self, executor: Executor) -> str:
        changes = ["enabled"]
        logger.debug("Enabling service %s", self.service)
        self.systemctl.enable(executor, self.service)
        if self.restart:
            self.systemctl.restart(executor, self.service)
            changes.append("restarted")
        elif not self.systemctl.is_active(executor, self.service):
            self.systemctl.start(executor, self.service)
            changes.append("started")
        return ", ".join(changes)

    def reverse(self, executor: Executor) -> str:
        changes: list[str] = []
        if self.stop_on_reverse and self.systemctl.is_active(executor, self.service):
            logger.debug("Stopping service %s", self.service)
            self.systemctl.stop(executor, self.service)
            changes.append("stopped")
        logger.debug("Disabling service %s", self.service)
        self.systemctl.disable(executor, self.service)
        changes.append("disabled")
        return ", ".join(changes)
