from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from .base import Mutation
from ..executors import Executor

logger = logging.getLogger(__name__)

DEFAULT_UFW_CONF = Path("/etc/ufw/ufw.conf")


@dataclass
class Ufw:
    """ufw wrapper.

    ``ufw status`` hides rules and logging while the firewall is inactive, so
    rules come from ``ufw show added`` and logging from ``ufw.conf``.
    """

    executable: str = "ufw"
    config_path: Path = DEFAULT_UFW_CONF

    def status(self, executor: Executor) -> str:
        result = executor.run([self.executable, "status"], check=False, mutable=False)
        if result.returncode != 0:
            return ""
        return result.stdout

    def rules(self, executor: Executor) -> set[str]:
        result = executor.run([self.executable, "show", "added"], check=False, mutable=False)
        if result.returncode != 0:
            return set()
        found: set[str] = set()
        for line in result.stdout.splitlines():
            parts = line.split(None, 2)
            if len(parts) == 3 and parts[:2] == ["ufw", "allow"]:
                found.add(parts[2].strip())
        return found

    def has_rule(self, executor: Executor, rule: str) -> bool:
        return rule in self.rules(executor)

    def allow(self, executor: Executor, rule: str) -> None:
        executor.run([self.executable, "allow", rule])

    def delete_allow(self, executor: Executor, rule: str) -> None:
        executor.run([self.executable, "delete", "allow", rule])

    def is_active(self, executor: Executor) -> bool:
        return "Status: active" in self.status(executor)

    def enable(self, executor: Executor) -> None:
        executor.run([self.executable, "--force", "enable"])

    def disable(self, executor: Executor) -> None:
        executor.run([self.executable, "--force", "disable"])

    def logging_on(self, executor: Executor) -> bool:
        text = executor.read_file(self.config_path) or ""
        for line in text.splitlines():
            key, _, value = line.partition("=")
            if key.strip() == "LOGLEVEL":
                return value.strip().strip("\"'").lower() not in {"", "off"}
        return False

    def set_logging(self, executor: Executor, on: bool) -> None:
        executor.run([self.executable, "logging", "on" if on else "off"])


class UfwRuleMutation(Mutation):
    """Allow one rule such as ``443/tcp``; rollback deletes the rule."""

    present_label = "exists"
    absent_label = "absent"

    def __init__(self, rule: str):
        if not rule:
            raise ValueError("ufw rule mutation requires a rule")
        super().__init__(rule)
        self.rule = rule
        self.ufw = Ufw()

    def probe(self, executor: Executor) -> bool:
        return self.ufw.has_rule(executor, self.rule)

    def apply(self, executor: Executor) -> str:
        self.ufw.allow(executor, self.rule)
        return f"rule '{self.rule}' added"

    def reverse(self, executor: Executor) -> str:
        self.ufw.delete_allow(executor, self.rule)
        return f"rule '{self.rule}' removed"


class UfwLoggingMutation(Mutation):
    present_label = "on"
    absent_label = "off"

    def __init__(self) -> None:
        super().__init__("logging")
        self.ufw = Ufw()

    def probe(self, executor: Executor) -> bool:
        return self.ufw.logging_on(executor)

    def apply(self, executor: Executor) -> str:
        self.ufw.set_logging(executor, True)
        return "logging enabled"

    def reverse(self, executor: Executor) -> str:
        self.ufw.set_logging(executor, False)
        return "logging disabled"


class UfwEnabledMutation(Mutation):
    present_label = "true"
    absent_label = "false"

    def __init__(self) -> None:
        super().__init__("enabled")
        self.ufw = Ufw()

    def probe(self, executor: Executor) -> bool:
        return self.ufw.is_active(executor)

    def apply(self, executor: Executor) -> str:
        logger.debug("Enabling ufw")
        self.ufw.enable(executor)
        return "ufw enabled"

    def reverse(self, executor: Executor) -> str:
        logger.debug("Disabling ufw")
        self.ufw.disable(executor)
        return "ufw disabled"
