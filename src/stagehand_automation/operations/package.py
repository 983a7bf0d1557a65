from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
import logging

from .base import Mutation
from ..executors import Executor

logger = logging.getLogger(__name__)

NONINTERACTIVE = {"DEBIAN_FRONTEND": "noninteractive"}


@dataclass
class DpkgQuery:
    executable: str = "dpkg-query"

    def check(self, executor: Executor, package: str) -> bool:
        result = executor.run(
            [self.executable, "-W", "-f", "${Status}", package],
            check=False,
            mutable=False,
        )
        # "deinstall ok config-files" and "not-installed" must not count.
        return result.returncode == 0 and result.stdout.strip().endswith(" installed")


class AptPackageManager:
    """apt/dpkg wrapper; the package index is refreshed once per manager."""

    name = "apt"

    def __init__(self) -> None:
        self.query = DpkgQuery()
        self._updated = False

    def update(self, executor: Executor) -> None:
        if self._updated:
            return
        executor.run(["apt-get", "update", "-y"], env=NONINTERACTIVE)
        self._updated = True

    def install(self, executor: Executor, packages: list[str]) -> None:
        self.update(executor)
        executor.run(["apt-get", "install", "-y", *packages], env=NONINTERACTIVE)

    def remove(self, executor: Executor, packages: list[str]) -> None:
        executor.run(["apt-get", "remove", "-y", *packages], env=NONINTERACTIVE)

    def is_installed(self, executor: Executor, package: str) -> bool:
        return self.query.check(executor, package)


class PackageMutation(Mutation):
    """Install one package; rollback removes it."""

    present_label = "installed"
    absent_label = "absent"

    def __init__(self, package: str, manager: Optional[AptPackageManager] = None):
        if not package:
            raise ValueError("package mutation requires a package name")
        super().__init__(package)
        self.package = package
        self.manager = manager or AptPackageManager()

    def probe(self, executor: Executor) -> bool:
        return self.manager.is_installed(executor, self.package)

    def apply(self, executor: Executor) -> str:
        logger.debug("package-manager=%s install=%s", self.manager.name, self.package)
        self.manager.install(executor, [self.package])
        return f"installed={self.package}"

    def reverse(self, executor: Executor) -> str:
        logger.debug("package-manager=%s remove=%s", self.manager.name, self.package)
        self.manager.remove(executor, [self.package])
        return f"removed={self.package}"
