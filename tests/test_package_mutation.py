from stagehand_automation.executors import CommandResult, LocalExecutor
from stagehand_automation.operations.package import (
    AptPackageManager,
    DpkgQuery,
    PackageMutation,
)
from stagehand_automation.types import HostConfig


class FakePackageManager(AptPackageManager):
    name = "fake"

    def __init__(self, installed: set[str]):
        super().__init__()
        self._installed = installed
        self.installed_calls: list[list[str]] = []
        self.removed_calls: list[list[str]] = []

    def install(self, executor, packages: list[str]) -> None:  # type: ignore[override]
        self.installed_calls.append(packages)
        self._installed.update(packages)

    def remove(self, executor, packages: list[str]) -> None:  # type: ignore[override]
        self.removed_calls.append(packages)
        for name in packages:
            self._installed.discard(name)

    def is_installed(self, executor, package: str) -> bool:  # type: ignore[override]
        return package in self._installed


class ScriptedExecutor(LocalExecutor):
    def __init__(self, outputs: dict[str, CommandResult]):
        super().__init__(HostConfig("local"))
        self.outputs = outputs
        self.commands: list[tuple[list[str], dict | None]] = []

    def run(self, command, *, check=True, mutable=True, env=None, timeout=None, input=None):
        cmd = [str(part) for part in command]
        self.commands.append((cmd, env))
        return self.outputs.get(cmd[-1], CommandResult(cmd, "", "", 0))


def test_package_mutation_id_and_facts():
    mutation = PackageMutation("curl", FakePackageManager(set()))
    assert mutation.id == "curl"
    assert mutation.fact(True) == "curl:installed"
    assert mutation.fact(False) == "curl:absent"


def test_apply_installs_and_reverse_removes():
    installed: set[str] = set()
    manager = FakePackageManager(installed)
    mutation = PackageMutation("gnupg", manager)
    executor = LocalExecutor(HostConfig("local"))

    assert mutation.probe(executor) is False
    assert mutation.apply(executor) == "installed=gnupg"
    assert mutation.probe(executor) is True
    assert mutation.reverse(executor) == "removed=gnupg"
    assert manager.installed_calls == [["gnupg"]]
    assert manager.removed_calls == [["gnupg"]]
    assert installed == set()


def test_dpkg_query_only_counts_installed_status():
    executor = ScriptedExecutor(
        {
            "curl": CommandResult([], "install ok installed", "", 0),
            "vim": CommandResult([], "deinstall ok config-files", "", 0),
            "nano": CommandResult([], "", "no packages found", 1),
        }
    )
    query = DpkgQuery()

    assert query.check(executor, "curl") is True
    assert query.check(executor, "vim") is False
    assert query.check(executor, "nano") is False


def test_apt_updates_index_once_per_manager():
    executor = ScriptedExecutor({})
    manager = AptPackageManager()

    manager.install(executor, ["curl"])
    manager.install(executor, ["gnupg"])

    commands = [cmd for cmd, _ in executor.commands]
    assert commands == [
        ["apt-get", "update", "-y"],
        ["apt-get", "install", "-y", "curl"],
        ["apt-get", "install", "-y", "gnupg"],
    ]
    assert all(env == {"DEBIAN_FRONTEND": "noninteractive"} for _, env in executor.commands)
