from stagehand_automation.executors import CommandResult, LocalExecutor
from stagehand_automation.operations.docker import DockerNetworkMutation
from stagehand_automation.types import HostConfig


class DockerExecutor(LocalExecutor):
    def __init__(self, networks: set[str]):
        super().__init__(HostConfig("local"))
        self.networks = networks
        self.commands: list[list[str]] = []

    def run(self, command, *, check=True, mutable=True, env=None, timeout=None, input=None):
        cmd = [str(part) for part in command]
        self.commands.append(cmd)
        if cmd[:3] == ["docker", "network", "inspect"]:
            return CommandResult(cmd, "", "", 0 if cmd[3] in self.networks else 1)
        if cmd[:3] == ["docker", "network", "create"]:
            self.networks.add(cmd[-1])
        if cmd[:3] == ["docker", "network", "rm"]:
            self.networks.discard(cmd[-1])
        return CommandResult(cmd, "", "", 0)


def test_network_round_trip():
    executor = DockerExecutor(set())
    mutation = DockerNetworkMutation("private")

    assert mutation.id == "network private"
    assert mutation.probe(executor) is False

    mutation.apply(executor)
    assert ["docker", "network", "create", "-d", "bridge", "private"] in executor.commands
    assert mutation.probe(executor) is True

    mutation.reverse(executor)
    assert executor.networks == set()
