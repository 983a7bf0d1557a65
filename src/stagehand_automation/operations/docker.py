from __future__ import annotations

from dataclasses import dataclass

from .base import Mutation
from ..executors import Executor


@dataclass
class DockerCli:
    executable: str = "docker"

    def network_exists(self, executor: Executor, name: str) -> bool:
        result = executor.run([self.executable, "network", "inspect", name], check=False, mutable=False)
        return result.returncode == 0

    def create_network(self, executor: Executor, name: str, driver: str) -> None:
        executor.run([self.executable, "network", "create", "-d", driver, name])

    def remove_network(self, executor: Executor, name: str) -> None:
        executor.run([self.executable, "network", "rm", name])


class DockerNetworkMutation(Mutation):
    present_label = "exists"
    absent_label = "absent"

    def __init__(self, name: str, *, driver: str = "bridge"):
        if not name:
            raise ValueError("docker network mutation requires a name")
        super().__init__(f"network {name}")
        self.name = name
        self.driver = driver
        self.docker = DockerCli()

    def probe(self, executor: Executor) -> bool:
        return self.docker.network_exists(executor, self.name)

    def apply(self, executor: Executor) -> str:
        self.docker.create_network(executor, self.name, self.driver)
        return f"created {self.driver} network '{self.name}'"

    def reverse(self, executor: Executor) -> str:
        self.docker.remove_network(executor, self.name)
        return f"removed network '{self.name}'"
