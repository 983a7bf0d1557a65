from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .base import Mutation
from ..executors import Executor

logger = logging.getLogger(__name__)


@dataclass
class UserInfo:
    name: str
    shell: str
    home: str


class UserManager:
    def get(self, executor: Executor, username: str) -> Optional[UserInfo]:
        result = executor.run(["getent", "passwd", username], check=False, mutable=False)
        if result.returncode != 0 or not result.stdout.strip():
            return None
        fields = result.stdout.strip().split(":")
        if len(fields) < 7:
            return None
        return UserInfo(name=fields[0], home=fields[5], shell=fields[6])

    def add(self, executor: Executor, name: str, *, shell: Optional[str], create_home: bool) -> None:
        cmd = ["useradd"]
        if shell:
            cmd += ["--shell", shell]
        if create_home:
            cmd.append("--create-home")
        cmd.append(name)
        executor.run(cmd)

    def delete(self, executor: Executor, name: str, *, remove_home: bool) -> None:
        executor.run(["pkill", "-u", name], check=False)
        cmd = ["userdel"]
        if remove_home:
            cmd.append("--remove")
        cmd.append(name)
        executor.run(cmd)

    def groups(self, executor: Executor, name: str) -> list[str]:
        result = executor.run(["id", "-nG", name], check=False, mutable=False)
        if result.returncode != 0:
            return []
        return result.stdout.split()

    def add_to_group(self, executor: Executor, name: str, group: str) -> None:
        executor.run(["usermod", "-aG", group, name])

    def remove_from_group(self, executor: Executor, name: str, group: str) -> None:
        executor.run(["gpasswd", "-d", name, group])


class UserMutation(Mutation):
    """Create a login account; rollback deletes it along with its home."""

    present_label = "exists"
    absent_label = "absent"

    def __init__(self, name: str, *, shell: Optional[str] = "/bin/bash", create_home: bool = True):
        if not name:
            raise ValueError("user mutation requires a name")
        super().__init__(f"user {name}")
        self.name = name
        self.shell = shell
        self.create_home = create_home
        self.manager = UserManager()

    def probe(self, executor: Executor) -> bool:
        return self.manager.get(executor, self.name) is not None

    def apply(self, executor: Executor) -> str:
        logger.debug("Creating user %s", self.name)
        self.manager.add(executor, self.name, shell=self.shell, create_home=self.create_home)
        return "created"

    def reverse(self, executor: Executor) -> str:
        logger.debug("Removing user %s", self.name)
        self.manager.delete(executor, self.name, remove_home=self.create_home)
        return "removed"


class GroupMembershipMutation(Mutation):
    present_label = "member"
    absent_label = "absent"

    def __init__(self, user: str, group: str):
        if not user or not group:
            raise ValueError("group membership requires a user and a group")
        super().__init__(f"{user} in {group} group")
        self.user = user
        self.group = group
        self.manager = UserManager()

    def probe(self, executor: Executor) -> bool:
        return self.group in self.manager.groups(executor, self.user)

    def apply(self, executor: Executor) -> str:
        self.manager.add_to_group(executor, self.user, self.group)
        return f"added to {self.group}"

    def reverse(self, executor: Executor) -> str:
        self.manager.remove_from_group(executor, self.user, self.group)
        return f"removed from {self.group}"
