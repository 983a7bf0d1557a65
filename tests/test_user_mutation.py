from stagehand_automation.executors import CommandResult, LocalExecutor
from stagehand_automation.operations.user import (
    GroupMembershipMutation,
    UserManager,
    UserMutation,
)
from stagehand_automation.types import HostConfig


class RecordingExecutor(LocalExecutor):
    def __init__(self, responses: dict[str, CommandResult] | None = None):
        super().__init__(HostConfig("local"))
        self.responses = responses or {}
        self.commands: list[list[str]] = []

    def run(self, command, *, check=True, mutable=True, env=None, timeout=None, input=None):
        cmd = [str(part) for part in command]
        self.commands.append(cmd)
        return self.responses.get(cmd[0], CommandResult(cmd, "", "", 0))


def test_user_probe_parses_getent():
    executor = RecordingExecutor(
        {"getent": CommandResult([], "deploy:x:1000:1000::/home/deploy:/bin/bash\n", "", 0)}
    )
    mutation = UserMutation("deploy")

    assert mutation.probe(executor) is True
    assert mutation.id == "user deploy"
    assert mutation.fact(True) == "user deploy:exists"


def test_user_probe_missing_account():
    executor = RecordingExecutor({"getent": CommandResult([], "", "", 2)})
    assert UserMutation("deploy").probe(executor) is False


def test_user_apply_and_reverse_commands():
    executor = RecordingExecutor()
    mutation = UserMutation("deploy")

    mutation.apply(executor)
    mutation.reverse(executor)

    assert executor.commands == [
        ["useradd", "--shell", "/bin/bash", "--create-home", "deploy"],
        ["pkill", "-u", "deploy"],
        ["userdel", "--remove", "deploy"],
    ]


def test_group_membership_round_trip():
    executor = RecordingExecutor({"id": CommandResult([], "deploy sudo\n", "", 0)})
    mutation = GroupMembershipMutation("deploy", "sudo")

    assert mutation.id == "deploy in sudo group"
    assert mutation.probe(executor) is True

    mutation.apply(executor)
    mutation.reverse(executor)

    assert ["usermod", "-aG", "sudo", "deploy"] in executor.commands
    assert ["gpasswd", "-d", "deploy", "sudo"] in executor.commands


def test_groups_for_unknown_user_is_empty():
    executor = RecordingExecutor({"id": CommandResult([], "", "no such user", 1)})
    assert UserManager().groups(executor, "ghost") == []
