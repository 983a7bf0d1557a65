from pathlib import Path

import pytest

from stagehand_automation.config import StagehandConfig
from stagehand_automation.operations import (
    GROUPS,
    FileMutation,
    PackageMutation,
    ServiceEnabledMutation,
    UfwRuleMutation,
    build_operations,
    resolve_targets,
)


def test_all_group_members_are_defined():
    operations = build_operations(StagehandConfig())
    for members in GROUPS.values():
        for op_id in members:
            assert op_id in operations


def test_firewall_rules_follow_ssh_port_and_extra_ports():
    cfg = StagehandConfig(ssh_port=2222, extra_ports=["8080/tcp", "80/tcp"])
    firewall = build_operations(cfg)["firewall"]

    rules = [m.id for m in firewall.mutations if isinstance(m, UfwRuleMutation)]

    assert rules == ["2222/tcp", "80/tcp", "443/tcp", "8080/tcp"]
    assert [m.id for m in firewall.mutations][-2:] == ["logging", "enabled"]


def test_deploy_user_logs_in_as_root_first():
    operations = build_operations(StagehandConfig(deploy_user="ops"))

    deploy = operations["deploy_user"]
    assert deploy.login_users == ("root", "ops")
    assert deploy.logins(rollback=True) == ("root",)
    assert [m.id for m in deploy.mutations][:2] == ["user ops", "ops in sudo group"]
    sudoers = deploy.mutation("/etc/sudoers.d/ops")
    assert isinstance(sudoers, FileMutation)
    assert sudoers.mode == 0o440
    assert sudoers.replace is False
    keys = deploy.mutation("/home/ops/.ssh/authorized_keys")
    assert isinstance(keys, FileMutation)
    assert keys.replace is False
    assert operations["ssh_hardening"].login_users == ("ops", "root")
    assert operations["ssh_hardening"].logins(rollback=True) == ("ops", "root")


def test_unattended_upgrades_contents():
    operation = build_operations(StagehandConfig())["unattended_upgrades"]
    packages = [m.id for m in operation.mutations if isinstance(m, PackageMutation)]
    assert packages == ["unattended-upgrades", "apt-listchanges"]
    config = operation.mutation(str(Path("/etc/apt/apt.conf.d/20auto-upgrades")))
    assert 'AutocleanInterval "7"' in config.render(None)  # type: ignore[union-attr]
    service = operation.mutations[-1]
    assert isinstance(service, ServiceEnabledMutation)
    assert service.restart is True


def test_docker_postinstall_keeps_daemon_running_on_rollback():
    operation = build_operations(StagehandConfig())["docker_postinstall"]
    service = operation.mutation("docker.service")
    assert isinstance(service, ServiceEnabledMutation)
    assert service.stop_on_reverse is False
    assert operation.mutation("deploy in docker group") is not None
    assert operation.mutation("network private") is not None


def test_resolve_targets_expands_groups_without_repeats():
    operations = build_operations(StagehandConfig())
    assert resolve_targets(["firewall", "provision"], operations) == [
        "firewall",
        "deploy_user",
        "ssh_hardening",
        "unattended_upgrades",
    ]


def test_resolve_targets_rejects_unknown_names():
    with pytest.raises(ValueError):
        resolve_targets(["nginx"], build_operations(StagehandConfig()))
