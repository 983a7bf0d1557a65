from __future__ import annotations

from pathlib import Path

from .base import Mutation, Operation
from .docker import DockerNetworkMutation
from .exec import ExecMutation
from .file import FileMutation
from .firewall import UfwEnabledMutation, UfwLoggingMutation, UfwRuleMutation
from .package import AptPackageManager, PackageMutation
from .service import ServiceEnabledMutation
from .sshd import SshdDirectiveMutation
from .user import GroupMembershipMutation, UserMutation
from ..config import StagehandConfig

SUDOERS_TEMPLATE = "{{ user }} ALL=(ALL) NOPASSWD:ALL\n"

AUTO_UPGRADES_TEMPLATE = """\
APT::Periodic::Update-Package-Lists "1";
APT::Periodic::Download-Upgradeable-Packages "1";
APT::Periodic::AutocleanInterval "{{ autoclean_interval }}";
APT::Periodic::Unattended-Upgrade "1";
"""

DOCKER_KEYRING = Path("/usr/share/keyrings/docker-archive-keyring.gpg")
DOCKER_GPG_URL = "https://download.docker.com/linux/ubuntu/gpg"
DOCKER_SOURCE_TEMPLATE = (
    "deb [arch={{ arch }} signed-by={{ keyring }}] "
    "https://download.docker.com/linux/ubuntu {{ codename }} stable\n"
)

DOCKER_PREREQ_PACKAGES = (
    "apt-transport-https",
    "ca-certificates",
    "curl",
    "gnupg",
    "lsb-release",
    "software-properties-common",
)
DOCKER_ENGINE_PACKAGES = ("docker-ce", "docker-ce-cli", "containerd.io")

GROUPS: dict[str, tuple[str, ...]] = {
    "provision": ("deploy_user", "ssh_hardening", "firewall", "unattended_upgrades"),
    "docker": ("docker_prereqs", "docker_engine", "docker_postinstall"),
}


def _packages(names: tuple[str, ...]) -> list[Mutation]:
    manager = AptPackageManager()
    return [PackageMutation(name, manager) for name in names]


def build_operations(cfg: StagehandConfig) -> dict[str, Operation]:
    """Return every known operation keyed by id, configured for ``cfg``."""

    user = cfg.deploy_user
    as_deploy = (user, "root")
    home = Path("/home") / user
    operations = [
        Operation(
            "deploy_user",
            [
                UserMutation(user),
                GroupMembershipMutation(user, "sudo"),
                FileMutation(
                    Path("/etc/sudoers.d") / user,
                    template=SUDOERS_TEMPLATE,
                    variables={"user": user},
                    mode=0o440,
                    replace=False,
                ),
                FileMutation(
                    home / ".ssh" / "authorized_keys",
                    source=Path("/root/.ssh/authorized_keys"),
                    mode=0o600,
                    owner=user,
                    directory_mode=0o700,
                    replace=False,
                ),
            ],
            description=f"create '{user}' with passwordless sudo and root's ssh keys",
            login_users=("root", user),
            # Reversing removes the deploy user; it cannot do that to itself.
            rollback_users=("root",),
        ),
        Operation(
            "ssh_hardening",
            [
                SshdDirectiveMutation("PermitRootLogin", "no", service=cfg.sshd_service),
                SshdDirectiveMutation("PasswordAuthentication", "no", service=cfg.sshd_service),
            ],
            description="disable root login and password authentication",
            login_users=as_deploy,
        ),
        Operation(
            "firewall",
            [
                *_packages(("ufw",)),
                *(
                    UfwRuleMutation(rule)
                    for rule in dict.fromkeys(
                        [f"{cfg.ssh_port}/tcp", "80/tcp", "443/tcp", *cfg.extra_ports]
                    )
                ),
                UfwLoggingMutation(),
                UfwEnabledMutation(),
            ],
            description="install ufw, allow ssh/http/https and enable it",
            login_users=as_deploy,
        ),
        Operation(
            "unattended_upgrades",
            [
                *_packages(("unattended-upgrades", "apt-listchanges")),
                FileMutation(
                    Path("/etc/apt/apt.conf.d/20auto-upgrades"),
                    template=AUTO_UPGRADES_TEMPLATE,
                    variables={"autoclean_interval": 7},
                    mode=0o644,
                ),
                ServiceEnabledMutation("unattended-upgrades", restart=True),
            ],
            description="enable automatic security updates",
            login_users=as_deploy,
        ),
        Operation(
            "docker_prereqs",
            _packages(DOCKER_PREREQ_PACKAGES),
            description="install packages needed to add the docker apt repository",
            login_users=as_deploy,
        ),
        Operation(
            "docker_engine",
            [
                ExecMutation(
                    "docker keyring",
                    "curl -fsSL $url | gpg --dearmor -o $keyring",
                    creates=DOCKER_KEYRING,
                    variables={"url": DOCKER_GPG_URL, "keyring": DOCKER_KEYRING},
                ),
                FileMutation(
                    Path("/etc/apt/sources.list.d/docker.list"),
                    template=DOCKER_SOURCE_TEMPLATE,
                    variables={"keyring": DOCKER_KEYRING},
                    host_facts={
                        "arch": ["dpkg", "--print-architecture"],
                        "codename": ["lsb_release", "-cs"],
                    },
                    mode=0o644,
                ),
                *_packages(DOCKER_ENGINE_PACKAGES),
            ],
            description="install docker engine from the upstream apt repository",
            login_users=as_deploy,
        ),
        Operation(
            "docker_postinstall",
            [
                ServiceEnabledMutation("docker", stop_on_reverse=False),
                GroupMembershipMutation(user, "docker"),
                DockerNetworkMutation("private"),
            ],
            description=f"enable docker, let '{user}' use it, create the 'private' network",
            login_users=as_deploy,
        ),
    ]
    return {operation.id: operation for operation in operations}


def resolve_targets(names: list[str], operations: dict[str, Operation]) -> list[str]:
    """Expand group names and validate operation ids, keeping order without repeats."""

    resolved: list[str] = []
    for name in names:
        members = GROUPS.get(name, (name,))
        for op_id in members:
            if op_id not in operations:
                known = ", ".join([*GROUPS, *operations])
                raise ValueError(f"unknown operation or group '{name}' (known: {known})")
            if op_id not in resolved:
                resolved.append(op_id)
    return resolved


__all__ = [
    "Mutation",
    "Operation",
    "GROUPS",
    "build_operations",
    "resolve_targets",
    "DockerNetworkMutation",
    "ExecMutation",
    "FileMutation",
    "GroupMembershipMutation",
    "PackageMutation",
    "ServiceEnabledMutation",
    "SshdDirectiveMutation",
    "UfwEnabledMutation",
    "UfwLoggingMutation",
    "UfwRuleMutation",
    "UserMutation",
]
