from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping, Optional
import os

from dotenv import dotenv_values

try:
    import tomllib  # type: ignore[attr-defined]
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # type: ignore[no-redef]


DEFAULT_CONFIG = Path("/etc/stagehand/main.conf")
DEFAULT_MARKER_DIR = Path("/usr/local/backups")
DEFAULT_KEY_PATH = Path("~/.ssh/id_rsa")


@dataclass
class DropletConfig:
    name: str = "app-prod"
    region: str = "sfo3"
    size: str = "s-1vcpu-1gb"
    image: str = "ubuntu-22-04-x64"
    ssh_key_id: Optional[str] = None
    tag_name: str = "rails-prod"


@dataclass
class StagehandConfig:
    marker_dir: Path = DEFAULT_MARKER_DIR
    deploy_user: str = "deploy"
    server_ip: Optional[str] = None
    ssh_port: int = 22
    ssh_key_path: Path = DEFAULT_KEY_PATH
    ssh_connect_timeout: Optional[int] = None
    sshd_service: str = "sshd"
    env_file: Optional[Path] = None
    extra_ports: list[str] = field(default_factory=list)
    droplet: DropletConfig = field(default_factory=DropletConfig)


# Environment keys understood by ``apply_env`` and the attribute each one sets.
ENV_KEYS: dict[str, str] = {
    "SERVER_IP": "server_ip",
    "SSH_PORT": "ssh_port",
    "SSH_KEY_PATH": "ssh_key_path",
    "DEPLOY_USER": "deploy_user",
    "MARKER_DIR": "marker_dir",
}

DROPLET_ENV_KEYS: dict[str, str] = {
    "DROPLET_NAME": "name",
    "REGION": "region",
    "SIZE": "size",
    "IMAGE": "image",
    "SSH_KEY_ID": "ssh_key_id",
    "TAG_NAME": "tag_name",
}


def load_config(path: Path) -> StagehandConfig:
    if not path.exists():
        return StagehandConfig()
    data = tomllib.loads(path.read_text())
    defaults = data.get("defaults", {})
    droplet = data.get("droplet", {})
    marker_dir = defaults.get("marker_dir")
    ssh_key_path = defaults.get("ssh_key_path")
    env_file = defaults.get("env_file")
    timeout = defaults.get("ssh_connect_timeout")
    extra_ports = defaults.get("extra_ports", [])
    if not isinstance(extra_ports, list):
        raise ValueError("extra_ports must be a list of ufw rules such as '8080/tcp'")
    return StagehandConfig(
        marker_dir=Path(marker_dir) if marker_dir else DEFAULT_MARKER_DIR,
        deploy_user=str(defaults.get("deploy_user", "deploy")),
        server_ip=str(defaults["server_ip"]) if defaults.get("server_ip") else None,
        ssh_port=int(defaults.get("ssh_port", 22)),
        ssh_key_path=Path(ssh_key_path) if ssh_key_path else DEFAULT_KEY_PATH,
        ssh_connect_timeout=int(timeout) if timeout else None,
        sshd_service=str(defaults.get("sshd_service", "sshd")),
        env_file=Path(env_file) if env_file else None,
        extra_ports=[str(port) for port in extra_ports],
        droplet=DropletConfig(
            name=str(droplet.get("name", "app-prod")),
            region=str(droplet.get("region", "sfo3")),
            size=str(droplet.get("size", "s-1vcpu-1gb")),
            image=str(droplet.get("image", "ubuntu-22-04-x64")),
            ssh_key_id=str(droplet["ssh_key_id"]) if droplet.get("ssh_key_id") else None,
            tag_name=str(droplet.get("tag_name", "rails-prod")),
        ),
    )


def load_env(path: Optional[Path]) -> dict[str, str]:
    """Return ``.env`` values overlaid with the process environment.

    Values already exported in the environment win over the file.
    """

    values: dict[str, str] = {}
    if path is not None and path.exists():
        values.update({k: v for k, v in dotenv_values(path).items() if v is not None})
    for key in (*ENV_KEYS, *DROPLET_ENV_KEYS):
        if key in os.environ:
            values[key] = os.environ[key]
    return values


def apply_env(cfg: StagehandConfig, env: Mapping[str, str]) -> StagehandConfig:
    changes: dict[str, Any] = {}
    for key, attr in ENV_KEYS.items():
        raw = env.get(key)
        if not raw:
            continue
        if attr == "ssh_port":
            changes[attr] = _port(raw, key)
        elif attr in {"ssh_key_path", "marker_dir"}:
            changes[attr] = Path(raw)
        else:
            changes[attr] = raw
    droplet_changes = {
        attr: env[key] for key, attr in DROPLET_ENV_KEYS.items() if env.get(key)
    }
    if droplet_changes:
        changes["droplet"] = replace(cfg.droplet, **droplet_changes)
    return replace(cfg, **changes)


def _port(raw: str, key: str) -> int:
    try:
        port = int(raw)
    except ValueError as exc:
        raise ValueError(f"{key} must be a port number, got '{raw}'") from exc
    if not 0 < port < 65536:
        raise ValueError(f"{key} must be between 1 and 65535, got {port}")
    return port
