"""Thin wrapper around the ``doctl`` CLI for the droplet a plan provisions."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .config import DropletConfig
from .executors import Executor

logger = logging.getLogger(__name__)

_FORMAT = ["--format", "ID,Name,PublicIPv4", "--no-header"]


@dataclass
class Droplet:
    id: str
    name: str
    public_ipv4: Optional[str]


class DropletManager:
    def __init__(self, cfg: DropletConfig, executor: Executor, *, doctl: str = "doctl"):
        self.cfg = cfg
        self.executor = executor
        self.doctl = doctl

    def find(self) -> Optional[Droplet]:
        result = self.executor.run(
            [self.doctl, "compute", "droplet", "list", *_FORMAT], mutable=False
        )
        for droplet in _parse(result.stdout):
            if droplet.name == self.cfg.name:
                return droplet
        return None

    def create_or_show(self) -> Droplet:
        existing = self.find()
        if existing is not None:
            logger.info("droplet=%s exists ip=%s", existing.name, existing.public_ipv4)
            return existing
        if not self.cfg.ssh_key_id:
            raise ValueError("SSH_KEY_ID must be set to create a droplet")
        logger.info("Creating droplet %s in %s (%s)", self.cfg.name, self.cfg.region, self.cfg.size)
        result = self.executor.run(
            [
                self.doctl,
                "compute",
                "droplet",
                "create",
                self.cfg.name,
                "--region",
                self.cfg.region,
                "--size",
                self.cfg.size,
                "--image",
                self.cfg.image,
                "--ssh-keys",
                self.cfg.ssh_key_id,
                "--tag-names",
                self.cfg.tag_name,
                "--wait",
                *_FORMAT,
            ]
        )
        created = _parse(result.stdout)
        if not created:
            raise RuntimeError(f"doctl returned no droplet for '{self.cfg.name}'")
        return created[0]

    def delete(self) -> bool:
        if self.find() is None:
            logger.info("droplet=%s absent, nothing to delete", self.cfg.name)
            return False
        self.executor.run([self.doctl, "compute", "droplet", "delete", self.cfg.name, "--force"])
        return True


def _parse(output: str) -> list[Droplet]:
    droplets: list[Droplet] = []
    for line in output.splitlines():
        parts = line.split()
        if len(parts) < 2:
            continue
        ip = parts[2] if len(parts) > 2 else None
        droplets.append(Droplet(id=parts[0], name=parts[1], public_ipv4=ip))
    return droplets
