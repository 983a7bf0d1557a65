from __future__ import annotations

import logging
from typing import Optional

from .config import StagehandConfig
from .executors import Executor, LocalExecutor, SshExecutor
from .operations.base import Operation
from .types import HostConfig

logger = logging.getLogger(__name__)


def build_host(cfg: StagehandConfig, address: Optional[str], user: str) -> HostConfig:
    return HostConfig(
        name=address or "local",
        address=address,
        user=user,
        port=cfg.ssh_port,
        identity_file=cfg.ssh_key_path,
        connect_timeout=cfg.ssh_connect_timeout,
    )


def open_session(
    operation: Operation,
    cfg: StagehandConfig,
    address: Optional[str],
    *,
    local: bool = False,
    rollback: bool = False,
    dry_run: bool = False,
) -> tuple[HostConfig, Executor]:
    """Pick the first login user of ``operation`` that can reach the host."""

    if local:
        host = build_host(cfg, None, "root")
        return host, LocalExecutor(host, dry_run=dry_run)
    if not address:
        raise ValueError("a server address is required (--server-ip or SERVER_IP)")

    candidates = operation.logins(rollback=rollback) or (cfg.deploy_user,)
    for user in candidates:
        host = build_host(cfg, address, user)
        executor = SshExecutor(host, dry_run=dry_run)
        if executor.reachable():
            logger.info("operation=%s connecting as %s", operation.id, executor.target)
            return host, executor
        logger.debug("operation=%s %s unreachable", operation.id, executor.target)
    tried = ", ".join(f"{user}@{address}" for user in candidates)
    raise ConnectionError(f"{operation.id}: no login available (tried {tried})")
