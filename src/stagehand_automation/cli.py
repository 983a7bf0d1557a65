from __future__ import annotations

import argparse
import logging
import os
import subprocess
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional, Sequence

from .config import DEFAULT_CONFIG, StagehandConfig, apply_env, load_config, load_env
from .droplet import DropletManager
from .errors import PartialRollback, StagehandError
from .executors import LocalExecutor
from .inventory import build_host, open_session
from .markers import MarkerStore
from .operations import GROUPS, build_operations, resolve_targets
from .runner import OperationRunner, OperationState
from .types import ActionResult, Outcome, RunReport


class Ansi:
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    RED = "\033[91m"
    BLUE = "\033[94m"
    RESET = "\033[0m"


def colorize(text: str, color: Optional[str]) -> str:
    if not color:
        return text
    if not sys.stdout.isatty() or os.environ.get("NO_COLOR"):
        return text
    return f"{color}{text}{Ansi.RESET}"


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Apply or roll back host configuration exactly once"
    )
    parser.add_argument(
        "command",
        choices=["apply", "rollback", "status"],
        help="apply, roll back, or show the marker state of the targets",
    )
    parser.add_argument(
        "targets",
        nargs="+",
        help=f"operation ids or groups ({', '.join(GROUPS)})",
    )
    parser.add_argument("--server-ip", help="Managed host address (default: $SERVER_IP)")
    parser.add_argument("--ssh-port", type=int, help="SSH port (default: $SSH_PORT or 22)")
    parser.add_argument(
        "--ssh-key-path",
        type=Path,
        help="Private key for ssh (default: $SSH_KEY_PATH or ~/.ssh/id_rsa)",
    )
    parser.add_argument(
        "--local",
        action="store_true",
        help="Act on this machine instead of connecting over ssh",
    )
    parser.add_argument(
        "--keep-server",
        action="store_true",
        help="With 'rollback provision', do not delete the droplet",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG,
        help=f"Path to stagehand config file (default: {DEFAULT_CONFIG})",
    )
    parser.add_argument("--env-file", type=Path, help="Path to a .env file (default: ./.env)")
    parser.add_argument("--dry-run", action="store_true", help="Report changes without executing")
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Python logging level (default: INFO)",
    )
    return parser.parse_args(argv)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(levelname)s %(name)s - %(message)s",
    )


def resolve_config(args: argparse.Namespace) -> StagehandConfig:
    cfg = load_config(args.config)
    env_file = args.env_file or cfg.env_file or Path(".env")
    cfg = apply_env(cfg, load_env(env_file))
    overrides: dict = {}
    if args.server_ip:
        overrides["server_ip"] = args.server_ip
    if args.ssh_port:
        overrides["ssh_port"] = args.ssh_port
    if args.ssh_key_path:
        overrides["ssh_key_path"] = args.ssh_key_path
    return replace(cfg, **overrides)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)

    try:
        cfg = resolve_config(args)
        operations = build_operations(cfg)
        targets = resolve_targets(args.targets, operations)
    except ValueError as exc:
        print(colorize(f"Invalid arguments: {exc}", Ansi.RED), file=sys.stderr)
        return 1

    manage_droplet = "provision" in args.targets and not args.local
    summary = Summary()
    try:
        address = cfg.server_ip
        if not address and manage_droplet and args.command != "status":
            address = _droplet_address(cfg, create=args.command == "apply")
        if args.command == "status":
            return _status(targets, operations, cfg, address, args)
        _run(args.command, targets, operations, cfg, address, args, summary)
    except (StagehandError, ConnectionError, ValueError, RuntimeError, subprocess.CalledProcessError) as exc:
        if logging.getLogger().isEnabledFor(logging.DEBUG):
            raise
        print(summary.render())
        print(colorize(f"Execution failed: {exc}", Ansi.RED), file=sys.stderr)
        return 1
    print(summary.render())

    if (
        args.command == "rollback"
        and manage_droplet
        and not args.keep_server
        and not args.dry_run
        and not cfg.server_ip
    ):
        try:
            DropletManager(cfg.droplet, _local_executor(False)).delete()
        except subprocess.CalledProcessError as exc:
            print(colorize(f"Droplet deletion failed: {exc.stderr or exc}", Ansi.RED), file=sys.stderr)
            return 1

    return 1 if summary.failures else 0


def _run(
    command: str,
    targets: list[str],
    operations,
    cfg: StagehandConfig,
    address: Optional[str],
    args: argparse.Namespace,
    summary: "Summary",
) -> None:
    ordered = targets if command == "apply" else list(reversed(targets))
    for op_id in ordered:
        operation = operations[op_id]
        runner = _runner_for(operation, operations, cfg, address, args)
        if command == "apply":
            report = runner.apply(op_id)
        else:
            report = runner.rollback(op_id)
        summary.add(report)
        print_report(report, rollback=command == "rollback")
        # Later operations build on earlier ones; rollback keeps going instead.
        if command == "apply" and report.failed:
            break


def _status(targets, operations, cfg, address, args) -> int:
    for op_id in targets:
        runner = _runner_for(operations[op_id], operations, cfg, address, args)
        print(format_state(runner.host.name, runner.inspect(op_id)))
    return 0


def _runner_for(operation, operations, cfg, address, args) -> OperationRunner:
    host, executor = open_session(
        operation,
        cfg,
        address,
        local=args.local,
        rollback=args.command == "rollback",
        dry_run=args.dry_run,
    )
    owner = None if args.local else host.user
    store = MarkerStore(executor, cfg.marker_dir, owner=owner)
    return OperationRunner(host, executor, store, operations, dry_run=args.dry_run)


def _local_executor(dry_run: bool) -> LocalExecutor:
    return LocalExecutor(build_host(StagehandConfig(), None, "root"), dry_run=dry_run)


def _droplet_address(cfg: StagehandConfig, *, create: bool) -> str:
    manager = DropletManager(cfg.droplet, _local_executor(False))
    droplet = manager.create_or_show() if create else manager.find()
    if droplet is None or not droplet.public_ipv4:
        raise RuntimeError(f"droplet '{cfg.droplet.name}' has no public address")
    print(f"-> Droplet IP: {droplet.public_ipv4}")
    return droplet.public_ipv4


def print_report(report: RunReport, *, rollback: bool) -> None:
    for result in report.results:
        print(format_result(result, rollback=rollback))
    if report.error is not None:
        print(colorize(f"{report.host}::{report.operation} {report.error}", Ansi.RED))


def format_result(result: ActionResult, *, rollback: bool = False) -> str:
    status = "changed" if result.changed else "ok"
    color: Optional[str] = Ansi.BLUE
    if result.failed:
        status = "failed"
        color = Ansi.RED
    elif result.changed:
        status = "reverted" if rollback else "changed"
        color = Ansi.GREEN
    resource = f"[{result.resource}]" if result.resource else ""
    line = f"{result.host}::{result.action}{resource} {status} - {result.details}"
    return colorize(line, color)


def format_state(host: str, state: OperationState) -> str:
    color = {"applied": Ansi.GREEN, "unapplied": Ansi.BLUE}.get(state.state, Ansi.YELLOW)
    lines = [colorize(f"{host}::{state.operation} {state.state}", color)]
    lines += [f"  before: {fact}" for fact in state.before]
    lines += [f"  after:  {fact}" for fact in state.after]
    return "\n".join(lines)


class Summary:
    def __init__(self) -> None:
        self.changes = 0
        self.additions = 0
        self.rollbacks = 0
        self.skipped = 0
        self.failures = 0

    def add(self, report: RunReport) -> None:
        if report.outcome is Outcome.FAILED:
            self.failures += 1
        for result in report.results:
            if result.failed or not result.changed:
                if not result.failed:
                    self.skipped += 1
                continue
            self.changes += 1
            if report.outcome is Outcome.ROLLED_BACK or (
                report.outcome is Outcome.FAILED and isinstance(report.error, PartialRollback)
            ):
                self.rollbacks += 1
            else:
                self.additions += 1

    def render(self) -> str:
        parts = [
            f"Changes: {self.changes}",
            f"Additions: {self.additions}",
            f"Rollbacks: {self.rollbacks}",
            f"Skipped: {self.skipped}",
            f"Failures: {self.failures}",
        ]
        text = " | ".join(parts)
        color = Ansi.GREEN if self.failures == 0 else Ansi.RED
        return colorize(text, color)


if __name__ == "__main__":
    raise SystemExit(main())
