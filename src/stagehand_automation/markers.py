from __future__ import annotations

import logging
import re
import subprocess
from pathlib import Path
from typing import Optional

from .errors import RecordMissing, StoreUnavailable
from .executors import Executor

logger = logging.getLogger(__name__)

DEFAULT_MARKER_DIR = Path("/usr/local/backups")

_OP_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


class MarkerStore:
    """Before/after marker files for each operation, kept on the managed host.

    ``<op_id>.before`` holds the facts captured before the first mutation and
    ``<op_id>.after`` gets one line per completed mutation. Both files are
    plain text, one fact per line, append-only; lookups are exact-line.
    The store assumes a single writer and does no locking.
    """

    def __init__(
        self,
        executor: Executor,
        directory: Path = DEFAULT_MARKER_DIR,
        *,
        owner: Optional[str] = None,
        mode: int = 0o700,
    ):
        self.executor = executor
        self.directory = Path(directory)
        self.owner = owner
        self.mode = mode

    def before_path(self, op_id: str) -> Path:
        return self.directory / f"{self._check_id(op_id)}.before"

    def after_path(self, op_id: str) -> Path:
        return self.directory / f"{self._check_id(op_id)}.after"

    def initialize(self) -> None:
        try:
            changed, detail = self.executor.ensure_directory(
                self.directory, mode=self.mode, owner=self.owner
            )
            writable = self.executor.dry_run or self.executor.is_writable(self.directory)
        except (OSError, subprocess.CalledProcessError) as exc:
            raise StoreUnavailable(
                f"marker directory {self.directory} could not be prepared: {_describe(exc)}",
                details={"directory": str(self.directory)},
                cause=exc,
            ) from exc
        if not writable:
            raise StoreUnavailable(
                f"marker directory {self.directory} is not writable",
                details={"directory": str(self.directory)},
            )
        if changed:
            logger.debug("marker-dir=%s %s", self.directory, detail)

    def has_after_marker(self, op_id: str) -> bool:
        return self._exists(self.after_path(op_id))

    def has_before_record(self, op_id: str) -> bool:
        return self._exists(self.before_path(op_id))

    def read_before_record(self, op_id: str) -> list[str]:
        facts = self._read_lines(self.before_path(op_id))
        if facts is None:
            if self.has_after_marker(op_id):
                raise RecordMissing(
                    f"{op_id}: after-marker present but before-record missing",
                    details={"operation": op_id, "path": str(self.before_path(op_id))},
                )
            return []
        return facts

    def read_after_marker(self, op_id: str) -> list[str]:
        return self._read_lines(self.after_path(op_id)) or []

    def append_before_fact(self, op_id: str, fact: str) -> None:
        self._append(self.before_path(op_id), fact)

    def append_after_fact(self, op_id: str, fact: str) -> None:
        self._append(self.after_path(op_id), fact)

    def discard_before_record(self, op_id: str) -> None:
        """Drop a before-record left behind by a capture that never reached a mutation."""
        self._remove(self.before_path(op_id))

    def clear(self, op_id: str) -> None:
        for path in (self.before_path(op_id), self.after_path(op_id)):
            if not self._remove(path):
                logger.info("marker %s already absent", path)

    def _exists(self, path: Path) -> bool:
        try:
            return self.executor.exists(path)
        except (OSError, subprocess.CalledProcessError) as exc:
            raise StoreUnavailable(f"cannot check {path}: {_describe(exc)}", cause=exc) from exc

    def _read_lines(self, path: Path) -> Optional[list[str]]:
        try:
            text = self.executor.read_file(path)
        except (OSError, subprocess.CalledProcessError) as exc:
            raise StoreUnavailable(f"cannot read {path}: {_describe(exc)}", cause=exc) from exc
        if text is None:
            return None
        return [line for line in text.splitlines() if line.strip()]

    def _append(self, path: Path, fact: str) -> None:
        if "\n" in fact or not fact.strip():
            raise ValueError(f"fact must be a single non-empty line: {fact!r}")
        try:
            self.executor.append_line(path, fact)
        except (OSError, subprocess.CalledProcessError) as exc:
            raise StoreUnavailable(f"cannot append to {path}: {_describe(exc)}", cause=exc) from exc
        logger.debug("marker=%s +%s", path.name, fact)

    def _remove(self, path: Path) -> bool:
        try:
            return self.executor.remove_path(path)
        except (OSError, subprocess.CalledProcessError) as exc:
            raise StoreUnavailable(f"cannot remove {path}: {_describe(exc)}", cause=exc) from exc

    @staticmethod
    def _check_id(op_id: str) -> str:
        if not _OP_ID_RE.match(op_id):
            raise ValueError(f"invalid operation id '{op_id}'")
        return op_id


def _describe(exc: BaseException) -> str:
    if isinstance(exc, subprocess.CalledProcessError):
        stderr = (exc.stderr or "").strip()
        return stderr.splitlines()[0] if stderr else f"rc={exc.returncode}"
    return str(exc)
