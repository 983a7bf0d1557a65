from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional, Sequence

import jinja2

from .base import Mutation
from ..executors import Executor

logger = logging.getLogger(__name__)

_JINJA = jinja2.Environment(
    undefined=jinja2.StrictUndefined,
    keep_trailing_newline=True,
    autoescape=False,
)


class FileMutation(Mutation):
    """Ensure a file holds the rendered content.

    Content comes from a Jinja2 ``template`` or from another file on the host
    (``source``). ``host_facts`` maps template variables to commands whose
    output fills them at render time.

    A file found before the first write is kept as ``<path>.bak`` and
    restored on rollback; a file this mutation created is removed. With
    ``replace=False`` any existing file counts as present and is never
    rewritten.
    """

    def __init__(
        self,
        path: Path,
        *,
        template: Optional[str] = None,
        source: Optional[Path] = None,
        variables: Optional[dict[str, Any]] = None,
        host_facts: Optional[dict[str, Sequence[str]]] = None,
        mode: Optional[int] = None,
        owner: Optional[str] = None,
        directory_mode: Optional[int] = None,
        replace: bool = True,
    ):
        if (template is None) == (source is None):
            raise ValueError("file mutation requires exactly one of template or source")
        self.path = Path(path)
        super().__init__(str(self.path))
        self.template = template
        self.source = Path(source) if source is not None else None
        self.variables = dict(variables or {})
        self.host_facts = {k: list(v) for k, v in (host_facts or {}).items()}
        self.mode = mode
        self.owner = owner
        self.directory_mode = directory_mode
        self.replace = replace

    @property
    def backup_path(self) -> Path:
        return self.path.with_name(self.path.name + ".bak")

    def probe(self, executor: Executor) -> bool:
        current = executor.read_file(self.path)
        if current is None:
            return False
        if not self.replace:
            return True
        return current == self.render(executor)

    def apply(self, executor: Executor) -> str:
        content = self.render(executor)
        changes: list[str] = []
        if executor.exists(self.path) and not executor.exists(self.backup_path):
            executor.run(["cp", "-p", str(self.path), str(self.backup_path)])
            changes.append("backed up")
        if self.directory_mode is not None or self.owner:
            executor.ensure_directory(self.path.parent, mode=self.directory_mode, owner=self.owner)
        _, detail = executor.write_file(self.path, content=content, mode=self.mode)
        changes.append(detail)
        if self.owner:
            executor.run(["chown", f"{self.owner}:{self.owner}", str(self.path)])
        return ", ".join(changes)

    def reverse(self, executor: Executor) -> str:
        if executor.exists(self.backup_path):
            logger.debug("Restoring %s from %s", self.path, self.backup_path)
            executor.run(["mv", str(self.backup_path), str(self.path)])
            return "restored backup"
        executor.remove_path(self.path)
        return "removed"

    def render(self, executor: Executor) -> str:
        if self.source is not None:
            content = executor.read_file(self.source)
            if content is None:
                raise FileNotFoundError(f"source {self.source} does not exist on the host")
            return content
        context = dict(self.variables)
        for name, command in self.host_facts.items():
            result = executor.run(command, mutable=False)
            context[name] = result.stdout.strip()
        return _JINJA.from_string(self.template or "").render(**context)
