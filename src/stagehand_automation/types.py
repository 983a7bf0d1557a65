from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .errors import StagehandError


@dataclass
class HostConfig:
    name: str
    address: Optional[str] = None
    user: str = "root"
    port: int = 22
    identity_file: Optional[Path] = None
    become: bool = True
    connect_timeout: Optional[int] = None


@dataclass
class ActionResult:
    host: str
    action: str
    changed: bool
    details: str
    failed: bool = False
    resource: Optional[str] = None


class Outcome(str, Enum):
    APPLIED = "applied"
    ALREADY_APPLIED = "already-applied"
    ROLLED_BACK = "rolled-back"
    NOTHING_TO_ROLL_BACK = "nothing-to-roll-back"
    FAILED = "failed"


@dataclass
class RunReport:
    """Outcome of one apply or rollback call for one operation on one host."""

    host: str
    operation: str
    outcome: Outcome
    results: list[ActionResult] = field(default_factory=list)
    error: Optional["StagehandError"] = None

    @property
    def failed(self) -> bool:
        return self.outcome is Outcome.FAILED
