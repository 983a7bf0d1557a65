"""Exception hierarchy for the apply/rollback marker protocol."""

from __future__ import annotations

from typing import Any, Optional, Sequence


class StagehandError(Exception):
    """
    Base exception for stagehand.

    Attributes:
        details: Optional structured information (operation id, path, ...).
        cause: Optional original exception that triggered this error.
    """

    def __init__(
        self,
        message: str,
        *,
        details: Optional[dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.details = details or {}
        self.cause = cause


class StoreUnavailable(StagehandError):
    """Raised when the marker directory cannot be created, read or written."""


class Corrupt(StagehandError):
    """Raised when markers on the host contradict each other; never guessed around."""


class RecordMissing(Corrupt):
    """Raised when an after-marker exists without the matching before-record."""


class MutationFailed(StagehandError):
    """One apply step failed; earlier steps stay recorded so a retry resumes here."""

    def __init__(self, mutation_id: str, cause: BaseException) -> None:
        super().__init__(
            f"mutation '{mutation_id}' failed: {cause}",
            details={"mutation_id": mutation_id},
            cause=cause,
        )
        self.mutation_id = mutation_id


class PartialRollback(StagehandError):
    """One or more reverse actions failed; markers are kept for a retry."""

    def __init__(self, failed: Sequence[str]) -> None:
        ids = list(failed)
        super().__init__(
            f"rollback incomplete, failed: {', '.join(ids)}",
            details={"failed": ids},
        )
        self.failed = ids


__all__ = [
    "StagehandError",
    "StoreUnavailable",
    "Corrupt",
    "RecordMissing",
    "MutationFailed",
    "PartialRollback",
]
