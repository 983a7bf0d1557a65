from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

from ..executors import Executor


class Mutation(ABC):
    """One idempotent, reversible step of an operation.

    ``probe`` reports whether the host is already in the desired end-state;
    the fact recorded for the mutation is derived from it.
    """

    present_label = "present"
    absent_label = "absent"

    def __init__(self, mutation_id: str):
        if not mutation_id or "\n" in mutation_id:
            raise ValueError("mutation id must be a single non-empty line")
        self.id = mutation_id

    @abstractmethod
    def probe(self, executor: Executor) -> bool:
        """Return True when the desired end-state is already in place."""

    @abstractmethod
    def apply(self, executor: Executor) -> str:
        """Bring the host to the desired end-state and describe what changed."""

    @abstractmethod
    def reverse(self, executor: Executor) -> str:
        """Undo ``apply`` and describe what changed."""

    def fact(self, present: bool) -> str:
        label = self.present_label if present else self.absent_label
        return f"{self.id}:{label}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.id!r})"


@dataclass
class Operation:
    """A named, ordered list of mutations applied and rolled back as one unit."""

    id: str
    mutations: list[Mutation]
    description: str = ""
    login_users: tuple[str, ...] = ()
    rollback_users: tuple[str, ...] = ()
    _index: dict[str, Mutation] = field(init=False, repr=False, default_factory=dict)

    def __post_init__(self) -> None:
        if not self.mutations:
            raise ValueError(f"operation '{self.id}' has no mutations")
        for mutation in self.mutations:
            if mutation.id in self._index:
                raise ValueError(f"operation '{self.id}' repeats mutation '{mutation.id}'")
            self._index[mutation.id] = mutation

    def mutation(self, mutation_id: str) -> Optional[Mutation]:
        return self._index.get(mutation_id)

    def logins(self, *, rollback: bool = False) -> tuple[str, ...]:
        """Login users to try in order; rollback may be narrower than apply."""
        if rollback and self.rollback_users:
            return self.rollback_users
        return self.login_users
