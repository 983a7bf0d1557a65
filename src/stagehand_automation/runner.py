from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Mapping

from .errors import Corrupt, MutationFailed, PartialRollback
from .executors import Executor
from .markers import MarkerStore
from .operations.base import Mutation, Operation
from .types import ActionResult, HostConfig, Outcome, RunReport

logger = logging.getLogger(__name__)


@dataclass
class OperationState:
    operation: str
    state: str
    before: list[str] = field(default_factory=list)
    after: list[str] = field(default_factory=list)
    total: int = 0


class OperationRunner:
    """Applies or rolls back one operation at a time against one host.

    Every mutation is applied at most once and reversed at most once: a
    mutation's after-fact is committed to the marker store before the next
    mutation starts, and rollback only reverses what those facts name.
    """

    def __init__(
        self,
        host: HostConfig,
        executor: Executor,
        store: MarkerStore,
        operations: Mapping[str, Operation],
        *,
        dry_run: bool = False,
    ):
        self.host = host
        self.executor = executor
        self.store = store
        self.operations = operations
        self.dry_run = dry_run

    def apply(self, op_id: str) -> RunReport:
        operation = self._operation(op_id)
        if not self.dry_run:
            self.store.initialize()

        done = self._recorded(operation)
        pending = [m for m in operation.mutations if m.id not in done]
        if not pending:
            logger.info("operation=%s host=%s already applied, skipped", op_id, self.host.name)
            return RunReport(
                host=self.host.name,
                operation=op_id,
                outcome=Outcome.ALREADY_APPLIED,
                results=[self._result(operation, None, False, "already applied, skipped")],
            )

        results: list[ActionResult] = []
        if self.store.has_after_marker(op_id):
            before = self.store.read_before_record(op_id)
            for mutation in pending:
                self._pre_existing(operation, mutation, before)
            logger.info(
                "operation=%s host=%s resuming at %s (%d/%d recorded)",
                op_id,
                self.host.name,
                pending[0].id,
                len(done),
                len(operation.mutations),
            )
        else:
            failure = self._capture(operation, results)
            if failure is not None:
                return failure

        for mutation in pending:
            try:
                if mutation.probe(self.executor):
                    changed = False
                    detail = f"{mutation.present_label}, skipped"
                else:
                    changed = True
                    detail = mutation.apply(self.executor)
                    if self.dry_run:
                        detail = f"dry-run: {detail}"
            except Exception as exc:  # noqa: BLE001
                logger.error(
                    "operation=%s mutation=%s host=%s failed: %s",
                    op_id,
                    mutation.id,
                    self.host.name,
                    exc,
                    exc_info=logger.isEnabledFor(logging.DEBUG),
                )
                results.append(self._result(operation, mutation, False, str(exc), failed=True))
                return RunReport(
                    host=self.host.name,
                    operation=op_id,
                    outcome=Outcome.FAILED,
                    results=results,
                    error=MutationFailed(mutation.id, exc),
                )
            if not self.dry_run:
                self.store.append_after_fact(op_id, mutation.id)
            logger.debug("operation=%s mutation=%s changed=%s", op_id, mutation.id, changed)
            results.append(self._result(operation, mutation, changed, detail))

        return RunReport(
            host=self.host.name, operation=op_id, outcome=Outcome.APPLIED, results=results
        )

    def rollback(self, op_id: str) -> RunReport:
        operation = self._operation(op_id)
        if not self.dry_run:
            self.store.initialize()

        if not self.store.has_after_marker(op_id):
            logger.info("operation=%s host=%s nothing to roll back", op_id, self.host.name)
            return RunReport(
                host=self.host.name,
                operation=op_id,
                outcome=Outcome.NOTHING_TO_ROLL_BACK,
                results=[self._result(operation, None, False, "nothing to roll back")],
            )

        before = self.store.read_before_record(op_id)
        done = self._recorded(operation)
        steps = [
            (mutation, self._pre_existing(operation, mutation, before))
            for mutation in (operation.mutation(mid) for mid in reversed(done))
            if mutation is not None
        ]

        results: list[ActionResult] = []
        failed: list[str] = []
        for mutation, pre_existing in steps:
            if pre_existing:
                logger.info(
                    "operation=%s mutation=%s was %s before apply, left untouched",
                    op_id,
                    mutation.id,
                    mutation.present_label,
                )
                results.append(
                    self._result(operation, mutation, False, "pre-existing, left untouched")
                )
                continue
            try:
                if not mutation.probe(self.executor):
                    changed = False
                    detail = "already reverted"
                else:
                    changed = True
                    detail = mutation.reverse(self.executor)
                    if self.dry_run:
                        detail = f"dry-run: {detail}"
            except Exception as exc:  # noqa: BLE001
                logger.error(
                    "operation=%s mutation=%s host=%s reverse failed: %s",
                    op_id,
                    mutation.id,
                    self.host.name,
                    exc,
                    exc_info=logger.isEnabledFor(logging.DEBUG),
                )
                failed.append(mutation.id)
                results.append(self._result(operation, mutation, False, str(exc), failed=True))
                continue
            results.append(self._result(operation, mutation, changed, detail))

        if failed:
            logger.warning(
                "operation=%s host=%s rollback incomplete, markers kept", op_id, self.host.name
            )
            return RunReport(
                host=self.host.name,
                operation=op_id,
                outcome=Outcome.FAILED,
                results=results,
                error=PartialRollback(failed),
            )

        if not self.dry_run:
            self.store.clear(op_id)
        return RunReport(
            host=self.host.name, operation=op_id, outcome=Outcome.ROLLED_BACK, results=results
        )

    def inspect(self, op_id: str) -> OperationState:
        operation = self._operation(op_id)
        after = self._recorded(operation)
        before = self.store.read_before_record(op_id)
        total = len(operation.mutations)
        if not self.store.has_after_marker(op_id):
            state = "unapplied"
        elif len(after) < total:
            state = f"partial {len(after)}/{total}"
        else:
            state = "applied"
        return OperationState(operation=op_id, state=state, before=before, after=after, total=total)

    def _operation(self, op_id: str) -> Operation:
        operation = self.operations.get(op_id)
        if operation is None:
            raise KeyError(f"Operation '{op_id}' is not defined")
        return operation

    def _recorded(self, operation: Operation) -> list[str]:
        """After-marker entries in insertion order, each checked against the operation."""
        entries = list(dict.fromkeys(self.store.read_after_marker(operation.id)))
        unknown = [entry for entry in entries if operation.mutation(entry) is None]
        if unknown:
            raise Corrupt(
                f"{operation.id}: after-marker names unknown mutations: {', '.join(unknown)}",
                details={"operation": operation.id, "unknown": unknown},
            )
        return entries

    def _capture(self, operation: Operation, results: list[ActionResult]) -> RunReport | None:
        if self.store.has_before_record(operation.id):
            before = self.store.read_before_record(operation.id)
            recorded = {fact.rpartition(":")[0] for fact in before}
            if all(mutation.id in recorded for mutation in operation.mutations):
                # The first mutation failed last time; its facts still describe the host.
                logger.info("operation=%s reusing before-record of a failed run", operation.id)
                return None
            logger.warning(
                "operation=%s discarding before-record from an interrupted capture", operation.id
            )
            if not self.dry_run:
                self.store.discard_before_record(operation.id)
        for mutation in operation.mutations:
            try:
                present = mutation.probe(self.executor)
            except Exception as exc:  # noqa: BLE001
                logger.error(
                    "operation=%s mutation=%s probe failed: %s", operation.id, mutation.id, exc
                )
                results.append(self._result(operation, mutation, False, str(exc), failed=True))
                return RunReport(
                    host=self.host.name,
                    operation=operation.id,
                    outcome=Outcome.FAILED,
                    results=results,
                    error=MutationFailed(mutation.id, exc),
                )
            if not self.dry_run:
                self.store.append_before_fact(operation.id, mutation.fact(present))
        return None

    @staticmethod
    def _pre_existing(operation: Operation, mutation: Mutation, before: list[str]) -> bool:
        if mutation.fact(True) in before:
            return True
        if mutation.fact(False) in before:
            return False
        raise Corrupt(
            f"{operation.id}: no before-fact recorded for '{mutation.id}'",
            details={"operation": operation.id, "mutation": mutation.id},
        )

    def _result(
        self,
        operation: Operation,
        mutation: Mutation | None,
        changed: bool,
        details: str,
        *,
        failed: bool = False,
    ) -> ActionResult:
        return ActionResult(
            host=self.host.name,
            action=operation.id,
            changed=changed,
            details=details,
            failed=failed,
            resource=mutation.id if mutation is not None else None,
        )
