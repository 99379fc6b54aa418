"""Batch driver for NIC replacement and accelerated networking.

Runs one workflow per input record, strictly in order, and collects the
outcomes in an explicit result object. A failed VM never stops the batch.
"""

import logging
from collections.abc import Callable, Iterable

from nicswap.accelerated_networking import (
    AcceleratedNetworkingReconciler,
    AcceleratedNetworkingRequest,
    ReconcileResult,
    ReconcileStatus,
)
from nicswap.models import OutcomeStatus, ReplacementOutcome, ReplacementRequest
from nicswap.nic_replacement import NICReplacementWorkflow

logger = logging.getLogger(__name__)


class ReplacementBatchResult:
    """Aggregated outcomes of a NIC replacement batch."""

    def __init__(self, outcomes: list[ReplacementOutcome] | None = None):
        self.outcomes: list[ReplacementOutcome] = list(outcomes or [])

    def add(self, outcome: ReplacementOutcome) -> None:
        """Record one outcome."""
        self.outcomes.append(outcome)

    @property
    def total(self) -> int:
        """Total number of VMs processed."""
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        """VMs that completed, with or without warnings."""
        return sum(1 for o in self.outcomes if o.succeeded)

    @property
    def with_warnings(self) -> int:
        """VMs that completed with warnings."""
        return sum(1 for o in self.outcomes if o.status == OutcomeStatus.SUCCESS_WITH_WARNINGS)

    @property
    def failed(self) -> int:
        """VMs whose workflow failed."""
        return sum(1 for o in self.outcomes if o.status == OutcomeStatus.FAILED)

    @property
    def all_succeeded(self) -> bool:
        """True if no VM failed."""
        return self.failed == 0

    def get_failures(self) -> list[ReplacementOutcome]:
        """Get only failed outcomes."""
        return [o for o in self.outcomes if not o.succeeded]

    def get_successes(self) -> list[ReplacementOutcome]:
        """Get successful outcomes, including those with warnings."""
        return [o for o in self.outcomes if o.succeeded]

    def format_summary(self) -> str:
        """Format summary of results."""
        return (
            f"Total: {self.total}, Succeeded: {self.succeeded} "
            f"({self.with_warnings} with warnings), Failed: {self.failed}"
        )


class ReconcileBatchResult:
    """Aggregated results of an accelerated-networking batch."""

    def __init__(self, results: list[ReconcileResult] | None = None):
        self.results: list[ReconcileResult] = list(results or [])

    def add(self, result: ReconcileResult) -> None:
        """Record one result."""
        self.results.append(result)

    def _count(self, status: ReconcileStatus) -> int:
        return sum(1 for r in self.results if r.status == status)

    @property
    def updated(self) -> int:
        return self._count(ReconcileStatus.UPDATED)

    @property
    def skipped(self) -> int:
        return self._count(ReconcileStatus.SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(ReconcileStatus.FAILED)

    @property
    def all_succeeded(self) -> bool:
        """True if nothing failed (skips are not failures)."""
        return self.failed == 0

    def format_summary(self) -> str:
        """Format summary of results."""
        return f"Updated: {self.updated}, Skipped: {self.skipped}, Failed: {self.failed}"


class BatchDriver:
    """Process records one at a time, depth-first."""

    def __init__(
        self,
        workflow: NICReplacementWorkflow | None = None,
        reconciler: AcceleratedNetworkingReconciler | None = None,
        on_outcome: Callable[[object], None] | None = None,
    ):
        """Initialize batch driver.

        Args:
            workflow: NIC replacement workflow (required for run_replacements)
            reconciler: Accelerated networking reconciler (required for run_accelerated_networking)
            on_outcome: Optional callback invoked after each record
        """
        self.workflow = workflow
        self.reconciler = reconciler
        self.on_outcome = on_outcome

    def run_replacements(self, requests: Iterable[ReplacementRequest]) -> ReplacementBatchResult:
        """Replace NICs for every request in order.

        Args:
            requests: Replacement requests

        Returns:
            ReplacementBatchResult with one outcome per request
        """
        if self.workflow is None:
            raise ValueError("BatchDriver was created without a NIC replacement workflow")

        batch = ReplacementBatchResult()
        for request in requests:
            outcome = self.workflow.run(request)
            batch.add(outcome)
            logger.info(f"Completed {request.vm_name}: {outcome.status.value}")
            if self.on_outcome:
                self.on_outcome(outcome)

        logger.info("VM NIC Update Process Complete")
        logger.info(batch.format_summary())
        return batch

    def run_accelerated_networking(
        self, requests: Iterable[AcceleratedNetworkingRequest]
    ) -> ReconcileBatchResult:
        """Reconcile accelerated networking for every request in order."""
        if self.reconciler is None:
            raise ValueError("BatchDriver was created without an accelerated networking reconciler")

        batch = ReconcileBatchResult()
        for request in requests:
            result = self.reconciler.reconcile(request)
            batch.add(result)
            if self.on_outcome:
                self.on_outcome(result)

        logger.info(batch.format_summary())
        return batch


__all__ = ["BatchDriver", "ReconcileBatchResult", "ReplacementBatchResult"]
