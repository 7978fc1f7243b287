"""Reconciliation run orchestration: fetch, merge, persist."""

from __future__ import annotations

import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from config import RECONCILE_DEADLINE_SECONDS, logger
from core.merge import merge_datasets
from core.settlement_index import build_indexes
from core.models import FeeBreakdownRow, MergeResult, OrderRecord, RunSummary, SettlementRecord
from core.tables import (
    FEE_BREAKDOWN_TABLE,
    ORDERS_TABLE,
    RECONCILIATION_TABLE,
    SETTLEMENTS_TABLE,
    fee_breakdown_grid,
    orders_grid,
    reconciliation_grid,
    settlements_grid,
)
from exceptions import PersistenceError, ReconciliationError, ReconciliationTimeoutError
from utils.formatting import format_duration, utc_timestamp


# Fraction of the remaining deadline the optional fee breakdown may wait for; the rest is kept for persisting.
FEE_BREAKDOWN_BUDGET_SHARE = 0.5


class OrderSource(Protocol):
    def fetch_orders(self) -> List[OrderRecord]: ...


class SettlementSource(Protocol):
    def fetch_settlements(self) -> List[SettlementRecord]: ...

    def compute_fee_breakdown(self) -> List[FeeBreakdownRow]: ...


class PersistenceSink(Protocol):
    def persist(self, table_name: str, rows: Sequence[Sequence[Any]]) -> None: ...


class RunState(StrEnum):
    IDLE = "idle"
    FETCHING_ORDERS = "fetching_orders"
    FETCHING_SETTLEMENTS = "fetching_settlements"
    INDEXING = "indexing"
    MERGING = "merging"
    FEE_BREAKDOWN = "fee_breakdown"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


class ReconciliationRunner:
    """
    Runs one reconciliation end to end under a cooperative deadline.

    Orders and settlements are fetched concurrently, the merge runs on the calling
    thread, and the tables are written concurrently. A runner is single-use per
    ``run()``; callers must not run two reconciliations against the same sink at once.
    """

    def __init__(
        self,
        order_source: OrderSource,
        settlement_source: SettlementSource,
        sink: PersistenceSink,
        deadline_seconds: float = RECONCILE_DEADLINE_SECONDS,
        include_fee_breakdown: bool = True,
        max_workers: int = 4,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self._order_source = order_source
        self._settlement_source = settlement_source
        self._sink = sink
        self._deadline_seconds = deadline_seconds
        self._include_fee_breakdown = include_fee_breakdown
        self._max_workers = max_workers
        self._clock = clock or time.monotonic
        self._state = RunState.IDLE
        self._started_at: Optional[float] = None
        self.orders: List[OrderRecord] = []
        self.settlements: List[SettlementRecord] = []
        self.fee_breakdown: List[FeeBreakdownRow] = []
        self.merge_result: Optional[MergeResult] = None

    @property
    def state(self) -> RunState:
        return self._state

    def elapsed(self) -> float:
        if self._started_at is None:
            return 0.0
        return self._clock() - self._started_at

    def _remaining(self) -> float:
        return self._deadline_seconds - self.elapsed()

    def _transition(self, state: RunState) -> None:
        logger.info("Reconciliation state change", previous_state=self._state.value, state=state.value, elapsed=format_duration(self.elapsed()))
        self._state = state

    def _timeout_error(self) -> ReconciliationTimeoutError:
        return ReconciliationTimeoutError(
            f"Reconciliation timeout: operation took too long (stage {self._state.value}, deadline {self._deadline_seconds:g}s)",
            stage=self._state.value,
            deadline_seconds=self._deadline_seconds,
        )

    def _check_deadline(self) -> None:
        if self._remaining() <= 0:
            raise self._timeout_error()

    def _await(self, futures: Sequence[Future], target: Future) -> None:
        """Block until ``target`` settles; a failure of any future or the deadline ends the wait early."""
        while not target.done():
            if any(future.done() and future.exception() is not None for future in futures):
                return
            remaining = self._remaining()
            if remaining <= 0:
                raise self._timeout_error()
            done, _ = wait([future for future in futures if not future.done()], timeout=remaining, return_when=FIRST_COMPLETED)
            if not done:
                raise self._timeout_error()

    @staticmethod
    def _raise_first_failure(futures: Sequence[Future]) -> None:
        # When both fetches have already failed the order error is the one reported.
        for future in futures:
            if future.done() and future.exception() is not None:
                raise future.exception()

    def _fetch(self, executor: ThreadPoolExecutor) -> None:
        self._transition(RunState.FETCHING_ORDERS)
        orders_future = executor.submit(self._order_source.fetch_orders)
        settlements_future = executor.submit(self._settlement_source.fetch_settlements)
        futures = [orders_future, settlements_future]

        self._await(futures, orders_future)
        self._raise_first_failure(futures)

        self._transition(RunState.FETCHING_SETTLEMENTS)
        self._await(futures, settlements_future)
        self._raise_first_failure(futures)

        self.orders = list(orders_future.result())
        self.settlements = list(settlements_future.result())
        logger.info("Fetched datasets", order_count=len(self.orders), settlement_count=len(self.settlements))

    def _start_fee_breakdown(self, executor: ThreadPoolExecutor) -> Optional[Future]:
        if not self._include_fee_breakdown:
            return None
        return executor.submit(self._settlement_source.compute_fee_breakdown)

    def _collect_fee_breakdown(self, future: Optional[Future]) -> Optional[str]:
        """
        Wait for the fee breakdown within its share of the remaining budget.

        The breakdown is optional: a failure or a late result is logged and reported,
        never raised, and the rest of the budget stays available for persisting.
        """
        if future is None:
            return None
        self._transition(RunState.FEE_BREAKDOWN)
        budget = max(self._remaining() * FEE_BREAKDOWN_BUDGET_SHARE, 0)
        try:
            self.fee_breakdown = list(future.result(timeout=budget))
        except Exception as exc:
            future.cancel()
            message = f"Fee breakdown timed out after {budget:.2f}s" if isinstance(exc, TimeoutError) else str(exc)
            logger.warning("Fee breakdown unavailable this run", error=message)
            self.fee_breakdown = []
            return message
        return None

    def _persist(self, executor: ThreadPoolExecutor) -> List[str]:
        self._transition(RunState.PERSISTING)
        tables: Dict[str, List[List[Any]]] = {
            ORDERS_TABLE: orders_grid(self.orders),
            SETTLEMENTS_TABLE: settlements_grid(self.settlements),
            RECONCILIATION_TABLE: reconciliation_grid(self.merge_result.rows if self.merge_result else []),
        }
        if self.fee_breakdown:
            tables[FEE_BREAKDOWN_TABLE] = fee_breakdown_grid(self.fee_breakdown)

        futures = {name: executor.submit(self._sink.persist, name, grid) for name, grid in tables.items()}
        # Let every independent write finish before reporting.
        _, pending = wait(list(futures.values()), timeout=max(self._remaining(), 0))
        if pending:
            raise self._timeout_error()

        errors = [(name, future.exception()) for name, future in futures.items() if future.exception() is not None]
        for name, error in errors:
            logger.error("Table write failed", table_name=name, error=str(error))
        if errors:
            _, first = errors[0]
            if isinstance(first, ReconciliationError):
                raise first
            raise PersistenceError(str(first), table_name=errors[0][0]) from first
        return list(tables.keys())

    def run(self) -> RunSummary:
        """
        Execute one reconciliation.

        Returns:
            RunSummary with counts, duration and timestamp.

        Raises:
            ReconciliationTimeoutError: when the deadline passes.
            AuthError, SourceUnavailableError, PersistenceError: when a collaborator fails.
        """
        if self._state != RunState.IDLE:
            raise RuntimeError(f"Runner already used (state {self._state.value})")

        self._started_at = self._clock()
        logger.info("Starting reconciliation run", deadline_seconds=self._deadline_seconds, started_at=utc_timestamp())
        executor = ThreadPoolExecutor(max_workers=self._max_workers)
        try:
            self._fetch(executor)
            self._check_deadline()
            # Runs alongside indexing and merging.
            fee_breakdown_future = self._start_fee_breakdown(executor)

            self._transition(RunState.INDEXING)
            indexes = build_indexes(self.settlements)
            self._check_deadline()

            self._transition(RunState.MERGING)
            self.merge_result = merge_datasets(self.orders, self.settlements, indexes=indexes)
            self._check_deadline()

            fee_breakdown_error = self._collect_fee_breakdown(fee_breakdown_future)
            self._check_deadline()

            tables_written = self._persist(executor)
        except ReconciliationTimeoutError as exc:
            self._transition(RunState.TIMED_OUT)
            logger.error("Reconciliation timed out", stage=exc.stage, elapsed=format_duration(self.elapsed()))
            executor.shutdown(wait=False, cancel_futures=True)
            raise
        except Exception as exc:
            self._transition(RunState.FAILED)
            logger.error("Reconciliation failed", error=str(exc), elapsed=format_duration(self.elapsed()))
            executor.shutdown(wait=False, cancel_futures=True)
            raise

        executor.shutdown(wait=False)
        self._transition(RunState.DONE)

        merge_result = self.merge_result
        summary = RunSummary(
            timestamp=utc_timestamp(),
            duration_seconds=self.elapsed(),
            order_count=len(self.orders),
            settlement_count=len(self.settlements),
            reconciled_rows=len(merge_result.rows),
            fee_breakdown_rows=len(self.fee_breakdown),
            skipped_rows=len(merge_result.skipped),
            stats=merge_result.stats,
            tables_written=tables_written,
            fee_breakdown_error=fee_breakdown_error,
        )
        logger.info(
            "Reconciliation run completed",
            shopify_orders=summary.order_count,
            shiprocket_rows=summary.settlement_count,
            reconciled_rows=summary.reconciled_rows,
            fee_breakdown_rows=summary.fee_breakdown_rows,
            skipped_rows=summary.skipped_rows,
            duration=format_duration(summary.duration_seconds),
        )
        return summary


def summary_to_response(summary: RunSummary) -> Dict[str, Any]:
    return {
        "status": "success",
        "timestamp": summary.timestamp,
        "duration": format_duration(summary.duration_seconds),
        "shopifyOrders": summary.order_count,
        "shiprocketRows": summary.settlement_count,
        "reconciledRows": summary.reconciled_rows,
        "feeBreakdownRows": summary.fee_breakdown_rows,
        "skippedRows": summary.skipped_rows,
        "tablesWritten": list(summary.tables_written),
        "reconciliationStats": summary.stats.to_dict(),
    }


def error_response(exc: BaseException, duration_seconds: float) -> Dict[str, Any]:
    code = exc.code if isinstance(exc, ReconciliationError) else "INTERNAL_ERROR"
    return {
        "status": "error",
        "code": code,
        "message": str(exc),
        "timestamp": utc_timestamp(datetime.now(timezone.utc)),
        "duration": format_duration(duration_seconds),
    }


def trigger_reconciliation(runner: ReconciliationRunner) -> Dict[str, Any]:
    """Run ``runner`` and shape the outcome into the caller-facing payload."""
    try:
        summary = runner.run()
    except Exception as exc:
        if not isinstance(exc, ReconciliationError):
            logger.exception("Unexpected reconciliation error", error=str(exc))
        return error_response(exc, runner.elapsed())
    return summary_to_response(summary)
