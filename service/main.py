import time
from concurrent.futures import ThreadPoolExecutor
from functools import lru_cache
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from config import VIEW_DEADLINE_SECONDS, logger
from core.fee_breakdown import compute_fee_breakdown
from core.models import ReconciliationAction, ReconciliationEvent
from core.pagination import paginate
from dataset_cache import DatasetCache
from exceptions import ReconciliationError, ReconciliationTimeoutError
from health_checks import run_all_health_checks
from reconcile_runner import ReconciliationRunner, error_response, trigger_reconciliation
from sheet_store import WorkbookSheetStore
from shiprocket_repository import ShiprocketSettlementSource
from shopify_repository import ShopifyOrderSource

ORDERS_DATASET = "orders"
SETTLEMENTS_DATASET = "settlements"


class ReconciliationService:
    """Wires the sources, the sink and the view cache for one warm lambda container."""

    def __init__(
        self,
        order_source: Any,
        settlement_source: Any,
        sink: Any,
        cache: Optional[DatasetCache] = None,
        view_deadline_seconds: float = VIEW_DEADLINE_SECONDS,
        runner_factory: Callable[..., ReconciliationRunner] = ReconciliationRunner,
    ) -> None:
        self.order_source = order_source
        self.settlement_source = settlement_source
        self.sink = sink
        self.cache = cache or DatasetCache()
        self._view_deadline_seconds = view_deadline_seconds
        self._runner_factory = runner_factory

    @classmethod
    def from_env(cls) -> "ReconciliationService":
        return cls(
            order_source=ShopifyOrderSource.from_env(),
            settlement_source=ShiprocketSettlementSource.from_env(),
            sink=WorkbookSheetStore(),
        )

    def reconcile(self) -> Dict[str, Any]:
        runner = self._runner_factory(self.order_source, self.settlement_source, self.sink)
        response = trigger_reconciliation(runner)
        if response["status"] == "success":
            # A fresh run is the newest view of both datasets.
            self.cache.put(ORDERS_DATASET, runner.orders)
            self.cache.put(SETTLEMENTS_DATASET, runner.settlements)
        return response

    def _load_with_deadline(self, loader: Callable[[], List[Any]], stage: str) -> List[Any]:
        executor = ThreadPoolExecutor(max_workers=1)
        future = executor.submit(loader)
        try:
            return future.result(timeout=self._view_deadline_seconds)
        except TimeoutError as exc:
            raise ReconciliationTimeoutError(
                f"Fetching {stage} timed out after {self._view_deadline_seconds:g}s",
                stage=stage,
                deadline_seconds=self._view_deadline_seconds,
            ) from exc
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def orders(self) -> List[Any]:
        return self.cache.get_or_load(ORDERS_DATASET, lambda: self._load_with_deadline(self.order_source.fetch_orders, ORDERS_DATASET))

    def settlements(self) -> List[Any]:
        return self.cache.get_or_load(SETTLEMENTS_DATASET, lambda: self._load_with_deadline(self.settlement_source.fetch_settlements, SETTLEMENTS_DATASET))

    def fee_breakdown(self) -> List[Any]:
        return compute_fee_breakdown(self.settlements())

    def view(self, action: ReconciliationAction, page: Any, per_page: Any, refresh: bool = False) -> Dict[str, Any]:
        loaders = {
            ReconciliationAction.ORDERS: self.orders,
            ReconciliationAction.SETTLEMENTS: self.settlements,
            ReconciliationAction.FEE_BREAKDOWN: self.fee_breakdown,
        }
        if refresh:
            self.cache.invalidate()
        started = time.monotonic()
        try:
            items = loaders[action]()
        except ReconciliationError as exc:
            logger.error("Dataset view failed", action=action.value, error=str(exc))
            return error_response(exc, time.monotonic() - started)
        except Exception as exc:
            logger.exception("Unexpected dataset view error", action=action.value, error=str(exc))
            return error_response(exc, time.monotonic() - started)
        if per_page is None:
            return paginate(items, page)
        return paginate(items, page, per_page)


@lru_cache(maxsize=1)
def get_service() -> ReconciliationService:
    return ReconciliationService.from_env()


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    # Entry point for AWS Lambda: validate input and dispatch the requested action
    logger.info("Reconciliation lambda invoked", event_keys=list(event.keys()) if isinstance(event, dict) else [])

    try:
        payload = ReconciliationEvent.model_validate(event or {})
    except ValidationError as exc:
        errors = exc.errors(include_url=False, include_context=False)
        logger.error("Event failed validation", errors=errors)
        return {"status": "error", "message": "Invalid event payload", "errors": errors}

    if payload.action == ReconciliationAction.HEALTH:
        return run_all_health_checks()

    try:
        service = get_service()
    except ReconciliationError as exc:
        logger.error("Service is not configured", error=str(exc))
        return error_response(exc, 0.0)
    except Exception as exc:
        logger.exception("Service failed to start", error=str(exc))
        return error_response(exc, 0.0)

    if payload.action == ReconciliationAction.RECONCILE:
        return service.reconcile()
    return service.view(payload.action, payload.page, payload.per_page, refresh=payload.refresh)
