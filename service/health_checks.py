"""Connectivity checks for the order source, the settlement source and the workbook."""

from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Optional

from config import logger
from exceptions import AuthError
from sheet_store import WorkbookSheetStore
from shiprocket_repository import ShiprocketSettlementSource
from shopify_repository import ShopifyOrderSource
from utils.formatting import utc_timestamp

HealthResult = Dict[str, Any]


def check_shopify_health(source: Optional[ShopifyOrderSource] = None) -> HealthResult:
    try:
        source = source or ShopifyOrderSource.from_env()
    except AuthError:
        return {"status": False, "message": "Not configured"}
    return source.check_health()


def check_shiprocket_health(source: Optional[ShiprocketSettlementSource] = None) -> HealthResult:
    try:
        source = source or ShiprocketSettlementSource.from_env()
    except AuthError:
        return {"status": False, "message": "Not configured"}
    return source.check_health()


def check_workbook_health(store: Optional[WorkbookSheetStore] = None) -> HealthResult:
    return (store or WorkbookSheetStore()).check_health()


def _safe(name: str, check: Callable[[], HealthResult]) -> HealthResult:
    try:
        return check()
    except Exception as exc:
        logger.exception("Health check raised", check=name, error=str(exc))
        return {"status": False, "message": str(exc)}


def run_all_health_checks(
    shopify: Optional[ShopifyOrderSource] = None,
    shiprocket: Optional[ShiprocketSettlementSource] = None,
    store: Optional[WorkbookSheetStore] = None,
) -> Dict[str, Any]:
    """
    Check every collaborator in parallel.

    Returns:
        ``{timestamp, shopify, shiprocket, workbook, allHealthy}`` where each check is ``{status, message}``.
    """
    checks = {
        "shopify": lambda: check_shopify_health(shopify),
        "shiprocket": lambda: check_shiprocket_health(shiprocket),
        "workbook": lambda: check_workbook_health(store),
    }
    with ThreadPoolExecutor(max_workers=len(checks)) as executor:
        futures = {name: executor.submit(_safe, name, check) for name, check in checks.items()}
        results = {name: future.result() for name, future in futures.items()}

    all_healthy = all(result.get("status") for result in results.values())
    logger.info("Health checks complete", all_healthy=all_healthy, **{name: result.get("status") for name, result in results.items()})
    return {"timestamp": utc_timestamp(), **results, "allHealthy": all_healthy}
