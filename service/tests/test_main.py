import time

import pytest

import config
import main
from core.models import ReconciliationAction
from dataset_cache import DatasetCache
from exceptions import AuthError, SourceUnavailableError
from main import ReconciliationService, lambda_handler
from reconcile_runner import ReconciliationRunner


class FakeOrderSource:
    def __init__(self, orders, delay: float = 0.0, error=None) -> None:
        self.orders = orders
        self.calls = 0
        self._delay = delay
        self._error = error

    def fetch_orders(self):
        self.calls += 1
        if self._delay:
            time.sleep(self._delay)
        if self._error:
            raise self._error
        return self.orders


class FakeSettlementSource:
    def __init__(self, settlements) -> None:
        self.settlements = settlements
        self.calls = 0

    def fetch_settlements(self):
        self.calls += 1
        return self.settlements

    def compute_fee_breakdown(self):
        return []


class NullSink:
    def __init__(self) -> None:
        self.tables = []

    def persist(self, table_name, rows):
        self.tables.append(table_name)


@pytest.fixture
def service(make_order, make_settlement):
    orders = [make_order(order_id=str(i), order_number=f"#{i}") for i in range(1, 6)]
    settlements = [make_settlement(channel_order_id="1", net_amount=1190, gross_amount=1300)]
    return ReconciliationService(FakeOrderSource(orders), FakeSettlementSource(settlements), NullSink(), cache=DatasetCache(ttl_seconds=300))


@pytest.fixture
def wired(monkeypatch, service):
    monkeypatch.setattr(main, "get_service", lambda: service)
    return service


# region Views

def test_orders_view_paginates_and_caches(wired):
    first = lambda_handler({"action": "orders", "page": 1, "perPage": 2}, None)
    second = lambda_handler({"action": "orders", "page": 2, "per_page": 2}, None)

    assert first["status"] == "success"
    assert [item["order_id"] for item in first["items"]] == ["1", "2"]
    assert first["totalPages"] == 3
    assert [item["order_id"] for item in second["items"]] == ["3", "4"]
    assert wired.order_source.calls == 1


def test_refresh_bypasses_cache(wired):
    lambda_handler({"action": "settlements"}, None)
    lambda_handler({"action": "settlements", "refresh": True}, None)

    assert wired.settlement_source.calls == 2


def test_fee_breakdown_view(wired):
    result = lambda_handler({"action": "fee_breakdown"}, None)

    assert result["totalItems"] == 1
    assert result["items"][0]["provider_cut"] == 110


def test_view_page_past_end(wired):
    result = lambda_handler({"action": "orders", "page": 9}, None)

    assert result["status"] == "error"
    assert result["message"] == "Page 9 exceeds total pages (1)"


def test_view_source_error_is_reported(service):
    service.order_source = FakeOrderSource([], error=SourceUnavailableError("Shopify down"))

    result = service.view(ReconciliationAction.ORDERS, 1, None)

    assert result["code"] == "SOURCE_UNAVAILABLE"
    assert result["message"] == "Shopify down"


def test_view_unexpected_error_is_internal_error(service):
    service.order_source = FakeOrderSource([], error=ValueError("unexpected payload shape"))

    result = service.view(ReconciliationAction.ORDERS, 1, None)

    assert result["status"] == "error"
    assert result["code"] == "INTERNAL_ERROR"
    assert result["message"] == "unexpected payload shape"
    assert result["duration"].endswith("s")


def test_view_times_out(make_order):
    slow = ReconciliationService(FakeOrderSource([make_order()], delay=0.5), FakeSettlementSource([]), NullSink(), view_deadline_seconds=0.05)

    result = slow.view(ReconciliationAction.ORDERS, 1, None)

    assert result["code"] == "TIMEOUT"

# endregion


# region Reconcile

def test_reconcile_action_primes_view_cache(wired):
    result = lambda_handler({"action": "reconcile"}, None)
    lambda_handler({"action": "orders"}, None)

    assert result["status"] == "success"
    assert result["shopifyOrders"] == 5
    assert "Reconciliation" in wired.sink.tables
    assert wired.order_source.calls == 1


def test_reconcile_is_default_action(wired, monkeypatch):
    runners = []

    def factory(*args, **kwargs):
        runner = ReconciliationRunner(*args, **kwargs)
        runners.append(runner)
        return runner

    monkeypatch.setattr(wired, "_runner_factory", factory)

    assert lambda_handler({}, None)["status"] == "success"
    assert len(runners) == 1

# endregion


# region Validation and configuration

def test_invalid_action_is_rejected():
    result = lambda_handler({"action": "delete_everything"}, None)

    assert result["status"] == "error"
    assert result["message"] == "Invalid event payload"
    assert result["errors"][0]["loc"] == ("action",)


def test_missing_configuration_is_auth_error(monkeypatch):
    def unconfigured():
        raise AuthError("Missing SHOPIFY_STORE_DOMAIN or SHOPIFY_ADMIN_TOKEN environment variables")

    monkeypatch.setattr(main, "get_service", unconfigured)

    result = lambda_handler({"action": "reconcile"}, None)

    assert result["code"] == "AUTH_ERROR"
    assert result["message"].startswith("Missing SHOPIFY_STORE_DOMAIN")


def test_missing_ssm_secret_is_auth_error(monkeypatch):
    """An unreadable SSM secret while building the service returns an error payload instead of raising."""
    monkeypatch.setenv("SHOPIFY_ADMIN_TOKEN_PATH", "/recon/shopify-token")

    def missing(name):
        raise ValueError("Parameter not found in SSM.")

    monkeypatch.setattr(config, "fetch_parameter", missing)
    main.get_service.cache_clear()
    try:
        result = lambda_handler({"action": "orders"}, None)
    finally:
        main.get_service.cache_clear()

    assert result["status"] == "error"
    assert result["code"] == "AUTH_ERROR"
    assert "/recon/shopify-token" in result["message"]


def test_unexpected_startup_error_is_internal_error(monkeypatch):
    def broken():
        raise RuntimeError("boto3 session unavailable")

    monkeypatch.setattr(main, "get_service", broken)

    result = lambda_handler({"action": "settlements"}, None)

    assert result["code"] == "INTERNAL_ERROR"
    assert result["message"] == "boto3 session unavailable"


def test_health_action(monkeypatch):
    monkeypatch.setattr(main, "run_all_health_checks", lambda: {"allHealthy": True})

    assert lambda_handler({"action": "health"}, None) == {"allHealthy": True}

# endregion
