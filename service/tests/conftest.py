"""
Shared pytest setup for unit tests.

``config`` is imported for real: it only builds a boto3 session and never calls AWS
at import time. The environment is pinned before that import so a developer's
``.env`` cannot point tests at real credentials or a real workbook bucket.
The production logger accepts structured keyword arguments (e.g. ``order_id=...``),
so tests log through it unchanged; ``TEST_LOG_LEVEL`` controls its verbosity.
"""

import os
from typing import Any, Callable, Dict

import pytest

os.environ.setdefault("POWERTOOLS_LOG_LEVEL", os.getenv("TEST_LOG_LEVEL", "WARNING").upper())
os.environ.setdefault("AWS_REGION", "eu-west-1")
os.environ["STAGE"] = "test"
for _name in ("SHOPIFY_ADMIN_TOKEN", "SHOPIFY_ADMIN_TOKEN_PATH", "SHIPROCKET_EMAIL", "SHIPROCKET_EMAIL_PATH", "SHIPROCKET_PASSWORD", "SHIPROCKET_PASSWORD_PATH", "WORKBOOK_S3_BUCKET"):
    os.environ.pop(_name, None)

from core.models import OrderRecord, SettlementRecord  # noqa: E402


@pytest.fixture
def make_order() -> Callable[..., OrderRecord]:
    def _make(order_id: str = "1", order_number: str = "#1001", order_total: Any = 1190, payment_method: str = "cod", **extra: Any) -> OrderRecord:
        fields: Dict[str, Any] = {
            "order_id": order_id,
            "order_number": order_number,
            "order_total": order_total,
            "payment_method": payment_method,
            "order_date": "2024-07-01T10:00:00+05:30",
            "customer_name": "Asha Rao",
        }
        fields.update(extra)
        return OrderRecord(**fields)

    return _make


@pytest.fixture
def make_settlement() -> Callable[..., SettlementRecord]:
    def _make(channel_order_id: str = "1001", net_amount: Any = 1190, **extra: Any) -> SettlementRecord:
        fields: Dict[str, Any] = {
            "channel_order_id": channel_order_id,
            "net_amount": net_amount,
            "gross_amount": net_amount,
            "tracking_id": f"AWB{channel_order_id}",
            "settlement_date": "2024-07-10",
            "batch_id": "B-1",
        }
        fields.update(extra)
        return SettlementRecord(**fields)

    return _make
