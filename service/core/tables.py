"""Named-table layouts for the persisted sheets.

Every grid starts with a header row; columns follow the record field order.
"""

from enum import Enum
from typing import Any, Iterable, List, Sequence

from pydantic import BaseModel

from core.models import FeeBreakdownRow, OrderRecord, ReconciliationRow, SettlementRecord

ORDERS_TABLE = "Shopify_Orders"
SETTLEMENTS_TABLE = "Shiprocket_Settlements"
RECONCILIATION_TABLE = "Reconciliation"
FEE_BREAKDOWN_TABLE = "Shiprocket_Fee_Breakdown"

ORDER_COLUMNS = [
    "order_id",
    "order_number",
    "order_date",
    "customer_name",
    "payment_method",
    "order_total",
    "financial_status",
    "fulfillment_status",
    "payment_type",
]

SETTLEMENT_COLUMNS = [
    "channel_order_id",
    "secondary_id",
    "settlement_order_id",
    "tracking_id",
    "gross_amount",
    "shipping_fee",
    "collection_fee",
    "adjustments",
    "return_reversal_fee",
    "net_amount",
    "settlement_date",
    "batch_id",
    "freight_charge",
]

RECONCILIATION_COLUMNS = [
    "order_id",
    "order_number",
    "order_date",
    "customer_name",
    "payment_method",
    "payment_type",
    "order_total",
    "shiprocket_net",
    "difference",
    "status",
    "match_method",
    "tracking_id",
    "gross_amount",
    "shipping_fee",
    "collection_fee",
    "adjustments",
    "return_reversal_fee",
    "settlement_date",
    "batch_id",
    "notes",
]

FEE_BREAKDOWN_COLUMNS = [
    "channel_order_id",
    "tracking_id",
    "settlement_order_id",
    "order_amount",
    "total_remitted",
    "total_charges",
    "provider_cut",
    "transaction_count",
    "settlement_date",
    "batch_id",
]


def _cell(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value


def to_grid(records: Iterable[BaseModel], columns: Sequence[str]) -> List[List[Any]]:
    grid: List[List[Any]] = [list(columns)]
    for record in records:
        grid.append([_cell(getattr(record, column, "")) for column in columns])
    return grid


def orders_grid(orders: Iterable[OrderRecord]) -> List[List[Any]]:
    return to_grid(orders, ORDER_COLUMNS)


def settlements_grid(settlements: Iterable[SettlementRecord]) -> List[List[Any]]:
    return to_grid(settlements, SETTLEMENT_COLUMNS)


def reconciliation_grid(rows: Iterable[ReconciliationRow]) -> List[List[Any]]:
    return to_grid(rows, RECONCILIATION_COLUMNS)


def fee_breakdown_grid(rows: Iterable[FeeBreakdownRow]) -> List[List[Any]]:
    return to_grid(rows, FEE_BREAKDOWN_COLUMNS)
