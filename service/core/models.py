from enum import StrEnum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

Number = Union[int, float, str]


def _coerce_number(v: Any) -> Any:
    """Turn numeric-looking values into numbers; anything unparseable is kept as text.

    Text survives validation so the row builder can reject it as one malformed row
    instead of the whole payload failing here.
    """
    if v is None:
        return 0
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return v
    s = str(v).replace(",", "").replace(" ", "").strip()
    if s == "":
        return 0
    if isinstance(v, str):
        try:
            return float(s) if "." in s or "e" in s.lower() else int(s)
        except ValueError:
            return v
    return str(v)


def _coerce_text(v: Any) -> str:
    if v is None:
        return ""
    return str(v)


class PaymentType(StrEnum):
    COD = "COD"
    PREPAID = "Prepaid"
    UNKNOWN = "Unknown"


class ReconciliationStatus(StrEnum):
    RECONCILED = "Reconciled"
    MISMATCH = "Mismatch"
    PENDING_REMITTANCE = "PendingRemittance"
    PREPAID_NO_REMITTANCE = "PrepaidNoRemittance"


class MatchMethod(StrEnum):
    CHANNEL_ORDER_ID = "channel_order_id"
    SETTLEMENT_ORDER_ID = "settlement_order_id"
    SECONDARY_ID = "secondary_id"
    NONE = "none"


class OrderRecord(BaseModel):
    """Storefront order as returned by the order source."""
    order_id: str = ""
    order_number: str = ""
    order_date: str = ""
    customer_name: str = ""
    payment_method: str = ""
    order_total: Number = 0
    financial_status: str = ""
    fulfillment_status: str = ""
    payment_type: str = ""

    @field_validator("order_id", "order_number", "order_date", "customer_name", "payment_method", "financial_status", "fulfillment_status", "payment_type", mode="before")
    def _coerce_strings(cls, v: Any) -> str:
        return _coerce_text(v)

    @field_validator("order_total", mode="before")
    def _coerce_numbers(cls, v: Any) -> Any:
        return _coerce_number(v)


class SettlementRecord(BaseModel):
    """One order line inside a logistics-provider settlement batch."""
    channel_order_id: str = ""
    secondary_id: str = ""
    settlement_order_id: str = ""
    tracking_id: str = ""
    gross_amount: Number = 0
    shipping_fee: Number = 0
    collection_fee: Number = 0
    adjustments: Number = 0
    return_reversal_fee: Number = 0
    net_amount: Number = 0
    settlement_date: str = ""
    batch_id: str = ""
    freight_charge: Number = 0

    @field_validator("channel_order_id", "secondary_id", "settlement_order_id", "tracking_id", "settlement_date", "batch_id", mode="before")
    def _coerce_strings(cls, v: Any) -> str:
        return _coerce_text(v)

    @field_validator("gross_amount", "shipping_fee", "collection_fee", "adjustments", "return_reversal_fee", "net_amount", "freight_charge", mode="before")
    def _coerce_numbers(cls, v: Any) -> Any:
        return _coerce_number(v)


class ReconciliationRow(BaseModel):
    """Merged ledger line: one per successfully processed order."""
    order_id: str
    order_number: str = ""
    order_date: str = ""
    customer_name: str = ""
    payment_method: str = ""
    payment_type: PaymentType = PaymentType.PREPAID
    order_total: float = 0.0
    shiprocket_net: float = 0.0
    difference: float = 0.0
    status: ReconciliationStatus
    match_method: MatchMethod = MatchMethod.NONE
    tracking_id: str = ""
    gross_amount: float = 0.0
    shipping_fee: float = 0.0
    collection_fee: float = 0.0
    adjustments: float = 0.0
    return_reversal_fee: float = 0.0
    settlement_date: str = ""
    batch_id: str = ""
    notes: str = ""


class FeeBreakdownRow(BaseModel):
    """What the logistics provider kept out of each settled order."""
    channel_order_id: str
    tracking_id: str = ""
    settlement_order_id: str = ""
    order_amount: float = 0.0
    total_remitted: float = 0.0
    total_charges: float = 0.0
    provider_cut: float = 0.0
    transaction_count: int = 0
    settlement_date: str = ""
    batch_id: str = ""


class ReconciliationStats(BaseModel):
    """Running counters for one merge; only successfully processed rows are counted."""
    total: int = 0
    cod: int = 0
    prepaid: int = 0
    reconciled: int = 0
    mismatch: int = 0
    pending_remittance: int = 0
    prepaid_no_remittance: int = 0
    match_methods: Dict[str, int] = Field(default_factory=lambda: {method.value: 0 for method in MatchMethod})
    total_net_settlement: float = 0.0
    total_collection_fees: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "cod": self.cod,
            "prepaid": self.prepaid,
            "reconciled": self.reconciled,
            "mismatch": self.mismatch,
            "pendingRemittance": self.pending_remittance,
            "prepaidNoRemittance": self.prepaid_no_remittance,
            "matchMethods": dict(self.match_methods),
            "totalNetSettlement": round(self.total_net_settlement, 2),
            "totalCollectionFees": round(self.total_collection_fees, 2),
        }


class MergeResult(BaseModel):
    rows: List[ReconciliationRow] = Field(default_factory=list)
    stats: ReconciliationStats = Field(default_factory=ReconciliationStats)
    skipped: List[str] = Field(default_factory=list)


class RunSummary(BaseModel):
    """Outcome of a successful reconciliation run."""
    timestamp: str
    duration_seconds: float
    order_count: int
    settlement_count: int
    reconciled_rows: int
    fee_breakdown_rows: int = 0
    skipped_rows: int = 0
    stats: ReconciliationStats = Field(default_factory=ReconciliationStats)
    tables_written: List[str] = Field(default_factory=list)
    fee_breakdown_error: Optional[str] = None


class ReconciliationAction(StrEnum):
    RECONCILE = "reconcile"
    ORDERS = "orders"
    SETTLEMENTS = "settlements"
    FEE_BREAKDOWN = "fee_breakdown"
    HEALTH = "health"


class ReconciliationEvent(BaseModel):
    """
    Typed invocation payload for the lambda entry point.

    Callers may send ``perPage`` in camelCase; the snake_case name is accepted too.
    Page values are clamped later by the paginator, so they are only loosely typed here.
    """

    model_config = ConfigDict(populate_by_name=True)

    action: ReconciliationAction = ReconciliationAction.RECONCILE
    page: Any = 1
    per_page: Any = Field(default=None, alias="perPage")
    refresh: bool = False
