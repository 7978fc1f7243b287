"""Row building and aggregation for the reconciliation ledger."""

from __future__ import annotations

from typing import Iterable, List, Optional

from config import logger
from core.classification import classify_order
from core.matcher import MatchResult, match_settlement
from core.models import MatchMethod, MergeResult, OrderRecord, PaymentType, ReconciliationRow, ReconciliationStats, ReconciliationStatus, SettlementRecord
from core.settlement_index import SettlementIndexes, build_indexes
from core.status import resolve_status
from exceptions import RowProcessingError
from utils.formatting import format_money, parse_amount

_STATUS_COUNTERS = {
    ReconciliationStatus.RECONCILED: "reconciled",
    ReconciliationStatus.MISMATCH: "mismatch",
    ReconciliationStatus.PENDING_REMITTANCE: "pending_remittance",
    ReconciliationStatus.PREPAID_NO_REMITTANCE: "prepaid_no_remittance",
}


def build_row(order: OrderRecord, match: MatchResult) -> ReconciliationRow:
    """
    Assemble the ledger row for one order and its match.

    Args:
        order: Order from the order source.
        match: Result of ``match_settlement`` for that order.

    Returns:
        ReconciliationRow with the settlement passthrough fields filled when matched.

    Raises:
        RowProcessingError: if the order total or a matched settlement amount is not numeric.
    """
    order_id = (order.order_id or "").strip()
    order_total = parse_amount(order.order_total, record_id=order_id, field="order_total")
    payment_type = classify_order(order)

    settlement: SettlementRecord | None = match.settlement
    passthrough = {}
    shiprocket_net = 0.0
    if settlement is not None:
        shiprocket_net = parse_amount(settlement.net_amount, record_id=order_id, field="net_amount")
        passthrough = {
            "tracking_id": settlement.tracking_id or "",
            "gross_amount": parse_amount(settlement.gross_amount, record_id=order_id, field="gross_amount"),
            "shipping_fee": parse_amount(settlement.shipping_fee, record_id=order_id, field="shipping_fee"),
            "collection_fee": parse_amount(settlement.collection_fee, record_id=order_id, field="collection_fee"),
            "adjustments": parse_amount(settlement.adjustments, record_id=order_id, field="adjustments"),
            "return_reversal_fee": parse_amount(settlement.return_reversal_fee, record_id=order_id, field="return_reversal_fee"),
            "settlement_date": settlement.settlement_date or "",
            "batch_id": settlement.batch_id or "",
        }

    difference = order_total - shiprocket_net
    status = resolve_status(payment_type == PaymentType.COD, match.matched, difference)

    return ReconciliationRow(
        order_id=order_id,
        order_number=order.order_number or "",
        order_date=order.order_date or "",
        customer_name=order.customer_name or "",
        payment_method=order.payment_method or "",
        payment_type=payment_type,
        order_total=order_total,
        shiprocket_net=shiprocket_net,
        difference=difference,
        status=status,
        match_method=match.method,
        **passthrough,
    )


def record_row(stats: ReconciliationStats, row: ReconciliationRow) -> None:
    """Fold one successfully built row into the running counters."""
    stats.total += 1
    if row.payment_type == PaymentType.COD:
        stats.cod += 1
    else:
        stats.prepaid += 1

    counter = _STATUS_COUNTERS[row.status]
    setattr(stats, counter, getattr(stats, counter) + 1)
    stats.match_methods[row.match_method.value] = stats.match_methods.get(row.match_method.value, 0) + 1

    if row.match_method != MatchMethod.NONE:
        stats.total_net_settlement += row.shiprocket_net
        stats.total_collection_fees += row.collection_fee


def merge_datasets(orders: Iterable[OrderRecord], settlements: Iterable[SettlementRecord], indexes: Optional[SettlementIndexes] = None) -> MergeResult:
    """
    Reconcile orders against settlements.

    Output rows keep the input order of ``orders``. An order whose row cannot be
    built is logged and left out; it does not stop the rest of the batch.
    Pass ``indexes`` when they were already built from ``settlements``.
    """
    orders = list(orders)
    settlements = list(settlements)
    logger.info("Starting merge", order_count=len(orders), settlement_count=len(settlements))

    if indexes is None:
        indexes = build_indexes(settlements)
    result = MergeResult()
    rows: List[ReconciliationRow] = result.rows

    for order in orders:
        order_id = (order.order_id or "").strip()
        try:
            match = match_settlement(order, indexes)
            row = build_row(order, match)
        except RowProcessingError as exc:
            logger.warning("Skipping malformed row", order_id=order_id, field=exc.field, error=str(exc))
            result.skipped.append(order_id)
            continue
        except Exception as exc:
            logger.exception("Unexpected error building row", order_id=order_id, error=str(exc))
            result.skipped.append(order_id)
            continue

        rows.append(row)
        record_row(result.stats, row)

    stats = result.stats
    logger.info(
        "Merge complete",
        rows=len(rows),
        skipped=len(result.skipped),
        reconciled=stats.reconciled,
        mismatch=stats.mismatch,
        pending_remittance=stats.pending_remittance,
        prepaid_no_remittance=stats.prepaid_no_remittance,
        total_net_settlement=format_money(stats.total_net_settlement),
        total_collection_fees=format_money(stats.total_collection_fees),
    )
    return result
