from typing import Dict, Iterable, List

from config import logger
from core.models import FeeBreakdownRow, SettlementRecord
from exceptions import RowProcessingError
from utils.formatting import parse_amount


def compute_fee_breakdown(settlements: Iterable[SettlementRecord]) -> List[FeeBreakdownRow]:
    """
    Summarise what the provider deducted from each settled order.

    Settlement lines sharing a channel order id are folded into one row, in the
    order the ids were first seen. Lines without a channel order id fall back to
    the settlement order id; lines with neither, or with non-numeric amounts, are
    skipped.

    Args:
        settlements: Settlement records in source order.

    Returns:
        One FeeBreakdownRow per settled order.
    """
    rows: Dict[str, FeeBreakdownRow] = {}
    skipped = 0

    for settlement in settlements:
        key = (settlement.channel_order_id or "").strip() or (settlement.settlement_order_id or "").strip()
        if not key:
            skipped += 1
            continue

        try:
            gross = parse_amount(settlement.gross_amount, record_id=key, field="gross_amount")
            net = parse_amount(settlement.net_amount, record_id=key, field="net_amount")
            charges = sum(
                parse_amount(getattr(settlement, name), record_id=key, field=name)
                for name in ("shipping_fee", "collection_fee", "freight_charge", "return_reversal_fee", "adjustments")
            )
        except RowProcessingError as exc:
            logger.warning("Skipping settlement in fee breakdown", channel_order_id=key, error=str(exc))
            skipped += 1
            continue

        row = rows.get(key)
        if row is None:
            row = FeeBreakdownRow(channel_order_id=key)
            rows[key] = row

        row.order_amount += gross
        row.total_remitted += net
        row.total_charges += charges
        row.provider_cut = row.order_amount - row.total_remitted
        row.transaction_count += 1
        row.tracking_id = settlement.tracking_id or row.tracking_id
        row.settlement_order_id = settlement.settlement_order_id or row.settlement_order_id
        row.settlement_date = settlement.settlement_date or row.settlement_date
        row.batch_id = settlement.batch_id or row.batch_id

    logger.info("Computed fee breakdown", rows=len(rows), skipped=skipped)
    return list(rows.values())
