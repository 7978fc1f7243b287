from dataclasses import dataclass, field
from typing import Dict, Iterable

from config import logger
from core.models import SettlementRecord


@dataclass
class SettlementIndexes:
    """Lookup maps over one run's settlements, keyed by trimmed identifier."""

    by_channel_id: Dict[str, SettlementRecord] = field(default_factory=dict)
    by_settlement_order_id: Dict[str, SettlementRecord] = field(default_factory=dict)
    by_secondary_id: Dict[str, SettlementRecord] = field(default_factory=dict)


def build_indexes(settlements: Iterable[SettlementRecord]) -> SettlementIndexes:
    """
    Index settlements by channel order id, settlement order id and secondary id.

    Blank keys are not indexed. When a provider reuses an identifier the later
    record overwrites the earlier one; the earlier record is unreachable by that key.

    Args:
        settlements: Settlement records in source order.

    Returns:
        SettlementIndexes holding the three maps.
    """
    indexes = SettlementIndexes()
    overwritten = 0

    for settlement in settlements:
        for key, mapping in (
            (settlement.channel_order_id, indexes.by_channel_id),
            (settlement.settlement_order_id, indexes.by_settlement_order_id),
            (settlement.secondary_id, indexes.by_secondary_id),
        ):
            key = (key or "").strip()
            if not key:
                continue
            if key in mapping:
                overwritten += 1
            mapping[key] = settlement

    logger.info(
        "Built settlement indexes",
        channel_ids=len(indexes.by_channel_id),
        settlement_order_ids=len(indexes.by_settlement_order_id),
        secondary_ids=len(indexes.by_secondary_id),
        overwritten_keys=overwritten,
    )
    return indexes
