"""Settlement matching strategies."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from core.models import MatchMethod, OrderRecord, SettlementRecord
from core.settlement_index import SettlementIndexes

ORDER_NUMBER_PREFIX = "#"


@dataclass(frozen=True)
class MatchResult:
    settlement: Optional[SettlementRecord]
    method: MatchMethod

    @property
    def matched(self) -> bool:
        return self.settlement is not None


NO_MATCH = MatchResult(settlement=None, method=MatchMethod.NONE)


def channel_key(order: OrderRecord) -> str:
    """Order number without its leading ``#``, as the provider records it."""
    number = (order.order_number or "").strip()
    if number.startswith(ORDER_NUMBER_PREFIX):
        number = number[len(ORDER_NUMBER_PREFIX):]
    return number.strip()


def settlement_order_key(order: OrderRecord) -> str:
    return (order.order_id or "").strip()


def secondary_key(order: OrderRecord) -> str:
    return (order.order_number or "").strip()


IndexGetter = Callable[[SettlementIndexes], Dict[str, SettlementRecord]]
KeyExtractor = Callable[[OrderRecord], str]

# Tried top to bottom; the first hit wins.
MATCH_STRATEGIES: List[Tuple[IndexGetter, KeyExtractor, MatchMethod]] = [
    (lambda idx: idx.by_channel_id, channel_key, MatchMethod.CHANNEL_ORDER_ID),
    (lambda idx: idx.by_settlement_order_id, settlement_order_key, MatchMethod.SETTLEMENT_ORDER_ID),
    (lambda idx: idx.by_secondary_id, secondary_key, MatchMethod.SECONDARY_ID),
]


def match_settlement(order: OrderRecord, indexes: SettlementIndexes) -> MatchResult:
    """Find the settlement for an order using exact matches on normalized keys."""
    for index_getter, key_extractor, method in MATCH_STRATEGIES:
        key = key_extractor(order)
        if not key:
            continue
        settlement = index_getter(indexes).get(key)
        if settlement is not None:
            return MatchResult(settlement=settlement, method=method)
    return NO_MATCH
