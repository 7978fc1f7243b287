from core.models import ReconciliationStatus

# Currency units; absorbs rounding noise between the storefront and the provider.
AMOUNT_TOLERANCE = 0.5


def resolve_status(is_cod: bool, has_settlement: bool, difference: float) -> ReconciliationStatus:
    """Classify an order from its payment type, settlement presence and amount delta."""
    if not is_cod:
        return ReconciliationStatus.PREPAID_NO_REMITTANCE
    if not has_settlement:
        return ReconciliationStatus.PENDING_REMITTANCE
    if abs(difference) < AMOUNT_TOLERANCE:
        return ReconciliationStatus.RECONCILED
    return ReconciliationStatus.MISMATCH
