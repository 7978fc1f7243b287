from core.models import OrderRecord, PaymentType


def classify_order(order: OrderRecord) -> PaymentType:
    """Classify an order as cash-on-delivery or pre-paid.

    A precomputed ``payment_type`` wins unless it is blank or ``Unknown``; otherwise
    the gateway name is checked for ``cod``.
    """
    precomputed = (order.payment_type or "").strip()
    if precomputed and precomputed.upper() != PaymentType.UNKNOWN.value.upper():
        return PaymentType.COD if precomputed.upper() == PaymentType.COD.value else PaymentType.PREPAID

    if "cod" in (order.payment_method or "").lower():
        return PaymentType.COD
    return PaymentType.PREPAID


def is_cod(order: OrderRecord) -> bool:
    return classify_order(order) == PaymentType.COD
