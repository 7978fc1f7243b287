"""Formatting and numeric helpers."""

import math
import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from exceptions import RowProcessingError

_CURRENCY_RE = re.compile(r"(?:₹|Rs\.?|INR)", re.IGNORECASE)


def parse_amount(value: Any, *, record_id: Optional[str] = None, field: Optional[str] = None) -> float:
    """Parse a monetary value into a float.

    Blank values count as 0, matching how the providers omit zero charges.

    Raises:
        RowProcessingError: if the value is present but not a finite number.
    """
    if value is None or value == "":
        return 0.0
    if isinstance(value, bool):
        raise RowProcessingError(f"Non-numeric {field or 'amount'}: {value!r}", record_id=record_id, field=field)
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
    else:
        text = _CURRENCY_RE.sub("", str(value)).replace(",", "").replace(" ", "").strip()
        if not text:
            return 0.0
        try:
            number = float(Decimal(text))
        except InvalidOperation as exc:
            raise RowProcessingError(f"Non-numeric {field or 'amount'}: {value!r}", record_id=record_id, field=field) from exc

    if not math.isfinite(number):
        raise RowProcessingError(f"Non-finite {field or 'amount'}: {value!r}", record_id=record_id, field=field)
    return number


def format_money(x: Any) -> str:
    """Format a number with thousands separators and 2 decimals; non-numeric input is returned as text."""
    try:
        return f"{parse_amount(x):,.2f}"
    except RowProcessingError:
        return "" if x in (None, "") else str(x)


def format_duration(seconds: float) -> str:
    return f"{seconds:.2f}s"


def utc_timestamp(moment: Optional[datetime] = None) -> str:
    """ISO-8601 UTC timestamp with a trailing Z."""
    moment = moment or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
