"""
TCG Appraiser — Currency Conversion

Converts comp prices into USD using a static spot-rate table
(settings.CURRENCY_RATES_TO_USD). Fusion compares prices only after
conversion, so every Decimal leaving this module is USD.

Unknown currencies are treated as USD and logged; a comp is never dropped
just because its currency is unfamiliar.

All money values use Decimal — never float.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Mapping, Optional

import structlog

from appraiser.config import settings

logger = structlog.get_logger(__name__)

_CENT = Decimal("0.01")


def rate_to_usd(currency: str, rates: Optional[Mapping[str, Decimal]] = None) -> Decimal:
    """
    Return the multiplier that converts one unit of `currency` into USD.

    Args:
        currency: ISO 4217 code (case-insensitive).
        rates: Override table; defaults to settings.CURRENCY_RATES_TO_USD.
    """
    table = rates if rates is not None else settings.CURRENCY_RATES_TO_USD
    code = (currency or "USD").strip().upper()
    rate = table.get(code)
    if rate is None:
        logger.warning("forex_unknown_currency", currency=code, fallback="USD", source="forex")
        return Decimal("1")
    return rate


def convert_to_usd(
    amount: Decimal,
    currency: str,
    rates: Optional[Mapping[str, Decimal]] = None,
) -> Decimal:
    """
    Convert an amount in `currency` to USD, rounded to the cent.

    Examples:
        >>> convert_to_usd(Decimal("100"), "EUR")
        Decimal('108.00')
        >>> convert_to_usd(Decimal("10000"), "JPY")
        Decimal('67.00')
    """
    rate = rate_to_usd(currency, rates)
    result = (Decimal(amount) * rate).quantize(_CENT, rounding=ROUND_HALF_UP)

    logger.debug(
        "forex_to_usd",
        amount=str(amount),
        currency=currency,
        rate=str(rate),
        result_usd=str(result),
    )
    return result
