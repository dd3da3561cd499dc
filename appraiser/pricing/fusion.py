"""
TCG Appraiser — Pricing Fusion

Turns raw comps from every price source into one PricingResult.

Algorithm:
    1. Normalize: convert price to USD, map condition onto the ordinal
       scale, drop non-positive prices and sales outside the window.
    2. IQR filter: drop prices beyond Q1 - k*IQR / Q3 + k*IQR (k = 1.5),
       only when at least FUSION_IQR_MIN_COMPS comps remain. If the filter
       would drop everything, keep the unfiltered set.
    3. low / median / high = percentiles (default 10/50/90) of the
       filtered prices, linear interpolation between closest ranks.
    4. volatility = population coefficient of variation (stdev / mean).
    5. confidence = (1 - exp(-n / COUNT_SCALE)) * exp(-PENALTY * volatility)

No comps left after normalization is the degenerate result: null values,
zero confidence. Never an exception.

Fusion is pure: the same comps and the same `now` give the same result.
"""

from __future__ import annotations

import math
import statistics
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Mapping, Optional, Sequence

import structlog

from appraiser.config import settings
from appraiser.schemas import PricingResult, RawComp
from appraiser.utils.condition_map import ConditionGrade, normalize_condition
from appraiser.utils.forex import convert_to_usd

logger = structlog.get_logger(__name__)

_CENT = Decimal("0.01")


@dataclass(frozen=True)
class NormalizedComp:
    source: str
    price_usd: Decimal
    condition: ConditionGrade
    sold_at: datetime
    listing_url: Optional[str] = None


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def normalize_comps(
    raw_comps: Iterable[RawComp],
    window_days: int,
    now: datetime,
    rates: Optional[Mapping[str, Decimal]] = None,
) -> list[NormalizedComp]:
    """
    Convert to USD, grade conditions, and drop unusable comps.

    A comp is dropped when its USD price is not positive or it sold before
    now - window_days. Sales stamped in the future are kept; sources report
    in their own clock and a small skew is normal.
    """
    cutoff = _as_utc(now) - timedelta(days=window_days)
    kept: list[NormalizedComp] = []
    dropped_price = dropped_window = 0

    for comp in raw_comps:
        price_usd = convert_to_usd(comp.price, comp.currency, rates)
        if price_usd <= 0:
            dropped_price += 1
            continue
        sold_at = _as_utc(comp.sold_at)
        if sold_at < cutoff:
            dropped_window += 1
            continue
        kept.append(
            NormalizedComp(
                source=comp.source,
                price_usd=price_usd,
                condition=normalize_condition(comp.condition),
                sold_at=sold_at,
                listing_url=comp.listing_url,
            )
        )

    if dropped_price or dropped_window:
        logger.debug(
            "fusion_comps_dropped",
            non_positive_price=dropped_price,
            outside_window=dropped_window,
            kept=len(kept),
        )
    return kept


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------


def percentile(sorted_prices: Sequence[Decimal], pct: float) -> Decimal:
    """
    Linear-interpolation percentile of an ascending, non-empty sequence.

    Examples:
        >>> percentile([Decimal("100"), Decimal("200")], 50)
        Decimal('150.00')
    """
    if not sorted_prices:
        raise ValueError("percentile of empty sequence")
    if len(sorted_prices) == 1:
        return sorted_prices[0].quantize(_CENT, rounding=ROUND_HALF_UP)

    rank = Decimal(str(pct)) / Decimal(100) * (len(sorted_prices) - 1)
    lower = int(rank)
    upper = min(lower + 1, len(sorted_prices) - 1)
    fraction = rank - lower
    value = sorted_prices[lower] + (sorted_prices[upper] - sorted_prices[lower]) * fraction
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


def iqr_filter(
    prices: Sequence[Decimal],
    min_comps: Optional[int] = None,
    multiplier: Optional[Decimal] = None,
) -> list[Decimal]:
    """
    Drop outliers beyond multiplier * IQR from the quartiles.

    Returns the input (sorted) unchanged when there are fewer than
    `min_comps` prices, or when filtering would drop every price.
    """
    min_comps = settings.FUSION_IQR_MIN_COMPS if min_comps is None else min_comps
    multiplier = settings.FUSION_IQR_MULTIPLIER if multiplier is None else multiplier

    ordered = sorted(prices)
    if len(ordered) < min_comps:
        return ordered

    q1 = percentile(ordered, 25)
    q3 = percentile(ordered, 75)
    spread = (q3 - q1) * multiplier
    lower, upper = q1 - spread, q3 + spread

    filtered = [p for p in ordered if lower <= p <= upper]
    if not filtered:
        logger.warning("fusion_iqr_filtered_everything", count=len(ordered))
        return ordered

    if len(filtered) < len(ordered):
        logger.debug(
            "fusion_iqr_outliers_removed",
            removed=len(ordered) - len(filtered),
            lower_bound=str(lower),
            upper_bound=str(upper),
        )
    return filtered


def compute_volatility(prices: Sequence[Decimal]) -> float:
    """Population coefficient of variation. 0.0 for fewer than two prices."""
    if len(prices) < 2:
        return 0.0
    values = [float(p) for p in prices]
    mean = statistics.fmean(values)
    if mean <= 0:
        return 0.0
    return statistics.pstdev(values, mu=mean) / mean


def compute_confidence(
    comps_count: int,
    volatility: float,
    count_scale: Optional[float] = None,
    volatility_penalty: Optional[float] = None,
) -> float:
    """
    Confidence in [0, 1]. Strictly increasing in comps_count, strictly
    decreasing in volatility, and 0 when there are no comps.
    """
    if comps_count <= 0:
        return 0.0
    count_scale = settings.CONFIDENCE_COUNT_SCALE if count_scale is None else count_scale
    volatility_penalty = (
        settings.CONFIDENCE_VOLATILITY_PENALTY if volatility_penalty is None else volatility_penalty
    )

    count_factor = 1.0 - math.exp(-comps_count / count_scale)
    volatility_factor = math.exp(-volatility_penalty * max(volatility, 0.0))
    return max(0.0, min(1.0, count_factor * volatility_factor))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def fuse_comps(
    raw_comps: Iterable[RawComp],
    window_days: Optional[int] = None,
    now: Optional[datetime] = None,
    rates: Optional[Mapping[str, Decimal]] = None,
) -> PricingResult:
    """
    Fuse raw comps into a PricingResult.

    Args:
        raw_comps: Comps from all sources, any currency, any order.
        window_days: Recency window; defaults to settings.DEFAULT_WINDOW_DAYS.
        now: Reference time for the window. Defaults to the current UTC time.
        rates: Currency rate override for conversion.

    Returns:
        PricingResult. compsCount == 0 yields the degenerate result.
    """
    window_days = window_days or settings.DEFAULT_WINDOW_DAYS
    now = now or datetime.now(timezone.utc)

    comps = normalize_comps(raw_comps, window_days, now, rates)
    if not comps:
        logger.info("fusion_no_comps", window_days=window_days)
        return PricingResult.empty(window_days=window_days)

    prices = iqr_filter([c.price_usd for c in comps])
    kept = set(prices)
    sources = sorted({c.source for c in comps if c.price_usd in kept})

    volatility = compute_volatility(prices)
    result = PricingResult(
        value_low=percentile(prices, settings.FUSION_LOW_PERCENTILE),
        value_median=percentile(prices, settings.FUSION_MEDIAN_PERCENTILE),
        value_high=percentile(prices, settings.FUSION_HIGH_PERCENTILE),
        comps_count=len(prices),
        window_days=window_days,
        sources=sources,
        confidence=compute_confidence(len(prices), volatility),
        volatility=round(volatility, 6),
    )

    logger.info(
        "fusion_complete",
        comps_count=result.comps_count,
        value_median=str(result.value_median),
        confidence=round(result.confidence, 4),
        volatility=result.volatility,
        sources=sources,
    )
    return result
