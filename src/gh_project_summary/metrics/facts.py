"""Mathematical fact library.

Pure functions over numbers and dates. Same input, same output; no I/O.
Statistics are rounded to 2 decimal places and return ``0`` for empty
input instead of raising.
"""

import math
from collections import Counter
from collections.abc import Iterable, Mapping, Sequence
from datetime import date, datetime, timedelta
from typing import Literal

BinSize = Literal["hour", "day", "week"]

DECIMALS = 2
SECONDS_PER_HOUR = 3600


def _round(value: float) -> float:
    return round(value, DECIMALS)


def ratio(numerator: float, denominator: float) -> float:
    """``numerator / denominator`` rounded, or 0 when the denominator is 0."""
    if denominator == 0:
        return 0.0
    return _round(numerator / denominator)


def percentage(part: float, whole: float) -> float:
    """``part`` as a percentage of ``whole``, or 0 when ``whole`` is 0."""
    if whole == 0:
        return 0.0
    return _round(part / whole * 100)


def growth_rate(current: float, previous: float) -> float:
    """Relative change from ``previous`` to ``current``.

    Growth from nothing counts as 1 (100%); no activity in either period
    counts as 0.
    """
    if previous == 0:
        return 1.0 if current > 0 else 0.0
    return _round((current - previous) / previous)


def mean(values: Sequence[float]) -> float:
    """Arithmetic mean, 0 for empty input."""
    if not values:
        return 0.0
    return _round(math.fsum(values) / len(values))


def percentile(values: Sequence[float], p: float) -> float:
    """Percentile with linear interpolation between closest ranks.

    The fractional rank is ``p / 100 * (n - 1)`` over the ascending values.

    Args:
        values: Numbers, in any order.
        p: Percentile between 0 and 100.

    Returns:
        The interpolated value, 0 for empty input.

    Raises:
        ValueError: If ``p`` is outside 0..100.
    """
    if not 0 <= p <= 100:
        msg = f"Percentile must be between 0 and 100, got {p}"
        raise ValueError(msg)
    if not values:
        return 0.0

    ordered = sorted(values)
    rank = p / 100 * (len(ordered) - 1)
    lower = math.floor(rank)
    upper = math.ceil(rank)
    if lower == upper:
        return _round(ordered[lower])
    fraction = rank - lower
    return _round(ordered[lower] + (ordered[upper] - ordered[lower]) * fraction)


def median(values: Sequence[float]) -> float:
    """Middle value (mean of the two middle values for even lengths)."""
    return percentile(values, 50)


def percentiles(values: Sequence[float], ps: Iterable[float]) -> dict[str, float]:
    """Several percentiles at once, keyed ``P25``, ``P50``, ``P99.9``..."""
    result = {}
    for p in ps:
        key = f"P{int(p)}" if float(p).is_integer() else f"P{p}"
        result[key] = percentile(values, p)
    return result


def variance(values: Sequence[float]) -> float:
    """Population variance, 0 for fewer than two values."""
    if len(values) <= 1:
        return 0.0
    avg = math.fsum(values) / len(values)
    return _round(math.fsum((v - avg) ** 2 for v in values) / len(values))


def standard_deviation(values: Sequence[float]) -> float:
    """Population standard deviation, 0 for fewer than two values."""
    if len(values) <= 1:
        return 0.0
    avg = math.fsum(values) / len(values)
    return _round(math.sqrt(math.fsum((v - avg) ** 2 for v in values) / len(values)))


def gini_coefficient(values: Sequence[float]) -> float:
    """Gini coefficient of inequality.

    0 means every value is equal, values close to 1 mean one element holds
    nearly everything. Computed as
    ``sum((2i - n - 1) * x_i) / (n * sum(x))`` over ascending ``x`` with
    1-based ``i``.

    Returns:
        The coefficient, 0 for empty input or a zero mean.
    """
    if not values:
        return 0.0
    total = math.fsum(values)
    if total == 0:
        return 0.0

    n = len(values)
    weighted = math.fsum((2 * i - n - 1) * v for i, v in enumerate(sorted(values), start=1))
    return _round(weighted / (n * total))


def _as_date(value: date | datetime) -> date:
    return value.date() if isinstance(value, datetime) else value


def days_between(start: datetime, end: datetime) -> int:
    """Whole days between two moments, order-insensitive."""
    return abs(end - start).days


def hours_between(start: datetime, end: datetime) -> int:
    """Whole hours between two moments, order-insensitive."""
    return int(abs(end - start).total_seconds() // SECONDS_PER_HOUR)


def business_days_between(start: date | datetime, end: date | datetime) -> int:
    """Count Monday-to-Friday days from ``start`` to ``end``, both included.

    Only the calendar dates matter; the time of day is ignored. The order of
    the arguments does not matter.
    """
    first, last = sorted((_as_date(start), _as_date(end)))
    count = 0
    current = first
    while current <= last:
        if current.weekday() < 5:
            count += 1
        current += timedelta(days=1)
    return count


def find_top_n(counts: Mapping[str, float], n: int) -> list[tuple[str, float]]:
    """The ``n`` largest entries, ties kept in insertion order."""
    if n <= 0:
        return []
    return sorted(counts.items(), key=lambda item: item[1], reverse=True)[:n]


def _bin_key(moment: datetime, bin_size: BinSize) -> str:
    if bin_size == "hour":
        return moment.strftime("%Y-%m-%dT%H:00")
    if bin_size == "day":
        return moment.strftime("%Y-%m-%d")
    week_start = moment.date() - timedelta(days=moment.weekday())
    return week_start.isoformat()


def bin_by_time(timestamps: Iterable[datetime], bin_size: BinSize = "day") -> dict[str, int]:
    """Count timestamps per hour, day or (Monday-starting) week.

    Returns:
        Counts keyed by bin label, sorted by label.

    Raises:
        ValueError: If ``bin_size`` is not hour, day or week.
    """
    if bin_size not in ("hour", "day", "week"):
        msg = f"Unsupported bin size: {bin_size}"
        raise ValueError(msg)
    counts = Counter(_bin_key(moment, bin_size) for moment in timestamps)
    return dict(sorted(counts.items()))
