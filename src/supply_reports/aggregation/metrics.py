"""Performance metric calculators for supply reports.

Pure functions over record collections or pre-aggregated totals. Rate-style
results are percentages clamped to [0, 100]; durations are days clamped to
[0, max_days]. A zero denominator yields 0 (or the documented default),
never NaN.
"""

from __future__ import annotations

import math
from typing import Mapping, Sequence

from supply_reports.aggregation.entity_fields import (
    DAMAGED_FIELDS,
    DISCREPANCY_FIELDS,
    MINIMUM_STOCK_FIELDS,
    ON_HAND_FIELDS,
    STATUS_FIELDS,
    UNUSED_FIELDS,
)
from supply_reports.aggregation.field_resolver import (
    resolve,
    resolve_date,
    resolve_flag,
    resolve_number,
)

COMPLETION_STATUSES = frozenset({"COMPLETED", "DELIVERED", "CONFIRMED", "RECEIVED"})
COMPLETION_FLAGS = ("confirmed", "isDelivered", "isConfirmed")
CONFIRMATION_FLAGS = ("confirmed", "isConfirmed")
CONFIRMATION_DATE_FIELDS = ("confirmedAt", "confirmed_at", "confirmationDate")
FULFILLED_STATUSES = frozenset({"COMPLETED", "DELIVERED"})
PENDING_STATUSES = frozenset({"PENDING", "PREPARING", "DRAFT", "IN_TRANSIT", "DISPATCHED"})

MAX_PROCESSING_DAYS = 365.0

_RATING_BANDS = (
    (90.0, "Excellent"),
    (80.0, "Very Good"),
    (70.0, "Good"),
    (60.0, "Satisfactory"),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def clamp_rate(value: float) -> float:
    """Clamp a percentage to [0, 100]; NaN becomes 0."""
    if value is None or math.isnan(value):
        return 0.0
    return max(0.0, min(100.0, float(value)))


def clamp_days(value: float, max_days: float = MAX_PROCESSING_DAYS) -> float:
    if value is None or math.isnan(value):
        return 0.0
    return max(0.0, min(max_days, float(value)))


def _ratio(numerator: float, denominator: float) -> float:
    if not denominator or denominator <= 0:
        return 0.0
    return round(clamp_rate(numerator / denominator * 100), 2)


def _as_fields(fields: str | Sequence[str]) -> tuple[str, ...]:
    if isinstance(fields, str):
        return (fields,)
    return tuple(fields)


def _status(record: Mapping, candidates: Sequence[str] = STATUS_FIELDS) -> str:
    value = resolve(record, candidates, "")
    return str(value).strip().upper()


def is_completed(record: Mapping) -> bool:
    """True when any status field is a completion status or a completion flag is set."""
    for name in STATUS_FIELDS:
        if _status(record, (name,)) in COMPLETION_STATUSES:
            return True
    return any(resolve_flag(record, (flag,)) for flag in COMPLETION_FLAGS)


def is_pending(record: Mapping) -> bool:
    return _status(record) in PENDING_STATUSES


def duration_days(
    record: Mapping,
    start_fields: str | Sequence[str],
    end_fields: str | Sequence[str],
    max_days: float = MAX_PROCESSING_DAYS,
) -> float | None:
    """Days between the record's start and end dates.

    None when either date is missing or the duration falls outside the
    ``(0, max_days)`` window.
    """
    end_chain = _as_fields(end_fields)
    if not end_chain:
        return None
    start = resolve_date(record, _as_fields(start_fields))
    end = resolve_date(record, end_chain)
    if start is None or end is None:
        return None
    days = (end - start).total_seconds() / 86400
    if days <= 0 or days >= max_days:
        return None
    return days


# ---------------------------------------------------------------------------
# Rates
# ---------------------------------------------------------------------------


def distribution_efficiency(distributions: Sequence[Mapping]) -> float:
    """Percent of distributions that reached a completion status."""
    completed = sum(1 for d in distributions if is_completed(d))
    return _ratio(completed, len(distributions))


def is_confirmed(record: Mapping) -> bool:
    """True when the receiver confirmed the distribution.

    Any of the CONFIRMED status, a confirmation flag or a confirmation date counts.
    """
    if any(_status(record, (name,)) == "CONFIRMED" for name in STATUS_FIELDS):
        return True
    if any(resolve_flag(record, (flag,)) for flag in CONFIRMATION_FLAGS):
        return True
    return resolve_date(record, CONFIRMATION_DATE_FIELDS) is not None


def confirmation_rate(distributions: Sequence[Mapping]) -> float:
    """Percent of distributions confirmed by the receiving school."""
    confirmed = sum(1 for d in distributions if is_confirmed(d))
    return _ratio(confirmed, len(distributions))


def fulfillment_rate(shipments: Sequence[Mapping]) -> float:
    """Percent of shipments delivered or completed."""
    fulfilled = sum(1 for s in shipments if _status(s) in FULFILLED_STATUSES)
    return _ratio(fulfilled, len(shipments))


def school_coverage(schools_served: int, total_schools: int) -> float:
    return _ratio(schools_served, total_schools)


def inventory_turnover(units_distributed: float, units_in_stock: float) -> float:
    return _ratio(units_distributed, units_in_stock)


def _below_minimum(row: Mapping) -> bool:
    on_hand = resolve_number(row, ON_HAND_FIELDS, 0.0)
    minimum = resolve_number(row, MINIMUM_STOCK_FIELDS, None)
    return minimum is not None and on_hand < minimum


def stock_accuracy(inventory: Sequence[Mapping]) -> float:
    """Percent of inventory rows with a non-negative on-hand quantity at or
    above their minimum stock level (when one is set)."""
    accurate = sum(
        1 for row in inventory
        if resolve_number(row, ON_HAND_FIELDS, 0.0) >= 0 and not _below_minimum(row)
    )
    return _ratio(accurate, len(inventory))


def low_stock_count(inventory: Sequence[Mapping]) -> int:
    return sum(1 for row in inventory if _below_minimum(row))


def out_of_stock_count(inventory: Sequence[Mapping]) -> int:
    return sum(1 for row in inventory if resolve_number(row, ON_HAND_FIELDS, 0.0) <= 0)


def discrepancy_rate(shipments: Sequence[Mapping]) -> float:
    """Percent of shipments flagged with receiving discrepancies."""
    flagged = sum(1 for s in shipments if resolve_flag(s, DISCREPANCY_FIELDS))
    return _ratio(flagged, len(shipments))


def inventory_health(inventory: Sequence[Mapping]) -> float:
    """Percent of on-hand units that are not damaged."""
    total = 0.0
    healthy = 0.0
    for row in inventory:
        on_hand = max(0.0, resolve_number(row, ON_HAND_FIELDS, 0.0))
        damaged = max(0.0, resolve_number(row, DAMAGED_FIELDS, 0.0))
        total += on_hand
        healthy += max(0.0, on_hand - damaged)
    return _ratio(healthy, total)


def utilization_rate(inventory: Sequence[Mapping]) -> float:
    """Percent of on-hand units in use (not reported unused)."""
    total = 0.0
    used = 0.0
    for row in inventory:
        on_hand = max(0.0, resolve_number(row, ON_HAND_FIELDS, 0.0))
        unused = max(0.0, resolve_number(row, UNUSED_FIELDS, 0.0))
        total += on_hand
        used += max(0.0, on_hand - unused)
    return _ratio(used, total)


def on_time_rate(
    records: Sequence[Mapping],
    start_fields: str | Sequence[str],
    end_fields: str | Sequence[str],
    within_days: float = 7.0,
) -> float:
    """Percent of records whose start-to-end span is at most ``within_days``."""
    on_time = 0
    for record in records:
        days = duration_days(record, start_fields, end_fields)
        if days is not None and days <= within_days:
            on_time += 1
    return _ratio(on_time, len(records))


# ---------------------------------------------------------------------------
# Durations and scores
# ---------------------------------------------------------------------------


def average_processing_time(
    records: Sequence[Mapping],
    start_fields: str | Sequence[str],
    end_fields: str | Sequence[str],
    default: float = 0.0,
    max_days: float = MAX_PROCESSING_DAYS,
) -> float:
    """Mean days from start to end over records with a valid span.

    Spans must be positive and shorter than ``max_days``; anything else is an
    outlier. ``default`` is returned when no record survives.
    """
    samples = [
        d for d in (duration_days(r, start_fields, end_fields, max_days) for r in records)
        if d is not None
    ]
    if not samples:
        return clamp_days(default, max_days)
    return round(clamp_days(sum(samples) / len(samples), max_days), 2)


def processing_speed(avg_processing_days: float) -> float:
    """Score where every day of processing costs ten points."""
    return round(clamp_rate(100 - avg_processing_days * 10), 2)


def overall_rating(scores: Sequence[float]) -> str:
    """Grade band for the mean of several percentage scores."""
    if not scores:
        return "No Data"
    average = sum(clamp_rate(s) for s in scores) / len(scores)
    for threshold, label in _RATING_BANDS:
        if average >= threshold:
            return label
    return "Needs Improvement"
