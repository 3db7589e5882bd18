"""Bucketing functions: group supply records by month, category, supplier,
destination, school type and source, accumulating counts and quantities.

All functions take the record type's :class:`EntityFields` so one
implementation serves distributions, shipments, receipts and inventory.
Item totals come from line items; a record's cached total field is only a
fallback for records without line items.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Mapping, Sequence

from supply_reports.aggregation.entity_fields import (
    COUNCIL_NAME_FIELDS,
    DIRECT_SHIPMENT,
    DISTRIBUTION,
    RECEIPT,
    SCHOOL_ID_FIELDS,
    SCHOOL_NAME_FIELDS,
    SCHOOL_TYPE_FIELDS,
    SHIPMENT,
    SOURCE_NAME_FIELDS,
    SUPPLIER_FIELDS,
    EntityFields,
)
from supply_reports.aggregation.field_resolver import (
    ResolutionAudit,
    normalize_name,
    record_id,
    resolve,
    resolve_date,
    resolve_number,
)
from supply_reports.aggregation.metrics import duration_days

logger = logging.getLogger(__name__)

DEFAULT_TOP_N = 10
DEFAULT_TOLERANCE = 0.5


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class Bucket:
    """Accumulator for one grouping key."""

    key: str
    kind: str = ""  # destination/source type where it matters
    count: int = 0  # records mapped here
    item_total: float = 0.0
    value: float = 0.0
    share: float = 0.0  # percent of records, school-type breakdown only
    processing_days: list[float] = field(default_factory=list)
    avg_processing_days: float = 0.0

    def add_processing_sample(self, days: float | None) -> None:
        if days is None:
            return
        self.processing_days.append(days)
        self.avg_processing_days = round(
            sum(self.processing_days) / len(self.processing_days), 4
        )


@dataclass
class MonthlySeries:
    """Month buckets in ascending period order plus the dateless remainder."""

    buckets: list[Bucket]
    excluded: int
    excluded_item_total: float = 0.0

    @property
    def periods(self) -> list[str]:
        return [b.key for b in self.buckets]

    @property
    def total_items(self) -> float:
        return sum(b.item_total for b in self.buckets) + self.excluded_item_total


# ---------------------------------------------------------------------------
# Line items and record totals
# ---------------------------------------------------------------------------


def _line_items(record: Mapping, fields: EntityFields) -> list[Mapping]:
    for name in fields.line_item_fields:
        items = record.get(name)
        if isinstance(items, list) and items:
            return [i for i in items if isinstance(i, Mapping)]
    return []


def line_quantities(
    record: Mapping,
    fields: EntityFields,
    audit: ResolutionAudit | None = None,
) -> list[tuple[Mapping, float]]:
    """Return ``(line, quantity)`` pairs for every quantity-bearing line.

    Records without line items act as their own single line, resolved through
    the record-level quantity chain. Negative quantities contribute 0.
    """
    items = _line_items(record, fields)
    if not items:
        qty = resolve_number(
            record, fields.record_quantity_fields, 0.0, audit, f"{fields.name}.quantity",
        )
        return [(record, max(0.0, qty))]
    return [
        (
            item,
            max(0.0, resolve_number(
                item, fields.line_quantity_fields, 0.0, audit, f"{fields.name}.line_quantity",
            )),
        )
        for item in items
    ]


def line_value(line: Mapping, quantity: float, fields: EntityFields) -> float:
    cost = resolve_number(line, fields.unit_cost_fields, 0.0)
    return max(0.0, quantity * cost)


def record_item_total(
    record: Mapping,
    fields: EntityFields,
    audit: ResolutionAudit | None = None,
    tolerance: float = DEFAULT_TOLERANCE,
) -> float:
    """Sum of the record's line-item quantities.

    When the record also carries a cached total that differs from the sum by
    more than ``tolerance``, the record is flagged on the audit. The line-item
    sum is returned either way.
    """
    lines = line_quantities(record, fields, audit)
    total = sum(qty for _, qty in lines)
    if not _line_items(record, fields):
        return total

    cached = resolve_number(record, fields.record_quantity_fields, None)
    if cached is not None and abs(cached - total) > tolerance:
        rid = record_id(record)
        logger.warning(
            "%s %s cached total %.2f disagrees with line items %.2f",
            fields.name, rid, cached, total,
        )
        if audit is not None:
            audit.total_mismatches.append(rid)
    return total


def record_value(record: Mapping, fields: EntityFields) -> float:
    return sum(line_value(line, qty, fields) for line, qty in line_quantities(record, fields))


def _sort_buckets(buckets: Sequence[Bucket], top_n: int | None) -> list[Bucket]:
    ordered = sorted(buckets, key=lambda b: (-b.item_total, b.key, b.kind))
    if top_n is not None:
        ordered = ordered[:max(top_n, 0)]
    return ordered


def _combine_kinds(*groups: dict[str, Bucket]) -> list[Bucket]:
    """Concatenate buckets of different kinds, keeping keys unique.

    A name used by more than one kind is qualified with its kind, so a council
    and a school both called "Bo" become "Bo (Council)" and "Bo (School)".
    """
    seen: dict[str, int] = {}
    for group in groups:
        for key in group:
            seen[key] = seen.get(key, 0) + 1

    combined: list[Bucket] = []
    for group in groups:
        for key, bucket in group.items():
            if seen[key] > 1:
                bucket.key = f"{key} ({bucket.kind.title()})"
            combined.append(bucket)
    return combined


def _grouped(
    records: Sequence[Mapping],
    fields: EntityFields,
    key_fn: Callable[[Mapping], str],
    kind: str = "",
    audit: ResolutionAudit | None = None,
    tolerance: float = DEFAULT_TOLERANCE,
) -> dict[str, Bucket]:
    """Accumulate one bucket per record key."""
    groups: dict[str, Bucket] = {}
    for record in records:
        key = key_fn(record)
        bucket = groups.get(key)
        if bucket is None:
            bucket = groups[key] = Bucket(key=key, kind=kind)
        bucket.count += 1
        bucket.item_total += record_item_total(record, fields, audit, tolerance)
        bucket.value += record_value(record, fields)
        bucket.add_processing_sample(
            duration_days(record, fields.processing_start_fields, fields.processing_end_fields)
        )
    return groups


# ---------------------------------------------------------------------------
# 1. Time buckets
# ---------------------------------------------------------------------------


def month_key(record: Mapping, fields: EntityFields, audit: ResolutionAudit | None = None) -> str | None:
    """``YYYY-MM`` for the record's business date, or None when it has none."""
    dt = resolve_date(record, fields.date_fields, audit, f"{fields.name}.date")
    if dt is None:
        return None
    return f"{dt.year:04d}-{dt.month:02d}"


def aggregate_by_month(
    records: Sequence[Mapping],
    fields: EntityFields,
    audit: ResolutionAudit | None = None,
    tolerance: float = DEFAULT_TOLERANCE,
) -> MonthlySeries:
    """Group records into calendar-month buckets.

    Records with no usable date are left out of every bucket and counted in
    ``excluded``; their ids are recorded as unclassified on the audit.
    """
    months: dict[str, Bucket] = {}
    excluded = 0
    excluded_items = 0.0

    for record in records:
        key = month_key(record, fields, audit)
        if key is None:
            excluded += 1
            excluded_items += record_item_total(record, fields, audit, tolerance)
            rid = record_id(record)
            logger.debug("%s %s has no usable date; excluded from month series", fields.name, rid)
            if audit is not None:
                audit.unclassified.append(rid)
            continue
        bucket = months.get(key)
        if bucket is None:
            bucket = months[key] = Bucket(key=key)
        bucket.count += 1
        bucket.item_total += record_item_total(record, fields, audit, tolerance)
        bucket.value += record_value(record, fields)
        bucket.add_processing_sample(
            duration_days(record, fields.processing_start_fields, fields.processing_end_fields)
        )

    return MonthlySeries(
        buckets=[months[k] for k in sorted(months)],
        excluded=excluded,
        excluded_item_total=excluded_items,
    )


def merge_series(*series: MonthlySeries) -> MonthlySeries:
    """Combine month series built from different record types."""
    months: dict[str, Bucket] = {}
    for s in series:
        for src in s.buckets:
            bucket = months.get(src.key)
            if bucket is None:
                bucket = months[src.key] = Bucket(key=src.key)
            bucket.count += src.count
            bucket.item_total += src.item_total
            bucket.value += src.value
            for days in src.processing_days:
                bucket.add_processing_sample(days)
    return MonthlySeries(
        buckets=[months[k] for k in sorted(months)],
        excluded=sum(s.excluded for s in series),
        excluded_item_total=sum(s.excluded_item_total for s in series),
    )


# ---------------------------------------------------------------------------
# 2. Categorical buckets
# ---------------------------------------------------------------------------


def aggregate_by_category(
    records: Sequence[Mapping],
    fields: EntityFields,
    top_n: int | None = None,
    audit: ResolutionAudit | None = None,
) -> list[Bucket]:
    """Group every quantity line by category.

    A line without its own category inherits the record's; lines with neither
    land in ``Uncategorized``. ``count`` is the number of records touching the
    category, so a record with two lines of one category counts once.
    """
    categories: dict[str, Bucket] = {}

    for record in records:
        record_category = resolve(record, fields.category_fields)
        touched: set[str] = set()
        for line, qty in line_quantities(record, fields, audit):
            raw = resolve(line, fields.category_fields, record_category)
            key = normalize_name(raw, "Uncategorized")
            bucket = categories.get(key)
            if bucket is None:
                bucket = categories[key] = Bucket(key=key)
            bucket.item_total += qty
            bucket.value += line_value(line, qty, fields)
            if key not in touched:
                bucket.count += 1
                touched.add(key)

    return _sort_buckets(list(categories.values()), top_n)


def aggregate_by_supplier(
    receipts: Sequence[Mapping],
    fields: EntityFields = RECEIPT,
    top_n: int | None = DEFAULT_TOP_N,
    audit: ResolutionAudit | None = None,
    tolerance: float = DEFAULT_TOLERANCE,
) -> list[Bucket]:
    """Group receipts by supplier name."""
    groups = _grouped(
        receipts,
        fields,
        lambda r: normalize_name(resolve(r, SUPPLIER_FIELDS), "Unknown Supplier"),
        audit=audit,
        tolerance=tolerance,
    )
    return _sort_buckets(list(groups.values()), top_n)


def aggregate_by_destination(
    shipments: Sequence[Mapping],
    direct_shipments: Sequence[Mapping] = (),
    top_n: int | None = DEFAULT_TOP_N,
    audit: ResolutionAudit | None = None,
    tolerance: float = DEFAULT_TOLERANCE,
) -> list[Bucket]:
    """Group council shipments and direct school shipments by destination.

    Councils and schools are bucketed separately (``kind`` tells them apart)
    and then ranked together. A name shared by a council and a school is
    qualified with its kind.
    """
    councils = _grouped(
        shipments,
        SHIPMENT,
        lambda r: normalize_name(resolve(r, COUNCIL_NAME_FIELDS), "Unknown Council"),
        kind="council",
        audit=audit,
        tolerance=tolerance,
    )
    schools = _grouped(
        direct_shipments,
        DIRECT_SHIPMENT,
        lambda r: normalize_name(resolve(r, SCHOOL_NAME_FIELDS), "Unknown School"),
        kind="school",
        audit=audit,
        tolerance=tolerance,
    )
    return _sort_buckets(_combine_kinds(councils, schools), top_n)


def aggregate_by_school_type(
    distributions: Sequence[Mapping],
    fields: EntityFields = DISTRIBUTION,
    audit: ResolutionAudit | None = None,
    tolerance: float = DEFAULT_TOLERANCE,
) -> list[Bucket]:
    """Group distributions by the receiving school's type, with record shares."""
    groups = _grouped(
        distributions,
        fields,
        lambda r: normalize_name(resolve(r, SCHOOL_TYPE_FIELDS), "Unspecified"),
        audit=audit,
        tolerance=tolerance,
    )
    total = sum(b.count for b in groups.values())
    for bucket in groups.values():
        bucket.share = round(bucket.count / total * 100, 2) if total > 0 else 0.0
    return _sort_buckets(list(groups.values()), None)


def _school_label(record: Mapping) -> str:
    name = resolve(record, SCHOOL_NAME_FIELDS)
    if name is not None:
        return normalize_name(name, "Unknown School")
    school_id = resolve(record, SCHOOL_ID_FIELDS)
    return f"School {school_id}" if school_id is not None else "Unknown School"


def top_schools(
    distributions: Sequence[Mapping],
    fields: EntityFields = DISTRIBUTION,
    top_n: int | None = DEFAULT_TOP_N,
    audit: ResolutionAudit | None = None,
    tolerance: float = DEFAULT_TOLERANCE,
) -> list[Bucket]:
    """Schools ranked by quantity received."""
    groups = _grouped(
        distributions, fields, _school_label, kind="school", audit=audit, tolerance=tolerance,
    )
    return _sort_buckets(list(groups.values()), top_n)


def aggregate_by_source(
    distributions: Sequence[Mapping],
    direct_shipments: Sequence[Mapping] = (),
    top_n: int | None = DEFAULT_TOP_N,
    audit: ResolutionAudit | None = None,
    tolerance: float = DEFAULT_TOLERANCE,
) -> list[Bucket]:
    """Where a school's supplies came from.

    Council distributions are grouped by council; all direct warehouse
    shipments share one ``Direct From Warehouse`` bucket.
    """
    councils = _grouped(
        distributions,
        DISTRIBUTION,
        lambda r: normalize_name(resolve(r, SOURCE_NAME_FIELDS), "Local Council"),
        kind="council",
        audit=audit,
        tolerance=tolerance,
    )
    direct = _grouped(
        direct_shipments,
        DIRECT_SHIPMENT,
        lambda r: "Direct From Warehouse",
        kind="warehouse",
        audit=audit,
        tolerance=tolerance,
    )
    return _sort_buckets(_combine_kinds(councils, direct), top_n)
