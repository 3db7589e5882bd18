"""Report assemblers for warehouse, council and school report payloads.

Each assembler narrows the raw collections to one scope and date range, runs
the bucketing functions and metric calculators, and returns a
:class:`ReportPayload` whose shape is the same for every scope. Sections a
scope does not produce are ``None``; an empty input yields a zero-valued
payload rather than an error.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Mapping, Sequence

from config.settings import Settings, settings as default_settings
from supply_reports.aggregation.bucketing import (
    Bucket,
    MonthlySeries,
    aggregate_by_category,
    aggregate_by_destination,
    aggregate_by_month,
    aggregate_by_school_type,
    aggregate_by_source,
    aggregate_by_supplier,
    line_quantities,
    merge_series,
    record_value,
    top_schools,
)
from supply_reports.aggregation.entity_fields import (
    COUNCIL_ID_FIELDS,
    COUNCIL_NAME_FIELDS,
    DIRECT_SHIPMENT,
    DISTRIBUTION,
    INVENTORY,
    RECEIPT,
    SCHOOL_ID_FIELDS,
    SCHOOL_NAME_FIELDS,
    SHIPMENT,
    WAREHOUSE_ID_FIELDS,
    EntityFields,
)
from supply_reports.aggregation.field_resolver import (
    ResolutionAudit,
    parse_date,
    resolve,
    resolve_date,
)
from supply_reports.aggregation import metrics

logger = logging.getLogger(__name__)

SCOPE_KINDS = ("warehouse", "council", "school")

_PROFILE_SCOPE_FIELDS = {
    "warehouse": ("warehouseId", "warehouse_id", "warehouse.id"),
    "council": ("localCouncilId", "councilId", "local_council_id", "localCouncil.id"),
    "school": ("schoolId", "school_id", "school.id"),
}


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DateRange:
    """Inclusive calendar-date range; a missing bound is open."""

    start: date | None = None
    end: date | None = None

    @classmethod
    def parse(cls, start: Any = None, end: Any = None) -> "DateRange":
        start_dt = parse_date(start)
        end_dt = parse_date(end)
        return cls(
            start=start_dt.date() if start_dt else None,
            end=end_dt.date() if end_dt else None,
        )

    def contains(self, moment: datetime) -> bool:
        day = moment.date()
        if self.start is not None and day < self.start:
            return False
        if self.end is not None and day > self.end:
            return False
        return True

    def as_dict(self) -> dict:
        return {
            "start": self.start.isoformat() if self.start else None,
            "end": self.end.isoformat() if self.end else None,
        }


@dataclass(frozen=True)
class Scope:
    """Organizational level a report is computed for."""

    kind: str
    warehouse_id: str | None = None
    council_id: str | None = None
    school_id: str | None = None

    @property
    def explicit_id(self) -> str | None:
        return {
            "warehouse": self.warehouse_id,
            "council": self.council_id,
            "school": self.school_id,
        }.get(self.kind)


@dataclass
class ReportCollections:
    """Already-fetched raw record collections."""

    inventory: list[dict] = field(default_factory=list)
    distributions: list[dict] = field(default_factory=list)
    shipments: list[dict] = field(default_factory=list)
    direct_shipments: list[dict] = field(default_factory=list)
    receipts: list[dict] = field(default_factory=list)
    schools: list[dict] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Payload
# ---------------------------------------------------------------------------


@dataclass
class InventoryReport:
    total_items: float = 0.0
    total_value: float = 0.0
    low_stock_items: int = 0
    out_of_stock_items: int = 0
    categories: list[Bucket] = field(default_factory=list)


@dataclass
class MovementReport:
    """Shared shape of the distribution, shipment and receipt sections."""

    total_records: int = 0
    total_items: float = 0.0
    total_value: float = 0.0
    pending: int = 0
    distinct_destinations: int = 0
    discrepancy_rate: float = 0.0
    average_processing_time: float = 0.0
    excluded_from_time_series: int = 0
    by_month: list[Bucket] = field(default_factory=list)
    breakdowns: dict[str, list[Bucket]] = field(default_factory=dict)


@dataclass
class PerformanceMetrics:
    distribution_efficiency: float = 0.0
    confirmation_rate: float = 0.0
    fulfillment_rate: float = 0.0
    school_coverage: float = 0.0
    inventory_turnover: float = 0.0
    stock_accuracy: float = 0.0
    discrepancy_rate: float = 0.0
    average_processing_time: float = 0.0
    processing_speed: float = 0.0
    inventory_health: float = 0.0
    utilization_rate: float = 0.0
    on_time_rate: float = 0.0
    overall_rating: str = "No Data"


@dataclass
class ReportPayload:
    scope: str
    scope_id: str | None
    date_range: dict
    inventory_report: InventoryReport
    distribution_report: MovementReport | None
    shipment_report: MovementReport | None
    receipt_report: MovementReport | None
    performance_metrics: PerformanceMetrics
    data_quality: dict
    summary: str


# ---------------------------------------------------------------------------
# Scope resolution and filtering
# ---------------------------------------------------------------------------


def resolve_scope_id(
    kind: str,
    explicit_id: Any = None,
    profile: Mapping | None = None,
    available_ids: Sequence[Any] | None = None,
) -> str | None:
    """Pick the scope id: explicit param, then the user's profile, then the
    first available id. None means the report is not narrowed to one entity."""
    if explicit_id not in (None, "", "all", "ALL"):
        return str(explicit_id)
    embedded = resolve(profile, _PROFILE_SCOPE_FIELDS.get(kind, ()))
    if embedded is not None:
        return str(embedded)
    if available_ids:
        return str(available_ids[0])
    return None


def _in_scope(record: Mapping, id_fields: Sequence[str], scope_id: str | None) -> bool:
    if scope_id is None:
        return True
    value = resolve(record, id_fields)
    return value is None or str(value) == scope_id


def filter_records(
    records: Sequence[Mapping],
    fields: EntityFields,
    id_fields: Sequence[str],
    scope_id: str | None,
    date_range: DateRange | None = None,
) -> list[Mapping]:
    """Drop records that belong to another scope or fall outside the range.

    Records without a scope field, or without a usable date, are kept; the
    month aggregation reports the dateless ones separately.
    """
    kept: list[Mapping] = []
    for record in records:
        if not isinstance(record, Mapping):
            continue
        if not _in_scope(record, id_fields, scope_id):
            continue
        if date_range is not None:
            moment = resolve_date(record, fields.date_fields)
            if moment is not None and not date_range.contains(moment):
                continue
        kept.append(record)
    return kept


# ---------------------------------------------------------------------------
# Section builders
# ---------------------------------------------------------------------------


def _stock_units(inventory: Sequence[Mapping]) -> float:
    return sum(qty for row in inventory for _, qty in line_quantities(row, INVENTORY))


def build_inventory_report(
    inventory: Sequence[Mapping],
    audit: ResolutionAudit | None = None,
) -> InventoryReport:
    return InventoryReport(
        total_items=_stock_units(inventory),
        total_value=round(sum(record_value(row, INVENTORY) for row in inventory), 2),
        low_stock_items=metrics.low_stock_count(inventory),
        out_of_stock_items=metrics.out_of_stock_count(inventory),
        categories=aggregate_by_category(inventory, INVENTORY, audit=audit),
    )


def _distinct(records: Sequence[Mapping], *chains: Sequence[str]) -> int:
    keys = set()
    for record in records:
        for chain in chains:
            value = resolve(record, chain)
            if value is not None:
                keys.add(str(value).strip().lower())
                break
    return len(keys)


def build_movement_report(
    sources: Sequence[tuple[EntityFields, Sequence[Mapping]]],
    breakdowns: dict[str, list[Bucket]],
    destination_chains: Sequence[Sequence[str]],
    audit: ResolutionAudit | None = None,
    cfg: Settings = default_settings,
) -> MovementReport:
    """Totals, month series and processing metrics over one or more record types."""
    series: list[MonthlySeries] = []
    records: list[Mapping] = []
    for fields, group in sources:
        series.append(
            aggregate_by_month(group, fields, audit, cfg.total_mismatch_tolerance)
        )
        records.extend(group)

    merged = merge_series(*series)
    samples = [
        days
        for fields, group in sources
        for days in (
            metrics.duration_days(
                r, fields.processing_start_fields, fields.processing_end_fields,
                cfg.max_processing_days,
            )
            for r in group
        )
        if days is not None
    ]
    if samples:
        avg_days = metrics.clamp_days(sum(samples) / len(samples), cfg.max_processing_days)
    else:
        avg_days = metrics.clamp_days(cfg.processing_time_default_days, cfg.max_processing_days)

    return MovementReport(
        total_records=len(records),
        total_items=merged.total_items,
        total_value=round(
            sum(record_value(r, fields) for fields, group in sources for r in group), 2
        ),
        pending=sum(1 for r in records if metrics.is_pending(r)),
        distinct_destinations=_distinct(records, *destination_chains),
        discrepancy_rate=metrics.discrepancy_rate(records),
        average_processing_time=round(avg_days, 2),
        excluded_from_time_series=merged.excluded,
        by_month=merged.buckets,
        breakdowns=breakdowns,
    )


def _data_quality(audit: ResolutionAudit, *reports: MovementReport | None) -> dict:
    quality = audit.as_dict()
    quality["excluded_from_time_series"] = sum(
        r.excluded_from_time_series for r in reports if r is not None
    )
    return quality


def _summary(kind: str, scope_id: str | None, inventory: InventoryReport,
             perf: PerformanceMetrics, *reports: MovementReport | None) -> str:
    label = f"{kind.title()} report" + (f" for {scope_id}" if scope_id else " (all)")
    records = sum(r.total_records for r in reports if r is not None)
    items = sum(r.total_items for r in reports if r is not None)
    return (
        f"{label}: {records} records moving {items:,.0f} items, "
        f"{inventory.total_items:,.0f} units in stock "
        f"({inventory.low_stock_items} below minimum). "
        f"Overall rating: {perf.overall_rating}."
    )


# ---------------------------------------------------------------------------
# Scope assemblers
# ---------------------------------------------------------------------------


def assemble_warehouse_report(
    scope_id: str | None,
    date_range: DateRange,
    collections: ReportCollections,
    cfg: Settings = default_settings,
) -> ReportPayload:
    """Warehouse view: stock, outbound shipments and inbound receipts."""
    audit = ResolutionAudit()
    ids = WAREHOUSE_ID_FIELDS
    inventory = filter_records(collections.inventory, INVENTORY, ids, scope_id)
    shipments = filter_records(collections.shipments, SHIPMENT, ids, scope_id, date_range)
    direct = filter_records(collections.direct_shipments, DIRECT_SHIPMENT, ids, scope_id, date_range)
    receipts = filter_records(collections.receipts, RECEIPT, ids, scope_id, date_range)

    inventory_report = build_inventory_report(inventory, audit)
    shipment_report = build_movement_report(
        [(SHIPMENT, shipments), (DIRECT_SHIPMENT, direct)],
        {
            "by_destination": aggregate_by_destination(
                shipments, direct, cfg.report_top_n, tolerance=cfg.total_mismatch_tolerance,
            ),
        },
        [COUNCIL_ID_FIELDS + COUNCIL_NAME_FIELDS],
        audit,
        cfg,
    )
    receipt_report = build_movement_report(
        [(RECEIPT, receipts)],
        {
            "by_supplier": aggregate_by_supplier(
                receipts, RECEIPT, cfg.report_top_n, tolerance=cfg.total_mismatch_tolerance,
            ),
        },
        [],
        audit,
        cfg,
    )

    outbound = shipments + direct
    speed = metrics.processing_speed(shipment_report.average_processing_time)
    perf = PerformanceMetrics(
        distribution_efficiency=metrics.distribution_efficiency(outbound),
        fulfillment_rate=metrics.fulfillment_rate(outbound),
        inventory_turnover=metrics.inventory_turnover(
            shipment_report.total_items, inventory_report.total_items,
        ),
        stock_accuracy=metrics.stock_accuracy(inventory),
        discrepancy_rate=receipt_report.discrepancy_rate,
        average_processing_time=shipment_report.average_processing_time,
        processing_speed=speed,
    )
    perf.overall_rating = metrics.overall_rating(
        [perf.fulfillment_rate, perf.stock_accuracy, perf.processing_speed]
    ) if (outbound or inventory) else "No Data"

    return ReportPayload(
        scope="warehouse",
        scope_id=scope_id,
        date_range=date_range.as_dict(),
        inventory_report=inventory_report,
        distribution_report=None,
        shipment_report=shipment_report,
        receipt_report=receipt_report,
        performance_metrics=perf,
        data_quality=_data_quality(audit, shipment_report, receipt_report),
        summary=_summary("warehouse", scope_id, inventory_report, perf,
                         shipment_report, receipt_report),
    )


def assemble_council_report(
    scope_id: str | None,
    date_range: DateRange,
    collections: ReportCollections,
    cfg: Settings = default_settings,
) -> ReportPayload:
    """Council view: stock, distributions to schools and incoming shipments."""
    audit = ResolutionAudit()
    ids = COUNCIL_ID_FIELDS
    inventory = filter_records(collections.inventory, INVENTORY, ids, scope_id)
    distributions = filter_records(collections.distributions, DISTRIBUTION, ids, scope_id, date_range)
    shipments = filter_records(collections.shipments, SHIPMENT, ids, scope_id, date_range)
    schools = [s for s in collections.schools if isinstance(s, Mapping) and _in_scope(s, ids, scope_id)]

    inventory_report = build_inventory_report(inventory, audit)
    distribution_report = build_movement_report(
        [(DISTRIBUTION, distributions)],
        {
            "by_school_type": aggregate_by_school_type(
                distributions, tolerance=cfg.total_mismatch_tolerance,
            ),
            "top_schools": top_schools(
                distributions, top_n=cfg.report_top_n, tolerance=cfg.total_mismatch_tolerance,
            ),
        },
        [SCHOOL_ID_FIELDS, SCHOOL_NAME_FIELDS],
        audit,
        cfg,
    )
    shipment_report = build_movement_report([(SHIPMENT, shipments)], {}, [], audit, cfg)

    perf = PerformanceMetrics(
        distribution_efficiency=metrics.distribution_efficiency(distributions),
        confirmation_rate=metrics.confirmation_rate(distributions),
        school_coverage=metrics.school_coverage(
            distribution_report.distinct_destinations, len(schools),
        ),
        inventory_turnover=metrics.inventory_turnover(
            distribution_report.total_items, inventory_report.total_items,
        ),
        stock_accuracy=metrics.stock_accuracy(inventory),
        discrepancy_rate=shipment_report.discrepancy_rate,
        average_processing_time=shipment_report.average_processing_time,
        processing_speed=metrics.processing_speed(shipment_report.average_processing_time),
    )
    perf.overall_rating = metrics.overall_rating([
        perf.distribution_efficiency,
        perf.school_coverage,
        perf.inventory_turnover,
        perf.stock_accuracy,
    ]) if (distributions or inventory) else "No Data"

    return ReportPayload(
        scope="council",
        scope_id=scope_id,
        date_range=date_range.as_dict(),
        inventory_report=inventory_report,
        distribution_report=distribution_report,
        shipment_report=shipment_report,
        receipt_report=None,
        performance_metrics=perf,
        data_quality=_data_quality(audit, distribution_report, shipment_report),
        summary=_summary("council", scope_id, inventory_report, perf,
                         distribution_report, shipment_report),
    )


def assemble_school_report(
    scope_id: str | None,
    date_range: DateRange,
    collections: ReportCollections,
    cfg: Settings = default_settings,
) -> ReportPayload:
    """School view: stock condition and supplies received."""
    audit = ResolutionAudit()
    ids = SCHOOL_ID_FIELDS
    inventory = filter_records(collections.inventory, INVENTORY, ids, scope_id)
    distributions = filter_records(collections.distributions, DISTRIBUTION, ids, scope_id, date_range)
    direct = filter_records(collections.direct_shipments, DIRECT_SHIPMENT, ids, scope_id, date_range)

    inventory_report = build_inventory_report(inventory, audit)
    distribution_report = build_movement_report(
        [(DISTRIBUTION, distributions), (DIRECT_SHIPMENT, direct)],
        {
            "by_source": aggregate_by_source(
                distributions, direct, cfg.report_top_n, tolerance=cfg.total_mismatch_tolerance,
            ),
        },
        [],
        audit,
        cfg,
    )

    received = distributions + direct
    perf = PerformanceMetrics(
        distribution_efficiency=metrics.distribution_efficiency(received),
        confirmation_rate=metrics.confirmation_rate(distributions),
        stock_accuracy=metrics.stock_accuracy(inventory),
        average_processing_time=distribution_report.average_processing_time,
        processing_speed=metrics.processing_speed(distribution_report.average_processing_time),
        inventory_health=metrics.inventory_health(inventory),
        utilization_rate=metrics.utilization_rate(inventory),
        on_time_rate=metrics.on_time_rate(
            distributions,
            DISTRIBUTION.processing_start_fields,
            DISTRIBUTION.processing_end_fields,
        ),
    )
    perf.overall_rating = metrics.overall_rating([
        perf.distribution_efficiency,
        perf.inventory_health,
        perf.utilization_rate,
    ]) if (received or inventory) else "No Data"

    return ReportPayload(
        scope="school",
        scope_id=scope_id,
        date_range=date_range.as_dict(),
        inventory_report=inventory_report,
        distribution_report=distribution_report,
        shipment_report=None,
        receipt_report=None,
        performance_metrics=perf,
        data_quality=_data_quality(audit, distribution_report),
        summary=_summary("school", scope_id, inventory_report, perf, distribution_report),
    )


_ASSEMBLERS = {
    "warehouse": assemble_warehouse_report,
    "council": assemble_council_report,
    "school": assemble_school_report,
}


def assemble_report(
    scope: Scope,
    date_range: DateRange,
    collections: ReportCollections,
    profile: Mapping | None = None,
    available_ids: Sequence[Any] | None = None,
    cfg: Settings | None = None,
) -> ReportPayload:
    """Build the report payload for ``scope``.

    Raises:
        ValueError: if ``scope.kind`` is not warehouse, council or school.
    """
    assembler = _ASSEMBLERS.get(scope.kind)
    if assembler is None:
        raise ValueError(f"Unknown report scope: {scope.kind!r}")

    scope_id = resolve_scope_id(scope.kind, scope.explicit_id, profile, available_ids)
    payload = assembler(scope_id, date_range, collections, cfg or default_settings)
    logger.info(
        "Assembled %s report (scope_id=%s, excluded=%d, mismatches=%d)",
        scope.kind,
        scope_id,
        payload.data_quality["excluded_from_time_series"],
        len(payload.data_quality["total_mismatches"]),
    )
    return payload
