"""Report routes: assemble scope reports from already-fetched collections."""

import logging
from dataclasses import asdict
from typing import Optional, Union

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from supply_reports.aggregation.report_assembler import (
    SCOPE_KINDS,
    DateRange,
    ReportCollections,
    Scope,
    assemble_report,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["reports"])


class DateRangeRequest(BaseModel):
    start: Optional[str] = None
    end: Optional[str] = None


class ReportRequest(BaseModel):
    scope_id: Optional[Union[str, int]] = None
    profile: dict = {}
    available_ids: list[Union[str, int]] = []
    date_range: DateRangeRequest = DateRangeRequest()
    inventory: list[dict] = []
    distributions: list[dict] = []
    shipments: list[dict] = []
    direct_shipments: list[dict] = []
    receipts: list[dict] = []
    schools: list[dict] = []


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.post("/reports/{scope}")
def build_report(scope: str, body: ReportRequest) -> dict:
    """Aggregate the posted collections into a warehouse, council or school report."""
    if scope not in SCOPE_KINDS:
        raise HTTPException(status_code=404, detail=f"Unknown report scope '{scope}'")

    explicit = str(body.scope_id) if body.scope_id is not None else None
    report_scope = Scope(
        kind=scope,
        warehouse_id=explicit if scope == "warehouse" else None,
        council_id=explicit if scope == "council" else None,
        school_id=explicit if scope == "school" else None,
    )
    collections = ReportCollections(
        inventory=body.inventory,
        distributions=body.distributions,
        shipments=body.shipments,
        direct_shipments=body.direct_shipments,
        receipts=body.receipts,
        schools=body.schools,
    )
    payload = assemble_report(
        report_scope,
        DateRange.parse(body.date_range.start, body.date_range.end),
        collections,
        profile=body.profile,
        available_ids=body.available_ids,
    )
    return asdict(payload)
