"""Supply-chain flow routes."""

import logging
from dataclasses import asdict

from fastapi import APIRouter
from pydantic import BaseModel

from supply_reports.aggregation.flow_analyzer import analyze_flow

logger = logging.getLogger(__name__)

router = APIRouter(tags=["flow"])


class FlowSnapshotRequest(BaseModel):
    stages: list[dict] = []
    connections: list[dict] = []


@router.post("/flow/analyze")
def analyze_snapshot(body: FlowSnapshotRequest) -> dict:
    """Classify bottlenecks in a posted flow snapshot."""
    analysis = analyze_flow(body.stages, body.connections)
    if analysis.severity != "none":
        logger.info(
            "Flow snapshot has %s bottlenecks (%d flagged)",
            analysis.severity,
            analysis.overall_metrics.bottlenecks,
        )
    return asdict(analysis)
