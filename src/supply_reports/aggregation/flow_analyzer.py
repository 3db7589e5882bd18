"""Supply-chain flow bottleneck analysis.

Classifies the stages (warehouses, councils, schools) and connections of a
flow snapshot as bottlenecks and derives an overall severity. The analysis is
recomputed from scratch for every snapshot and never mutates its input.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Sequence

from supply_reports.aggregation.field_resolver import resolve, resolve_number
from supply_reports.aggregation.metrics import clamp_rate

STAGE_SCORE_THRESHOLD = 0.4
SEVERE_SCORE_THRESHOLD = 0.7
LOW_SCORE_THRESHOLD = 0.1
PENDING_THRESHOLD = 10
LOW_EFFICIENCY_THRESHOLD = 70.0
HIGH_EFFICIENCY_THRESHOLD = 90.0

BOTTLENECK_LEVELS = ("major", "critical")


# ---------------------------------------------------------------------------
# Snapshot types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FlowStage:
    """A node of the supply chain graph."""

    id: str
    name: str
    type: str  # "warehouse", "council", "school"
    status: str = "healthy"  # "healthy", "attention", "critical"
    item_count: float = 0.0
    processing_time: float = 0.0
    efficiency: float = 0.0
    bottleneck_score: float = 0.0
    inbound: int = 0
    outbound: int = 0
    pending: int = 0

    @classmethod
    def from_dict(cls, data: Mapping) -> "FlowStage":
        stage_metrics = data.get("metrics") or {}
        activity = data.get("recentActivity") or data.get("recent_activity") or {}
        return cls(
            id=str(resolve(data, ("id",), "")),
            name=str(resolve(data, ("name",), "")),
            type=str(resolve(data, ("type",), "")).lower(),
            status=str(resolve(data, ("status",), "healthy")).lower(),
            item_count=resolve_number(stage_metrics, ("itemCount", "item_count"), 0.0),
            processing_time=resolve_number(stage_metrics, ("processingTime", "processing_time"), 0.0),
            efficiency=resolve_number(stage_metrics, ("efficiency",), 0.0),
            bottleneck_score=resolve_number(stage_metrics, ("bottleneckScore", "bottleneck_score"), 0.0),
            inbound=int(resolve_number(activity, ("inbound",), 0.0)),
            outbound=int(resolve_number(activity, ("outbound",), 0.0)),
            pending=int(resolve_number(activity, ("pending",), 0.0)),
        )


@dataclass(frozen=True)
class FlowConnection:
    """A directed edge between two stages."""

    source: str
    target: str
    status: str = "active"  # "active", "delayed", "blocked"
    volume: float = 0.0
    avg_transit_time: float = 0.0
    bottleneck_level: str = "none"  # "none", "minor", "major", "critical"

    @classmethod
    def from_dict(cls, data: Mapping) -> "FlowConnection":
        return cls(
            source=str(resolve(data, ("from", "source"), "")),
            target=str(resolve(data, ("to", "target"), "")),
            status=str(resolve(data, ("status",), "active")).lower(),
            volume=resolve_number(data, ("volume",), 0.0),
            avg_transit_time=resolve_number(data, ("avgTransitTime", "avg_transit_time"), 0.0),
            bottleneck_level=str(
                resolve(data, ("bottleneckLevel", "bottleneck_level"), "none")
            ).lower(),
        )


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass
class StageAssessment:
    stage: FlowStage
    is_bottleneck: bool
    indicator: str  # "high", "medium", "low", "none"
    highlight: str  # "severe", "warning", "none"
    efficiency_trend: str  # "up", "steady", "down"


@dataclass
class ConnectionAssessment:
    connection: FlowConnection
    is_bottleneck: bool


@dataclass
class FlowMetrics:
    total_items: float
    avg_flow_time: float
    efficiency: float
    bottlenecks: int


@dataclass
class FlowAnalysis:
    stages: list[StageAssessment]
    connections: list[ConnectionAssessment]
    overall_metrics: FlowMetrics
    severity: str  # "critical", "moderate", "none"
    bottleneck_stage_ids: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def is_bottleneck_stage(stage: FlowStage) -> bool:
    return (
        stage.bottleneck_score > STAGE_SCORE_THRESHOLD
        or stage.status == "critical"
        or (stage.pending > PENDING_THRESHOLD and stage.efficiency < LOW_EFFICIENCY_THRESHOLD)
    )


def is_bottleneck_connection(connection: FlowConnection) -> bool:
    return connection.bottleneck_level in BOTTLENECK_LEVELS or connection.status == "blocked"


def classify_severity(
    bottleneck_stages: Sequence[FlowStage],
    bottleneck_connections: Sequence[FlowConnection],
) -> str:
    if any(s.status == "critical" for s in bottleneck_stages) or any(
        c.bottleneck_level == "critical" for c in bottleneck_connections
    ):
        return "critical"
    if bottleneck_stages or bottleneck_connections:
        return "moderate"
    return "none"


def _indicator(score: float) -> str:
    if score > SEVERE_SCORE_THRESHOLD:
        return "high"
    if score > STAGE_SCORE_THRESHOLD:
        return "medium"
    if score > LOW_SCORE_THRESHOLD:
        return "low"
    return "none"


def _highlight(stage: FlowStage, bottleneck: bool) -> str:
    if not bottleneck:
        return "none"
    if stage.status == "critical" or stage.bottleneck_score > SEVERE_SCORE_THRESHOLD:
        return "severe"
    return "warning"


def _efficiency_trend(efficiency: float) -> str:
    if efficiency >= HIGH_EFFICIENCY_THRESHOLD:
        return "up"
    if efficiency >= LOW_EFFICIENCY_THRESHOLD:
        return "steady"
    return "down"


def analyze_flow(
    stages: Sequence[FlowStage | Mapping],
    connections: Sequence[FlowConnection | Mapping],
) -> FlowAnalysis:
    """Assess every stage and connection of a flow snapshot.

    Args:
        stages: Stage objects or their raw dict form.
        connections: Connection objects or their raw dict form.

    Returns:
        FlowAnalysis with per-element assessments, overall metrics and the
        snapshot's bottleneck severity.
    """
    stage_objs = [s if isinstance(s, FlowStage) else FlowStage.from_dict(s) for s in stages]
    conn_objs = [
        c if isinstance(c, FlowConnection) else FlowConnection.from_dict(c) for c in connections
    ]

    stage_results: list[StageAssessment] = []
    for stage in stage_objs:
        bottleneck = is_bottleneck_stage(stage)
        stage_results.append(StageAssessment(
            stage=stage,
            is_bottleneck=bottleneck,
            indicator=_indicator(stage.bottleneck_score),
            highlight=_highlight(stage, bottleneck),
            efficiency_trend=_efficiency_trend(stage.efficiency),
        ))

    conn_results = [
        ConnectionAssessment(connection=c, is_bottleneck=is_bottleneck_connection(c))
        for c in conn_objs
    ]

    bottleneck_stages = [r.stage for r in stage_results if r.is_bottleneck]
    bottleneck_conns = [r.connection for r in conn_results if r.is_bottleneck]

    n = len(stage_objs)
    overall = FlowMetrics(
        total_items=sum(max(0.0, s.item_count) for s in stage_objs),
        avg_flow_time=round(sum(max(0.0, s.processing_time) for s in stage_objs) / n, 2) if n else 0.0,
        efficiency=round(clamp_rate(sum(s.efficiency for s in stage_objs) / n), 2) if n else 0.0,
        bottlenecks=len(bottleneck_stages) + len(bottleneck_conns),
    )

    return FlowAnalysis(
        stages=stage_results,
        connections=conn_results,
        overall_metrics=overall,
        severity=classify_severity(bottleneck_stages, bottleneck_conns),
        bottleneck_stage_ids=[s.id for s in bottleneck_stages],
    )
