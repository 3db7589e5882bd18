"""Tests for the supply-chain flow bottleneck analyzer."""

import copy

from supply_reports.aggregation.flow_analyzer import (
    FlowConnection,
    FlowStage,
    analyze_flow,
    classify_severity,
    is_bottleneck_connection,
    is_bottleneck_stage,
)


def _stage(id="w1", status="healthy", score=0.0, pending=0, efficiency=95.0, **metrics):
    data = {
        "id": id,
        "name": id.upper(),
        "type": "warehouse",
        "status": status,
        "metrics": {
            "itemCount": metrics.get("item_count", 100),
            "processingTime": metrics.get("processing_time", 2),
            "efficiency": efficiency,
            "bottleneckScore": score,
        },
        "recentActivity": {"inbound": 5, "outbound": 4, "pending": pending},
    }
    return data


# ===================================================================
# Stage rules
# ===================================================================


class TestStageBottleneck:
    def test_score_above_threshold(self):
        assert is_bottleneck_stage(FlowStage.from_dict(_stage(score=0.71)))

    def test_score_below_threshold(self):
        assert not is_bottleneck_stage(FlowStage.from_dict(_stage(score=0.39)))

    def test_score_exactly_at_threshold(self):
        assert not is_bottleneck_stage(FlowStage.from_dict(_stage(score=0.4)))

    def test_critical_status(self):
        assert is_bottleneck_stage(FlowStage.from_dict(_stage(status="critical")))

    def test_pending_backlog_with_low_efficiency(self):
        assert is_bottleneck_stage(FlowStage.from_dict(_stage(pending=11, efficiency=69)))

    def test_pending_at_threshold_is_not_enough(self):
        assert not is_bottleneck_stage(FlowStage.from_dict(_stage(pending=10, efficiency=50)))

    def test_pending_backlog_with_good_efficiency(self):
        assert not is_bottleneck_stage(FlowStage.from_dict(_stage(pending=30, efficiency=70)))

    def test_from_dict_reads_nested_metrics(self):
        stage = FlowStage.from_dict(_stage(id="c1", score=0.5, pending=3, efficiency=80))
        assert stage.id == "c1"
        assert stage.bottleneck_score == 0.5
        assert stage.pending == 3
        assert stage.inbound == 5
        assert stage.efficiency == 80.0


# ===================================================================
# Connection rules
# ===================================================================


class TestConnectionBottleneck:
    def test_blocked_with_no_level(self):
        conn = FlowConnection.from_dict(
            {"from": "w1", "to": "c1", "status": "blocked", "bottleneckLevel": "none"}
        )
        assert is_bottleneck_connection(conn)

    def test_major_and_critical_levels(self):
        assert is_bottleneck_connection(FlowConnection("a", "b", bottleneck_level="major"))
        assert is_bottleneck_connection(FlowConnection("a", "b", bottleneck_level="critical"))

    def test_minor_delayed_is_not_bottleneck(self):
        conn = FlowConnection("a", "b", status="delayed", bottleneck_level="minor")
        assert not is_bottleneck_connection(conn)

    def test_from_dict_maps_endpoints(self):
        conn = FlowConnection.from_dict(
            {"from": "w1", "to": "s1", "volume": 40, "avgTransitTime": 3.5}
        )
        assert conn.source == "w1"
        assert conn.target == "s1"
        assert conn.volume == 40.0
        assert conn.avg_transit_time == 3.5
        assert conn.status == "active"


# ===================================================================
# Severity and overall metrics
# ===================================================================


class TestSeverity:
    def test_blocked_connection_alone_is_moderate(self):
        analysis = analyze_flow(
            [_stage("w1"), _stage("c1")],
            [{"from": "w1", "to": "c1", "status": "blocked", "bottleneckLevel": "none"}],
        )
        assert analysis.severity == "moderate"
        assert analysis.connections[0].is_bottleneck
        assert analysis.overall_metrics.bottlenecks == 1
        assert analysis.bottleneck_stage_ids == []

    def test_critical_stage(self):
        analysis = analyze_flow([_stage("w1", status="critical")], [])
        assert analysis.severity == "critical"
        assert analysis.bottleneck_stage_ids == ["w1"]

    def test_critical_connection_level(self):
        conn = FlowConnection("w1", "c1", bottleneck_level="critical")
        assert classify_severity([], [conn]) == "critical"

    def test_no_bottlenecks(self):
        assert classify_severity([], []) == "none"

    def test_empty_snapshot(self):
        analysis = analyze_flow([], [])
        assert analysis.severity == "none"
        assert analysis.overall_metrics.total_items == 0
        assert analysis.overall_metrics.avg_flow_time == 0.0
        assert analysis.overall_metrics.efficiency == 0.0
        assert analysis.overall_metrics.bottlenecks == 0


class TestStageAssessment:
    def test_indicator_and_highlight(self):
        analysis = analyze_flow(
            [
                _stage("a", score=0.8),
                _stage("b", score=0.5),
                _stage("c", score=0.2),
                _stage("d", score=0.0),
            ],
            [],
        )
        indicators = [s.indicator for s in analysis.stages]
        highlights = [s.highlight for s in analysis.stages]
        assert indicators == ["high", "medium", "low", "none"]
        assert highlights == ["severe", "warning", "none", "none"]

    def test_efficiency_trend(self):
        analysis = analyze_flow(
            [_stage("a", efficiency=95), _stage("b", efficiency=75), _stage("c", efficiency=40)],
            [],
        )
        assert [s.efficiency_trend for s in analysis.stages] == ["up", "steady", "down"]

    def test_overall_metrics(self):
        analysis = analyze_flow(
            [
                _stage("a", efficiency=90, item_count=100, processing_time=2),
                _stage("b", efficiency=70, item_count=50, processing_time=3),
            ],
            [],
        )
        assert analysis.overall_metrics.total_items == 150
        assert analysis.overall_metrics.avg_flow_time == 2.5
        assert analysis.overall_metrics.efficiency == 80.0

    def test_accepts_stage_objects(self):
        stage = FlowStage(id="x", name="X", type="school", bottleneck_score=0.9)
        analysis = analyze_flow([stage], [])
        assert analysis.stages[0].stage is stage
        assert analysis.stages[0].is_bottleneck


class TestInputsUntouched:
    def test_snapshot_not_mutated(self):
        stages = [_stage("w1", score=0.9), _stage("c1", status="critical")]
        connections = [{"from": "w1", "to": "c1", "status": "blocked"}]
        before = copy.deepcopy((stages, connections))
        analyze_flow(stages, connections)
        assert (stages, connections) == before

    def test_repeat_analysis_is_identical(self):
        stages = [_stage("w1", score=0.6, pending=12, efficiency=60)]
        connections = [{"from": "w1", "to": "s1", "bottleneckLevel": "major"}]
        assert analyze_flow(stages, connections) == analyze_flow(stages, connections)
