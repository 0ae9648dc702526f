"""Unit tests for structured logging, audit events and metrics."""

import json
import logging

from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import InMemoryMetricReader

from pairing_bots.lib.logging_config import AuditLogger, StructuredFormatter
from pairing_bots.lib.metrics import PairMetrics


def collect(reader):
    """Metric name -> list of (attributes, value) data points."""
    points = {}
    data = reader.get_metrics_data()
    for resource_metrics in data.resource_metrics:
        for scope_metrics in resource_metrics.scope_metrics:
            for metric in scope_metrics.metrics:
                for point in metric.data.data_points:
                    value = getattr(point, "value", None)
                    if value is None:
                        value = point.count
                    points.setdefault(metric.name, []).append((dict(point.attributes), value))
    return points


class TestStructuredFormatter:
    def test_formats_json_with_extras(self):
        formatter = StructuredFormatter(include_trace=False, extra_fields={"service": "pairing-bots"})
        record = logging.LogRecord("pairing_bots.test", logging.INFO, __file__, 10, "hello %s", ("world",), None)
        record.round = 3

        entry = json.loads(formatter.format(record))

        assert entry["message"] == "hello world"
        assert entry["level"] == "INFO"
        assert entry["logger"] == "pairing_bots.test"
        assert entry["round"] == 3
        assert entry["service"] == "pairing-bots"
        assert "trace_id" not in entry


class TestAuditLogger:
    def test_role_event(self, caplog):
        audit = AuditLogger("pairing_bots.audit.test")
        with caplog.at_level(logging.INFO, logger="pairing_bots.audit.test"):
            audit.log_role_event("driver_swap", 2, "A", "B", "navigator_requested_handoff")

        record = caplog.records[-1]
        assert record.audit_type == "role"
        assert record.from_agent == "A"
        assert record.to_agent == "B"
        assert record.reason == "navigator_requested_handoff"

    def test_verdict_event(self, caplog):
        audit = AuditLogger("pairing_bots.audit.test")
        with caplog.at_level(logging.INFO, logger="pairing_bots.audit.test"):
            audit.log_verdict_event("APPROVED", rounds=3, swap_count=1, checkpoint_count=2)

        record = caplog.records[-1]
        assert record.verdict == "APPROVED"
        assert record.swap_count == 1


class TestPairMetrics:
    """Test instruments against an in-memory reader."""

    def test_prompt_round_and_swap_counters(self):
        reader = InMemoryMetricReader()
        meter = MeterProvider(metric_readers=[reader]).get_meter("pairing_bots.test")
        pair_metrics = PairMetrics(meter)

        with pair_metrics.time_prompt("A", "driver_turn"):
            pass
        pair_metrics.record_round("A", checkpoint_count=2, written_bytes=40)
        pair_metrics.record_swap("alternate_each_round")
        pair_metrics.record_session("paired_turns", "completed")

        points = collect(reader)
        assert points["pairing_prompts_total"] == [
            ({"agent_id": "A", "prompt_kind": "driver_turn", "success": "true"}, 1)
        ]
        assert points["pairing_checkpoints_total"] == [({"driver": "A"}, 2)]
        assert points["pairing_estimated_written_bytes_total"] == [({"driver": "A"}, 40)]
        assert points["pairing_driver_swaps_total"] == [({"reason": "alternate_each_round"}, 1)]
        assert points["pairing_prompt_duration_ms"][0][1] == 1

    def test_failed_prompt_is_counted(self):
        reader = InMemoryMetricReader()
        pair_metrics = PairMetrics(MeterProvider(metric_readers=[reader]).get_meter("pairing_bots.test"))

        try:
            with pair_metrics.time_prompt("B", "navigator_review"):
                raise RuntimeError("boom")
        except RuntimeError:
            pass

        points = collect(reader)
        assert points["pairing_prompts_total"][0][0]["success"] == "false"

    def test_default_meter_is_usable(self):
        PairMetrics().record_round("B", 0, 0)
