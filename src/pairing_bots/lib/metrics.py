"""
Metrics for pairing sessions using OpenTelemetry instruments.
"""

import time
from contextlib import contextmanager
from typing import Dict, Iterator, Optional

from opentelemetry import metrics

from pairing_bots.lib.observability import get_meter


class PairMetrics:
    """Collects session, round and prompt metrics."""

    def __init__(self, meter: Optional[metrics.Meter] = None):
        self.meter = meter or get_meter()
        self._setup_instruments()

    def _setup_instruments(self) -> None:
        """Setup OpenTelemetry metric instruments."""
        self.sessions = self.meter.create_counter(
            name="pairing_sessions_total",
            description="Pairing sessions by execution mode and final status",
            unit="1"
        )

        self.prompts = self.meter.create_counter(
            name="pairing_prompts_total",
            description="Prompts sent to workers by agent and prompt kind",
            unit="1"
        )

        self.prompt_duration = self.meter.create_histogram(
            name="pairing_prompt_duration_ms",
            description="Wall time of one worker invocation",
            unit="ms"
        )

        self.rounds = self.meter.create_counter(
            name="pairing_rounds_total",
            description="Completed driver/navigator rounds by driver",
            unit="1"
        )

        self.checkpoints = self.meter.create_counter(
            name="pairing_checkpoints_total",
            description="Checkpoint interruptions fired by driver",
            unit="1"
        )

        self.driver_swaps = self.meter.create_counter(
            name="pairing_driver_swaps_total",
            description="Driver swaps by reason",
            unit="1"
        )

        self.written_bytes = self.meter.create_counter(
            name="pairing_estimated_written_bytes_total",
            description="Estimated bytes written by successful edit/write calls",
            unit="By"
        )

    @contextmanager
    def time_prompt(self, agent_id: str, prompt_kind: str) -> Iterator[None]:
        """Count a prompt and record its duration, successful or not."""
        attributes: Dict[str, str] = {"agent_id": agent_id, "prompt_kind": prompt_kind}
        start = time.perf_counter()
        success = False
        try:
            yield
            success = True
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            attributes["success"] = str(success).lower()
            self.prompts.add(1, attributes)
            self.prompt_duration.record(duration_ms, attributes)

    def record_round(self, driver: str, checkpoint_count: int, written_bytes: int) -> None:
        attributes = {"driver": driver}
        self.rounds.add(1, attributes)
        if checkpoint_count:
            self.checkpoints.add(checkpoint_count, attributes)
        if written_bytes:
            self.written_bytes.add(written_bytes, attributes)

    def record_swap(self, reason: str) -> None:
        self.driver_swaps.add(1, {"reason": reason})

    def record_session(self, execution_mode: str, status: str) -> None:
        self.sessions.add(1, {"execution_mode": execution_mode, "status": status})
