"""
OpenTelemetry configuration with OTLP exporters for pairing runs.

Spans and metrics are only exported once ``initialize_telemetry`` has run;
before that ``get_tracer`` and ``get_meter`` hand out the global API
instances, which are no-ops.
"""

import logging
import os
from typing import Dict, Any, Optional

from opentelemetry import trace, metrics
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.instrumentation.asyncio import AsyncioInstrumentor
from opentelemetry.instrumentation.logging import LoggingInstrumentor


logger = logging.getLogger(__name__)

INSTRUMENTATION_NAME = "pairing_bots"


class TelemetrySettings:
    """Settings for OpenTelemetry setup."""

    def __init__(self, config: Dict[str, Any]):
        self.service_name = config.get("service_name", "pairing-bots")
        self.service_version = config.get("service_version", "0.1.0")
        self.environment = config.get("environment", "development")

        self.otlp_endpoint = config.get("otlp_endpoint", os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4317"))
        self.export_timeout = config.get("export_timeout", 30)
        self.max_export_batch_size = config.get("max_export_batch_size", 512)
        self.metric_export_interval_ms = config.get("metric_export_interval_ms", 10000)

        self.trace_sampling_ratio = config.get("trace_sampling_ratio", 1.0)
        self.resource_attributes = config.get("resource_attributes", {})


class TelemetryManager:
    """Manages OpenTelemetry setup and lifecycle."""

    def __init__(self, settings: TelemetrySettings):
        self.settings = settings
        self._initialized = False
        self._tracer_provider: Optional[TracerProvider] = None
        self._meter_provider: Optional[MeterProvider] = None

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> None:
        """Initialize OpenTelemetry with OTLP exporters."""
        if self._initialized:
            logger.warning("Telemetry already initialized")
            return

        resource = Resource.create({
            "service.name": self.settings.service_name,
            "service.version": self.settings.service_version,
            "deployment.environment": self.settings.environment,
            **self.settings.resource_attributes
        })

        try:
            self._setup_tracing(resource)
            self._setup_metrics(resource)
            self._setup_instrumentation()
        except Exception as e:
            logger.error(f"Failed to initialize OpenTelemetry: {e}")
            raise

        self._initialized = True
        logger.info(f"OpenTelemetry initialized for service: {self.settings.service_name}")

    def _setup_tracing(self, resource: Resource) -> None:
        span_processor = BatchSpanProcessor(
            OTLPSpanExporter(endpoint=self.settings.otlp_endpoint, timeout=self.settings.export_timeout),
            max_export_batch_size=self.settings.max_export_batch_size,
            export_timeout_millis=self.settings.export_timeout * 1000
        )
        self._tracer_provider = TracerProvider(
            resource=resource,
            sampler=TraceIdRatioBased(self.settings.trace_sampling_ratio)
        )
        self._tracer_provider.add_span_processor(span_processor)
        trace.set_tracer_provider(self._tracer_provider)

    def _setup_metrics(self, resource: Resource) -> None:
        metric_reader = PeriodicExportingMetricReader(
            exporter=OTLPMetricExporter(endpoint=self.settings.otlp_endpoint, timeout=self.settings.export_timeout),
            export_interval_millis=self.settings.metric_export_interval_ms
        )
        self._meter_provider = MeterProvider(resource=resource, metric_readers=[metric_reader])
        metrics.set_meter_provider(self._meter_provider)

    def _setup_instrumentation(self) -> None:
        """Instrument asyncio tasks and correlate log records with spans."""
        AsyncioInstrumentor().instrument()
        LoggingInstrumentor().instrument(set_logging_format=False)
        logger.debug("Automatic instrumentation configured")

    def shutdown(self) -> None:
        """Flush pending telemetry and shut the providers down."""
        if not self._initialized:
            return

        try:
            if self._tracer_provider is not None:
                self._tracer_provider.shutdown()
            if self._meter_provider is not None:
                self._meter_provider.shutdown()
            AsyncioInstrumentor().uninstrument()
            LoggingInstrumentor().uninstrument()
            logger.info("OpenTelemetry shutdown completed")
        except Exception as e:
            logger.error(f"Error during telemetry shutdown: {e}")
        finally:
            self._initialized = False


# Global telemetry manager instance
_telemetry_manager: Optional[TelemetryManager] = None


def initialize_telemetry(config: Dict[str, Any]) -> TelemetryManager:
    """Initialize global telemetry manager."""
    global _telemetry_manager

    _telemetry_manager = TelemetryManager(TelemetrySettings(config))
    _telemetry_manager.initialize()

    return _telemetry_manager


def get_tracer() -> trace.Tracer:
    """Tracer for pairing spans; a no-op tracer until telemetry is initialized."""
    return trace.get_tracer(INSTRUMENTATION_NAME)


def get_meter() -> metrics.Meter:
    """Meter for pairing metrics; a no-op meter until telemetry is initialized."""
    return metrics.get_meter(INSTRUMENTATION_NAME)


def shutdown_telemetry() -> None:
    """Shutdown global telemetry manager."""
    global _telemetry_manager
    if _telemetry_manager:
        _telemetry_manager.shutdown()
        _telemetry_manager = None
