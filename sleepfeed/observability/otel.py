"""OpenTelemetry + Prometheus fallback wiring for the sleepfeed backend."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any

from fastapi import FastAPI

from sleepfeed import config

logger = logging.getLogger("sleepfeed.observability")


_initialized = False
_enabled = False
_tracer: Any | None = None
_trace_provider: Any | None = None
_meter_provider: Any | None = None
_fastapi_instrumentor: Any | None = None

_clock_counter: Any | None = None
_job_counter: Any | None = None
_job_latency_hist: Any | None = None
_cache_error_counter: Any | None = None
_feed_size_hist: Any | None = None

_prom_enabled = False
_prom_clock_counter: Any | None = None
_prom_job_counter: Any | None = None
_prom_job_latency_hist: Any | None = None
_prom_cache_error_counter: Any | None = None
_prom_feed_size_hist: Any | None = None


def _normalize_otlp_endpoint(base_endpoint: str, signal_path: str) -> str:
    endpoint = (base_endpoint or "").strip()
    if not endpoint:
        return ""
    if endpoint.endswith(signal_path):
        return endpoint
    if endpoint.endswith("/"):
        endpoint = endpoint[:-1]
    if endpoint.endswith("/v1"):
        return f"{endpoint}{signal_path[3:]}"
    return f"{endpoint}{signal_path}"


def _label(value: str | None) -> str:
    return (value or "").strip() or "unknown"


def initialize(app: FastAPI | None = None) -> None:
    global _initialized, _enabled, _tracer, _trace_provider, _meter_provider, _fastapi_instrumentor
    global _clock_counter, _job_counter, _job_latency_hist, _cache_error_counter, _feed_size_hist
    global _prom_enabled
    global _prom_clock_counter, _prom_job_counter, _prom_job_latency_hist
    global _prom_cache_error_counter, _prom_feed_size_hist

    if _initialized:
        if _enabled and app and _fastapi_instrumentor:
            _fastapi_instrumentor.instrument_app(app)
        return

    _initialized = True

    if not config.OTEL_ENABLED:
        logger.info("OpenTelemetry disabled (SLEEPFEED_OTEL_ENABLED=false)")
        return

    try:
        from opentelemetry import metrics, trace
        from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
        from opentelemetry.sdk.metrics import MeterProvider
        from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
    except ImportError as exc:
        logger.warning("OpenTelemetry dependencies unavailable: %s", exc)
        return

    traces_endpoint = _normalize_otlp_endpoint(config.OTEL_ENDPOINT, "/v1/traces")
    metrics_endpoint = _normalize_otlp_endpoint(config.OTEL_ENDPOINT, "/v1/metrics")
    service_name = config.OTEL_SERVICE_NAME or "sleepfeed-backend"

    resource = Resource.create(
        {
            "service.name": service_name,
            "service.namespace": "sleepfeed",
        }
    )

    trace_provider = TracerProvider(resource=resource)
    trace_exporter = OTLPSpanExporter(endpoint=traces_endpoint or None)
    trace_provider.add_span_processor(BatchSpanProcessor(trace_exporter))
    trace.set_tracer_provider(trace_provider)
    tracer = trace.get_tracer("sleepfeed.backend")

    metric_reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=metrics_endpoint or None)
    )
    meter_provider = MeterProvider(resource=resource, metric_readers=[metric_reader])
    metrics.set_meter_provider(meter_provider)
    meter = metrics.get_meter("sleepfeed.backend")

    _clock_counter = meter.create_counter(
        "sleepfeed_clock_events_total",
        unit="1",
        description="Clock-in / clock-out outcomes",
    )
    _job_counter = meter.create_counter(
        "sleepfeed_jobs_total",
        unit="1",
        description="Background job outcomes by kind",
    )
    _job_latency_hist = meter.create_histogram(
        "sleepfeed_job_latency_ms",
        unit="ms",
        description="Background job handler latency",
    )
    _cache_error_counter = meter.create_counter(
        "sleepfeed_cache_errors_total",
        unit="1",
        description="Cache backend failures that fell back to the store",
    )
    _feed_size_hist = meter.create_histogram(
        "sleepfeed_feed_entries",
        unit="1",
        description="Entries returned per assembled feed",
    )

    _trace_provider = trace_provider
    _meter_provider = meter_provider
    _tracer = tracer
    _fastapi_instrumentor = FastAPIInstrumentor()
    _enabled = True

    if app:
        _fastapi_instrumentor.instrument_app(app)

    if config.PROM_PORT > 0:
        try:
            from prometheus_client import Counter, Histogram, start_http_server

            start_http_server(config.PROM_PORT)
            _prom_enabled = True
            _prom_clock_counter = Counter(
                "sleepfeed_clock_events_total",
                "Clock-in / clock-out outcomes",
                ["action", "result"],
            )
            _prom_job_counter = Counter(
                "sleepfeed_jobs_total",
                "Background job outcomes by kind",
                ["kind", "result"],
            )
            _prom_job_latency_hist = Histogram(
                "sleepfeed_job_latency_ms",
                "Background job handler latency",
                ["kind"],
            )
            _prom_cache_error_counter = Counter(
                "sleepfeed_cache_errors_total",
                "Cache backend failures that fell back to the store",
                ["operation"],
            )
            _prom_feed_size_hist = Histogram(
                "sleepfeed_feed_entries",
                "Entries returned per assembled feed",
            )
            logger.info("Prometheus fallback metrics server listening on port %s", config.PROM_PORT)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Prometheus fallback not started: %s", exc)
            _prom_enabled = False

    logger.info(
        "OpenTelemetry initialized (service=%s endpoint=%s)",
        service_name,
        config.OTEL_ENDPOINT,
    )


def shutdown(app: FastAPI | None = None) -> None:
    global _enabled
    if not _initialized:
        return
    try:
        if app and _fastapi_instrumentor:
            _fastapi_instrumentor.uninstrument_app(app)
    except Exception:
        logger.debug("FastAPI uninstrument failed", exc_info=True)
    try:
        if _meter_provider is not None:
            _meter_provider.shutdown()
    except Exception:
        logger.debug("Meter provider shutdown failed", exc_info=True)
    try:
        if _trace_provider is not None:
            _trace_provider.shutdown()
    except Exception:
        logger.debug("Trace provider shutdown failed", exc_info=True)
    _enabled = False


@contextmanager
def start_span(name: str, attributes: dict[str, Any] | None = None):
    if not _enabled or _tracer is None:
        yield None
        return
    with _tracer.start_as_current_span(name) as span:
        if attributes:
            for key, value in attributes.items():
                if value is not None:
                    span.set_attribute(key, value)
        yield span


def record_clock_event(action: str, result: str) -> None:
    labels = {"action": _label(action), "result": _label(result)}
    if _enabled and _clock_counter is not None:
        _clock_counter.add(1, labels)
    if _prom_enabled and _prom_clock_counter is not None:
        _prom_clock_counter.labels(**labels).inc()


def record_job_result(kind: str, result: str, duration_ms: float = 0.0) -> None:
    labels = {"kind": _label(kind), "result": _label(result)}
    if _enabled and _job_counter is not None:
        _job_counter.add(1, labels)
    if _enabled and _job_latency_hist is not None and duration_ms > 0:
        _job_latency_hist.record(float(duration_ms), {"kind": labels["kind"]})
    if _prom_enabled and _prom_job_counter is not None:
        _prom_job_counter.labels(**labels).inc()
    if _prom_enabled and _prom_job_latency_hist is not None and duration_ms > 0:
        _prom_job_latency_hist.labels(kind=labels["kind"]).observe(float(duration_ms))


def record_cache_error(operation: str) -> None:
    labels = {"operation": _label(operation)}
    if _enabled and _cache_error_counter is not None:
        _cache_error_counter.add(1, labels)
    if _prom_enabled and _prom_cache_error_counter is not None:
        _prom_cache_error_counter.labels(**labels).inc()


def record_feed_size(count: int) -> None:
    size = max(0, int(count))
    if _enabled and _feed_size_hist is not None:
        _feed_size_hist.record(size)
    if _prom_enabled and _prom_feed_size_hist is not None:
        _prom_feed_size_hist.observe(size)
