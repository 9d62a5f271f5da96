"""Telemetry utilities for logging, metrics, and tracing.

This module provides centralized observability infrastructure including:
- Structured logging with PII redaction
- Prometheus metrics for jobs, events and caches
- OpenTelemetry tracing setup
- Performance measurement around job runs
"""

import asyncio
import logging
import re
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from prometheus_client import Counter, Gauge, Histogram, start_http_server
from structlog.processors import JSONRenderer

# Prometheus metrics
JOBS_TOTAL = Counter(
    "kairo_jobs_total",
    "Total number of jobs by terminal outcome",
    ["job_type", "outcome"],
)

JOB_LATENCY = Histogram(
    "kairo_job_duration_seconds",
    "Job run latency in seconds",
    ["job_type"],
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

JOB_RETRIES = Counter(
    "kairo_job_retries_total",
    "Total number of retry attempts scheduled",
    ["job_type"],
)

EVENTS_EMITTED = Counter(
    "kairo_events_emitted_total",
    "Total number of events emitted on a bus",
    ["bus", "event_type"],
)

LISTENER_ERRORS = Counter(
    "kairo_listener_errors_total",
    "Exceptions raised by bus listeners during delivery",
    ["bus"],
)

EVENTS_RATE_LIMITED = Counter(
    "kairo_events_rate_limited_total",
    "Events dropped by the per-kind rate limiter",
    ["limiter", "event_type"],
)

CACHE_LOOKUPS = Counter(
    "kairo_cache_lookups_total",
    "Cache lookups performed by executors",
    ["result"],
)

ACTIVE_JOBS = Gauge(
    "kairo_active_jobs",
    "Jobs dispatched by an orchestrator that have not reached a terminal event",
    ["orchestrator"],
)

# PII patterns for redaction
PII_PATTERNS = {
    "email": re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b"),
    "phone": re.compile(
        r"\b(?:\+?1[-.\s]?)?\(?[0-9]{3}\)?[-.\s]?[0-9]{3}[-.\s]?[0-9]{4}\b|\b[0-9]{3}-[0-9]{4}\b"
    ),
    "ssn": re.compile(r"\b\d{3}-?\d{2}-?\d{4}\b"),
    "credit_card": re.compile(r"\b\d{4}[-\s]?\d{4}[-\s]?\d{4}[-\s]?\d{4}\b"),
}


def redact_pii(text: Any) -> Any:
    """Redact personally identifiable information from text.

    Args:
        text: Input text that may contain PII

    Returns:
        Text with PII patterns replaced with [REDACTED_<type>], or original input if not a string

    Example:
        >>> redact_pii("Contact john@example.com")
        'Contact [REDACTED_EMAIL]'
    """
    if not isinstance(text, str):
        return text

    result = text
    for pii_type, pattern in PII_PATTERNS.items():
        result = pattern.sub(f"[REDACTED_{pii_type.upper()}]", result)
    return result


def pii_redaction_processor(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Structlog processor to redact PII from log events.

    Job payloads and error messages end up in log context, so string values
    are scrubbed before rendering.
    """

    def redact_value(value: Any) -> Any:
        if isinstance(value, str):
            return redact_pii(value)
        elif isinstance(value, dict):
            return {k: redact_value(v) for k, v in value.items()}
        elif isinstance(value, list):
            return [redact_value(item) for item in value]
        return value

    return {key: redact_value(value) for key, value in event_dict.items()}


def setup_logging(
    log_level: str = "INFO",
    enable_pii_redaction: bool = True,
    json_format: bool = True,
) -> None:
    """Initialize structured logging with PII redaction.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        enable_pii_redaction: Whether to enable PII redaction processor
        json_format: Render JSON lines instead of human-readable console output
    """
    logging.basicConfig(format="%(message)s", level=log_level.upper())

    processors: list[Any] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if enable_pii_redaction:
        processors.append(pii_redaction_processor)

    if json_format:
        processors.append(JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def setup_tracing(
    service_name: str = "kairo",
    otlp_endpoint: str | None = None,
) -> None:
    """Initialize OpenTelemetry tracing.

    Args:
        service_name: Name of the service for tracing
        otlp_endpoint: OTLP endpoint URL (if None, uses console exporter)
    """
    from kairo import __version__

    resource = Resource.create(
        {
            "service.name": service_name,
            "service.version": __version__,
        }
    )

    tracer_provider = TracerProvider(resource=resource)
    trace.set_tracer_provider(tracer_provider)

    exporter: OTLPSpanExporter | ConsoleSpanExporter
    if otlp_endpoint:
        exporter = OTLPSpanExporter(endpoint=otlp_endpoint)
    else:
        exporter = ConsoleSpanExporter()

    tracer_provider.add_span_processor(BatchSpanProcessor(exporter))


def get_tracer(name: str) -> trace.Tracer:
    """Get OpenTelemetry tracer for a component.

    Args:
        name: Tracer name (typically module name)

    Returns:
        Tracer instance
    """
    return trace.get_tracer(name)


def get_logger(name: str, **context: Any) -> Any:
    """Get a structured logger with optional context.

    Args:
        name: Logger name
        **context: Additional context to bind to logger

    Returns:
        Bound logger with context
    """
    logger = structlog.get_logger(name)
    if context:
        logger = logger.bind(**context)
    return logger


def log_operation(
    logger: Any,
    operation: str,
    status: str = "success",
    job_id: str | None = None,
    job_type: str | None = None,
    latency_ms: float | None = None,
    **extra_context: Any,
) -> None:
    """Log an operation with standardized fields for observability.

    Args:
        logger: Structured logger instance
        operation: Operation name
        status: Operation status (success, error, warning)
        job_id: Job identifier
        job_type: Job class name
        latency_ms: Operation latency in milliseconds
        **extra_context: Additional context fields
    """
    log_data = {
        "operation": operation,
        "status": status,
        **extra_context,
    }

    if job_id is not None:
        log_data["job_id"] = job_id
    if job_type is not None:
        log_data["job_type"] = job_type
    if latency_ms is not None:
        log_data["latency_ms"] = latency_ms

    log_data.update(get_timing_context())

    if status == "error":
        logger.error("Operation completed", **log_data)
    elif status == "warning":
        logger.warning("Operation completed", **log_data)
    else:
        logger.debug("Operation completed", **log_data)


class PerformanceTimer:
    """Timing state for one measured operation.

    Created by :func:`async_performance_timer`; callers may set ``status`` to
    record a non-exception outcome such as ``"cancelled"`` or ``"timeout"``.
    """

    def __init__(
        self,
        operation: str,
        job_type: str = "unknown",
        job_id: str | None = None,
        logger: Any = None,
        tracer_name: str = "kairo.performance",
    ):
        self.operation = operation
        self.job_type = job_type
        self.job_id = job_id
        self.logger = logger or get_logger("kairo.performance")
        self.tracer = get_tracer(tracer_name)
        self.span: trace.Span | None = None
        self.status = "success"
        self.start_time: float | None = None
        self.end_time: float | None = None

    @property
    def duration(self) -> float | None:
        """Get operation duration in seconds."""
        if self.start_time is not None and self.end_time is not None:
            return self.end_time - self.start_time
        return None

    def _finish(self, error: BaseException | None = None) -> None:
        self.end_time = time.perf_counter()
        duration = self.end_time - (self.start_time or self.end_time)
        status = "error" if error is not None else self.status

        JOB_LATENCY.labels(job_type=self.job_type).observe(duration)

        if self.span:
            self.span.set_attribute("duration_seconds", duration)
            self.span.set_attribute("status", status)
            if error is not None:
                self.span.set_status(trace.Status(trace.StatusCode.ERROR, str(error)))
                self.span.record_exception(error)
            else:
                self.span.set_status(trace.Status(trace.StatusCode.OK))
            self.span.end()

        extra: dict[str, Any] = {}
        if error is not None:
            extra["error"] = str(error)

        log_operation(
            self.logger,
            self.operation,
            status=status,
            job_id=self.job_id,
            job_type=self.job_type,
            latency_ms=duration * 1000,
            **extra,
        )


@asynccontextmanager
async def async_performance_timer(
    operation: str,
    job_type: str = "unknown",
    job_id: str | None = None,
    logger: Any = None,
    tracer_name: str = "kairo.performance",
) -> AsyncGenerator[PerformanceTimer, None]:
    """Async context manager for measuring a job run.

    Args:
        operation: Operation name for metrics/logging
        job_type: Job class name used as the metrics label
        job_id: Job identifier (optional)
        logger: Logger instance (optional)
        tracer_name: Tracer name for spans

    Yields:
        PerformanceTimer instance
    """
    timer = PerformanceTimer(
        operation=operation,
        job_type=job_type,
        job_id=job_id,
        logger=logger,
        tracer_name=tracer_name,
    )

    timer.start_time = time.perf_counter()
    timer.span = timer.tracer.start_span(operation)
    timer.span.set_attribute("job_type", job_type)
    if job_id:
        timer.span.set_attribute("job_id", job_id)

    try:
        yield timer
    except asyncio.CancelledError:
        timer.status = "cancelled"
        timer._finish()
        raise
    except Exception as e:
        timer._finish(e)
        raise
    else:
        timer._finish()


def record_job_outcome(job_type: str, outcome: str) -> None:
    """Record a terminal job outcome.

    Args:
        job_type: Job class name
        outcome: One of cached, success, failure, cancelled, timeout, optimistic
    """
    JOBS_TOTAL.labels(job_type=job_type, outcome=outcome).inc()


def record_retry(job_type: str) -> None:
    """Record a scheduled retry attempt."""
    JOB_RETRIES.labels(job_type=job_type).inc()


def record_event_emitted(bus: str, event_type: str) -> None:
    """Record an event emitted on a bus."""
    EVENTS_EMITTED.labels(bus=bus, event_type=event_type).inc()


def record_listener_error(bus: str) -> None:
    """Record a listener that raised during delivery."""
    LISTENER_ERRORS.labels(bus=bus).inc()


def record_rate_limited(limiter: str, event_type: str) -> None:
    """Record an event dropped by a rate limiter."""
    EVENTS_RATE_LIMITED.labels(limiter=limiter, event_type=event_type).inc()


def record_cache_lookup(result: str) -> None:
    """Record a cache lookup.

    Args:
        result: hit, miss, bypass or error
    """
    CACHE_LOOKUPS.labels(result=result).inc()


def update_active_jobs(orchestrator: str, count: int) -> None:
    """Update the number of jobs an orchestrator is tracking."""
    ACTIVE_JOBS.labels(orchestrator=orchestrator).set(count)


def start_metrics_server(port: int = 8000) -> None:
    """Start Prometheus metrics HTTP server.

    Args:
        port: Port to serve metrics on
    """
    start_http_server(port)


class MonotonicClock:
    """Monotonic clock for internal timing measurements.

    Uses asyncio event loop's monotonic time for consistent timing
    that's not affected by system clock adjustments.
    """

    @staticmethod
    def now() -> float:
        """Get current monotonic time in seconds.

        Returns:
            Current time from asyncio event loop's monotonic clock
        """
        try:
            loop = asyncio.get_running_loop()
            return loop.time()
        except RuntimeError:
            return time.monotonic()

    @staticmethod
    def wall_time() -> float:
        """Get current wall clock time for display purposes."""
        return time.time()


def get_timing_context() -> dict[str, float]:
    """Get current timing context for logging.

    Returns:
        Dictionary with monotonic_time and wall_time
    """
    return {
        "monotonic_time": MonotonicClock.now(),
        "wall_time": MonotonicClock.wall_time(),
    }
