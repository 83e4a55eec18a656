"""
OpenTelemetry-based tracer for preflight runs.

Uses the OpenTelemetry SDK for vendor-agnostic distributed tracing.
Each preflight run becomes a span, with one child span per executed check.
Traces can be exported to any OTLP-compatible backend (Jaeger, Tempo, an
OTel collector) or printed to the console.
"""

import json
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.trace import Status, StatusCode

from chatguard import __version__
from chatguard.config.settings import OTelConfig
from chatguard.preflight.types import CheckResult, PreflightResult, Severity

logger = logging.getLogger(__name__)


def _build_exporter(config: OTelConfig):
    if config.exporter_type == "console":
        return ConsoleSpanExporter()
    return OTLPSpanExporter(endpoint=config.endpoint, insecure=config.insecure)


def _as_attribute(value: Any) -> str:
    # Span attributes only hold primitives
    try:
        return json.dumps(value, default=str, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(value)


class PreflightTracer:
    """
    OpenTelemetry tracer for preflight checks.

    Disabled unless config.enabled is set and an exporter is chosen; every
    method is a no-op while disabled.
    """

    def __init__(self, config: OTelConfig):
        self.config = config
        self._tracer = None
        self._provider = None

        if not config.enabled or config.exporter_type == "none":
            logger.info("PreflightTracer disabled")
            return

        self._provider = TracerProvider(
            resource=Resource.create({SERVICE_NAME: config.service_name})
        )
        self._provider.add_span_processor(BatchSpanProcessor(_build_exporter(config)))
        trace.set_tracer_provider(self._provider)
        self._tracer = trace.get_tracer("chatguard", __version__)

        logger.info(
            f"PreflightTracer exporting to {config.exporter_type}"
            + (f" ({config.endpoint})" if config.exporter_type == "otlp" else "")
        )

    @property
    def enabled(self) -> bool:
        return self._tracer is not None

    @contextmanager
    def trace_block(
        self,
        name: str,
        user_id: str,
        attributes: Optional[Dict[str, Any]] = None,
    ) -> Iterator[Optional[Any]]:
        """
        Context manager wrapping a block in a span.

        Check spans logged inside the block become its children.
        """
        if not self.enabled:
            yield None
            return

        span_attrs = {
            "chatguard.user_id": user_id,
            "chatguard.version": __version__,
            **(attributes or {}),
        }
        with self._tracer.start_as_current_span(name, attributes=span_attrs) as span:
            yield span

    def log_check_result(self, check_name: str, tier: int, result: CheckResult) -> None:
        """Record one executed check as a span."""
        if not self.enabled:
            return

        span_attrs = {
            "chatguard.check.name": check_name,
            "chatguard.check.tier": tier,
            "chatguard.check.passed": result.passed,
            "chatguard.check.code": result.code,
            "chatguard.check.severity": Severity(result.severity).value,
        }
        if result.execution_time_ms is not None:
            span_attrs["chatguard.check.execution_time_ms"] = result.execution_time_ms

        with self._tracer.start_as_current_span(
            f"check:{check_name}", attributes=span_attrs
        ) as span:
            if result.details:
                span.set_attribute("chatguard.check.details", _as_attribute(result.details))
            if not result.passed:
                span.set_status(Status(StatusCode.ERROR, result.message))

    def log_preflight_result(
        self, user_id: str, ip: Optional[str], result: PreflightResult
    ) -> None:
        """Attach the run outcome to the current span as an event."""
        if not self.enabled:
            return

        span = trace.get_current_span()
        if span is None or not span.is_recording():
            return

        attributes = {
            "passed": result.passed,
            "execution_time_ms": result.execution_time_ms,
            "user_id": user_id,
            "ip": ip or "unknown",
        }
        if result.failed_check:
            attributes["failed_check"] = result.failed_check
        if result.result is not None:
            attributes["code"] = result.result.code

        span.add_event("preflight_result", attributes=attributes)
        if not result.passed:
            span.set_status(Status(StatusCode.ERROR, result.failed_check or ""))

        logger.debug(f"Logged preflight result for {user_id} (passed={result.passed})")

    def flush(self) -> None:
        """Force flush any pending spans."""
        if self._provider:
            self._provider.force_flush()

    def shutdown(self) -> None:
        if self._provider:
            self._provider.shutdown()
        logger.info("PreflightTracer shut down")
