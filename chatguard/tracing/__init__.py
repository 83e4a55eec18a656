"""Tracing for chatguard."""

from chatguard.tracing.otel_tracer import PreflightTracer

__all__ = ["PreflightTracer"]
