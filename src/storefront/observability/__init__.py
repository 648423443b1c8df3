"""
Observability utilities for storefront.

Tracing is composition-based: components accept a ``Tracer`` and fall back to
``create_tracer(__name__, enable_tracing)``. OpenTelemetry is an optional
dependency; without it every tracer is a ``NullTracer``.
"""

from storefront.observability.attributes import (
    ATTR_DB_NAME,
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_ENTITY_KIND,
    ATTR_ERROR_TYPE,
    ATTR_INDEX_NAME,
    ATTR_MIGRATION_PHASE,
    ATTR_MISMATCH_COUNT,
    ATTR_OPERATION,
    ATTR_PARTITION_KEY,
    ATTR_RECORD_COUNT,
    ATTR_RECORD_ID,
    ATTR_SAMPLE_SIZE,
    ATTR_STORE_ROLE,
)
from storefront.observability.tracer import (
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    Tracer,
    create_tracer,
)
from storefront.observability.tracing import OTEL_AVAILABLE, should_trace

__all__ = [
    "OTEL_AVAILABLE",
    "should_trace",
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "create_tracer",
    "ATTR_DB_NAME",
    "ATTR_DB_OPERATION",
    "ATTR_DB_SYSTEM",
    "ATTR_ENTITY_KIND",
    "ATTR_ERROR_TYPE",
    "ATTR_INDEX_NAME",
    "ATTR_MIGRATION_PHASE",
    "ATTR_MISMATCH_COUNT",
    "ATTR_OPERATION",
    "ATTR_PARTITION_KEY",
    "ATTR_RECORD_COUNT",
    "ATTR_RECORD_ID",
    "ATTR_SAMPLE_SIZE",
    "ATTR_STORE_ROLE",
]
