"""
===============================================================================
ARCHIVO: crosscutting/metrics.py
===============================================================================

CRC CARD (Módulo)
-------------------------------------------------------------------------------
Nombre:
    Métricas (Prometheus)

Responsabilidades:
    - Definir métricas HTTP, de procedimientos y de DB en un registry propio.
    - Proveer funciones pequeñas y estables para registrar eventos.
    - Cuidar cardinalidad (NO user_id, NO ids de entidades).
    - Exponer helpers para generar la respuesta /metrics.

Colaboradores:
    - crosscutting.middleware: latencia y conteo HTTP.
    - application.registry: resultado y duración de cada procedimiento.
    - application.sequences: reintentos por colisión de número.
    - infrastructure.repositories.postgres: duración de queries.
===============================================================================
"""

from __future__ import annotations

import re

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

_registry = CollectorRegistry()

# ------------------------
# HTTP
# ------------------------
_requests_total = Counter(
    "erp_requests_total",
    "Total de requests HTTP",
    ["endpoint", "method", "status"],
    registry=_registry,
)

_request_latency = Histogram(
    "erp_request_latency_seconds",
    "Latencia de requests HTTP (segundos)",
    ["endpoint", "method"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
    registry=_registry,
)

# ------------------------
# Procedimientos
# ------------------------
_procedure_calls_total = Counter(
    "erp_procedure_calls_total",
    "Invocaciones de procedimientos por resultado",
    ["procedure", "outcome"],
    registry=_registry,
)

_procedure_latency = Histogram(
    "erp_procedure_latency_seconds",
    "Duración de procedimientos (segundos)",
    ["kind"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
    registry=_registry,
)

_procedure_denials_total = Counter(
    "erp_procedure_denials_total",
    "Llamadas rechazadas por los guards antes del handler",
    ["procedure", "reason"],
    registry=_registry,
)

_sequence_retries_total = Counter(
    "erp_sequence_retries_total",
    "Reintentos de asignación de números de documento por colisión",
    ["prefix"],
    registry=_registry,
)

# ------------------------
# DB (baja cardinalidad)
# ------------------------
_db_query_duration = Histogram(
    "erp_db_query_duration_seconds",
    "Duración de queries a Postgres (segundos)",
    ["kind"],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0),
    registry=_registry,
)


def record_request_metrics(
    endpoint: str, method: str, status_code: int, latency_seconds: float
) -> None:
    normalized = _normalize_endpoint(endpoint)
    _requests_total.labels(
        endpoint=normalized, method=method, status=_status_bucket(status_code)
    ).inc()
    _request_latency.labels(endpoint=normalized, method=method).observe(
        latency_seconds
    )


def record_procedure_call(
    procedure: str, kind: str, outcome: str, seconds: float
) -> None:
    """outcome: "ok" o el error_code de la taxonomía."""
    _procedure_calls_total.labels(procedure=procedure, outcome=outcome).inc()
    _procedure_latency.labels(kind=kind).observe(seconds)


def record_denial(procedure: str, reason: str) -> None:
    _procedure_denials_total.labels(procedure=procedure, reason=reason).inc()


def record_sequence_retry(prefix: str) -> None:
    _sequence_retries_total.labels(prefix=prefix).inc()


def observe_db_query_duration(kind: str, seconds: float) -> None:
    _db_query_duration.labels(kind=kind).observe(seconds)


_UUID_RE = re.compile(
    r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}", re.IGNORECASE
)


def _normalize_endpoint(path: str) -> str:
    """Reemplaza UUIDs e IDs numéricos por `{id}`."""
    path = _UUID_RE.sub("{id}", path)
    return re.sub(r"/\d+", "/{id}", path)


def _status_bucket(code: int) -> str:
    """Agrupa status code para baja cardinalidad."""
    if 200 <= code < 300:
        return "2xx"
    if 400 <= code < 500:
        return "4xx"
    if 500 <= code < 600:
        return "5xx"
    return "other"


def get_metrics_response() -> tuple[bytes, str]:
    """Genera el body y content-type para /metrics."""
    return generate_latest(_registry), CONTENT_TYPE_LATEST
