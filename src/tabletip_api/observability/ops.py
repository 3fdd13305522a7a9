from __future__ import annotations

import time
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager, contextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.trace.status import Status, StatusCode

from tabletip_api.domain.errors import AppError
from tabletip_api.observability import metrics

_tracer = trace.get_tracer("tabletip_api")


@asynccontextmanager
async def observe_operation(
    operation: str,
    *,
    attributes: dict[str, Any] | None = None,
) -> AsyncIterator[None]:
    start = time.perf_counter()
    outcome = "success"
    error_code = ""
    with _tracer.start_as_current_span(f"tt.{operation}") as span:
        if attributes:
            for key, value in attributes.items():
                if value is None:
                    continue
                span.set_attribute(key, value)
        try:
            yield
        except AppError as exc:
            outcome = "error"
            error_code = exc.code
            span.set_attribute("app.error_code", exc.code)
            span.set_status(Status(StatusCode.ERROR, description=exc.code))
            raise
        except Exception as exc:  # noqa: BLE001
            outcome = "error"
            error_code = "unhandled_exception"
            span.record_exception(exc)
            span.set_status(Status(StatusCode.ERROR))
            raise
        finally:
            duration = time.perf_counter() - start
            metrics.operation_total.labels(
                operation=operation, outcome=outcome, error_code=error_code
            ).inc()
            metrics.operation_duration_seconds.labels(operation=operation, outcome=outcome).observe(
                duration
            )


@contextmanager
def observe_tip_transition(
    *,
    from_status: str,
    to_status: str,
    attributes: dict[str, Any] | None = None,
) -> Iterator[None]:
    outcome = "success"
    with _tracer.start_as_current_span("tt.tip_status_transition") as span:
        span.set_attribute("tip.from_status", from_status)
        span.set_attribute("tip.to_status", to_status)
        if attributes:
            for key, value in attributes.items():
                if value is None:
                    continue
                span.set_attribute(key, value)
        try:
            yield
        except Exception as exc:  # noqa: BLE001
            outcome = "error"
            span.record_exception(exc)
            span.set_status(Status(StatusCode.ERROR))
            raise
        finally:
            metrics.tip_status_transition_total.labels(
                from_status=from_status,
                to_status=to_status,
                outcome=outcome,
            ).inc()
