from __future__ import annotations

import contextlib
import re
import time
import uuid
from collections.abc import Callable, Iterator

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from tabletip_api.observability.logging import request_id_var
from tabletip_api.observability.tracing import tracing_enabled

_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.:-]{0,127}$")


def _header(scope: Scope, name: bytes) -> str | None:
    for key, value in scope.get("headers") or []:
        if key == name:
            return value.decode("utf-8", errors="ignore").strip()
    return None


def _extract_request_id(scope: Scope, header_name: bytes) -> str | None:
    candidate = _header(scope, header_name)
    if candidate and _REQUEST_ID_RE.fullmatch(candidate):
        return candidate
    return None


@contextlib.contextmanager
def _server_span(scope: Scope, request_id: str, get_status_code: Callable[[], int | None]) -> Iterator[None]:
    if not tracing_enabled():
        yield
        return

    from opentelemetry import trace
    from opentelemetry.propagate import extract
    from opentelemetry.trace import SpanKind
    from opentelemetry.trace.status import Status, StatusCode

    carrier = {
        key.decode("ascii", errors="ignore"): value.decode("utf-8", errors="ignore")
        for key, value in scope.get("headers") or []
    }
    method = scope.get("method") or "UNKNOWN"
    path = scope.get("path") or ""
    tracer = trace.get_tracer("tabletip_api")
    with tracer.start_as_current_span(
        name=f"{method} {path}",
        context=extract(carrier),
        kind=SpanKind.SERVER,
        attributes={"http.method": method, "http.target": path, "request.id": request_id},
    ) as span:
        try:
            yield
        except Exception as exc:  # noqa: BLE001
            span.record_exception(exc)
            span.set_status(Status(StatusCode.ERROR))
            raise
        finally:
            status_code = get_status_code()
            if status_code is not None:
                span.set_attribute("http.status_code", status_code)
                span.set_status(Status(StatusCode.ERROR if status_code >= 500 else StatusCode.OK))


class RequestContextMiddleware:
    """Assigns a request id, echoes it on the response and writes one access log line."""

    def __init__(
        self,
        app: ASGIApp,
        *,
        header_name: str = "x-request-id",
        access_log: Callable[[dict[str, object]], None] | None = None,
    ) -> None:
        self._app = app
        self._header_name = header_name.lower().encode("ascii")
        self._access_log = access_log

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self._app(scope, receive, send)
            return

        request_id = _extract_request_id(scope, self._header_name) or str(uuid.uuid4())
        token = request_id_var.set(request_id)
        start = time.perf_counter()
        status_code: int | None = None

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = int(message["status"])
                headers = list(message.get("headers") or [])
                headers.append((self._header_name, request_id.encode("ascii")))
                message["headers"] = headers
            await send(message)

        try:
            with _server_span(scope, request_id, lambda: status_code):
                await self._app(scope, receive, send_wrapper)
        finally:
            if self._access_log is not None:
                self._access_log(
                    {
                        "request_id": request_id,
                        "method": scope.get("method"),
                        "path": scope.get("path"),
                        "status_code": status_code,
                        "duration_ms": (time.perf_counter() - start) * 1000.0,
                        "client": (scope.get("client") or [None, None])[0],
                    }
                )
            request_id_var.reset(token)
