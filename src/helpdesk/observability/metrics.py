from __future__ import annotations

"""Prometheus metrics for the helpdesk API.

Request latency is labelled with the matched route template
(``/conversations/{conversation_id}/messages``) so ids never become labels.
"""

import time
from typing import Awaitable, Callable

from prometheus_client import Counter, Histogram
from starlette.requests import Request
from starlette.responses import Response

CallNext = Callable[[Request], Awaitable[Response]]

REQUEST_LATENCY = Histogram(
    "helpdesk_request_latency_seconds",
    "HTTP request latency in seconds",
    labelnames=("method", "route", "status"),
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

CHAT_MESSAGES = Counter(
    "helpdesk_chat_messages_total",
    "Inbound chat messages by intake outcome",
    labelnames=("outcome",),
)

ARTICLE_JOBS = Counter(
    "helpdesk_article_jobs_total",
    "Article generation runs by trigger and outcome",
    labelnames=("trigger", "outcome"),
)


def sanitize_path(path: str) -> str:
    """First path segment only; used when no route matched."""
    head = (path or "").split("?", 1)[0].strip("/").split("/", 1)[0]
    return f"/{head}"


def route_label(request: Request) -> str:
    route = request.scope.get("route")
    template = getattr(route, "path", None)
    return template or sanitize_path(request.url.path)


def metrics_middleware_factory() -> Callable[[Request, CallNext], Awaitable[Response]]:
    async def middleware(request: Request, call_next: CallNext) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)
        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            REQUEST_LATENCY.labels(
                method=request.method,
                route=route_label(request),
                status=str(status_code),
            ).observe(time.perf_counter() - started)

    return middleware
