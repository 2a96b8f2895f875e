"""Observability: structured logging, Prometheus metrics, tracing and Sentry.

Raw client IPs are a privacy boundary of the click pipeline. They are
hashed before storage, so they are also kept out of request logs and
Sentry events.
"""

import logging
import time
import uuid
from typing import Any

import sentry_sdk
import structlog
from fastapi import FastAPI, Request, Response
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from clicktrail.core.config import get_settings

# Headers that carry the client address
CLIENT_IP_HEADERS = frozenset({"x-forwarded-for", "x-real-ip", "forwarded"})

HTTP_REQUESTS = Counter(
    "clicktrail_http_requests_total",
    "HTTP requests by route and status",
    ["method", "route", "status_code"],
)
HTTP_LATENCY = Histogram(
    "clicktrail_http_request_duration_seconds",
    "HTTP request latency by route",
    ["method", "route"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

REDIRECTS = Counter(
    "clicktrail_redirects_total",
    "Redirect requests by gate outcome",
    ["outcome"],
)

CLICKS_RECEIVED = Counter(
    "clicktrail_click_messages_received_total",
    "Click messages read from the Redis channel",
)
CLICKS_RECORDED = Counter(
    "clicktrail_clicks_recorded_total",
    "Clicks appended to the ledger",
)
CLICKS_FAILED = Counter(
    "clicktrail_clicks_failed_total",
    "Clicks dropped before reaching the ledger",
    ["reason"],
)
CLICK_RECORD_LATENCY = Histogram(
    "clicktrail_click_record_duration_seconds",
    "Time to enrich, deduplicate and append one click",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
)
PENDING_DISPATCHES = Gauge(
    "clicktrail_pending_dispatches",
    "Clicks handed off by redirects and not yet recorded",
)
CONSUMER_RUNNING = Gauge(
    "clicktrail_consumer_running",
    "1 while the Redis click consumer is subscribed",
)

EVENTS_EVICTED = Counter(
    "clicktrail_events_evicted_total",
    "Ledger rows removed by retention",
    ["source"],  # cap | sweep
)

STATS_LATENCY = Histogram(
    "clicktrail_stats_query_duration_seconds",
    "Time to answer an analytics query",
    ["query"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tag every request with an ID, echoed back in ``X-Request-ID``.

    An incoming ``X-Request-ID`` is reused so IDs survive a proxy hop. The
    ID is bound to the structlog context together with the request line.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


def route_label(request: Request) -> str:
    """Route template of the matched endpoint, e.g. ``/analytics/{short_code}``.

    Short codes never become label values, which keeps metric cardinality
    bounded.
    """
    route = request.scope.get("route")
    return getattr(route, "path", "unmatched")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log each request once it completes and feed the HTTP metrics."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start_time = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start_time

        route = route_label(request)
        HTTP_REQUESTS.labels(request.method, route, response.status_code).inc()
        HTTP_LATENCY.labels(request.method, route).observe(duration)

        structlog.get_logger().info(
            "Request completed",
            method=request.method,
            route=route,
            status_code=response.status_code,
            duration_ms=round(duration * 1000, 2),
        )
        return response


def configure_structlog(debug: bool = False) -> None:
    """Route structlog through stdlib logging.

    JSON lines in production, a readable console format when ``debug`` is on.
    """
    renderer = structlog.dev.ConsoleRenderer() if debug else structlog.processors.JSONRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", level=logging.DEBUG if debug else logging.INFO)


def setup_opentelemetry(app: FastAPI) -> None:
    """Export traces over OTLP when an endpoint is configured."""
    endpoint = get_settings().otlp_endpoint
    if not endpoint:
        structlog.get_logger().info("Tracing disabled, no OTLP endpoint")
        return

    provider = TracerProvider(resource=Resource(attributes={SERVICE_NAME: "clicktrail"}))
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, insecure=True)))
    trace.set_tracer_provider(provider)
    # Metrics scrapes would otherwise dominate the traces
    FastAPIInstrumentor.instrument_app(app, excluded_urls="metrics,health")
    structlog.get_logger().info("Tracing enabled", otlp_endpoint=endpoint)


def scrub_client_ip(event: dict[str, Any], hint: dict[str, Any]) -> dict[str, Any]:
    """Sentry ``before_send`` hook removing client address headers."""
    headers = event.get("request", {}).get("headers")
    if headers:
        event["request"]["headers"] = {
            key: value for key, value in headers.items() if key.lower() not in CLIENT_IP_HEADERS
        }
    return event


def setup_sentry() -> None:
    settings = get_settings()
    if not settings.sentry_dsn:
        structlog.get_logger().info("Sentry disabled, no DSN")
        return

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment="development" if settings.debug else "production",
        release=f"clicktrail@{settings.app_version}",
        traces_sample_rate=0.1,
        send_default_pii=False,
        before_send=scrub_client_ip,
        integrations=[
            StarletteIntegration(transaction_style="endpoint"),
            FastApiIntegration(transaction_style="endpoint"),
        ],
    )
    structlog.get_logger().info("Sentry enabled")


def setup_observability(app: FastAPI) -> None:
    """Configure logging, Sentry and tracing, and mount ``/metrics``."""
    configure_structlog(debug=get_settings().debug)
    setup_sentry()
    setup_opentelemetry(app)

    @app.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


def record_redirect(outcome: str) -> None:
    REDIRECTS.labels(outcome=outcome).inc()


def record_click_received() -> None:
    CLICKS_RECEIVED.inc()


def record_click_recorded(duration: float) -> None:
    CLICKS_RECORDED.inc()
    CLICK_RECORD_LATENCY.observe(duration)


def record_click_failed(reason: str) -> None:
    CLICKS_FAILED.labels(reason=reason).inc()


def record_retention_deleted(source: str, count: int) -> None:
    """Count ledger rows evicted by the per-link cap or the age sweep."""
    if count:
        EVENTS_EVICTED.labels(source=source).inc(count)


def record_stats_query(query: str, duration: float) -> None:
    STATS_LATENCY.labels(query=query).observe(duration)


def set_pending_dispatches(count: int) -> None:
    PENDING_DISPATCHES.set(count)


def set_consumer_running(running: bool) -> None:
    CONSUMER_RUNNING.set(1 if running else 0)
