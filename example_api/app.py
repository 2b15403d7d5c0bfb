"""
Instrumented example API.

A small FastAPI service that produces the logs, metrics and trace IDs the
log aggregation and metrics suites look for. Every request gets a trace
and span ID that is attached to all log lines written while serving it.
"""

import os
import queue
import asyncio
import time
import traceback
from contextlib import asynccontextmanager
from logging.handlers import QueueHandler, QueueListener
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from observability.logging import (
    StructuredLogger, set_run_context, clear_run_context, generate_trace_id, generate_span_id
)
from observability.metrics import ApiMetrics, get_metrics_handler
from .loki import LokiHandler

ENVIRONMENT = os.getenv("ENVIRONMENT", os.getenv("NODE_ENV", "development"))
SERVICE_NAME = "example-api"
LOKI_APP_LABEL = os.getenv("LOKI_APP_LABEL", "example_api")
DEFAULT_SLOW_DELAY_MS = 1000

logger = StructuredLogger(
    "example_api",
    static_fields={"service": SERVICE_NAME, "environment": ENVIRONMENT}
)


def parse_delay(raw: Optional[str]) -> int:
    """Parse the /slow delay in milliseconds; missing, invalid or zero means the default."""
    try:
        delay = int(raw)
    except (TypeError, ValueError):
        return DEFAULT_SLOW_DELAY_MS
    return delay or DEFAULT_SLOW_DELAY_MS


def attach_loki(loki_url: str):
    """Ship the API's log lines to Loki through a background queue.

    Returns the started listener and the queue handler to detach on shutdown.
    """
    handler = LokiHandler(loki_url, labels={"app": LOKI_APP_LABEL, "environment": ENVIRONMENT})
    log_queue = queue.Queue(-1)
    queue_handler = QueueHandler(log_queue)
    # Format on the request side so the trace context is captured
    queue_handler.setFormatter(StructuredLogger.JSONFormatter())
    logger.logger.addHandler(queue_handler)
    listener = QueueListener(log_queue, handler)
    listener.start()
    return listener, queue_handler


def create_app(metrics: Optional[ApiMetrics] = None, loki_url: Optional[str] = None) -> FastAPI:
    """Build the example API.

    Args:
        metrics: Metrics holder; a fresh registry is used when omitted.
        loki_url: Loki base URL to push logs to; defaults to LOKI_URL. Logs
            only go to stderr when neither is set.
    """
    metrics = metrics or ApiMetrics()
    loki_url = loki_url if loki_url is not None else os.getenv("LOKI_URL", "")
    metrics_handler = get_metrics_handler(metrics.registry)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        shipping = attach_loki(loki_url) if loki_url else None
        logger.info("Server started", port=os.getenv("PORT", "9091"))
        yield
        logger.info("Server stopping")
        if shipping is not None:
            listener, queue_handler = shipping
            logger.logger.removeHandler(queue_handler)
            listener.stop()

    app = FastAPI(
        title="Example API",
        description="Demo service generating logs, metrics and traces for the observability stack",
        lifespan=lifespan
    )
    app.state.metrics = metrics

    @app.middleware("http")
    async def request_middleware(request: Request, call_next):
        """Assign trace context, log the request and record HTTP metrics."""
        trace_id = generate_trace_id()
        span_id = generate_span_id()
        set_run_context(trace_id=trace_id, span_id=span_id)

        logger.info(
            "Incoming request",
            method=request.method,
            path=request.url.path,
            query=dict(request.query_params),
            user_agent=request.headers.get("user-agent"),
            ip=request.client.host if request.client else None
        )

        start_time = time.time()
        metrics.http_requests_in_progress.inc()
        try:
            response = await call_next(request)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"Request failed: {request.method} {request.url.path}",
                status_code=500,
                duration_ms=duration_ms,
                exception=str(e)
            )
            raise
        finally:
            metrics.http_requests_in_progress.dec()

        duration_ms = (time.time() - start_time) * 1000
        route = request.scope.get("route")
        path = route.path if route is not None else request.url.path
        metrics.record_request(request.method, path, response.status_code, duration_ms / 1000)
        logger.api_request(
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=duration_ms
        )

        response.headers["X-Trace-ID"] = trace_id
        clear_run_context()
        return response

    @app.get("/hello")
    async def hello(name: str = "Anon"):
        logger.info("Processing hello endpoint", name=name)
        return {"message": f"Hello, {name}!"}

    @app.get("/error")
    async def error():
        """Always fails; used to produce error-level log lines."""
        try:
            raise RuntimeError("This is a test error")
        except RuntimeError as e:
            logger.error(
                "Error occurred in /error endpoint",
                error=str(e),
                stack=traceback.format_exc()
            )
            return JSONResponse(status_code=500, content={"error": "Internal server error"})

    @app.get("/slow")
    async def slow(delay: Optional[str] = None):
        delay_ms = parse_delay(delay)
        logger.warning("Slow endpoint called", delay_ms=delay_ms)
        await asyncio.sleep(max(delay_ms, 0) / 1000)
        return {"message": "Slow response", "delay": delay_ms}

    @app.get("/metrics")
    async def prometheus_metrics():
        payload, headers = metrics_handler()
        return Response(content=payload, headers=headers)

    return app
