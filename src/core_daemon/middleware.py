"""
Contains custom FastAPI middleware for the upro2api application.

Middleware functions in this module intercept HTTP requests for metrics
collection.
"""

import time

from fastapi import Request

from core_daemon.metrics import HTTP_LATENCY, HTTP_REQUESTS


def endpoint_label(request: Request) -> str:
    """
    Metric label for a request: the matched route template when there is one
    (e.g. /api/positions/{device_id}), otherwise the raw path.
    """
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


async def prometheus_http_middleware(request: Request, call_next):
    """
    FastAPI middleware to record Prometheus metrics for HTTP requests.

    Records request latency and increments a counter labeled by method, route
    template and status code. Labelling by template keeps one series per route
    instead of one per device id.

    Args:
        request: The incoming FastAPI Request object.
        call_next: A function to call to process the request and get the response.

    Returns:
        The response object from the next handler in the chain.
    """
    start = time.perf_counter()
    response = await call_next(request)
    latency = time.perf_counter() - start

    # The router fills in scope["route"] while handling the request.
    endpoint = endpoint_label(request)
    method = request.method

    HTTP_REQUESTS.labels(method=method, endpoint=endpoint, status_code=response.status_code).inc()
    HTTP_LATENCY.labels(method=method, endpoint=endpoint).observe(latency)
    return response
