import re
import time

from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

REQUEST_COUNT = Counter(
    "ordering_http_requests_total",
    "Customer API requests",
    ["method", "path", "status"],
)

REQUEST_LATENCY = Histogram(
    "ordering_http_request_duration_seconds",
    "Customer API request latency",
    ["method", "path"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

# Order ids and menu item ids would blow up label cardinality.
# "cancel" under /orders is a fixed route, not an id.
_PATH_PATTERNS = [
    (re.compile(r"^/orders/(?!cancel(/|$))[^/]+"), "/orders/{order_id}"),
    (re.compile(r"^/cart/items/[^/]+"), "/cart/items/{menu_item_id}"),
]

_UNTRACKED = ("/metrics", "/health")


def normalise_path(path: str) -> str:
    for pattern, replacement in _PATH_PATTERNS:
        path = pattern.sub(replacement, path)
    return path


class MetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path.startswith(_UNTRACKED):
            return await call_next(request)

        path = normalise_path(request.url.path)
        start = time.perf_counter()
        status = "500"
        try:
            response = await call_next(request)
            status = str(response.status_code)
            return response
        finally:
            REQUEST_COUNT.labels(method=request.method, path=path, status=status).inc()
            REQUEST_LATENCY.labels(method=request.method, path=path).observe(time.perf_counter() - start)
