from prometheus_client import Counter, Histogram

# Basic metrics with proper buckets for latency
REQUEST_COUNT = Counter("http_requests_total", "Total HTTP requests", ["method", "endpoint", "status"])
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["endpoint"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.075, 0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0, float("inf"))
)

ORDERS_PLACED = Counter("orders_placed_total", "Orders created with stock reserved")
ORDERS_CANCELLED = Counter("orders_cancelled_total", "Orders cancelled with stock restored")
ORDER_REJECTIONS = Counter("order_rejections_total", "Order attempts rejected before commit", ["reason"])

# Route prefixes collapsed into one label to keep cardinality bounded
_ENDPOINT_GROUPS = (
    ("/api/products/", "/api/products/<id>"),
    ("/api/orders/", "/api/orders/<id>"),
    ("/api/custom-requests/", "/api/custom-requests/<id>"),
    ("/api/admin/", "/api/admin/*"),
)


def normalize_endpoint(path: str) -> str:
    for prefix, label in _ENDPOINT_GROUPS:
        if path.startswith(prefix):
            return label
    return path
