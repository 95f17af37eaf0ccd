from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

IMAGE_LIST_RESULTS: tuple[str, ...] = ("ok", "empty", "bad_request", "error")
UPLOAD_RESULTS: tuple[str, ...] = ("ok", "bad_request", "upstream_error", "error")
LIKE_ACTIONS: tuple[str, ...] = ("liked", "unliked")
SIGNIN_METHODS: tuple[str, ...] = ("password", "oauth", "one_tap")
SIGNIN_RESULTS: tuple[str, ...] = ("ok", "failed")
UPSTREAM_SERVICES: tuple[str, ...] = ("cdn", "identity")

IMAGE_LIST_REQUESTS_TOTAL = Counter(
    "snapslock_image_list_requests_total",
    "Total GET /api/images requests by result.",
    ["result"],
)

IMAGE_LIST_LATENCY_SECONDS = Histogram(
    "snapslock_image_list_latency_seconds",
    "Latency for GET /api/images (seconds).",
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

UPLOADS_TOTAL = Counter(
    "snapslock_uploads_total",
    "Total image uploads by result.",
    ["result"],
)

LIKE_TOGGLES_TOTAL = Counter(
    "snapslock_like_toggles_total",
    "Total like toggles by resulting action.",
    ["action"],
)

SIGNINS_TOTAL = Counter(
    "snapslock_signins_total",
    "Total sign-in attempts by method and result.",
    ["method", "result"],
)

UPSTREAM_ERRORS_TOTAL = Counter(
    "snapslock_upstream_errors_total",
    "Total failed calls to external services.",
    ["service"],
)

CATALOG_COUNT = Gauge(
    "snapslock_catalog_count",
    "Current row counts (images, tags, likes).",
    ["kind"],
)

METRICS_SCRAPE_ERRORS_TOTAL = Counter(
    "snapslock_metrics_scrape_errors_total",
    "Total /metrics scrape errors while querying the database.",
)


def _init_labelsets() -> None:
    for result in IMAGE_LIST_RESULTS:
        IMAGE_LIST_REQUESTS_TOTAL.labels(result=result).inc(0)
    for result in UPLOAD_RESULTS:
        UPLOADS_TOTAL.labels(result=result).inc(0)
    for action in LIKE_ACTIONS:
        LIKE_TOGGLES_TOTAL.labels(action=action).inc(0)
    for method in SIGNIN_METHODS:
        for result in SIGNIN_RESULTS:
            SIGNINS_TOTAL.labels(method=method, result=result).inc(0)
    for service in UPSTREAM_SERVICES:
        UPSTREAM_ERRORS_TOTAL.labels(service=service).inc(0)
    for kind in ("images", "tags", "likes"):
        CATALOG_COUNT.labels(kind=kind).set(0)


_init_labelsets()


def _pick(value: str, allowed: tuple[str, ...], fallback: str) -> str:
    value = (value or "").strip()
    return value if value in allowed else fallback


def observe_image_list(*, result: str, duration_s: float | None) -> None:
    IMAGE_LIST_REQUESTS_TOTAL.labels(result=_pick(result, IMAGE_LIST_RESULTS, "error")).inc()
    if duration_s is not None and duration_s >= 0:
        IMAGE_LIST_LATENCY_SECONDS.observe(duration_s)


def observe_upload(result: str) -> None:
    UPLOADS_TOTAL.labels(result=_pick(result, UPLOAD_RESULTS, "error")).inc()


def observe_like_toggle(action: str) -> None:
    if action in LIKE_ACTIONS:
        LIKE_TOGGLES_TOTAL.labels(action=action).inc()


def observe_signin(*, method: str, ok: bool) -> None:
    if method in SIGNIN_METHODS:
        SIGNINS_TOTAL.labels(method=method, result="ok" if ok else "failed").inc()


def observe_upstream_error(service: str) -> None:
    if service in UPSTREAM_SERVICES:
        UPSTREAM_ERRORS_TOTAL.labels(service=service).inc()


def set_catalog_counts(counts: dict[str, int]) -> None:
    for kind in ("images", "tags", "likes"):
        CATALOG_COUNT.labels(kind=kind).set(float(int(counts.get(kind, 0) or 0)))
