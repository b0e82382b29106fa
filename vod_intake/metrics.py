from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.responses import Response

videos_created_total = Counter("videos_created_total", "Total videos created", ["mode"])
chunks_accepted_total = Counter("chunks_accepted_total", "Total resumable chunks accepted")
bytes_uploaded_total = Counter("bytes_uploaded_total", "Total bytes forwarded to blob storage")
uploads_completed_total = Counter("uploads_completed_total", "Total uploads completed", ["mode"])
chunk_validation_failures_total = Counter(
    "chunk_validation_failures_total", "Total rejected chunks", ["reason"]
)
infrastructure_failures_total = Counter(
    "infrastructure_failures_total", "Total store or blob storage failures", ["operation"]
)
concurrent_update_conflicts_total = Counter(
    "concurrent_update_conflicts_total", "Total saves rejected by the version guard"
)

blob_call_latency_seconds = Histogram("blob_call_latency_seconds", "Blob storage call latency in seconds", ["operation"])
store_save_latency_seconds = Histogram("store_save_latency_seconds", "Video store save latency in seconds")
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "route", "status_code"],
)


def metrics_response() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
