import time
import uuid

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from vod_intake.chunks import ChunkPolicy
from vod_intake.config import settings
from vod_intake.coordinator import UploadCoordinator
from vod_intake.db import get_db
from vod_intake.entities import UploadOutcome
from vod_intake.errors import UploadError, ValidationError
from vod_intake.logs import audit_logger, log_event, request_logger, trace_id
from vod_intake.metrics import http_request_duration_seconds, metrics_response
from vod_intake.schemas import CreateVideoRequest, ErrorResponse, UploadChunkResponse, VideoResponse
from vod_intake.storage import build_uploader
from vod_intake.store import SqlVideoStore
from vod_intake.tracing import setup_tracing

app = FastAPI(title=settings.app_name)
setup_tracing(app)
uploader = build_uploader()
chunk_policy = ChunkPolicy(
    min_chunk_bytes=settings.min_chunk_size_bytes,
    max_chunk_bytes=settings.max_chunk_size_bytes,
    max_simple_upload_bytes=settings.max_simple_upload_bytes,
)


def get_coordinator(db: Session = Depends(get_db)) -> UploadCoordinator:
    return UploadCoordinator(SqlVideoStore(db), uploader, chunk_policy)


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


def _video_id(request: Request) -> str | None:
    return request.path_params.get("video_id")


def _route_label(request: Request) -> str:
    route = request.scope.get("route")
    if route is not None and hasattr(route, "path"):
        return str(route.path)
    return request.url.path


def _error_code_for_status(status_code: int) -> str:
    mapping = {
        400: "bad_request",
        404: "not_found",
        409: "conflict",
        413: "payload_too_large",
        500: "internal_error",
    }
    return mapping.get(status_code, f"http_{status_code}")


def _parse_size_header(value: str | None, header: str) -> int:
    if value is None or not value.strip():
        raise ValidationError(f"{header} header is required", reason="missing_header")
    text = value.strip()
    if not text.isascii() or not text.isdigit():
        raise ValidationError(f"cannot parse {header} header: {value!r}", reason="malformed_header")
    return int(text)


COMMON_ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Validation error"},
    500: {"model": ErrorResponse, "description": "Infrastructure or internal error"},
}


@app.middleware("http")
async def request_context_and_logging(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    start = time.perf_counter()

    response = await call_next(request)
    duration_ms = round((time.perf_counter() - start) * 1000, 2)
    response.headers["X-Request-ID"] = request_id
    response.headers["X-VOD-App-Version"] = settings.app_version
    http_request_duration_seconds.labels(
        method=request.method,
        route=_route_label(request),
        status_code=str(response.status_code),
    ).observe(duration_ms / 1000.0)

    log_event(
        request_logger,
        {
            "event": "request_completed",
            "request_id": request_id,
            "video_id": _video_id(request),
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": duration_ms,
        },
    )
    return response


def _error_response(
    request: Request, status_code: int, detail: str, error_code: str, reason: str | None, headers=None
) -> JSONResponse:
    log_event(
        request_logger,
        {
            "event": "request_error",
            "request_id": _request_id(request),
            "video_id": _video_id(request),
            "method": request.method,
            "path": request.url.path,
            "status_code": status_code,
            "error_class": "client_error" if 400 <= status_code < 500 else "server_error",
            "reason": reason,
            "detail": detail,
        },
    )
    return JSONResponse(
        status_code=status_code,
        content={
            "detail": detail,
            "error_code": error_code,
            "reason": reason,
            "request_id": _request_id(request),
            "video_id": _video_id(request),
            "trace_id": trace_id(),
        },
        headers=headers or {},
    )


@app.exception_handler(UploadError)
async def upload_error_handler(request: Request, exc: UploadError):
    return _error_response(request, exc.status_code, exc.detail, exc.error_code, exc.reason)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return _error_response(
        request, exc.status_code, str(exc.detail), _error_code_for_status(exc.status_code), None, exc.headers
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    log_event(
        request_logger,
        {
            "event": "request_error",
            "request_id": _request_id(request),
            "video_id": _video_id(request),
            "method": request.method,
            "path": request.url.path,
            "status_code": 500,
            "error_class": "unhandled_exception",
            "detail": str(exc),
        },
    )
    return JSONResponse(
        status_code=500,
        content={
            "detail": "internal server error",
            "error_code": "internal_error",
            "request_id": _request_id(request),
            "video_id": _video_id(request),
            "trace_id": trace_id(),
        },
    )


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/version")
def version() -> dict[str, str]:
    return {
        "app_name": settings.app_name,
        "app_version": settings.app_version,
        "storage_backend": settings.storage_backend,
    }


@app.get("/metrics")
def metrics() -> Response:
    return metrics_response()


@app.post(
    "/v1/videos",
    response_model=VideoResponse,
    status_code=201,
    responses={**COMMON_ERROR_RESPONSES},
)
def create_video(
    request: Request,
    payload: CreateVideoRequest,
    upload_type: str | None = Query(default=None, alias="uploadType"),
    upload_content_length: str | None = Header(default=None, alias="X-Upload-Content-Length"),
    upload_content_type: str | None = Header(default=None, alias="X-Upload-Content-Type"),
    coordinator: UploadCoordinator = Depends(get_coordinator),
) -> VideoResponse:
    size = _parse_size_header(upload_content_length, "X-Upload-Content-Length")
    if not upload_content_type or not upload_content_type.strip():
        raise ValidationError("X-Upload-Content-Type header is required", reason="missing_header")

    video = coordinator.initiate(
        title=payload.title,
        description=payload.description,
        content_type=upload_content_type.strip(),
        size=size,
        tags=payload.tags,
        metadata=payload.metadata,
        mode=upload_type,
    )
    log_event(
        audit_logger,
        {
            "event": "audit",
            "action": "video_create",
            "request_id": _request_id(request),
            "video_id": video.id,
            "upload_type": video.mode.value,
            "size": video.size,
            "status": video.status.value,
        },
    )
    return VideoResponse.from_video(video)


@app.get(
    "/v1/videos/{video_id}",
    response_model=VideoResponse,
    responses={**COMMON_ERROR_RESPONSES, 404: {"model": ErrorResponse, "description": "Video not found"}},
)
def get_video(video_id: str, coordinator: UploadCoordinator = Depends(get_coordinator)) -> VideoResponse:
    return VideoResponse.from_video(coordinator.get(video_id))


@app.put(
    "/upload/v1/videos/{video_id}",
    response_model=UploadChunkResponse,
    responses={
        **COMMON_ERROR_RESPONSES,
        206: {"model": UploadChunkResponse, "description": "Chunk stored, more data expected"},
        404: {"model": ErrorResponse, "description": "Video not found"},
        409: {"model": ErrorResponse, "description": "Concurrent update or video not accepting uploads"},
    },
)
async def upload_video(
    video_id: str,
    request: Request,
    response: Response,
    upload_type: str | None = Query(default=None, alias="uploadType"),
    content_length: str | None = Header(default=None),
    content_range: str | None = Header(default=None),
    coordinator: UploadCoordinator = Depends(get_coordinator),
) -> UploadChunkResponse:
    declared_length = _parse_size_header(content_length, "Content-Length")
    body = await request.body()

    result = await run_in_threadpool(
        coordinator.accept_chunk, video_id, body, declared_length, content_range, upload_type
    )
    if result.outcome is UploadOutcome.partial:
        response.status_code = 206
    log_event(
        audit_logger,
        {
            "event": "audit",
            "action": "upload_complete" if result.outcome is UploadOutcome.completed else "chunk_accepted",
            "request_id": _request_id(request),
            "video_id": video_id,
            "content_range": content_range,
            "status": result.video.status.value,
        },
    )
    return UploadChunkResponse.from_result(result)
