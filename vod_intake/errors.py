class UploadError(Exception):
    status_code = 500
    error_code = "internal_error"

    def __init__(self, detail: str, reason: str | None = None, video_id: str | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.reason = reason
        self.video_id = video_id


class ValidationError(UploadError):
    status_code = 400
    error_code = "bad_request"


class InvalidModeError(ValidationError):
    def __init__(self, mode: object) -> None:
        super().__init__(f"uploadType must be media or resumable, got {mode!r}", reason="invalid_mode")
        self.mode = mode


class MissingRangeError(ValidationError):
    def __init__(self, video_id: str | None = None) -> None:
        super().__init__(
            "Content-Range header is required for resumable uploads", reason="missing_range", video_id=video_id
        )


class NotFoundError(UploadError):
    status_code = 404
    error_code = "not_found"

    def __init__(self, video_id: str) -> None:
        super().__init__("video not found", reason="unknown_video", video_id=video_id)


class UploadConflictError(UploadError):
    status_code = 409
    error_code = "conflict"


class ConcurrentUpdateError(UploadConflictError):
    def __init__(self, video_id: str, expected_version: int) -> None:
        super().__init__(
            "video was modified by a concurrent request, resend the chunk",
            reason="version_conflict",
            video_id=video_id,
        )
        self.expected_version = expected_version


class InfrastructureError(UploadError):
    status_code = 500
    error_code = "infrastructure_error"

    def __init__(self, operation: str, detail: str, video_id: str | None = None) -> None:
        super().__init__(f"{operation} failed: {detail}", reason=operation, video_id=video_id)
        self.operation = operation
