import logging
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Mapping, TypeVar

from vod_intake.chunks import ChunkErrorReason, ChunkPolicy, ChunkValidationError, validate_chunk
from vod_intake.content_range import ContentRange, parse_content_range
from vod_intake.entities import (
    UploadMode,
    UploadOutcome,
    Video,
    VideoStatus,
    mark_completed,
    new_video,
    record_part,
    upload_complete,
)
from vod_intake.errors import (
    ConcurrentUpdateError,
    InfrastructureError,
    MissingRangeError,
    UploadConflictError,
    ValidationError,
)
from vod_intake.logs import log_event, upload_logger
from vod_intake.metrics import (
    blob_call_latency_seconds,
    bytes_uploaded_total,
    chunk_validation_failures_total,
    chunks_accepted_total,
    concurrent_update_conflicts_total,
    infrastructure_failures_total,
    uploads_completed_total,
    videos_created_total,
)
from vod_intake.storage import BlobUploader
from vod_intake.store import VideoStore
from vod_intake.tracing import get_tracer

T = TypeVar("T")

tracer = get_tracer(__name__)


@dataclass(frozen=True)
class ChunkResult:
    video: Video
    outcome: UploadOutcome

    @classmethod
    def from_video(cls, video: Video) -> "ChunkResult":
        done = video.status == VideoStatus.completed
        return cls(video=video, outcome=UploadOutcome.completed if done else UploadOutcome.partial)


class UploadCoordinator:
    """Drives a video from creation to a completed object in blob storage.

    Every call is one load followed by blob-store calls and version-guarded
    saves. The part set is persisted before the multipart upload is assembled,
    so nothing irreversible happens on an unsaved snapshot. Nothing is retried
    here: a client that sees an error resends the same chunk, which overwrites
    the same part number or finishes a pending assembly.
    """

    def __init__(self, store: VideoStore, uploader: BlobUploader, policy: ChunkPolicy) -> None:
        self.store = store
        self.uploader = uploader
        self.policy = policy

    def initiate(
        self,
        title: str,
        description: str,
        content_type: str,
        size: int,
        tags: list[str] | None = None,
        metadata: Mapping[str, str] | None = None,
        mode: UploadMode | str = UploadMode.resumable,
    ) -> Video:
        upload_mode = UploadMode.parse(mode)
        if size <= 0:
            raise ValidationError("video size must be a positive number of bytes", reason="invalid_size")
        if not content_type:
            raise ValidationError("video content type is required", reason="missing_content_type")

        video_id = str(uuid.uuid4())
        upload_id = None
        if upload_mode is UploadMode.resumable:
            upload_id = self._blob_call("create_multipart", video_id, self.uploader.create_multipart, video_id)

        video = new_video(
            video_id,
            title=title,
            description=description,
            content_type=content_type,
            size=size,
            tags=tags or [],
            metadata=metadata,
            upload_id=upload_id,
        )
        saved = self._save(video, "initiate")
        videos_created_total.labels(mode=upload_mode.value).inc()
        return saved

    def get(self, video_id: str) -> Video:
        return self._store_call("store_get", video_id, self.store.get_by_id, video_id)

    def accept_chunk(
        self,
        video_id: str,
        data: bytes,
        declared_length: int,
        content_range: ContentRange | str | None,
        mode: UploadMode | str,
    ) -> ChunkResult:
        video = self.get(video_id)
        upload_mode = UploadMode.parse(mode)
        if isinstance(content_range, str):
            content_range = parse_content_range(content_range)
        if video.status != VideoStatus.processing:
            raise UploadConflictError(
                f"video is {video.status.value} and no longer accepts uploads",
                reason="not_processing",
                video_id=video_id,
            )
        if len(data) != declared_length:
            raise ValidationError(
                "Content-Length does not match the request body", reason="content_length", video_id=video_id
            )

        if upload_mode is UploadMode.media:
            return self._accept_whole(video, data, declared_length, content_range)
        return self._accept_part(video, data, declared_length, content_range)

    def _accept_whole(
        self, video: Video, data: bytes, declared_length: int, content_range: ContentRange | None
    ) -> ChunkResult:
        if content_range is not None:
            raise ValidationError(
                "Content-Range is not allowed for media uploads", reason="unexpected_range", video_id=video.id
            )
        if video.upload is not None:
            raise ValidationError(
                "video was initiated for a resumable upload", reason="mode_mismatch", video_id=video.id
            )
        if declared_length != video.size or declared_length > self.policy.max_simple_upload_bytes:
            chunk_validation_failures_total.labels(reason=ChunkErrorReason.size_mismatch.value).inc()
            raise ChunkValidationError(
                ChunkErrorReason.size_mismatch,
                f"media upload must carry the whole video of {video.size} bytes "
                f"and at most {self.policy.max_simple_upload_bytes} bytes",
                video_id=video.id,
            )

        self._blob_call("simple_upload", video.id, self.uploader.simple_upload, video.id, data)
        bytes_uploaded_total.inc(declared_length)
        saved = self._save(mark_completed(video), "accept_chunk")
        uploads_completed_total.labels(mode=UploadMode.media.value).inc()
        return ChunkResult.from_video(saved)

    def _accept_part(
        self, video: Video, data: bytes, declared_length: int, content_range: ContentRange | None
    ) -> ChunkResult:
        if content_range is None:
            raise MissingRangeError(video.id)
        if video.upload is None:
            raise ValidationError(
                "video was not initiated for a resumable upload", reason="mode_mismatch", video_id=video.id
            )
        try:
            validate_chunk(declared_length, content_range, video.size, self.policy, video_id=video.id)
        except ChunkValidationError as exc:
            chunk_validation_failures_total.labels(reason=exc.kind.value).inc()
            raise
        chunk_length = self._chunk_length(video, content_range)
        total_parts = content_range.part_count(chunk_length)

        # Every part is already stored, only the assembly is missing.
        if upload_complete(video, total_parts):
            return self._complete(video)

        part = self._blob_call(
            "upload_part",
            video.id,
            self.uploader.upload_part,
            video.id,
            video.upload.upload_id,
            data,
            declared_length,
            content_range.part_number(chunk_length),
        )
        chunks_accepted_total.inc()
        bytes_uploaded_total.inc(declared_length)

        updated = record_part(video, part)
        saved = self._save(updated, "accept_chunk")
        if upload_complete(saved, total_parts):
            return self._complete(saved)
        return ChunkResult.from_video(saved)

    def _complete(self, video: Video) -> ChunkResult:
        """Assemble the stored parts and mark the video completed.

        Only runs on a snapshot whose full part set is already persisted, so a
        request that fails here can be resent and will land back in this method.
        """
        self._blob_call(
            "complete_multipart",
            video.id,
            self.uploader.complete_multipart,
            video.id,
            video.upload.upload_id,
            video.upload.ordered_parts(),
        )
        saved = self._save(mark_completed(video), "complete")
        uploads_completed_total.labels(mode=UploadMode.resumable.value).inc()
        return ChunkResult.from_video(saved)

    def _chunk_length(self, video: Video, content_range: ContentRange) -> int:
        """Length shared by every non-final chunk of this upload.

        A final chunk takes it from the parts already stored. With none stored
        it keeps its own length when that could be the common one, a unit
        multiple dividing the video size, and a shorter one has to wait.
        """
        chunk_length = content_range.length
        if content_range.is_last_byte and content_range.start > 0:
            recorded = [part.size for part in video.upload.parts.values() if part.size > 0]
            if recorded:
                chunk_length = max(recorded)
            elif chunk_length % self.policy.unit or content_range.size % chunk_length:
                raise UploadConflictError(
                    "a short final chunk can only be placed after an earlier chunk, resend it later",
                    reason="final_chunk_first",
                    video_id=video.id,
                )
        if content_range.start % chunk_length:
            chunk_validation_failures_total.labels(reason=ChunkErrorReason.inconsistent_layout.value).inc()
            raise ChunkValidationError(
                ChunkErrorReason.inconsistent_layout,
                f"chunk starting at byte {content_range.start} is not aligned to {chunk_length}-byte chunks",
                video_id=video.id,
            )
        return chunk_length

    def _blob_call(self, operation: str, video_id: str, fn: Callable[..., T], *args) -> T:
        t0 = time.perf_counter()
        with tracer.start_as_current_span(f"blob.{operation}") as span:
            span.set_attribute("video.id", video_id)
            try:
                return fn(*args)
            except InfrastructureError as exc:
                span.record_exception(exc)
                self._report_failure(operation, video_id, exc)
                raise
            finally:
                blob_call_latency_seconds.labels(operation=operation).observe(time.perf_counter() - t0)

    def _store_call(self, operation: str, video_id: str, fn: Callable[..., T], *args) -> T:
        try:
            return fn(*args)
        except InfrastructureError as exc:
            self._report_failure(operation, video_id, exc)
            raise

    def _save(self, video: Video, operation: str) -> Video:
        try:
            return self._store_call("store_save", video.id, self.store.save, video)
        except ConcurrentUpdateError as exc:
            concurrent_update_conflicts_total.inc()
            log_event(
                upload_logger,
                {
                    "event": "concurrent_update",
                    "video_id": video.id,
                    "operation": operation,
                    "expected_version": exc.expected_version,
                },
                level=logging.WARNING,
            )
            raise

    @staticmethod
    def _report_failure(operation: str, video_id: str, exc: InfrastructureError) -> None:
        infrastructure_failures_total.labels(operation=operation).inc()
        log_event(
            upload_logger,
            {
                "event": "infrastructure_error",
                "video_id": video_id,
                "operation": operation,
                "detail": exc.detail,
                "error_class": "server_error",
            },
            level=logging.ERROR,
        )
