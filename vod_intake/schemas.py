from datetime import datetime

from pydantic import BaseModel, Field

from vod_intake.coordinator import ChunkResult
from vod_intake.entities import Video, VideoStatus


class CreateVideoRequest(BaseModel):
    title: str = Field(default="", max_length=1024)
    description: str = Field(default="", max_length=16384)
    tags: list[str] = Field(default_factory=list)
    metadata: dict[str, str] = Field(default_factory=dict)


class VideoResponse(BaseModel):
    id: str
    title: str
    description: str
    content_type: str
    size: int
    tags: list[str]
    metadata: dict[str, str]
    status: str
    upload_type: str
    received_parts: list[int]
    received_bytes: int
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_video(cls, video: Video) -> "VideoResponse":
        received_parts: list[int] = []
        received_bytes = 0
        if video.upload is not None:
            received_parts = [part.part_number for part in video.upload.ordered_parts()]
            received_bytes = video.upload.received_bytes()
        elif video.status == VideoStatus.completed:
            received_bytes = video.size
        return cls(
            id=video.id,
            title=video.title,
            description=video.description,
            content_type=video.content_type,
            size=video.size,
            tags=list(video.tags),
            metadata=dict(video.metadata),
            status=video.status.value,
            upload_type=video.mode.value,
            received_parts=received_parts,
            received_bytes=received_bytes,
            created_at=video.created_at,
            updated_at=video.updated_at,
        )


class UploadChunkResponse(BaseModel):
    video_id: str
    status: str
    outcome: str
    received_parts: int
    received_bytes: int

    @classmethod
    def from_result(cls, result: ChunkResult) -> "UploadChunkResponse":
        video = result.video
        if video.upload is not None:
            parts, received = video.upload.part_count, video.upload.received_bytes()
        else:
            parts, received = 1, video.size
        return cls(
            video_id=video.id,
            status=video.status.value,
            outcome=result.outcome.value,
            received_parts=parts,
            received_bytes=received,
        )


class ErrorResponse(BaseModel):
    detail: str
    error_code: str
    reason: str | None = None
    request_id: str | None = None
    video_id: str | None = None
    trace_id: str | None = None
