import enum
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Mapping

from vod_intake.chunks import ChunkErrorReason, ChunkValidationError
from vod_intake.errors import InvalidModeError


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class VideoStatus(str, enum.Enum):
    processing = "PROCESSING"
    completed = "COMPLETED"
    deleted = "DELETED"
    failed = "FAILED"
    rejected = "REJECTED"


class UploadMode(str, enum.Enum):
    media = "media"
    resumable = "resumable"

    @classmethod
    def parse(cls, value: "UploadMode | str | None") -> "UploadMode":
        if isinstance(value, cls):
            return value
        normalized = (value or "").strip().lower()
        if normalized == "simple":
            return cls.media
        try:
            return cls(normalized)
        except ValueError:
            raise InvalidModeError(value) from None


class UploadOutcome(str, enum.Enum):
    partial = "PARTIAL"
    completed = "COMPLETED"


@dataclass(frozen=True)
class Part:
    part_number: int
    etag: str
    size: int = 0


@dataclass(frozen=True)
class UploadProgress:
    upload_id: str
    parts: Mapping[int, Part] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def part_count(self) -> int:
        return len(self.parts)

    def ordered_parts(self) -> list[Part]:
        return [self.parts[number] for number in sorted(self.parts)]

    def received_bytes(self) -> int:
        return sum(part.size for part in self.parts.values())


@dataclass(frozen=True)
class Video:
    id: str
    title: str
    description: str
    content_type: str
    size: int
    tags: tuple[str, ...] = ()
    metadata: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    status: VideoStatus = VideoStatus.processing
    upload: UploadProgress | None = None
    version: int = 0
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def mode(self) -> UploadMode:
        return UploadMode.resumable if self.upload is not None else UploadMode.media


def new_video(
    video_id: str,
    title: str,
    description: str,
    content_type: str,
    size: int,
    tags: list[str] | tuple[str, ...] = (),
    metadata: Mapping[str, str] | None = None,
    upload_id: str | None = None,
) -> Video:
    return Video(
        id=video_id,
        title=title,
        description=description,
        content_type=content_type,
        size=size,
        tags=tuple(tags),
        metadata=MappingProxyType(dict(metadata or {})),
        upload=UploadProgress(upload_id=upload_id) if upload_id else None,
    )


def record_part(video: Video, part: Part) -> Video:
    """Return a snapshot holding ``part``; a repeated part number replaces the earlier entry."""
    if video.upload is None:
        raise ValueError(f"video {video.id} has no multipart upload")
    parts = dict(video.upload.parts)
    parts[part.part_number] = part
    upload = replace(video.upload, parts=MappingProxyType(parts))
    return replace(video, upload=upload, updated_at=utc_now())


def mark_completed(video: Video) -> Video:
    return replace(video, status=VideoStatus.completed, updated_at=utc_now())


def upload_complete(video: Video, total_parts: int) -> bool:
    """Whether every part is present.

    Completion is decided by the count of distinct part numbers. Once the count
    matches, the layout must also be exactly ``1..total_parts`` and add up to the
    declared size; anything else means the client sent chunks of varying length.
    """
    if video.upload is None or video.upload.part_count < total_parts:
        return False
    numbers = set(video.upload.parts)
    if numbers != set(range(1, total_parts + 1)) or video.upload.received_bytes() != video.size:
        raise ChunkValidationError(
            ChunkErrorReason.inconsistent_layout,
            "received parts do not assemble into the declared size, chunks must share one length except the last",
            video_id=video.id,
        )
    return True
