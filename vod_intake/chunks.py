import enum
from dataclasses import dataclass

from vod_intake.content_range import ContentRange
from vod_intake.errors import ValidationError


class ChunkErrorReason(str, enum.Enum):
    out_of_bounds = "out_of_bounds"
    not_unit_multiple = "not_unit_multiple"
    length_mismatch = "length_mismatch"
    size_mismatch = "size_mismatch"
    inconsistent_layout = "inconsistent_layout"


class ChunkValidationError(ValidationError):
    def __init__(self, reason: ChunkErrorReason, detail: str, video_id: str | None = None) -> None:
        super().__init__(detail, reason=reason.value, video_id=video_id)
        self.kind = reason


@dataclass(frozen=True)
class ChunkPolicy:
    min_chunk_bytes: int
    max_chunk_bytes: int
    max_simple_upload_bytes: int

    def __post_init__(self) -> None:
        if self.min_chunk_bytes <= 0:
            raise ValueError("min_chunk_bytes must be positive")
        if self.max_chunk_bytes < self.min_chunk_bytes:
            raise ValueError("max_chunk_bytes must be >= min_chunk_bytes")

    @property
    def unit(self) -> int:
        return self.min_chunk_bytes


def validate_chunk(
    declared_length: int,
    content_range: ContentRange,
    video_size: int,
    policy: ChunkPolicy,
    video_id: str | None = None,
) -> None:
    last = content_range.is_last_byte
    if declared_length <= 0 or declared_length > policy.max_chunk_bytes or (
        declared_length < policy.min_chunk_bytes and not last
    ):
        raise ChunkValidationError(
            ChunkErrorReason.out_of_bounds,
            f"chunk size must be between {policy.min_chunk_bytes} and {policy.max_chunk_bytes} bytes",
            video_id=video_id,
        )
    if declared_length % policy.unit and not last:
        raise ChunkValidationError(
            ChunkErrorReason.not_unit_multiple,
            f"chunk size must be a multiple of {policy.unit} bytes",
            video_id=video_id,
        )
    if content_range.length != declared_length:
        raise ChunkValidationError(
            ChunkErrorReason.length_mismatch,
            "Content-Range length does not match Content-Length",
            video_id=video_id,
        )
    if content_range.size != video_size:
        raise ChunkValidationError(
            ChunkErrorReason.size_mismatch,
            f"Content-Range size {content_range.size} does not match video size {video_size}",
            video_id=video_id,
        )
