"""Parsing of ``Content-Range`` descriptors sent with resumable chunk uploads.

The accepted form is ``bytes <start>-<end>/<size>`` where both offsets are
inclusive. An absent header is not an error: it selects a whole-object upload.
"""

import enum
from dataclasses import dataclass

from vod_intake.errors import ValidationError

CONTENT_RANGE_UNIT = "bytes "


class ContentRangeErrorReason(str, enum.Enum):
    missing_unit = "missing_unit"
    segment_count = "segment_count"
    malformed_size = "malformed_size"
    malformed_start = "malformed_start"
    malformed_end = "malformed_end"
    out_of_bounds = "out_of_bounds"


class ContentRangeError(ValidationError):
    def __init__(self, reason: ContentRangeErrorReason, detail: str) -> None:
        super().__init__(detail, reason=reason.value)
        self.kind = reason


@dataclass(frozen=True)
class ContentRange:
    start: int
    end: int
    size: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    @property
    def current_part(self) -> int:
        # Assumes every chunk before the last one has the same length as this one.
        return self.part_number(self.length)

    @property
    def total_parts(self) -> int:
        return self.part_count(self.length)

    def part_number(self, chunk_length: int) -> int:
        return self.start // chunk_length + 1

    def part_count(self, chunk_length: int) -> int:
        return -(-self.size // chunk_length)

    @property
    def is_last_byte(self) -> bool:
        return self.end + 1 >= self.size

    def header_value(self) -> str:
        return f"{CONTENT_RANGE_UNIT}{self.start}-{self.end}/{self.size}"


def _parse_offset(raw: str, reason: ContentRangeErrorReason, label: str) -> int:
    text = raw.strip()
    if not text or not text.isascii() or not text.isdigit():
        raise ContentRangeError(reason, f"cannot parse {label} of Content-Range header: {raw!r}")
    return int(text)


def parse_content_range(header: str | None) -> ContentRange | None:
    if header is None or not header.strip():
        return None
    if not header.startswith(CONTENT_RANGE_UNIT):
        raise ContentRangeError(ContentRangeErrorReason.missing_unit, "invalid unit of Content-Range header")

    segments = header[len(CONTENT_RANGE_UNIT) :].split("/")
    if len(segments) != 2:
        raise ContentRangeError(
            ContentRangeErrorReason.segment_count, "invalid Content-Range header, expected \"start-end/size\""
        )
    size = _parse_offset(segments[1], ContentRangeErrorReason.malformed_size, "size")

    offsets = segments[0].split("-")
    if len(offsets) != 2:
        raise ContentRangeError(
            ContentRangeErrorReason.segment_count, "invalid Content-Range header, expected \"start-end\""
        )
    start = _parse_offset(offsets[0], ContentRangeErrorReason.malformed_start, "start")
    end = _parse_offset(offsets[1], ContentRangeErrorReason.malformed_end, "end")

    if start > end or end >= size:
        raise ContentRangeError(
            ContentRangeErrorReason.out_of_bounds,
            f"Content-Range {start}-{end}/{size} must satisfy 0 <= start <= end < size",
        )
    return ContentRange(start=start, end=end, size=size)
