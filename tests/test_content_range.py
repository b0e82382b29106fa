import pytest

from vod_intake.content_range import ContentRange, ContentRangeError, ContentRangeErrorReason, parse_content_range
from vod_intake.errors import ValidationError


def test_parse_full_descriptor() -> None:
    parsed = parse_content_range("bytes 0-63/128")

    assert parsed == ContentRange(start=0, end=63, size=128)
    assert parsed.length == 64
    assert parsed.current_part == 1
    assert parsed.total_parts == 2
    assert parsed.is_last_byte is False


@pytest.mark.parametrize("header", [None, "", "   "])
def test_absent_header_selects_simple_upload(header) -> None:
    assert parse_content_range(header) is None


@pytest.mark.parametrize(
    ("header", "reason"),
    [
        ("0-63/128", ContentRangeErrorReason.missing_unit),
        ("items 0-63/128", ContentRangeErrorReason.missing_unit),
        ("bytes 0-63", ContentRangeErrorReason.segment_count),
        ("bytes 0-63/128/7", ContentRangeErrorReason.segment_count),
        ("bytes 0-63/*", ContentRangeErrorReason.malformed_size),
        ("bytes 0-1-2/128", ContentRangeErrorReason.segment_count),
        ("bytes -600/999", ContentRangeErrorReason.malformed_start),
        ("bytes 0-/999", ContentRangeErrorReason.malformed_end),
        ("bytes a-10/999", ContentRangeErrorReason.malformed_start),
        ("bytes 10-5/999", ContentRangeErrorReason.out_of_bounds),
        ("bytes 0-999/999", ContentRangeErrorReason.out_of_bounds),
    ],
)
def test_malformed_descriptors_are_rejected(header: str, reason: ContentRangeErrorReason) -> None:
    with pytest.raises(ContentRangeError) as exc_info:
        parse_content_range(header)

    assert exc_info.value.kind is reason
    assert exc_info.value.reason == reason.value
    assert isinstance(exc_info.value, ValidationError)


def test_whitespace_inside_segments_is_tolerated() -> None:
    assert parse_content_range("bytes 10 - 19 / 40") == ContentRange(start=10, end=19, size=40)


def test_derived_values_for_middle_and_last_chunks() -> None:
    middle = parse_content_range("bytes 1048576-2097151/10485760")
    last = parse_content_range("bytes 9437184-10485759/10485760")

    assert middle.current_part == 2
    assert middle.total_parts == 10
    assert middle.is_last_byte is False
    assert last.current_part == 10
    assert last.is_last_byte is True


def test_total_parts_rounds_up_for_short_final_chunk() -> None:
    first = ContentRange(start=0, end=262143, size=3 * 262144 + 1000)

    assert first.length == 262144
    assert first.total_parts == 4


def test_header_value_round_trips() -> None:
    assert ContentRange(start=5, end=9, size=10).header_value() == "bytes 5-9/10"


def test_short_final_chunk_ordinal_uses_explicit_chunk_length() -> None:
    last = ContentRange(start=3 * 262144, end=3 * 262144 + 999, size=3 * 262144 + 1000)

    assert last.length == 1000
    assert last.part_number(262144) == 4
    assert last.part_count(262144) == 4
