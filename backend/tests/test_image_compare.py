"""Tests for the pixel comparator: tolerance, scoring, rounding and diff output."""

import pytest

from evaluation import DEFAULT_TOLERANCE, PixelBuffer, ShapeMismatchError, compare, round_score


def _uniform(width: int, height: int, pixel: tuple[int, int, int, int]) -> PixelBuffer:
    return PixelBuffer.from_pixels(width, height, [pixel] * (width * height))


def _single(pixel: tuple[int, int, int, int]) -> PixelBuffer:
    return PixelBuffer.from_pixels(1, 1, [pixel])


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------


def test_default_tolerance_is_five():
    assert DEFAULT_TOLERANCE == 5


def test_identical_buffers_score_100():
    buf = PixelBuffer.from_pixels(
        3, 2,
        [(0, 0, 0, 0), (12, 34, 56, 78), (255, 255, 255, 255),
         (1, 2, 3, 4), (200, 100, 50, 0), (9, 9, 9, 9)],
    )
    result = compare(buf, buf)
    assert result.score == 100.0
    assert result.matching_pixels == result.total_pixels == 6
    assert result.diff_buffer is None


def test_two_pixel_scenario():
    a = PixelBuffer.from_pixels(2, 1, [(0, 0, 0, 255), (255, 255, 255, 255)])
    b = PixelBuffer.from_pixels(2, 1, [(3, 3, 3, 255), (0, 0, 0, 255)])
    result = compare(a, b)
    assert result.matching_pixels == 1
    assert result.total_pixels == 2
    assert result.score == 50.0


def test_tolerance_boundary_matches_at_five():
    assert compare(_single((10, 10, 10, 10)), _single((15, 15, 15, 15))).matching_pixels == 1


@pytest.mark.parametrize("other", [
    (16, 10, 10, 10),
    (10, 16, 10, 10),
    (10, 10, 16, 10),
    (10, 10, 10, 16),
    (4, 10, 10, 10),
])
def test_any_channel_beyond_tolerance_mismatches(other):
    assert compare(_single((10, 10, 10, 10)), _single(other)).matching_pixels == 0


def test_alpha_channel_counts():
    assert compare(_single((0, 0, 0, 0)), _single((0, 0, 0, 255))).score == 0.0


def test_custom_tolerance():
    a, b = _single((0, 0, 0, 255)), _single((20, 0, 0, 255))
    assert compare(a, b).matching_pixels == 0
    assert compare(a, b, tolerance=20).matching_pixels == 1
    assert compare(a, _single((1, 0, 0, 255)), tolerance=0).matching_pixels == 0


def test_invalid_tolerance():
    with pytest.raises(ValueError):
        compare(_single((0, 0, 0, 0)), _single((0, 0, 0, 0)), tolerance=-1)


def test_rounding_one_of_three():
    a = PixelBuffer.from_pixels(3, 1, [(0, 0, 0, 255)] * 3)
    b = PixelBuffer.from_pixels(3, 1, [(0, 0, 0, 255), (255, 0, 0, 255), (255, 0, 0, 255)])
    result = compare(a, b)
    assert result.matching_pixels == 1
    assert result.score == 33.33


@pytest.mark.parametrize("raw,expected", [
    (100 / 3, 33.33),
    (200 / 3, 66.67),
    (12.5, 12.5),
    (0.125, 0.13),
    (0.0, 0.0),
    (100.0, 100.0),
])
def test_round_score(raw, expected):
    assert round_score(raw) == expected


def test_totality_and_monotonicity():
    width, height = 10, 10
    base = [(50, 50, 50, 255)] * (width * height)
    a = PixelBuffer.from_pixels(width, height, base)

    previous = 101.0
    for changed in range(0, width * height + 1, 7):
        other = [(200, 0, 0, 255)] * changed + base[changed:]
        result = compare(a, PixelBuffer.from_pixels(width, height, other))
        assert result.matching_pixels + result.non_matching_pixels == width * height
        assert result.non_matching_pixels == changed
        assert result.score <= previous
        previous = result.score


def test_deterministic():
    a = PixelBuffer.from_pixels(2, 2, [(0, 0, 0, 255), (9, 9, 9, 9), (1, 1, 1, 1), (7, 0, 0, 0)])
    b = PixelBuffer.from_pixels(2, 2, [(3, 3, 3, 255), (0, 0, 0, 0), (1, 1, 1, 1), (0, 0, 0, 0)])
    assert compare(a, b, generate_diff=True) == compare(a, b, generate_diff=True)


# ---------------------------------------------------------------------------
# Shape contract
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("shape_b", [(3, 2), (2, 3), (1, 1)])
def test_shape_mismatch(shape_b):
    a = _uniform(2, 2, (0, 0, 0, 255))
    b = _uniform(*shape_b, (0, 0, 0, 255))
    with pytest.raises(ShapeMismatchError) as exc_info:
        compare(a, b)
    assert exc_info.value.shape_a == (2, 2)
    assert exc_info.value.shape_b == shape_b


# ---------------------------------------------------------------------------
# Diff buffer
# ---------------------------------------------------------------------------


def test_diff_buffer_marks_matches_and_mismatches():
    a = PixelBuffer.from_pixels(2, 1, [(0, 0, 0, 255), (255, 255, 255, 255)])
    b = PixelBuffer.from_pixels(2, 1, [(3, 3, 3, 255), (0, 0, 0, 255)])
    result = compare(a, b, generate_diff=True)

    diff = result.diff_buffer
    assert diff is not None
    assert diff.shape == a.shape
    assert diff.pixel(0, 0) == (0, 0, 0, 100)
    assert diff.pixel(1, 0) == (255, 0, 0, 200)


def test_diff_buffer_has_only_two_categories():
    a = PixelBuffer.from_pixels(
        4, 2,
        [(i * 30, i * 20, i * 10, 255) for i in range(8)],
    )
    b = PixelBuffer.from_pixels(
        4, 2,
        [(i * 30 + (i % 2) * 40, i * 20, i * 10, 255) for i in range(8)],
    )
    result = compare(a, b, generate_diff=True)
    assert result.matching_pixels == 4

    for index, pixel in enumerate(result.diff_buffer.pixels()):
        original = a.pixels()[index]
        if index % 2 == 0:
            assert pixel == (original[0], original[1], original[2], 100)
        else:
            assert pixel == (255, 0, 0, 200)


def test_to_dict_encodes_diff():
    buf = _uniform(2, 2, (10, 10, 10, 255))
    payload = compare(buf, buf, generate_diff=True).to_dict()
    assert payload["score"] == 100.0
    assert payload["matching_pixels"] == 4
    assert payload["total_pixels"] == 4
    assert payload["diff_image"].startswith("data:image/png;base64,")

    assert compare(buf, buf).to_dict()["diff_image"] is None
    assert "diff_image" not in compare(buf, buf).to_dict(include_diff=False)
