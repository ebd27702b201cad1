"""Tests for the exception hierarchy."""

import pytest

from zarrij import (
    AssemblyError,
    ExportError,
    OutOfBoundsError,
    ParseError,
    ShapeMismatchError,
    UnknownStyleError,
    ZarrijError,
)


def test_unknown_style_is_key_error():
    """Test that unknown styles can be caught as KeyError."""
    error = UnknownStyleError("bogus", ["viewer", "default"])
    assert isinstance(error, KeyError)
    assert isinstance(error, ZarrijError)
    assert str(error) == "Unknown metadata style 'bogus'. Available: ['viewer', 'default']"


def test_out_of_bounds_is_index_error():
    with pytest.raises(IndexError):
        raise OutOfBoundsError("crop misses dataset")


def test_shape_mismatch_message():
    """Test that shape mismatches name both datasets."""
    error = ShapeMismatchError("c0", "c1", [10, 10], (10, 9))
    assert isinstance(error, AssemblyError)
    assert error.first_shape == (10, 10)
    assert "'c1' has shape (10, 9)" in str(error)


def test_parse_error_attributes():
    error = ParseError("bad", path="raw/c0", style_id="viewer")
    assert (error.path, error.style_id) == ("raw/c0", "viewer")


def test_export_error_aggregates():
    """Test that export errors list every failed dataset."""
    error = ExportError({"out/c1": OSError("disk full")}, written=["out/c0"])
    assert error.written == ["out/c0"]
    assert "1 dataset(s)" in str(error)
    assert "out/c1: disk full" in str(error)
    assert ExportError({}).written == []
