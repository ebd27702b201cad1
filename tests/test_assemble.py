"""
Tests for channel assembly.

This module tests stacking of channel datasets, the (x, y, c, z) axis
convention, eager and virtual materialisation, cropping, calibration from the
first channel and the failure modes of assembly.
"""

import dask.array as da
import numpy as np
import pytest
from numpy.testing import assert_array_equal

from conftest import channel_data

from zarrij import (
    AssemblyError,
    CalibratedImage,
    CalibrationFields,
    Interval,
    MaterializationMode,
    OutOfBoundsError,
    ParseError,
    Selection,
    ShapeMismatchError,
    TranslationError,
    ZarrContainer,
    assemble,
    combine_channels,
    common_crop_bounds,
)
from zarrij.assemble import dtype_display_range
from zarrij.metadata import ViewerScaleMetadata

CHANNELS = ["raw/c0/s0", "raw/c1/s0"]


class FailingReadContainer(ZarrContainer):
    """Container whose reads fail after the datasets were validated."""

    def read_region(self, path, interval):
        raise OSError(f"simulated read failure for {path}")


class TestCombineChannels:
    """Test stacking and axis permutation."""

    def test_three_spatial_axes_are_permuted(self):
        a = np.zeros((4, 5, 6), np.uint8)
        b = np.ones((4, 5, 6), np.uint8)
        data, dims = combine_channels([a, b], ["a", "b"])
        assert data.shape == (4, 5, 2, 6)
        assert dims == ("x", "y", "c", "z")
        assert_array_equal(data[:, :, 1, :], b)
        assert data.flags["C_CONTIGUOUS"]

    def test_two_spatial_axes_keep_trailing_channel(self):
        data, dims = combine_channels([np.zeros((4, 5)), np.zeros((4, 5))], ["a", "b"])
        assert data.shape == (4, 5, 2)
        assert dims == ("x", "y", "c")

    def test_four_spatial_axes_keep_trailing_channel(self):
        regions = [np.zeros((2, 3, 4, 5))] * 3
        data, dims = combine_channels(regions, ["a", "b", "c"])
        assert data.shape == (2, 3, 4, 5, 3)
        assert dims == ("x", "y", "z", "t", "c")

    def test_eager_copy_is_independent(self):
        a = np.zeros((3, 3, 3), np.uint8)
        data, _ = combine_channels([a], ["a"])
        a[0, 0, 0] = 7
        assert data[0, 0, 0, 0] == 0

    def test_virtual_stays_lazy(self):
        a = da.zeros((4, 5, 6), chunks=2)
        data, dims = combine_channels([a, a], ["a", "b"], MaterializationMode.VIRTUAL)
        assert isinstance(data, da.Array)
        assert data.shape == (4, 5, 2, 6)

    def test_shape_mismatch(self):
        with pytest.raises(ShapeMismatchError) as exc_info:
            combine_channels([np.zeros((4, 5)), np.zeros((4, 6))], ["a", "b"])
        assert exc_info.value.first_path == "a"
        assert exc_info.value.other_path == "b"

    def test_no_regions(self):
        with pytest.raises(ValueError):
            combine_channels([], [])


class TestAssemble:
    """Test assembling datasets from a container."""

    def test_two_channel_eager(self, container, registry):
        image = assemble(Selection(CHANNELS), container, registry, style_id="viewer")

        assert isinstance(image, CalibratedImage)
        assert isinstance(image.data, np.ndarray)
        assert not image.virtual
        assert image.shape == (100, 100, 2, 10)
        assert image.dims == ("x", "y", "c", "z")
        assert_array_equal(image.data[:, :, 0, :], channel_data(0))
        assert_array_equal(image.data[:, :, 1, :], channel_data(1))

        assert image.channels == 2
        assert image.frames == 10
        assert image.calibration.spacing == (0.5, 0.5, 2.0)
        assert image.calibration.unit == "um"
        assert image.calibration.display_ranges == ((0.0, 65535.0), (0.0, 65535.0))
        assert image.metadata_issues == []
        assert image.name == "all_channels"

    def test_virtual_matches_eager(self, container, registry):
        eager = assemble(Selection(CHANNELS), container, registry, style_id="viewer")
        virtual = assemble(
            Selection(CHANNELS, mode=MaterializationMode.VIRTUAL),
            container,
            registry,
            style_id="viewer",
        )
        assert virtual.virtual
        assert isinstance(virtual.data, da.Array)
        assert virtual.data.chunksize == (32, 32, 1, 4)
        assert_array_equal(virtual.data.compute(), eager.data)
        assert virtual.calibration == eager.calibration

    def test_virtual_reads_lazily(self, container, registry):
        image = assemble(
            Selection(["raw/c0/s0"], mode="virtual"), container, registry, style_id="viewer"
        )
        container.write_region("raw/c0/s0", np.zeros((100, 100, 10), np.uint16), (32, 32, 4), "raw")
        assert int(image.data.sum().compute()) == 0

    def test_single_channel(self, container, registry):
        image = assemble(Selection(["raw/c1/s0"]), container, registry, style_id="viewer")
        assert image.shape == (100, 100, 1, 10)
        assert image.channels == 1
        assert image.frames == 10
        assert image.name == "raw/c1/s0"

    def test_two_dimensional_dataset(self, container, registry):
        image = assemble(Selection(["flat"]), container, registry, style_id="default")
        assert image.dims == ("x", "y", "c")
        assert image.shape == (40, 30, 1)
        assert image.frames == 1
        assert image.calibration.spacing == (1.0, 1.0)
        assert image.calibration.unit == "pixel"

    def test_crop(self, container, registry):
        selection = Selection(CHANNELS, crop=Interval([5, 5, 1], [40, 40, 5]))
        image = assemble(selection, container, registry, style_id="viewer")
        assert image.shape == (36, 36, 2, 5)
        assert_array_equal(image.data[:, :, 1, :], channel_data(1)[5:41, 5:41, 1:6])

    def test_block_aligned_crop(self, container, registry):
        selection = Selection(
            CHANNELS, crop=Interval([5, 5, 1], [40, 40, 5]), align_to_blocks=True
        )
        image = assemble(selection, container, registry, style_id="viewer")
        assert image.shape == (64, 64, 2, 8)
        assert image.frames == 8
        assert_array_equal(image.data[:, :, 0, :], channel_data(0)[:64, :64, :8])

    def test_virtual_crop(self, container, registry):
        selection = Selection(
            CHANNELS, crop=Interval([10, 20, 3], [69, 59, 8]), mode=MaterializationMode.VIRTUAL
        )
        image = assemble(selection, container, registry, style_id="viewer")
        assert image.shape == (60, 40, 2, 6)
        assert_array_equal(image.data[:, :, 0, :].compute(), channel_data(0)[10:70, 20:60, 3:9])

    def test_crop_outside_dataset(self, container, registry):
        selection = Selection(CHANNELS, crop=Interval([50, 50, 0], [150, 60, 5]))
        with pytest.raises(OutOfBoundsError):
            assemble(selection, container, registry, style_id="viewer")

    def test_shape_mismatch(self, container, registry):
        with pytest.raises(ShapeMismatchError) as exc_info:
            assemble(Selection(["raw/c0/s0", "short"]), container, registry)
        assert exc_info.value.first_path == "raw/c0/s0"
        assert exc_info.value.other_path == "short"
        assert exc_info.value.first_shape == (100, 100, 10)
        assert exc_info.value.other_shape == (100, 100, 9)

    def test_crop_of_datasets_with_different_extents(self, container, registry):
        selection = Selection(["raw/c0/s0", "short"], crop=Interval([0, 0, 0], [50, 50, 5]))
        image = assemble(selection, container, registry, style_id="viewer")
        assert image.shape == (51, 51, 2, 6)
        assert_array_equal(image.data[:, :, 0, :], channel_data(0)[:51, :51, :6])
        assert_array_equal(
            image.data[:, :, 1, :], channel_data(2, shape=(100, 100, 9))[:51, :51, :6]
        )

    def test_common_crop_bounds_can_be_assembled(self, container, registry):
        paths = ["raw/c0/s0", "short"]
        selection = Selection(paths, crop=common_crop_bounds(container, paths))
        image = assemble(selection, container, registry)
        assert image.shape == (100, 100, 2, 9)

    def test_aligned_regions_must_agree(self, container, registry):
        # z aligns to [4, 11]; clamping to extents 10 and 9 leaves 6 and 5 planes
        selection = Selection(
            ["raw/c0/s0", "short"], crop=Interval([0, 0, 5], [10, 10, 8]), align_to_blocks=True
        )
        with pytest.raises(ShapeMismatchError) as exc_info:
            assemble(selection, container, registry)
        assert exc_info.value.first_shape == (32, 32, 6)
        assert exc_info.value.other_shape == (32, 32, 5)

    def test_dimensionality_mismatch(self, container, registry):
        with pytest.raises(ShapeMismatchError):
            assemble(Selection(["raw/c0/s0", "flat"]), container, registry)

    def test_shape_mismatch_is_assembly_error(self, container, registry):
        with pytest.raises(AssemblyError):
            assemble(Selection(["raw/c0/s0", "raw/c0/s1"]), container, registry)

    def test_missing_dataset(self, container, registry):
        with pytest.raises(AssemblyError, match="No dataset"):
            assemble(Selection(["raw/c0/s0", "raw/c7/s0"]), container, registry)

    def test_read_failure(self, zarr_path, registry):
        import zarr

        failing = FailingReadContainer(zarr.open_group(str(zarr_path), mode="r"))
        with pytest.raises(AssemblyError) as exc_info:
            assemble(Selection(CHANNELS), failing, registry, style_id="viewer")
        assert isinstance(exc_info.value.__cause__, OSError)

    def test_empty_selection(self, container, registry):
        with pytest.raises(ValueError):
            assemble(Selection([]), container, registry)

    def test_default_registry(self, container):
        image = assemble(Selection(["raw/c0/s0"]), container, style_id="viewer")
        assert image.calibration.spacing == (0.5, 0.5, 2.0)


class TestAssembledCalibration:
    """Test calibration of assembled images."""

    def test_first_channel_is_authoritative(self, container, registry):
        container.write_attribute_map(
            "raw/c1/s0", {"pixelResolution": {"dimensions": [9, 9, 9], "unit": "mm"}}
        )
        image = assemble(Selection(CHANNELS), container, registry, style_id="viewer")
        assert image.calibration.spacing == (0.5, 0.5, 2.0)
        assert image.calibration.unit == "um"

    def test_style_taken_from_selection_entry(self, container, registry):
        style = ViewerScaleMetadata(path="raw/c0/s0", resolution=(4, 4, 4), unit="nm")
        image = assemble(Selection([("raw/c0/s0", style)]), container, registry)
        assert image.calibration.spacing == (4.0, 4.0, 4.0)
        assert image.calibration.unit == "nm"

    def test_no_style_uses_default(self, container, registry):
        image = assemble(Selection(["raw/c0/s0"]), container, registry)
        assert image.calibration.spacing == (1.0, 1.0, 1.0)
        assert image.metadata_issues == []

    def test_parse_failure_is_recorded(self, container, registry):
        image = assemble(Selection(["flat"]), container, registry, style_id="viewer")
        assert image.calibration.spacing == (1.0, 1.0)
        assert len(image.metadata_issues) == 1
        assert isinstance(image.metadata_issues[0], ParseError)

    def test_translation_failure_is_recorded(self, container, registry):
        image = assemble(Selection(["broken"]), container, registry, style_id="viewer")
        assert image.calibration.spacing == (1.0, 1.0, 1.0)
        assert isinstance(image.metadata_issues[0], TranslationError)

    def test_display_ranges_from_metadata(self, container, registry):
        container.write_attribute_map(
            "raw/c0/s0",
            {"pixelWidth": 0.2, "pixelHeight": 0.2, "pixelDepth": 1.0, "displayRanges": [[0, 10], [5, 500]]},
        )
        image = assemble(Selection(CHANNELS), container, registry, style_id="calibration")
        assert image.calibration.display_ranges == ((0.0, 10.0), (5.0, 500.0))
        assert image.calibration.spacing == (0.2, 0.2, 1.0)

    def test_display_ranges_count_mismatch_uses_dtype(self, container, registry):
        container.write_attribute_map(
            "raw/c0/s0",
            {"pixelWidth": 0.2, "pixelHeight": 0.2, "pixelDepth": 1.0, "displayRanges": [[0, 10]]},
        )
        image = assemble(Selection(CHANNELS), container, registry, style_id="calibration")
        assert image.calibration.display_ranges == ((0.0, 65535.0), (0.0, 65535.0))

    def test_channel_and_frame_counts_follow_the_data(self, container, registry):
        container.write_attribute_map(
            "raw/c0/s0", {"pixelWidth": 1.0, "numChannels": 5, "numFrames": 3}
        )
        # one spacing entry for three axes: translation falls back to defaults
        image = assemble(Selection(CHANNELS), container, registry, style_id="calibration")
        assert image.channels == 2
        assert image.frames == 10

    @pytest.mark.parametrize(
        "dtype,expected",
        [
            ("uint8", (0.0, 255.0)),
            ("int16", (-32768.0, 32767.0)),
            ("float32", (0.0, 1.0)),
            ("bool", (0.0, 1.0)),
        ],
    )
    def test_dtype_display_range(self, dtype, expected):
        assert dtype_display_range(dtype) == expected


class TestCalibratedImage:
    """Test the CalibratedImage helpers on assembled images."""

    @pytest.fixture
    def image(self, container, registry):
        return assemble(Selection(CHANNELS), container, registry, style_id="viewer")

    def test_channel(self, image):
        assert_array_equal(image.channel(1), channel_data(1))
        with pytest.raises(IndexError):
            image.channel(2)

    def test_spatial_axes(self, image):
        assert image.channel_axis == 2
        assert image.spatial_dims == ("x", "y", "z")
        assert image.spatial_shape == (100, 100, 10)

    def test_compute(self, container, registry):
        virtual = assemble(Selection(CHANNELS, mode="virtual"), container, registry, style_id="viewer")
        eager = virtual.compute()
        assert not eager.virtual
        assert eager.calibration == virtual.calibration
        assert_array_equal(eager.data, virtual.data.compute())

    def test_dims_must_match_data(self):
        with pytest.raises(ValueError, match="dims"):
            CalibratedImage(np.zeros((2, 2)), ("x",), CalibrationFields.default(1))

    def test_repr(self, image):
        text = repr(image)
        assert "all_channels" in text
        assert "eager" in text

    def test_to_ngff_image(self, image):
        ngff = image.to_ngff_image()
        assert tuple(ngff.dims) == ("c", "z", "y", "x")
        assert ngff.data.shape == (2, 10, 100, 100)
        assert ngff.scale == {"x": 0.5, "y": 0.5, "z": 2.0}
        assert ngff.translation == {"x": 0.0, "y": 0.0, "z": 0.0}
        assert ngff.axes_units == {"x": "um", "y": "um", "z": "um"}
        assert_array_equal(np.asarray(ngff.data[1, :, :, :]), channel_data(1).transpose(2, 1, 0))
