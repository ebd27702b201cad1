"""Channel assembly: combine per-channel datasets into one calibrated image.

Every selected dataset becomes one channel. Datasets must agree in
dimensionality and the regions read from them in extent; they are stacked
along a trailing channel axis, and stacks of three spatial axes are permuted
to ``(x, y, c, z)`` so that the axis after the channel carries the frames.
Calibration is read from the first dataset only.

Examples:
    >>> selection = Selection(["raw/c0", "raw/c1"])
    >>> image = assemble(selection, container, registry, style_id="viewer")
    >>> image.dims
    ('x', 'y', 'c', 'z')
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple, Union

import dask.array as da
import numpy as np

from .enums import MaterializationMode, StyleId
from .errors import AssemblyError, OutOfBoundsError, ParseError, ShapeMismatchError
from .image import CHANNEL_DIM, CalibratedImage
from .interval import DatasetAttributes, Interval, block_aligned_crop
from .logging import get_logger
from .metadata.calibration import CalibrationFields
from .metadata.registry import MetadataRegistry, StyleKey
from .metadata.styles import MetadataStyle, axis_labels
from .selection import Selection

if TYPE_CHECKING:
    from .container import ContainerReader

logger = get_logger(__name__)

ArrayLike = Union[np.ndarray, da.Array]

# (x, y, z, c) -> (x, y, c, z)
_FRAME_PERMUTATION = (0, 1, 3, 2)


class _RegionView:
    """Array-like view of one region of a dataset, read on indexing.

    ``dask.array.from_array`` slices this view chunk by chunk; every slice is
    translated into an :class:`Interval` of the dataset and read through the
    container.
    """

    def __init__(
        self,
        container: "ContainerReader",
        path: str,
        region: Interval,
        dtype: Union[str, np.dtype],
    ):
        self.container = container
        self.path = path
        self.region = region
        self.shape = region.shape
        self.dtype = np.dtype(dtype)
        self.ndim = region.ndim

    def __getitem__(self, key) -> np.ndarray:
        if not isinstance(key, tuple):
            key = (key,)
        key = key + (slice(None),) * (self.ndim - len(key))

        lo, hi = [], []
        for d, (item, extent) in enumerate(zip(key, self.shape)):
            if not isinstance(item, slice):
                raise TypeError(f"Only slices are supported, got {item!r}")
            start, stop, step = item.indices(extent)
            if step != 1:
                raise TypeError("Strided reads are not supported")
            if stop <= start:
                shape = [len(range(*k.indices(e))) for k, e in zip(key, self.shape)]
                return np.empty(shape, dtype=self.dtype)
            lo.append(self.region.min[d] + start)
            hi.append(self.region.min[d] + stop - 1)

        return self.container.read_region(self.path, Interval(lo, hi))


def _region_for(attrs: DatasetAttributes, selection: Selection, path: str) -> Interval:
    full = attrs.full_interval()
    if selection.crop is None:
        return full
    if selection.align_to_blocks:
        return block_aligned_crop(attrs, selection.crop)
    if not full.contains(selection.crop):
        raise OutOfBoundsError(
            f"Crop {selection.crop} is outside dataset '{path}' of shape {attrs.dimensions}"
        )
    return selection.crop


def _read_region(
    container: "ContainerReader",
    path: str,
    region: Interval,
    attrs: DatasetAttributes,
    mode: MaterializationMode,
) -> ArrayLike:
    if mode == MaterializationMode.VIRTUAL:
        view = _RegionView(container, path, region, attrs.dtype)
        chunks = tuple(min(b, s) for b, s in zip(attrs.block_size, region.shape))
        return da.from_array(
            view,
            chunks=chunks,
            asarray=True,
            fancy=False,
            name=False,
            meta=np.empty((0,) * region.ndim, dtype=view.dtype),
        )

    try:
        return container.read_region(path, region)
    except Exception as e:
        raise AssemblyError(f"Could not read dataset '{path}': {e}") from e


def combine_channels(
    regions: Sequence[ArrayLike],
    paths: Sequence[str],
    mode: MaterializationMode = MaterializationMode.EAGER,
) -> Tuple[ArrayLike, Tuple[str, ...]]:
    """
    Stack same-shaped channel regions and apply the axis convention.

    Args:
        regions: One array per channel, all with identical shape
        paths: Dataset path of each region, used in error messages
        mode: ``EAGER`` returns a freshly allocated C-contiguous numpy array;
            ``VIRTUAL`` returns a dask array

    Returns:
        Tuple of the combined array and its axis labels

    Raises:
        ValueError: If no regions are given
        ShapeMismatchError: If the regions differ in shape

    Examples:
        >>> data, dims = combine_channels([a, b], ["c0", "c1"])
        >>> a.shape, data.shape, dims
        ((64, 64, 10), (64, 64, 2, 10), ('x', 'y', 'c', 'z'))
    """
    if not regions:
        raise ValueError("At least one channel is required")

    first_shape = tuple(regions[0].shape)
    for path, region in zip(paths[1:], regions[1:]):
        if tuple(region.shape) != first_shape:
            raise ShapeMismatchError(paths[0], path, first_shape, region.shape)

    spatial_ndim = len(first_shape)
    dims = axis_labels(spatial_ndim) + (CHANNEL_DIM,)

    if mode == MaterializationMode.VIRTUAL:
        data = da.stack([da.asarray(r) for r in regions], axis=-1)
    else:
        data = np.stack([np.asarray(r) for r in regions], axis=-1)

    if data.ndim == 4:
        data = data.transpose(_FRAME_PERMUTATION)
        dims = tuple(dims[i] for i in _FRAME_PERMUTATION)

    if mode == MaterializationMode.EAGER:
        data = np.ascontiguousarray(data)

    return data, dims


def _stored_axes(style: Optional[MetadataStyle], attrs: DatasetAttributes) -> Tuple[str, ...]:
    """Axis labels of a dataset that already stores a channel axis, else ()."""
    axes = tuple(getattr(style, "axes", ()) or ())
    if len(axes) != attrs.ndim or axes.count(CHANNEL_DIM) != 1:
        return ()
    return axes


def _frame_count(shape: Sequence[int], dims: Sequence[str]) -> int:
    # frames run along the axis following the channel axis
    c = dims.index(CHANNEL_DIM)
    return int(shape[c + 1]) if c + 1 < len(dims) else 1


def dtype_display_range(dtype: Union[str, np.dtype]) -> Tuple[float, float]:
    """
    Display window covering the value range of ``dtype``.

    Integer types use their full range; floating point data is assumed to be
    normalised to ``[0, 1]``.

    Examples:
        >>> dtype_display_range("uint16")
        (0.0, 65535.0)
    """
    dtype = np.dtype(dtype)
    if dtype == np.bool_:
        return (0.0, 1.0)
    if np.issubdtype(dtype, np.integer):
        info = np.iinfo(dtype)
        return (float(info.min), float(info.max))
    return (0.0, 1.0)


def _display_ranges(
    calibration: CalibrationFields, channels: int, dtype: np.dtype
) -> Tuple[Tuple[float, float], ...]:
    if len(calibration.display_ranges) == channels:
        return calibration.display_ranges
    if calibration.display_ranges:
        logger.debug(
            "Metadata has %d display ranges for %d channels; using the %s range",
            len(calibration.display_ranges),
            channels,
            dtype,
        )
    return (dtype_display_range(dtype),) * channels


def assemble(
    selection: Selection,
    container: "ContainerReader",
    registry: Optional[MetadataRegistry] = None,
    style_id: Optional[StyleKey] = None,
    name: Optional[str] = None,
) -> CalibratedImage:
    """
    Assemble the selected datasets into one calibrated multi-channel image.

    Args:
        selection: Datasets in channel order, crop and materialisation mode
        container: Container holding the datasets. Borrowed, never closed; a
            virtual image keeps reading from it until computed.
        registry: Registry used to read metadata. Defaults to a registry with
            the built-in styles.
        style_id: Metadata style of the first dataset. Defaults to the style
            of the first selection entry, or ``"default"``.
        name: Image title. Defaults to the dataset path for a single dataset,
            ``"all_channels"`` otherwise.

    Returns:
        CalibratedImage with one channel per dataset. A single dataset whose
        metadata labels its axes with a channel axis (a whole image written
        with the ``calibration`` style) keeps its stored axes and channels.
        Recovered metadata problems are listed in ``metadata_issues``.

    Raises:
        ValueError: If the selection is empty
        AssemblyError: If a dataset is missing or cannot be read, or a dataset
            that already holds channels is combined with others
        ShapeMismatchError: If the datasets differ in dimensionality, or their
            regions differ in extent
        OutOfBoundsError: If the crop does not fit the datasets
        UnknownStyleError: If ``style_id`` is not registered
    """
    if not selection.entries:
        raise ValueError("Selection contains no datasets")

    registry = registry or MetadataRegistry()
    first = selection.entries[0]
    if style_id is None:
        style_id = first.style.style_id if first.style is not None else StyleId.DEFAULT

    # validate everything before reading any samples
    dataset_attrs: List[DatasetAttributes] = []
    for entry in selection.entries:
        if not container.dataset_exists(entry.path):
            raise AssemblyError(f"No dataset at '{entry.path}'")
        attrs = container.get_attributes(entry.path)
        if dataset_attrs and attrs.ndim != dataset_attrs[0].ndim:
            raise ShapeMismatchError(
                first.path, entry.path, dataset_attrs[0].dimensions, attrs.dimensions
            )
        dataset_attrs.append(attrs)

    regions = [
        _region_for(attrs, selection, entry.path)
        for entry, attrs in zip(selection.entries, dataset_attrs)
    ]
    for entry, region in zip(selection.entries[1:], regions[1:]):
        if region.shape != regions[0].shape:
            raise ShapeMismatchError(first.path, entry.path, regions[0].shape, region.shape)

    style = first.style
    if style is None:
        try:
            style = registry.parse(container, first.path, style_id)
        except ParseError:
            # read_calibration records the failure and substitutes defaults
            style = None
    stored_axes = _stored_axes(style, dataset_attrs[0])
    if stored_axes and len(selection) > 1:
        raise AssemblyError(
            f"'{first.path}' already holds channels along axis "
            f"{stored_axes.index(CHANNEL_DIM)} and cannot be combined with other datasets"
        )

    logger.debug(
        "Assembling %d dataset(s) %s region=%s mode=%s",
        len(selection),
        selection.paths,
        regions[0],
        selection.mode.value,
    )

    arrays = [
        _read_region(container, entry.path, region, attrs, selection.mode)
        for entry, region, attrs in zip(selection.entries, regions, dataset_attrs)
    ]
    if stored_axes:
        data, dims = arrays[0], stored_axes
        if selection.mode == MaterializationMode.EAGER:
            data = np.ascontiguousarray(data)
        channels = data.shape[dims.index(CHANNEL_DIM)]
        spatial_ndim = len(dims) - 1
    else:
        data, dims = combine_channels(arrays, selection.paths, selection.mode)
        channels = len(selection)
        spatial_ndim = dataset_attrs[0].ndim

    calibration, issues = registry.read_calibration(
        container, first.path, style_id, ndim=spatial_ndim, style=style
    )

    calibration = calibration.replace(
        channels=channels,
        frames=_frame_count(data.shape, dims),
        display_ranges=_display_ranges(calibration, channels, data.dtype),
    )

    if name is None:
        name = first.path if len(selection) == 1 else "all_channels"

    return CalibratedImage(
        data=data,
        dims=dims,
        calibration=calibration,
        name=name,
        metadata_issues=issues,
    )
