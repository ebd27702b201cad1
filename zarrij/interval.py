"""Block-aligned interval arithmetic for cropping datasets.

This module contains the pure functions used to turn a requested crop region
into a region made of whole chunks that never leaves the dataset:

- :class:`DatasetAttributes`: extent, chunk size, dtype and compression of a dataset
- :class:`Interval`: an inclusive, axis-aligned region of a dataset
- :func:`block_aligned_crop`: grow an interval to chunk boundaries, clamped to the dataset
- :func:`containing_block_aligned_interval`: the same, looking the dataset up in a container
- :func:`common_crop_bounds`: largest region valid for every dataset of a selection

Coordinates are integers and bounds are inclusive on both ends.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, Sequence, Tuple

from attrs import field, frozen

from .errors import OutOfBoundsError, ShapeMismatchError
from .logging import get_logger

if TYPE_CHECKING:
    from .container import ContainerReader

logger = get_logger(__name__)


def _int_tuple(values: Iterable) -> Tuple[int, ...]:
    return tuple(int(v) for v in values)


@frozen
class DatasetAttributes:
    """Shape and storage attributes of a single dataset.

    Attributes:
        dimensions: Extent of each axis
        block_size: Chunk size of each axis
        dtype: Element data type name (numpy notation)
        compression: Compression scheme identifier
    """

    dimensions: Tuple[int, ...] = field(converter=_int_tuple)
    block_size: Tuple[int, ...] = field(converter=_int_tuple)
    dtype: str = "uint8"
    compression: str = "raw"

    def __attrs_post_init__(self):
        if len(self.dimensions) != len(self.block_size):
            raise ValueError(
                f"dimensions {self.dimensions} and block_size {self.block_size} "
                "must have the same length"
            )
        if any(d <= 0 for d in self.dimensions) or any(b <= 0 for b in self.block_size):
            raise ValueError(
                f"dimensions {self.dimensions} and block_size {self.block_size} "
                "must be strictly positive"
            )

    @property
    def ndim(self) -> int:
        return len(self.dimensions)

    def full_interval(self) -> "Interval":
        """Interval covering the whole dataset."""
        return Interval.from_shape(self.dimensions)


@frozen
class Interval:
    """Inclusive axis-aligned region ``[min[d], max[d]]`` for every axis d.

    Raises:
        OutOfBoundsError: If min and max differ in length or ``min[d] > max[d]``
    """

    min: Tuple[int, ...] = field(converter=_int_tuple)
    max: Tuple[int, ...] = field(converter=_int_tuple)

    def __attrs_post_init__(self):
        if len(self.min) != len(self.max):
            raise OutOfBoundsError(
                f"Interval min {self.min} and max {self.max} differ in dimensionality"
            )
        for d, (lo, hi) in enumerate(zip(self.min, self.max)):
            if lo > hi:
                raise OutOfBoundsError(
                    f"Interval min exceeds max along axis {d}: {lo} > {hi}"
                )

    @classmethod
    def from_shape(cls, shape: Sequence[int]) -> "Interval":
        """Interval starting at the origin with the given extent."""
        return cls(min=[0] * len(shape), max=[int(s) - 1 for s in shape])

    @property
    def ndim(self) -> int:
        return len(self.min)

    @property
    def shape(self) -> Tuple[int, ...]:
        return tuple(hi - lo + 1 for lo, hi in zip(self.min, self.max))

    def to_slices(self) -> Tuple[slice, ...]:
        """Half-open slices selecting this interval from an array."""
        return tuple(slice(lo, hi + 1) for lo, hi in zip(self.min, self.max))

    def contains(self, other: "Interval") -> bool:
        """Whether ``other`` lies completely inside this interval."""
        if other.ndim != self.ndim:
            return False
        return all(
            a_lo <= b_lo and b_hi <= a_hi
            for a_lo, a_hi, b_lo, b_hi in zip(self.min, self.max, other.min, other.max)
        )


def block_aligned_crop(attrs: DatasetAttributes, requested: Interval) -> Interval:
    """
    Return the smallest interval of whole chunks containing ``requested``.

    For every axis the requested bounds are first clamped into
    ``[0, dimensions[d] - 1]``; the minimum is then rounded down to the start
    of its chunk and the maximum up to the end of its chunk with floor
    division, and the result is clamped again so that chunks overhanging the
    dataset edge are cut at the last valid coordinate.

    Args:
        attrs: Attributes of the dataset being cropped
        requested: Region the caller asked for

    Returns:
        Block-aligned interval inside the dataset bounds

    Raises:
        OutOfBoundsError: If the dimensionality of ``requested`` does not match
            the dataset or the requested region does not intersect the dataset

    Examples:
        >>> attrs = DatasetAttributes([100, 100, 10], [32, 32, 4])
        >>> block_aligned_crop(attrs, Interval([5, 5, 1], [40, 40, 5]))
        Interval(min=(0, 0, 0), max=(63, 63, 7))
    """
    if requested.ndim != attrs.ndim:
        raise OutOfBoundsError(
            f"Requested interval has {requested.ndim} dimensions, "
            f"dataset has {attrs.ndim}"
        )

    aligned_min = []
    aligned_max = []
    for d in range(attrs.ndim):
        last = attrs.dimensions[d] - 1
        block = attrs.block_size[d]
        lo, hi = requested.min[d], requested.max[d]

        if hi < 0 or lo > last:
            raise OutOfBoundsError(
                f"Requested range [{lo}, {hi}] along axis {d} lies outside "
                f"the dataset extent [0, {last}]"
            )

        lo = min(max(lo, 0), last)
        hi = min(max(hi, 0), last)

        lo = (lo // block) * block
        hi = (hi // block + 1) * block - 1

        aligned_min.append(min(max(lo, 0), last))
        aligned_max.append(min(max(hi, 0), last))

    aligned = Interval(aligned_min, aligned_max)
    logger.debug("Aligned crop %s to block grid %s -> %s", requested, attrs.block_size, aligned)
    return aligned


def containing_block_aligned_interval(
    container: "ContainerReader", path: str, requested: Interval
) -> Interval:
    """
    Block-align ``requested`` against the dataset stored at ``path``.

    Raises:
        OutOfBoundsError: If the dataset does not exist, or for any reason
            :func:`block_aligned_crop` raises
    """
    if not container.dataset_exists(path):
        raise OutOfBoundsError(f"No dataset at '{path}'")
    return block_aligned_crop(container.get_attributes(path), requested)


def common_crop_bounds(container: "ContainerReader", paths: Sequence[str]) -> Interval:
    """
    Largest interval starting at the origin that is valid for every dataset.

    Used to offer crop limits before assembling several channels: along each
    axis the bound is the smallest extent among the datasets.

    Raises:
        ValueError: If ``paths`` is empty
        OutOfBoundsError: If a dataset does not exist
        ShapeMismatchError: If datasets differ in dimensionality
    """
    if not paths:
        raise ValueError("At least one dataset path is required")

    dims = None
    first = paths[0]
    for path in paths:
        if not container.dataset_exists(path):
            raise OutOfBoundsError(f"No dataset at '{path}'")
        these = container.get_attributes(path).dimensions
        if dims is None:
            dims = list(these)
        elif len(these) != len(dims):
            raise ShapeMismatchError(first, path, dims, these)
        else:
            dims = [min(a, b) for a, b in zip(dims, these)]

    return Interval.from_shape(dims)
