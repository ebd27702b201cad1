"""Calibrated multi-channel images produced by assembly and consumed by export.

A :class:`CalibratedImage` holds a pixel buffer (a numpy array when eagerly
materialised, a dask array when virtual) and its calibration. Axes are
ordered x first; the channel axis is labelled ``"c"``. Images with three
spatial axes use the ``(x, y, c, z)`` layout, so the axis after the channel
axis carries the frames.
"""

from __future__ import annotations

from typing import Any, List, Optional, Tuple, Union

import dask.array as da
import ngff_zarr as nz
import numpy as np
from attrs import define, field

from .metadata.calibration import DEFAULT_UNIT, CalibrationFields

CHANNEL_DIM = "c"

# NGFF requires channel before the spatial axes, slowest first
_NGFF_ORDER = ("t", "c", "z", "y", "x")


@define
class CalibratedImage:
    """
    Multi-dimensional pixel buffer with physical calibration.

    Attributes:
        data: Pixel buffer, numpy (eager) or dask (virtual)
        dims: Axis labels, one per axis of ``data``
        calibration: Calibration of the spatial axes plus channel/frame counts
        name: Image title
        metadata_issues: Recovered metadata problems (ParseError or
            TranslationError) encountered while building the image
    """

    data: Union[np.ndarray, da.Array]
    dims: Tuple[str, ...] = field(converter=tuple)
    calibration: CalibrationFields
    name: str = "image"
    metadata_issues: List[Exception] = field(factory=list)

    def __attrs_post_init__(self):
        if len(self.dims) != self.data.ndim:
            raise ValueError(
                f"dims {self.dims} do not match data with {self.data.ndim} dimensions"
            )

    def __repr__(self) -> str:
        kind = "virtual" if self.virtual else "eager"
        return (
            f"CalibratedImage(name={self.name!r}, shape={self.shape}, dims={self.dims}, "
            f"dtype={self.dtype}, {kind}, spacing={self.calibration.spacing}, "
            f"unit={self.calibration.unit!r})"
        )

    @property
    def shape(self) -> Tuple[int, ...]:
        return tuple(int(s) for s in self.data.shape)

    @property
    def ndim(self) -> int:
        return self.data.ndim

    @property
    def dtype(self) -> np.dtype:
        return self.data.dtype

    @property
    def virtual(self) -> bool:
        """Whether pixels are still read lazily from the container."""
        return isinstance(self.data, da.Array)

    @property
    def channel_axis(self) -> Optional[int]:
        return self.dims.index(CHANNEL_DIM) if CHANNEL_DIM in self.dims else None

    @property
    def channels(self) -> int:
        return self.calibration.channels

    @property
    def frames(self) -> int:
        return self.calibration.frames

    @property
    def spatial_dims(self) -> Tuple[str, ...]:
        return tuple(d for d in self.dims if d != CHANNEL_DIM)

    @property
    def spatial_shape(self) -> Tuple[int, ...]:
        """Extent of every non-channel axis, in storage order."""
        return tuple(s for d, s in zip(self.dims, self.shape) if d != CHANNEL_DIM)

    def channel(self, index: int) -> Union[np.ndarray, da.Array]:
        """
        Hyperslice of one channel; the channel axis is dropped.

        Raises:
            IndexError: If ``index`` is not a valid channel
        """
        axis = self.channel_axis
        if axis is None:
            if index != 0:
                raise IndexError(f"Image has a single channel, got index {index}")
            return self.data
        if not 0 <= index < self.shape[axis]:
            raise IndexError(f"Channel {index} out of range for {self.shape[axis]} channels")
        slices: List[Any] = [slice(None)] * self.ndim
        slices[axis] = index
        return self.data[tuple(slices)]

    def compute(self) -> "CalibratedImage":
        """Return an eager copy of this image; pixels are read now."""
        data = self.data.compute() if self.virtual else self.data.copy()
        return CalibratedImage(
            data=np.ascontiguousarray(data),
            dims=self.dims,
            calibration=self.calibration,
            name=self.name,
            metadata_issues=list(self.metadata_issues),
        )

    def to_ngff_image(self) -> nz.NgffImage:
        """
        Convert to an ``ngff_zarr.NgffImage`` for OME-NGFF tooling.

        Axes are reordered to the NGFF convention (channel first, then the
        spatial axes slowest first). The data stays lazy: numpy buffers are
        wrapped in a dask array.

        Raises:
            ValueError: If an axis has no NGFF equivalent
        """
        unknown = [d for d in self.dims if d not in _NGFF_ORDER]
        if unknown:
            raise ValueError(f"Axes {unknown} have no NGFF equivalent")

        ngff_dims = [d for d in _NGFF_ORDER if d in self.dims]
        data = self.data if self.virtual else da.from_array(self.data)
        data = da.transpose(data, [self.dims.index(d) for d in ngff_dims])

        spatial = [d for d in self.dims if d != CHANNEL_DIM]
        scale = dict(zip(spatial, self.calibration.spacing))
        translation = dict(zip(spatial, self.calibration.origin))
        units = {}
        if self.calibration.unit != DEFAULT_UNIT:
            units = {d: self.calibration.unit for d in spatial if d in ("x", "y", "z")}

        return nz.NgffImage(
            data=data,
            dims=ngff_dims,
            scale=scale,
            translation=translation,
            name=self.name,
            axes_units=units or None,
        )
