"""Calibration fields shared by every metadata style and the calibrated image."""

from __future__ import annotations

from typing import Iterable, Optional, Tuple

from attrs import evolve, field, frozen

from ..errors import TranslationError

DEFAULT_UNIT = "pixel"

CALIBRATION_FIELD_NAMES = (
    "spacing",
    "unit",
    "origin",
    "channels",
    "frames",
    "display_ranges",
)


def float_tuple(values: Iterable) -> Tuple[float, ...]:
    return tuple(float(v) for v in values)


def range_tuple(values: Iterable) -> Tuple[Tuple[float, float], ...]:
    ranges = []
    for pair in values:
        pair = tuple(pair)
        if len(pair) != 2:
            raise ValueError(f"Display range must be a (min, max) pair, got {pair!r}")
        ranges.append((float(pair[0]), float(pair[1])))
    return tuple(ranges)


@frozen
class CalibrationFields:
    """
    Physical calibration of an image.

    Attributes:
        spacing: Physical size of a sample along each spatial axis, x first
        unit: Unit of ``spacing`` and ``origin``
        origin: Physical position of the first sample along each spatial axis
        channels: Number of channels
        frames: Number of frames (extent of the axis following the channel axis)
        display_ranges: ``(min, max)`` display window for each channel
        axes: Labels of every axis of the stored dataset when it holds more
            than the spatial axes (a channel axis); empty otherwise
    """

    spacing: Tuple[float, ...] = field(converter=float_tuple)
    unit: str = field(default=DEFAULT_UNIT, converter=str)
    origin: Tuple[float, ...] = field(converter=float_tuple)
    channels: int = field(default=1, converter=int)
    frames: int = field(default=1, converter=int)
    display_ranges: Tuple[Tuple[float, float], ...] = field(
        default=(), converter=range_tuple
    )
    axes: Tuple[str, ...] = field(default=(), converter=tuple)

    @origin.default
    def _origin_default(self):
        return (0.0,) * len(self.spacing)

    def __attrs_post_init__(self):
        if len(self.origin) != len(self.spacing):
            raise ValueError(
                f"origin {self.origin} and spacing {self.spacing} differ in length"
            )
        if self.channels < 1 or self.frames < 1:
            raise ValueError("channels and frames must be at least 1")

    @classmethod
    def default(cls, ndim: int, channels: int = 1, frames: int = 1) -> "CalibrationFields":
        """Unit spacing in pixels with the origin at zero."""
        return cls(spacing=(1.0,) * ndim, channels=channels, frames=frames)

    @property
    def ndim(self) -> int:
        return len(self.spacing)

    def replace(self, **changes) -> "CalibrationFields":
        return evolve(self, **changes)


@frozen
class Translation:
    """Result of translating a metadata style into calibration fields.

    When the style could not be applied, ``calibration`` holds the defaults
    that were substituted and ``error`` describes why.
    """

    calibration: CalibrationFields
    error: Optional[TranslationError] = None

    @property
    def ok(self) -> bool:
        return self.error is None
