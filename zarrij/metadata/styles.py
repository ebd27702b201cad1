"""Metadata style variants.

Every style is a frozen ``attrs`` class carrying the dataset ``path`` it
describes and, when known, the :class:`~zarrij.interval.DatasetAttributes` of
that dataset. The set of variants is closed; behaviour for each one lives in
the style handlers registered with :class:`~zarrij.metadata.MetadataRegistry`.

========================  =====================================================
Variant                   Fields
========================  =====================================================
DefaultMetadata           dimensionality only
ViewerScaleMetadata       per-axis resolution, unit, downsampling, scale level
LabTransformMetadata      per-axis spacing and translation, unit, axis labels
GenericCalibrationMetadata spacing, unit, origin, channels, frames, display ranges, axes
CustomTemplateMetadata    values read through a user template
========================  =====================================================
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, ClassVar, Mapping, Optional, Tuple, Union

from attrs import field, frozen

from ..enums import StyleId
from ..interval import DatasetAttributes
from .calibration import DEFAULT_UNIT, float_tuple, range_tuple
from .template import TemplateMapper


@frozen(kw_only=True)
class MetadataStyle:
    """Fields common to every metadata style."""

    style_id: ClassVar[str] = ""

    path: str = ""
    attributes: Optional[DatasetAttributes] = None


@frozen(kw_only=True)
class DefaultMetadata(MetadataStyle):
    """No stored calibration: unit spacing, unit ``"pixel"``."""

    style_id: ClassVar[str] = StyleId.DEFAULT.value

    ndim: int = field(converter=int)


@frozen(kw_only=True)
class ViewerScaleMetadata(MetadataStyle):
    """
    Scale metadata of one level of a multi-resolution pyramid.

    ``resolution`` is the sample size at full resolution; the level's own
    sample size is ``resolution * downsampling_factors`` (see :attr:`spacing`).
    """

    style_id: ClassVar[str] = StyleId.VIEWER.value

    resolution: Tuple[float, ...] = field(converter=float_tuple)
    unit: str = DEFAULT_UNIT
    downsampling_factors: Tuple[float, ...] = field(converter=float_tuple)
    scale_level: int = field(default=0, converter=int)

    @downsampling_factors.default
    def _factors_default(self):
        return (1.0,) * len(self.resolution)

    @property
    def spacing(self) -> Tuple[float, ...]:
        if len(self.resolution) != len(self.downsampling_factors):
            raise ValueError(
                f"resolution {self.resolution} and downsampling factors "
                f"{self.downsampling_factors} differ in length"
            )
        return tuple(r * f for r, f in zip(self.resolution, self.downsampling_factors))


@frozen(kw_only=True)
class LabTransformMetadata(MetadataStyle):
    """Per-axis scale and translation, x first."""

    style_id: ClassVar[str] = StyleId.TRANSFORM.value

    spacing: Tuple[float, ...] = field(converter=float_tuple)
    translation: Tuple[float, ...] = field(converter=float_tuple)
    unit: str = DEFAULT_UNIT
    axes: Tuple[str, ...] = field(converter=tuple)

    @translation.default
    def _translation_default(self):
        return (0.0,) * len(self.spacing)

    @axes.default
    def _axes_default(self):
        return axis_labels(len(self.spacing))


@frozen(kw_only=True)
class GenericCalibrationMetadata(MetadataStyle):
    """Full image calibration; maps one to one onto the calibrated image.

    ``axes`` labels every axis of a dataset that stores a whole multi-channel
    image, e.g. ``("x", "y", "c", "z")``; it is empty for purely spatial
    datasets.
    """

    style_id: ClassVar[str] = StyleId.CALIBRATION.value

    spacing: Tuple[float, ...] = field(converter=float_tuple)
    unit: str = DEFAULT_UNIT
    origin: Tuple[float, ...] = field(converter=float_tuple)
    channels: int = field(default=1, converter=int)
    frames: int = field(default=1, converter=int)
    display_ranges: Tuple[Tuple[float, float], ...] = field(
        default=(), converter=range_tuple
    )
    axes: Tuple[str, ...] = field(default=(), converter=lambda v: tuple(str(a) for a in v))

    @origin.default
    def _origin_default(self):
        return (0.0,) * len(self.spacing)


@frozen(kw_only=True)
class CustomTemplateMetadata(MetadataStyle):
    """Calibration values read through a user-supplied :class:`TemplateMapper`."""

    style_id: ClassVar[str] = StyleId.CUSTOM.value

    values: Mapping[str, Any] = field(
        converter=lambda v: MappingProxyType(dict(v)), hash=False
    )
    mapper: TemplateMapper = field(factory=TemplateMapper.resolution_only)


AnyMetadataStyle = Union[
    DefaultMetadata,
    ViewerScaleMetadata,
    LabTransformMetadata,
    GenericCalibrationMetadata,
    CustomTemplateMetadata,
]


def axis_labels(ndim: int) -> Tuple[str, ...]:
    """Spatial axis labels, x first: ``x, y, z, t`` then ``d4, d5, ...``."""
    names = ("x", "y", "z", "t")
    return tuple(names[d] if d < len(names) else f"d{d}" for d in range(ndim))
