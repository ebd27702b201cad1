"""
Built-in metadata styles.

This module is registered as a plugin with every zarrij plugin manager and
contributes the five built-in :class:`~zarrij.metadata.registry.StyleHandler`
instances through the ``zarrij_style_handlers`` hook.

Stored attribute layouts:

``viewer``
    ``{"pixelResolution": {"dimensions": [...], "unit": "um"},
    "downsamplingFactors": [...]}``. The scale level is taken from a trailing
    ``s<N>`` path component. A bare list for ``pixelResolution`` is accepted
    with unit ``"pixel"``.

``transform``
    ``{"transform": {"axes": [...], "scale": [...], "translate": [...],
    "units": [...]}}`` with all lists stored slowest axis first (``z, y, x``).

``calibration``
    ``pixelWidth``, ``pixelHeight``, ``pixelDepth``, ``pixelUnit``,
    ``xOrigin``, ``yOrigin``, ``zOrigin``, ``numChannels``, ``numFrames`` and
    ``displayRanges``. Datasets holding a whole multi-channel image also store
    ``axes``, the label of every axis (``["x", "y", "c", "z"]``).

``custom``
    Whatever the configured :class:`~zarrij.metadata.template.TemplateMapper`
    says.

``default``
    Nothing; only the dataset dimensionality is read.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Mapping, Optional

from ..enums import StyleId
from ..interval import DatasetAttributes
from ..plugins.hookspecs import hookimpl
from .calibration import DEFAULT_UNIT, CalibrationFields, float_tuple, range_tuple
from .registry import RegistryConfig, StyleHandler
from .styles import (
    CustomTemplateMetadata,
    DefaultMetadata,
    GenericCalibrationMetadata,
    LabTransformMetadata,
    ViewerScaleMetadata,
    axis_labels,
)
from .template import TemplateMapper

_SCALE_LEVEL = re.compile(r"(?:^|/)s(\d+)/?$")

# generic calibration keys for x, y, z
_SPACING_KEYS = ("pixelWidth", "pixelHeight", "pixelDepth")
_ORIGIN_KEYS = ("xOrigin", "yOrigin", "zOrigin")


def scale_level_from_path(path: str) -> int:
    """
    Pyramid level encoded in the last path component, 0 if there is none.

    Examples:
        >>> scale_level_from_path("raw/c0/s2")
        2
        >>> scale_level_from_path("raw/c0")
        0
    """
    match = _SCALE_LEVEL.search(path or "")
    return int(match.group(1)) if match else 0


def _require_same_length(**vectors) -> None:
    lengths = {name: len(v) for name, v in vectors.items()}
    if len(set(lengths.values())) > 1:
        raise ValueError(f"Per-axis fields differ in length: {lengths}")


# default


def _parse_default(
    attributes: Mapping[str, Any], path: str, dataset: Optional[DatasetAttributes]
) -> DefaultMetadata:
    if dataset is not None:
        ndim = dataset.ndim
    else:
        ndim = len(attributes["dimensions"])
    return DefaultMetadata(path=path, attributes=dataset, ndim=ndim)


def _write_default(style: DefaultMetadata) -> Dict[str, Any]:
    return {}


def _default_to_calibration(style: DefaultMetadata) -> CalibrationFields:
    return CalibrationFields.default(style.ndim)


def _default_from_calibration(calibration: CalibrationFields, path: str) -> DefaultMetadata:
    return DefaultMetadata(path=path, ndim=calibration.ndim)


# viewer


def _parse_viewer(
    attributes: Mapping[str, Any], path: str, dataset: Optional[DatasetAttributes]
) -> ViewerScaleMetadata:
    pixel_resolution = attributes["pixelResolution"]
    if isinstance(pixel_resolution, Mapping):
        resolution = float_tuple(pixel_resolution["dimensions"])
        unit = str(pixel_resolution.get("unit", DEFAULT_UNIT))
    else:
        resolution = float_tuple(pixel_resolution)
        unit = DEFAULT_UNIT

    factors = float_tuple(attributes.get("downsamplingFactors", [1.0] * len(resolution)))
    _require_same_length(pixelResolution=resolution, downsamplingFactors=factors)

    return ViewerScaleMetadata(
        path=path,
        attributes=dataset,
        resolution=resolution,
        unit=unit,
        downsampling_factors=factors,
        scale_level=scale_level_from_path(path),
    )


def _write_viewer(style: ViewerScaleMetadata) -> Dict[str, Any]:
    return {
        "pixelResolution": {"dimensions": list(style.resolution), "unit": style.unit},
        "downsamplingFactors": list(style.downsampling_factors),
    }


def _viewer_to_calibration(style: ViewerScaleMetadata) -> CalibrationFields:
    return CalibrationFields(spacing=style.spacing, unit=style.unit)


def _viewer_from_calibration(
    calibration: CalibrationFields, path: str
) -> ViewerScaleMetadata:
    return ViewerScaleMetadata(
        path=path,
        resolution=calibration.spacing,
        unit=calibration.unit,
        scale_level=scale_level_from_path(path),
    )


# transform


def _parse_transform(
    attributes: Mapping[str, Any], path: str, dataset: Optional[DatasetAttributes]
) -> LabTransformMetadata:
    transform = attributes["transform"]
    scale = float_tuple(transform["scale"])
    translate = float_tuple(transform.get("translate", [0.0] * len(scale)))
    units = [str(u) for u in transform.get("units", [DEFAULT_UNIT] * len(scale))]
    axes = [str(a) for a in transform.get("axes", axis_labels(len(scale))[::-1])]
    _require_same_length(scale=scale, translate=translate, units=units, axes=axes)

    # stored slowest axis first
    return LabTransformMetadata(
        path=path,
        attributes=dataset,
        spacing=scale[::-1],
        translation=translate[::-1],
        unit=units[-1] if units else DEFAULT_UNIT,
        axes=tuple(axes[::-1]),
    )


def _write_transform(style: LabTransformMetadata) -> Dict[str, Any]:
    _require_same_length(spacing=style.spacing, translation=style.translation, axes=style.axes)
    return {
        "transform": {
            "axes": list(style.axes[::-1]),
            "scale": list(style.spacing[::-1]),
            "translate": list(style.translation[::-1]),
            "units": [style.unit] * len(style.spacing),
        }
    }


def _transform_to_calibration(style: LabTransformMetadata) -> CalibrationFields:
    return CalibrationFields(spacing=style.spacing, unit=style.unit, origin=style.translation)


def _transform_from_calibration(
    calibration: CalibrationFields, path: str
) -> LabTransformMetadata:
    return LabTransformMetadata(
        path=path,
        spacing=calibration.spacing,
        translation=calibration.origin,
        unit=calibration.unit,
    )


# calibration


def _parse_calibration(
    attributes: Mapping[str, Any], path: str, dataset: Optional[DatasetAttributes]
) -> GenericCalibrationMetadata:
    spacing: List[float] = [float(attributes["pixelWidth"])]
    for key in _SPACING_KEYS[1:]:
        if key not in attributes:
            break
        spacing.append(float(attributes[key]))

    origin = [float(attributes.get(key, 0.0)) for key in _ORIGIN_KEYS[: len(spacing)]]

    return GenericCalibrationMetadata(
        path=path,
        attributes=dataset,
        spacing=spacing,
        unit=str(attributes.get("pixelUnit", DEFAULT_UNIT)),
        origin=origin,
        channels=attributes.get("numChannels", 1),
        frames=attributes.get("numFrames", 1),
        display_ranges=attributes.get("displayRanges", ()),
        axes=attributes.get("axes", ()),
    )


def _write_calibration(style: GenericCalibrationMetadata) -> Dict[str, Any]:
    attributes: Dict[str, Any] = {}
    for key, value in zip(_SPACING_KEYS, style.spacing):
        attributes[key] = value
    for key, value in zip(_ORIGIN_KEYS, style.origin):
        attributes[key] = value
    attributes["pixelUnit"] = style.unit
    attributes["numChannels"] = style.channels
    attributes["numFrames"] = style.frames
    attributes["displayRanges"] = [list(r) for r in style.display_ranges]
    if style.axes:
        attributes["axes"] = list(style.axes)
    return attributes


def _calibration_to_calibration(style: GenericCalibrationMetadata) -> CalibrationFields:
    return CalibrationFields(
        spacing=style.spacing,
        unit=style.unit,
        origin=style.origin,
        channels=style.channels,
        frames=style.frames,
        display_ranges=style.display_ranges,
        axes=style.axes,
    )


def _calibration_from_calibration(
    calibration: CalibrationFields, path: str
) -> GenericCalibrationMetadata:
    # only x, y and z have attribute keys
    n = min(calibration.ndim, len(_SPACING_KEYS))
    return GenericCalibrationMetadata(
        path=path,
        spacing=calibration.spacing[:n],
        unit=calibration.unit,
        origin=calibration.origin[:n],
        channels=calibration.channels,
        frames=calibration.frames,
        display_ranges=calibration.display_ranges,
        axes=calibration.axes,
    )


# custom


def _normalize_template_values(values: Mapping[str, Any]) -> Dict[str, Any]:
    converters = {
        "spacing": float_tuple,
        "unit": str,
        "origin": float_tuple,
        "channels": int,
        "frames": int,
        "display_ranges": range_tuple,
    }
    return {name: converters[name](value) for name, value in values.items()}


def _template_to_json(values: Mapping[str, Any]) -> Dict[str, Any]:
    json_values: Dict[str, Any] = {}
    for name, value in values.items():
        if name == "display_ranges":
            json_values[name] = [list(r) for r in value]
        elif isinstance(value, tuple):
            json_values[name] = list(value)
        else:
            json_values[name] = value
    return json_values


def make_custom_handler(mapper: TemplateMapper) -> StyleHandler:
    """Handler for the ``custom`` style bound to ``mapper``."""

    def parse(
        attributes: Mapping[str, Any], path: str, dataset: Optional[DatasetAttributes]
    ) -> CustomTemplateMetadata:
        values = _normalize_template_values(mapper.extract(attributes))
        return CustomTemplateMetadata(path=path, attributes=dataset, values=values, mapper=mapper)

    def write(style: CustomTemplateMetadata) -> Dict[str, Any]:
        return style.mapper.render(_template_to_json(style.values))

    def to_calibration(style: CustomTemplateMetadata) -> CalibrationFields:
        values = dict(style.values)
        spacing = values.pop("spacing")
        return CalibrationFields(spacing=spacing, **values)

    def from_calibration(calibration: CalibrationFields, path: str) -> CustomTemplateMetadata:
        values = {name: getattr(calibration, name) for name in mapper.fields}
        return CustomTemplateMetadata(path=path, values=values, mapper=mapper)

    return StyleHandler(
        style_id=StyleId.CUSTOM,
        parse=parse,
        write=write,
        to_calibration=to_calibration,
        from_calibration=from_calibration,
        split_channels=False,
        description=(
            "User template of calibration fields; fields missing from the "
            "template are dropped on export"
        ),
    )


BUILTIN_HANDLERS = (
    StyleHandler(
        style_id=StyleId.DEFAULT,
        parse=_parse_default,
        write=_write_default,
        to_calibration=_default_to_calibration,
        from_calibration=_default_from_calibration,
        split_channels=False,
        description="No stored calibration; everything but dimensionality is dropped",
    ),
    StyleHandler(
        style_id=StyleId.VIEWER,
        parse=_parse_viewer,
        write=_write_viewer,
        to_calibration=_viewer_to_calibration,
        from_calibration=_viewer_from_calibration,
        multiscale=True,
        description=(
            "Pyramid resolution and downsampling; origin, channels, frames and "
            "display ranges are dropped"
        ),
    ),
    StyleHandler(
        style_id=StyleId.TRANSFORM,
        parse=_parse_transform,
        write=_write_transform,
        to_calibration=_transform_to_calibration,
        from_calibration=_transform_from_calibration,
        description=(
            "Per-axis scale and translation; channels, frames and display "
            "ranges are dropped"
        ),
    ),
    StyleHandler(
        style_id=StyleId.CALIBRATION,
        parse=_parse_calibration,
        write=_write_calibration,
        to_calibration=_calibration_to_calibration,
        from_calibration=_calibration_from_calibration,
        split_channels=False,
        description=(
            "Full image calibration for up to three spatial axes; whole-image "
            "datasets also store their axis labels under 'axes' so the "
            "channel axis is recognised on import"
        ),
    ),
)


@hookimpl
def zarrij_style_handlers(config: RegistryConfig) -> List[StyleHandler]:
    """Provide the built-in style handlers."""
    return [*BUILTIN_HANDLERS, make_custom_handler(config.custom_template)]
