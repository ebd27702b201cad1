"""User-configurable attribute templates for the custom metadata style.

A :class:`TemplateMapper` maps calibration field names to attribute keys. Keys
may be dotted to address nested JSON objects, e.g. ``"resolution.values"``
reads ``attrs["resolution"]["values"]``.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Dict, Mapping

from attrs import field, frozen

from .calibration import CALIBRATION_FIELD_NAMES

_MISSING = object()


def _frozen_mapping(value: Mapping[str, str]) -> Mapping[str, str]:
    return MappingProxyType({str(k): str(v) for k, v in dict(value).items()})


def _lookup(attributes: Mapping[str, Any], key: str) -> Any:
    node: Any = attributes
    for part in key.split("."):
        if not isinstance(node, Mapping) or part not in node:
            return _MISSING
        node = node[part]
    return node


def _assign(target: Dict[str, Any], key: str, value: Any) -> None:
    parts = key.split(".")
    node = target
    for part in parts[:-1]:
        node = node.setdefault(part, {})
    node[parts[-1]] = value


@frozen
class TemplateMapper:
    """
    Mapping from calibration field names to attribute keys.

    ``spacing`` must always be mapped. Fields left out of the mapping are
    neither read nor written.

    Examples:
        >>> mapper = TemplateMapper({"spacing": "resolution", "unit": "unit"})
        >>> mapper.render({"spacing": [0.5, 0.5], "unit": "um"})
        {'resolution': [0.5, 0.5], 'unit': 'um'}
    """

    fields: Mapping[str, str] = field(converter=_frozen_mapping, hash=False)

    def __attrs_post_init__(self):
        unknown = set(self.fields) - set(CALIBRATION_FIELD_NAMES)
        if unknown:
            raise ValueError(
                f"Unknown calibration fields in template: {sorted(unknown)}. "
                f"Valid fields: {list(CALIBRATION_FIELD_NAMES)}"
            )
        if "spacing" not in self.fields:
            raise ValueError("A metadata template must map the 'spacing' field")

    @classmethod
    def resolution_only(cls) -> "TemplateMapper":
        """Template storing only per-axis resolution and its unit."""
        return cls({"spacing": "resolution", "unit": "unit"})

    @classmethod
    def complete(cls) -> "TemplateMapper":
        """Template storing every calibration field."""
        return cls(
            {
                "spacing": "resolution",
                "unit": "unit",
                "origin": "offset",
                "channels": "channels",
                "frames": "frames",
                "display_ranges": "displayRanges",
            }
        )

    def extract(self, attributes: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Read mapped fields from ``attributes``.

        Raises:
            KeyError: If the attribute mapped to ``spacing`` is absent
        """
        values = {}
        for name, key in self.fields.items():
            value = _lookup(attributes, key)
            if value is _MISSING:
                if name == "spacing":
                    raise KeyError(key)
                continue
            values[name] = value
        return values

    def render(self, values: Mapping[str, Any]) -> Dict[str, Any]:
        """Nest ``values`` under their mapped attribute keys."""
        rendered: Dict[str, Any] = {}
        for name, key in self.fields.items():
            if name in values:
                _assign(rendered, key, values[name])
        return rendered
