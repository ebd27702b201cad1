"""Metadata registry: parse, write and translate metadata styles.

The registry maps a style identifier to a :class:`StyleHandler` made of a
parser, a writer and a calibration translator (in both directions). Handlers
are collected once, when the registry is constructed, from a ``pluggy``
plugin manager: the built-in styles are always present and extra styles can be
contributed by plugins. A registry never changes after construction, and the
same registry instance serves both import (assembly) and export.

Examples:
    >>> registry = MetadataRegistry()
    >>> style = registry.parse(container, "raw/c0/s0", "viewer")
    >>> translation = registry.to_calibration(style, ndim=3)
    >>> translation.calibration.spacing
    (0.5, 0.5, 2.0)
"""

from __future__ import annotations

from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from attrs import field, frozen

from ..enums import StyleId
from ..errors import ParseError, TranslationError, UnknownStyleError, WriteError
from ..interval import DatasetAttributes
from ..logging import get_logger
from .calibration import CalibrationFields, Translation
from .styles import DefaultMetadata, MetadataStyle
from .template import TemplateMapper

if TYPE_CHECKING:
    import pluggy

    from ..container import ContainerReader, ContainerWriter

logger = get_logger(__name__)

StyleKey = Union[str, StyleId]


@frozen
class StyleHandler:
    """
    Behaviour of one metadata style.

    Attributes:
        style_id: Identifier the style is registered under
        parse: ``(attribute_map, path, dataset_attributes) -> MetadataStyle``;
            raise KeyError, TypeError or ValueError for missing or malformed keys
        write: ``(style) -> attribute_map`` to merge into the dataset attributes;
            an empty mapping means nothing is written
        to_calibration: ``(style) -> CalibrationFields``
        from_calibration: ``(calibration, path) -> MetadataStyle``
        multiscale: Whether exported channels are laid out as pyramids
            (``c{n}/s0``)
        split_channels: Whether export writes one dataset per channel by default
        description: One-line description, including fields lost on export
    """

    style_id: str = field(converter=str)
    parse: Callable[[Mapping[str, Any], str, Optional[DatasetAttributes]], MetadataStyle]
    write: Callable[[MetadataStyle], Dict[str, Any]]
    to_calibration: Callable[[MetadataStyle], CalibrationFields]
    from_calibration: Callable[[CalibrationFields, str], MetadataStyle]
    multiscale: bool = False
    split_channels: bool = True
    description: str = ""


@frozen
class RegistryConfig:
    """Configuration resolved when a :class:`MetadataRegistry` is built.

    Attributes:
        custom_template: Template used by the ``custom`` style
        load_entrypoints: Also load style plugins advertised under the
            ``zarrij`` entry-point group
    """

    custom_template: TemplateMapper = field(factory=TemplateMapper.resolution_only)
    load_entrypoints: bool = False


class MetadataRegistry:
    """
    Immutable mapping of style identifier to :class:`StyleHandler`.

    Args:
        config: Registry configuration. Defaults to ``RegistryConfig()``.
        plugin_manager: Plugin manager providing style handlers. Defaults to a
            fresh manager from :func:`zarrij.plugins.get_plugin_manager`.

    Raises:
        ValueError: If two plugins provide the same style identifier
    """

    def __init__(
        self,
        config: Optional[RegistryConfig] = None,
        plugin_manager: Optional["pluggy.PluginManager"] = None,
    ):
        from ..plugins import get_plugin_manager

        self.config = config or RegistryConfig()
        if plugin_manager is None:
            plugin_manager = get_plugin_manager(
                load_entrypoints=self.config.load_entrypoints
            )

        handlers: Dict[str, StyleHandler] = {}
        for batch in plugin_manager.hook.zarrij_style_handlers(config=self.config):
            for handler in batch or ():
                if handler.style_id in handlers:
                    raise ValueError(
                        f"Metadata style '{handler.style_id}' is registered twice"
                    )
                handlers[handler.style_id] = handler

        self._handlers = MappingProxyType(handlers)
        logger.debug("Metadata registry resolved styles: %s", sorted(handlers))

    def __repr__(self) -> str:
        return f"MetadataRegistry(styles={list(self.styles)})"

    def __contains__(self, style_id: StyleKey) -> bool:
        return str(style_id) in self._handlers

    @property
    def styles(self) -> Tuple[str, ...]:
        """Registered style identifiers."""
        return tuple(self._handlers)

    def handler(self, style_id: StyleKey) -> StyleHandler:
        """
        Look up the handler of ``style_id``.

        Raises:
            UnknownStyleError: If no handler is registered for ``style_id``
        """
        try:
            return self._handlers[str(style_id)]
        except KeyError:
            raise UnknownStyleError(str(style_id), self.styles) from None

    def parse(
        self, container: "ContainerReader", path: str, style_id: StyleKey
    ) -> MetadataStyle:
        """
        Read the attributes at ``path`` and build the ``style_id`` variant.

        Raises:
            UnknownStyleError: If ``style_id`` is not registered
            ParseError: If nothing is stored at ``path`` or required keys are
                missing or malformed
        """
        handler = self.handler(style_id)

        try:
            attribute_map = container.get_raw_attribute_map(path)
            dataset_attributes = (
                container.get_attributes(path) if container.dataset_exists(path) else None
            )
        except KeyError as e:
            raise ParseError(
                f"Nothing stored at '{path}'", path=path, style_id=handler.style_id
            ) from e

        try:
            return handler.parse(attribute_map, path, dataset_attributes)
        except (KeyError, TypeError, ValueError) as e:
            raise ParseError(
                f"Malformed '{handler.style_id}' metadata at '{path}': "
                f"{type(e).__name__}: {e}",
                path=path,
                style_id=handler.style_id,
            ) from e

    def write(
        self, style: MetadataStyle, container: "ContainerWriter", path: str
    ) -> None:
        """
        Serialize ``style`` into the attributes of the node at ``path``.

        Styles with nothing to store (``default``) succeed without writing.

        Raises:
            UnknownStyleError: If the style of ``style`` is not registered
            WriteError: If the container rejects the write
        """
        handler = self.handler(style.style_id)
        attribute_map = handler.write(style)
        if not attribute_map:
            return

        try:
            container.write_attribute_map(path, attribute_map)
        except Exception as e:
            raise WriteError(
                f"Could not write '{handler.style_id}' metadata to '{path}': {e}",
                path=path,
            ) from e

        logger.debug("Wrote '%s' metadata to '%s'", handler.style_id, path)

    def to_calibration(
        self, style: MetadataStyle, ndim: Optional[int] = None
    ) -> Translation:
        """
        Translate ``style`` into calibration fields.

        When the style's per-axis fields are inconsistent, or do not have
        ``ndim`` entries, default calibration is substituted and the reason is
        returned as :attr:`Translation.error` instead of being raised.

        Args:
            style: Parsed metadata style
            ndim: Spatial dimensionality of the image being calibrated

        Raises:
            UnknownStyleError: If the style of ``style`` is not registered
        """
        handler = self.handler(style.style_id)

        try:
            calibration = handler.to_calibration(style)
        except (TypeError, ValueError) as e:
            fallback_ndim = ndim if ndim is not None else _style_ndim(style)
            return Translation(
                CalibrationFields.default(fallback_ndim),
                TranslationError(
                    f"'{handler.style_id}' metadata at '{style.path}' is inconsistent: {e}",
                    expected_ndim=fallback_ndim,
                ),
            )

        if ndim is not None and calibration.ndim != ndim:
            return Translation(
                CalibrationFields.default(ndim),
                TranslationError(
                    f"'{handler.style_id}' metadata at '{style.path}' describes "
                    f"{calibration.ndim} axes, image has {ndim}",
                    expected_ndim=ndim,
                    actual_ndim=calibration.ndim,
                ),
            )

        return Translation(calibration)

    def from_image(
        self, style_id: StyleKey, calibration: CalibrationFields, path: str = ""
    ) -> MetadataStyle:
        """
        Encode ``calibration`` as the ``style_id`` variant.

        Fields the style cannot represent are dropped; see each handler's
        description.

        Raises:
            UnknownStyleError: If ``style_id`` is not registered
        """
        return self.handler(style_id).from_calibration(calibration, path)

    def read_calibration(
        self,
        container: "ContainerReader",
        path: str,
        style_id: StyleKey,
        ndim: int,
        style: Optional[MetadataStyle] = None,
    ) -> Tuple[CalibrationFields, List[Exception]]:
        """
        Parse and translate the metadata at ``path``, never failing on bad metadata.

        A :class:`ParseError` falls back to :class:`DefaultMetadata`; a
        translation problem falls back to default calibration. Every such
        problem is logged and returned.

        Args:
            container: Container holding the dataset
            path: Dataset path
            style_id: Style to parse
            ndim: Spatial dimensionality of the image being calibrated
            style: Already parsed style; skips parsing when given

        Returns:
            Tuple of calibration fields and the list of recovered errors

        Raises:
            UnknownStyleError: If ``style_id`` is not registered
        """
        issues: List[Exception] = []

        if style is None:
            try:
                style = self.parse(container, path, style_id)
            except ParseError as e:
                logger.warning("%s; using default calibration", e)
                issues.append(e)
                style = DefaultMetadata(path=path, ndim=ndim)

        translation = self.to_calibration(style, ndim=ndim)
        if not translation.ok:
            logger.warning("%s; using default calibration", translation.error)
            issues.append(translation.error)

        return translation.calibration, issues

    def splits_channels(self, style_id: Optional[StyleKey]) -> bool:
        """Whether export writes one dataset per channel for ``style_id`` by default."""
        if style_id is None:
            return False
        return self.handler(style_id).split_channels

    def is_multiscale(self, style_id: Optional[StyleKey]) -> bool:
        """Whether ``style_id`` lays exported channels out as pyramid levels."""
        if style_id is None:
            return False
        return self.handler(style_id).multiscale


def _style_ndim(style: MetadataStyle) -> int:
    if style.attributes is not None:
        return style.attributes.ndim
    # resolution before spacing: ViewerScaleMetadata.spacing raises when inconsistent
    for name in ("ndim", "resolution", "spacing"):
        value = getattr(style, name, None)
        if isinstance(value, int):
            return value
        if isinstance(value, tuple):
            return len(value)
    values = getattr(style, "values", None)
    if values is not None and "spacing" in values:
        return len(values["spacing"])
    return 0
