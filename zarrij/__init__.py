from .assemble import assemble, combine_channels
from .container import (
    ContainerReader,
    ContainerWriter,
    ZarrContainer,
    detect_container_type,
    open_container,
)
from .enums import Compression, ContainerType, MaterializationMode, StyleId
from .errors import (
    AssemblyError,
    ExportError,
    OutOfBoundsError,
    ParseError,
    ShapeMismatchError,
    TranslationError,
    UnknownStyleError,
    WriteError,
    ZarrijError,
)
from .export import ExportResult, channel_dataset_path, export
from .image import CalibratedImage
from .interval import (
    DatasetAttributes,
    Interval,
    block_aligned_crop,
    common_crop_bounds,
    containing_block_aligned_interval,
)
from .logging import configure_logging, get_logger
from .metadata import (
    CalibrationFields,
    MetadataRegistry,
    RegistryConfig,
    StyleHandler,
    TemplateMapper,
)
from .selection import Selection, SelectionEntry, build_selection

__all__ = [
    "assemble",
    "combine_channels",
    "export",
    "ExportResult",
    "channel_dataset_path",
    "CalibratedImage",
    "Selection",
    "SelectionEntry",
    "build_selection",
    "DatasetAttributes",
    "Interval",
    "block_aligned_crop",
    "containing_block_aligned_interval",
    "common_crop_bounds",
    "ContainerReader",
    "ContainerWriter",
    "ZarrContainer",
    "open_container",
    "detect_container_type",
    "MetadataRegistry",
    "RegistryConfig",
    "StyleHandler",
    "TemplateMapper",
    "CalibrationFields",
    "StyleId",
    "MaterializationMode",
    "Compression",
    "ContainerType",
    "ZarrijError",
    "ParseError",
    "WriteError",
    "TranslationError",
    "UnknownStyleError",
    "OutOfBoundsError",
    "AssemblyError",
    "ShapeMismatchError",
    "ExportError",
    "configure_logging",
    "get_logger",
]
