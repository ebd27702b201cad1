"""
Metadata styles and the registry that parses, writes and translates them.
"""

from .calibration import CalibrationFields, Translation
from .registry import MetadataRegistry, RegistryConfig, StyleHandler
from .styles import (
    AnyMetadataStyle,
    CustomTemplateMetadata,
    DefaultMetadata,
    GenericCalibrationMetadata,
    LabTransformMetadata,
    MetadataStyle,
    ViewerScaleMetadata,
)
from .template import TemplateMapper

__all__ = [
    "AnyMetadataStyle",
    "CalibrationFields",
    "CustomTemplateMetadata",
    "DefaultMetadata",
    "GenericCalibrationMetadata",
    "LabTransformMetadata",
    "MetadataRegistry",
    "MetadataStyle",
    "RegistryConfig",
    "StyleHandler",
    "TemplateMapper",
    "Translation",
    "ViewerScaleMetadata",
]
