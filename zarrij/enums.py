"""Enumeration classes for zarrij identifiers."""

from enum import Enum


class StyleId(str, Enum):
    """Identifiers of the built-in metadata styles.

    Members compare equal to their string values, so plain strings can be
    used wherever a style id is expected.

    Attributes:
        DEFAULT: No calibration metadata; unit spacing, "pixel" unit
        VIEWER: Viewer pyramid metadata (``pixelResolution``, ``downsamplingFactors``)
        TRANSFORM: Lab transform metadata (``transform`` with scale/translate)
        CALIBRATION: Generic image calibration (pixel sizes, origin, channels,
            frames, display ranges)
        CUSTOM: User-configured template mapping
    """

    DEFAULT = "default"
    VIEWER = "viewer"
    TRANSFORM = "transform"
    CALIBRATION = "calibration"
    CUSTOM = "custom"

    def __str__(self) -> str:
        return self.value


class MaterializationMode(Enum):
    """How assembled pixel data is held in memory.

    Attributes:
        VIRTUAL: Lazily backed by the container through dask
        EAGER: Copied into a freshly allocated numpy buffer
    """

    VIRTUAL = "virtual"
    EAGER = "eager"


class Compression(str, Enum):
    """Compression schemes accepted when writing datasets."""

    RAW = "raw"
    GZIP = "gzip"
    ZSTD = "zstd"
    BLOSC = "blosc"
    LZ4 = "lz4"
    XZ = "xz"

    def __str__(self) -> str:
        return self.value


class ContainerType(Enum):
    """Container kinds recognised from a location string.

    Attributes:
        FILESYSTEM: Local directory store
        ZIP: Zip archive store
        S3: Amazon S3 URI
        GOOGLE_CLOUD: Google Cloud Storage URI
        HTTP: Read-only HTTP(S) location
        UNKNOWN: Could not be inferred
    """

    FILESYSTEM = "filesystem"
    ZIP = "zip"
    S3 = "s3"
    GOOGLE_CLOUD = "gcs"
    HTTP = "http"
    UNKNOWN = "unknown"
