"""Exception hierarchy for zarrij.

Metadata errors (:class:`ParseError`, :class:`TranslationError`) are
recoverable during import: the assembler substitutes defaults and records the
exception on the resulting image. Interval and shape errors are fatal to the
current operation. :class:`ExportError` aggregates per-channel failures.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence


class ZarrijError(Exception):
    """Base class for all errors raised by zarrij."""


class ParseError(ZarrijError):
    """Raised when stored attributes cannot be turned into a metadata style.

    Attributes:
        path: Dataset path whose attributes were being parsed
        style_id: Style that was requested
    """

    def __init__(self, message: str, path: str = "", style_id: str = ""):
        super().__init__(message)
        self.path = path
        self.style_id = style_id


class WriteError(ZarrijError):
    """Raised when a metadata style cannot be written to a dataset."""

    def __init__(self, message: str, path: str = ""):
        super().__init__(message)
        self.path = path


class TranslationError(ZarrijError):
    """Reported when a style's per-axis fields disagree with the image dimensionality.

    This is never raised by ``MetadataRegistry.to_calibration``; it is returned
    alongside the default calibration that was substituted.
    """

    def __init__(self, message: str, expected_ndim: int = 0, actual_ndim: int = 0):
        super().__init__(message)
        self.expected_ndim = expected_ndim
        self.actual_ndim = actual_ndim


class UnknownStyleError(ZarrijError, KeyError):
    """Raised when a style identifier is not registered."""

    def __init__(self, style_id: str, available: Sequence[str] = ()):
        self.style_id = style_id
        self.available = tuple(available)
        super().__init__(
            f"Unknown metadata style '{style_id}'. Available: {list(self.available)}"
        )

    def __str__(self) -> str:
        # KeyError.__str__ would repr() the message
        return self.args[0]


class OutOfBoundsError(ZarrijError, IndexError):
    """Raised for invalid intervals or intervals that miss the dataset."""


class AssemblyError(ZarrijError):
    """Raised when channel datasets cannot be assembled into one image."""


class ShapeMismatchError(AssemblyError):
    """Raised when channel datasets disagree in dimensionality or extent.

    Attributes:
        first_path: Dataset whose shape is used as reference
        other_path: First dataset that disagrees with the reference
    """

    def __init__(
        self,
        first_path: str,
        other_path: str,
        first_shape: Optional[Sequence[int]] = None,
        other_shape: Optional[Sequence[int]] = None,
    ):
        self.first_path = first_path
        self.other_path = other_path
        self.first_shape = tuple(first_shape) if first_shape is not None else None
        self.other_shape = tuple(other_shape) if other_shape is not None else None
        super().__init__(
            f"Channel datasets must have identical shapes: "
            f"'{first_path}' has shape {self.first_shape}, "
            f"'{other_path}' has shape {self.other_shape}"
        )


class ExportError(ZarrijError):
    """Aggregates per-channel failures of an export.

    Datasets listed in ``written`` were completely written (data and
    metadata) before the failure was reported; they are not rolled back.

    Attributes:
        failures: Mapping of destination dataset path to the exception raised
        written: Dataset paths written successfully
    """

    def __init__(
        self, failures: Dict[str, BaseException], written: Optional[List[str]] = None
    ):
        self.failures = dict(failures)
        self.written = list(written or [])
        details = "; ".join(f"{path}: {exc}" for path, exc in self.failures.items())
        super().__init__(
            f"Export failed for {len(self.failures)} dataset(s): {details}"
        )
