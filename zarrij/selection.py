"""Selections of channel datasets and the helpers that build them.

A :class:`Selection` names the datasets to assemble, in channel order, along
with an optional crop and the materialisation mode. Hosts build selections
from their own dataset browsers; :func:`build_selection` and the ``parse_*``
helpers build them from command-line style strings.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence, Tuple, Union

from attrs import define, field

from .enums import MaterializationMode
from .errors import ParseError
from .interval import Interval
from .logging import get_logger
from .metadata.registry import MetadataRegistry, StyleKey
from .metadata.styles import MetadataStyle

logger = get_logger(__name__)


@define(frozen=True)
class SelectionEntry:
    """One selected dataset and its parsed metadata (None if not parsed)."""

    path: str
    style: Optional[MetadataStyle] = None


def _to_entries(values: Iterable) -> Tuple[SelectionEntry, ...]:
    entries = []
    for value in values:
        if isinstance(value, SelectionEntry):
            entries.append(value)
        elif isinstance(value, str):
            entries.append(SelectionEntry(value))
        else:
            path, style = value
            entries.append(SelectionEntry(path, style))
    return tuple(entries)


@define(frozen=True)
class Selection:
    """
    Ordered datasets to assemble into one image, one channel each.

    Attributes:
        entries: Selected datasets in channel order. Plain path strings and
            ``(path, style)`` pairs are accepted and converted.
        crop: Region to read from every dataset; None reads the full extent
        mode: Eager copy or virtual (lazy) pixel data
        align_to_blocks: Grow ``crop`` to whole chunks before reading
    """

    entries: Tuple[SelectionEntry, ...] = field(converter=_to_entries)
    crop: Optional[Interval] = None
    mode: MaterializationMode = field(
        default=MaterializationMode.EAGER, converter=MaterializationMode
    )
    align_to_blocks: bool = False

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def paths(self) -> List[str]:
        return [entry.path for entry in self.entries]


def parse_dataset_list(value: str) -> List[str]:
    """
    Parse a comma-separated list of dataset paths.

    Examples:
        >>> parse_dataset_list("raw/c0, raw/c1")
        ['raw/c0', 'raw/c1']
    """
    return [part.strip() for part in value.split(",") if part.strip()]


def parse_int_list(value: str) -> List[int]:
    """Parse a comma-separated list of integers."""
    if not value.strip():
        return []
    return [int(x.strip()) for x in value.split(",")]


def parse_subset(value: str) -> Interval:
    """
    Parse an ``"xmin,ymin,zmin;xmax,ymax,zmax"`` subset string (inclusive bounds).

    Raises:
        ValueError: If the string is not two ``;``-separated integer lists of
            equal length
        OutOfBoundsError: If a minimum exceeds its maximum

    Examples:
        >>> parse_subset("5,5,1;40,40,5")
        Interval(min=(5, 5, 1), max=(40, 40, 5))
    """
    parts = value.split(";")
    if len(parts) != 2:
        raise ValueError(f"Subset must look like 'xmin,ymin;xmax,ymax', got {value!r}")
    lo, hi = parse_int_list(parts[0]), parse_int_list(parts[1])
    if not lo or len(lo) != len(hi):
        raise ValueError(f"Subset min and max must have the same number of axes: {value!r}")
    return Interval(lo, hi)


def parse_block_size(value: str, ndim: Optional[int] = None) -> Tuple[int, ...]:
    """
    Parse a comma-separated block size.

    A single value is repeated ``ndim`` times when ``ndim`` is given.

    Raises:
        ValueError: If a value is not a positive integer or the count does not
            match ``ndim``
    """
    sizes = parse_int_list(value)
    if ndim is not None and len(sizes) == 1:
        sizes = sizes * ndim
    if not sizes or any(s <= 0 for s in sizes):
        raise ValueError(f"Block size must be positive integers, got {value!r}")
    if ndim is not None and len(sizes) != ndim:
        raise ValueError(f"Block size {value!r} does not have {ndim} entries")
    return tuple(sizes)


def build_selection(
    container,
    datasets: Union[str, Sequence[str]],
    style_id: StyleKey,
    registry: MetadataRegistry,
    subset: Union[str, Interval, None] = None,
    virtual: bool = False,
    align_to_blocks: bool = False,
) -> Selection:
    """
    Build a :class:`Selection` and parse each dataset's metadata.

    Datasets whose metadata cannot be parsed are kept with no style; the
    assembler falls back to defaults for them and reports the failure.

    Args:
        container: ContainerReader holding the datasets
        datasets: Dataset paths, or a comma-separated string of them
        style_id: Metadata style to parse
        registry: Registry used to parse metadata
        subset: Crop as an Interval or ``"xmin,...;xmax,..."`` string
        virtual: Read pixels lazily instead of copying them
        align_to_blocks: Grow the crop to whole chunks

    Raises:
        ValueError: If no datasets are given or the subset is malformed
        UnknownStyleError: If ``style_id`` is not registered
    """
    if isinstance(datasets, str):
        datasets = parse_dataset_list(datasets)
    if not datasets:
        raise ValueError("No datasets selected")

    if isinstance(subset, str):
        subset = parse_subset(subset) if subset.strip() else None

    entries = []
    for path in datasets:
        try:
            style = registry.parse(container, path, style_id)
        except ParseError as e:
            logger.info("Deferring metadata of '%s' to assembly: %s", path, e)
            style = None
        entries.append(SelectionEntry(path, style))

    return Selection(
        entries=entries,
        crop=subset,
        mode=MaterializationMode.VIRTUAL if virtual else MaterializationMode.EAGER,
        align_to_blocks=align_to_blocks,
    )
