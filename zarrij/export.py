"""Export calibrated images to a container, one dataset per channel or whole.

Every written dataset gets a data write followed by a metadata write through
the :class:`~zarrij.metadata.MetadataRegistry`. With ``concurrency > 1`` the
per-channel writes run on a bounded thread pool; the only ordering
guarantee is that a channel's metadata is written after its data. Failures
are collected and raised together as an :class:`~zarrij.errors.ExportError`;
channels written before the failure are left in place.

Examples:
    >>> result = export(image, container, "export/raw", block_size=(64, 64, 16),
    ...                 compression="zstd", style_id="viewer", concurrency=4)
    >>> result.written
    ['export/raw/c0/s0', 'export/raw/c1/s0']
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, List, Optional, Sequence, Tuple, Union

from attrs import define, field

from .container import ArrayLike, ContainerWriter
from .enums import Compression, StyleId
from .errors import ExportError
from .image import CalibratedImage
from .logging import get_logger
from .metadata.registry import MetadataRegistry, StyleKey

logger = get_logger(__name__)


@define
class ExportResult:
    """
    Outcome of a successful export.

    Attributes:
        written: Dataset paths written, in channel order
        style_id: Metadata style written alongside the data, if any
        channel_split: Whether channels were written as separate datasets
    """

    written: List[str] = field(factory=list)
    style_id: Optional[str] = None
    channel_split: bool = False


def channel_dataset_path(
    destination: str, channel: int, n_channels: int, multiscale: bool = False
) -> str:
    """
    Dataset path of one exported channel.

    Examples:
        >>> channel_dataset_path("out", 1, 3, multiscale=True)
        'out/c1/s0'
        >>> channel_dataset_path("out", 1, 3)
        'out/c1'
        >>> channel_dataset_path("out", 0, 1, multiscale=True)
        'out'
    """
    destination = destination.rstrip("/")
    if n_channels == 1:
        return destination
    if multiscale:
        return f"{destination}/c{channel}/s0"
    return f"{destination}/c{channel}"


def _resolve_block_size(
    block_size: Union[int, Sequence[int]], image: CalibratedImage, split: bool
) -> Tuple[int, ...]:
    ndim = image.ndim - 1 if split and image.channel_axis is not None else image.ndim

    if isinstance(block_size, int):
        sizes = (block_size,) * ndim
    else:
        sizes = tuple(int(b) for b in block_size)
        if split and image.channel_axis is not None and len(sizes) == image.ndim:
            # block size given for the whole image: drop the channel entry
            sizes = sizes[: image.channel_axis] + sizes[image.channel_axis + 1 :]

    if len(sizes) != ndim or any(b <= 0 for b in sizes):
        raise ValueError(
            f"Block size {block_size} does not fit the {ndim} dimensions being written"
        )
    return sizes


def export(
    image: CalibratedImage,
    container: ContainerWriter,
    destination: str,
    block_size: Union[int, Sequence[int]],
    compression: Union[str, Compression] = Compression.GZIP,
    style_id: Optional[StyleKey] = StyleId.VIEWER,
    channel_split: Optional[bool] = None,
    concurrency: int = 1,
    registry: Optional[MetadataRegistry] = None,
) -> ExportResult:
    """
    Write ``image`` to ``container`` under ``destination``.

    Args:
        image: Image to export
        container: Container to write to. Borrowed, never closed.
        destination: Dataset path of the whole image, or the parent of the
            per-channel datasets
        block_size: Chunk size of the written datasets. When channels are
            split, a block size covering every image axis has its channel
            entry dropped; a single int applies to every axis.
        compression: Compression scheme of the written datasets
        style_id: Metadata style written with every dataset; None writes data only
        channel_split: Write one dataset per channel. None derives it from
            the style: ``default``, ``calibration``, ``custom`` and no style
            write the whole image.
        concurrency: Number of channels written in parallel
        registry: Registry used to encode metadata. Defaults to a registry
            with the built-in styles.

    Returns:
        ExportResult listing the written datasets

    Raises:
        ValueError: If ``concurrency`` is below 1, ``destination`` is empty
            or the block size does not fit the image
        UnknownStyleError: If ``style_id`` is not registered
        ExportError: If any dataset could not be written
    """
    if concurrency < 1:
        raise ValueError(f"concurrency must be at least 1, got {concurrency}")
    if not destination.strip("/"):
        raise ValueError("Export destination must name a dataset")

    compression = Compression(compression)
    registry = registry or MetadataRegistry()
    if style_id is not None:
        style_id = registry.handler(style_id).style_id

    split = registry.splits_channels(style_id) if channel_split is None else channel_split
    blocks = _resolve_block_size(block_size, image, split)

    # only a whole-image dataset keeps the channel axis
    stored_axes = image.dims if not split and image.channel_axis is not None else ()
    calibration = image.calibration.replace(axes=stored_axes)

    tasks: List[Tuple[str, ArrayLike]] = []
    if split:
        multiscale = registry.is_multiscale(style_id)
        n_channels = image.shape[image.channel_axis] if image.channel_axis is not None else 1
        for c in range(n_channels):
            path = channel_dataset_path(destination, c, n_channels, multiscale)
            tasks.append((path, image.channel(c)))
    else:
        tasks.append((destination.rstrip("/"), image.data))

    logger.info(
        "Exporting '%s' to %d dataset(s) under '%s' (style=%s, compression=%s)",
        image.name,
        len(tasks),
        destination,
        style_id,
        compression.value,
    )

    def write_one(path: str, buffer: ArrayLike) -> str:
        container.write_region(path, buffer, blocks, compression)
        if style_id is not None:
            style = registry.from_image(style_id, calibration, path)
            registry.write(style, container, path)
        logger.debug("Exported dataset '%s'", path)
        return path

    failures: Dict[str, BaseException] = {}
    done = set()

    if concurrency > 1 and len(tasks) > 1:
        with ThreadPoolExecutor(max_workers=min(concurrency, len(tasks))) as executor:
            futures = {executor.submit(write_one, path, buffer): path for path, buffer in tasks}
            for future in as_completed(futures):
                path = futures[future]
                try:
                    done.add(future.result())
                except Exception as e:
                    failures[path] = e
    else:
        for path, buffer in tasks:
            try:
                done.add(write_one(path, buffer))
            except Exception as e:
                failures[path] = e

    written = [path for path, _ in tasks if path in done]
    if failures:
        for path, exc in failures.items():
            logger.error("Failed to export '%s': %s", path, exc)
        raise ExportError(failures, written)

    return ExportResult(written=written, style_id=style_id, channel_split=split)
