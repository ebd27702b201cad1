"""Container access interfaces and the zarr-backed implementation.

The core components never touch storage directly. They talk to a
:class:`ContainerReader` (import) or :class:`ContainerWriter` (export), which
are borrowed from the caller and never closed by the core.

:class:`ZarrContainer` implements both interfaces on top of a ``zarr`` group.
:func:`open_container` creates one from a location string, supporting local
directories, ``.zip`` archives and remote URIs handled by ``fsspec``.
"""

from __future__ import annotations

import os
import shutil
import tempfile
import threading
import zipfile
from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple, Union

import dask.array as da
import fsspec
import numpy as np
import zarr

from .enums import Compression, ContainerType
from .errors import OutOfBoundsError
from .interval import DatasetAttributes, Interval
from .logging import get_logger

logger = get_logger(__name__)

ArrayLike = Union[np.ndarray, da.Array]


class ContainerReader(ABC):
    """Read access to datasets and their attributes."""

    @abstractmethod
    def dataset_exists(self, path: str) -> bool:
        """Whether an N-dimensional dataset is stored at ``path``."""

    @abstractmethod
    def get_attributes(self, path: str) -> DatasetAttributes:
        """Extent, chunking, dtype and compression of the dataset at ``path``.

        Raises:
            KeyError: If there is no dataset at ``path``
        """

    @abstractmethod
    def read_region(self, path: str, interval: Interval) -> np.ndarray:
        """Read the samples of ``interval`` from the dataset at ``path``.

        Raises:
            KeyError: If there is no dataset at ``path``
            OutOfBoundsError: If ``interval`` is not inside the dataset
        """

    @abstractmethod
    def get_raw_attribute_map(self, path: str) -> Dict[str, Any]:
        """User attributes stored on the node at ``path`` as plain JSON values.

        Raises:
            KeyError: If nothing is stored at ``path``
        """


class ContainerWriter(ContainerReader):
    """Read/write access to datasets and their attributes."""

    @abstractmethod
    def write_region(
        self,
        path: str,
        buffer: ArrayLike,
        block_size: Sequence[int],
        compression: Union[str, Compression],
    ) -> None:
        """Create (or replace) the dataset at ``path`` holding ``buffer``."""

    @abstractmethod
    def write_attribute_map(self, path: str, attributes: Mapping[str, Any]) -> None:
        """Merge ``attributes`` into the attributes of the node at ``path``."""


# codec class name -> compression identifier, for both zarr v3 codecs and
# numcodecs v2 codecs
_CODEC_NAMES = {
    "GzipCodec": "gzip",
    "GZip": "gzip",
    "ZstdCodec": "zstd",
    "Zstd": "zstd",
    "BloscCodec": "blosc",
    "Blosc": "blosc",
    "LZ4": "lz4",
    "LZMA": "xz",
}


def _compressors(
    compression: Union[str, Compression], zarr_format: int
) -> Optional[tuple]:
    """Codec tuple for ``compression`` suitable for the given zarr format."""
    compression = Compression(compression)

    if compression == Compression.RAW:
        return None if zarr_format == 2 else ()

    if zarr_format == 2:
        import numcodecs

        v2_codecs = {
            Compression.GZIP: lambda: numcodecs.GZip(level=5),
            Compression.ZSTD: lambda: numcodecs.Zstd(level=3),
            Compression.BLOSC: lambda: numcodecs.Blosc(cname="lz4", clevel=5),
            Compression.LZ4: lambda: numcodecs.LZ4(),
            Compression.XZ: lambda: numcodecs.LZMA(),
        }
        return (v2_codecs[compression](),)

    from numcodecs import zarr3 as numcodecs_zarr3
    from zarr.codecs import BloscCodec, GzipCodec, ZstdCodec

    v3_codecs = {
        Compression.GZIP: lambda: GzipCodec(level=5),
        Compression.ZSTD: lambda: ZstdCodec(level=3),
        Compression.BLOSC: lambda: BloscCodec(cname="lz4", clevel=5, shuffle="shuffle"),
        Compression.LZ4: lambda: numcodecs_zarr3.LZ4(),
        Compression.XZ: lambda: numcodecs_zarr3.LZMA(),
    }
    return (v3_codecs[compression](),)


def _compression_name(arr: zarr.Array) -> str:
    compressors = getattr(arr, "compressors", ()) or ()
    if not compressors:
        return Compression.RAW.value
    codec_name = type(compressors[0]).__name__
    return _CODEC_NAMES.get(codec_name, codec_name.lower())


class ZarrContainer(ContainerWriter):
    """
    Container backed by a zarr group.

    Dataset paths are ``/``-separated keys relative to the root group. Chunks
    of written datasets equal the requested block size. Datasets at distinct
    paths may be written from several threads; creation of their parent
    groups is serialized.

    Attributes:
        root: The root zarr group
        location: Location the group was opened from, if known
    """

    def __init__(
        self,
        root: zarr.Group,
        location: Optional[str] = None,
        store=None,
        staging_dir: Optional[tempfile.TemporaryDirectory] = None,
    ):
        self.root = root
        self.location = location
        self._store = store
        self._staging_dir = staging_dir
        self._create_lock = threading.Lock()

    def __repr__(self) -> str:
        return f"ZarrContainer(location={self.location!r})"

    def __enter__(self) -> "ZarrContainer":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        """
        Release what this container opened.

        A zip store opened for reading is closed; a zip archive opened for
        writing is (re)built from its staging directory.
        """
        if self._store is not None:
            self._store.close()
            self._store = None
        if self._staging_dir is not None:
            base = self.location[: -len(".zip")]
            shutil.make_archive(base, "zip", self._staging_dir.name)
            self._staging_dir.cleanup()
            self._staging_dir = None
            logger.debug("Archived container to %s", self.location)

    @property
    def zarr_format(self) -> int:
        return self.root.metadata.zarr_format

    def _node(self, path: str):
        key = path.strip("/")
        if not key:
            return self.root
        return self.root[key]

    def _array(self, path: str) -> zarr.Array:
        node = self._node(path)
        if not isinstance(node, zarr.Array):
            raise KeyError(f"'{path}' is a group, not a dataset")
        return node

    def dataset_exists(self, path: str) -> bool:
        try:
            node = self._node(path)
        except KeyError:
            return False
        return isinstance(node, zarr.Array)

    def get_attributes(self, path: str) -> DatasetAttributes:
        arr = self._array(path)
        return DatasetAttributes(
            dimensions=arr.shape,
            block_size=arr.chunks,
            dtype=np.dtype(arr.dtype).name,
            compression=_compression_name(arr),
        )

    def read_region(self, path: str, interval: Interval) -> np.ndarray:
        arr = self._array(path)
        if not Interval.from_shape(arr.shape).contains(interval):
            raise OutOfBoundsError(
                f"Interval {interval} is outside dataset '{path}' of shape {arr.shape}"
            )
        return np.asarray(arr[interval.to_slices()])

    def get_raw_attribute_map(self, path: str) -> Dict[str, Any]:
        return dict(self._node(path).attrs)

    def _require_parent(self, path: str) -> Tuple[zarr.Group, str]:
        parts = [p for p in path.strip("/").split("/") if p]
        if not parts:
            raise ValueError("Cannot write a dataset at the container root")
        group = self.root
        for part in parts[:-1]:
            group = group.require_group(part)
        return group, parts[-1]

    def write_region(
        self,
        path: str,
        buffer: ArrayLike,
        block_size: Sequence[int],
        compression: Union[str, Compression],
    ) -> None:
        block_size = tuple(int(b) for b in block_size)
        if len(block_size) != buffer.ndim:
            raise ValueError(
                f"Block size {block_size} does not match the {buffer.ndim} "
                f"dimensions of the data written to '{path}'"
            )

        # require_group is check-then-create; concurrent writers share parents
        with self._create_lock:
            group, name = self._require_parent(path)
            arr = group.create_array(
                name,
                shape=buffer.shape,
                chunks=block_size,
                dtype=buffer.dtype,
                compressors=_compressors(compression, self.zarr_format),
                overwrite=True,
            )

        if isinstance(buffer, da.Array):
            # chunk-aligned source blocks never share a target chunk
            da.store(buffer.rechunk(arr.chunks), arr, lock=False)
        else:
            arr[...] = np.asarray(buffer)

        logger.debug(
            "Wrote dataset '%s' shape=%s chunks=%s compression=%s",
            path,
            buffer.shape,
            arr.chunks,
            compression,
        )

    def write_attribute_map(self, path: str, attributes: Mapping[str, Any]) -> None:
        self._node(path).attrs.update(dict(attributes))


def normalize_location(location: str) -> str:
    """
    Repair URIs whose ``//`` was collapsed to ``/`` by filesystem path handling.

    Examples:
        >>> normalize_location("s3:/bucket/data.zarr")
        's3://bucket/data.zarr'
        >>> normalize_location("/tmp/data.zarr")
        '/tmp/data.zarr'
    """
    location = str(location)
    for scheme in ("s3", "gs", "https", "http"):
        prefix = f"{scheme}:/"
        if location.startswith(prefix) and not location.startswith(prefix + "/"):
            return f"{scheme}://" + location[len(prefix) :]
    return location


def detect_container_type(location: str) -> ContainerType:
    """
    Infer the container kind from a location string.

    Examples:
        >>> detect_container_type("gs://bucket/img.zarr")
        <ContainerType.GOOGLE_CLOUD: 'gcs'>
        >>> detect_container_type("/data/img.zarr.zip")
        <ContainerType.ZIP: 'zip'>
    """
    location = normalize_location(location)
    if location.startswith("s3://"):
        return ContainerType.S3
    if location.startswith("gs://"):
        return ContainerType.GOOGLE_CLOUD
    if location.startswith(("http://", "https://")):
        return ContainerType.HTTP
    if location.endswith(".zip"):
        return ContainerType.ZIP
    if location.rstrip("/").endswith(".zarr") or os.path.isdir(location):
        return ContainerType.FILESYSTEM
    return ContainerType.UNKNOWN


def open_container(
    location: str,
    mode: str = "r",
    storage_options: Optional[Dict[str, Any]] = None,
) -> ZarrContainer:
    """
    Open a zarr container from a local path, zip archive or remote URI.

    Args:
        location: Path or URI of the container root
        mode: zarr access mode ("r", "r+", "a" or "w")
        storage_options: Options passed to ``fsspec`` for remote locations

    Returns:
        ZarrContainer wrapping the root group. The caller owns it; use it as a
        context manager or call ``close()`` when done. Zip archives opened for
        writing are only written out on ``close()``.

    Examples:
        >>> with open_container("/path/to/data.zarr") as container:
        ...     container.get_attributes("raw/c0")
    """
    location = normalize_location(location)
    container_type = detect_container_type(location)
    logger.debug("Opening %s container at %s (mode=%s)", container_type.name, location, mode)

    if container_type == ContainerType.UNKNOWN:
        logger.warning("Could not detect container type from location '%s'", location)

    if container_type == ContainerType.ZIP:
        if mode == "r":
            store = zarr.storage.ZipStore(location, mode="r")
            root = zarr.open_group(store, mode="r")
            return ZarrContainer(root, location=location, store=store)

        # zip archives are written through a staging directory, archived on close
        staging_dir = tempfile.TemporaryDirectory()
        if mode != "w" and os.path.exists(location):
            with zipfile.ZipFile(location) as zf:
                zf.extractall(staging_dir.name)
        root = zarr.open_group(staging_dir.name, mode=mode)
        return ZarrContainer(root, location=location, staging_dir=staging_dir)

    if storage_options and container_type in (
        ContainerType.S3,
        ContainerType.GOOGLE_CLOUD,
        ContainerType.HTTP,
    ):
        mapper = fsspec.get_mapper(location, **storage_options)
        root = zarr.open_group(mapper, mode=mode)
    else:
        root = zarr.open_group(location, mode=mode)

    return ZarrContainer(root, location=location)
