import numpy as np
import pytest
import zarr

from zarrij import MetadataRegistry, open_container

SHAPE = (100, 100, 10)
CHUNKS = (32, 32, 4)
VIEWER_ATTRS = {
    "pixelResolution": {"dimensions": [0.5, 0.5, 2.0], "unit": "um"},
    "downsamplingFactors": [1, 1, 1],
}


def make_dataset(root, path, data, chunks, attrs=None):
    """Create a dataset at a nested path of a zarr group."""
    parts = path.strip("/").split("/")
    group = root
    for part in parts[:-1]:
        group = group.require_group(part)
    arr = group.create_array(parts[-1], shape=data.shape, chunks=chunks, dtype=data.dtype)
    arr[...] = data
    if attrs:
        arr.attrs.update(attrs)
    return arr


def channel_data(channel, shape=SHAPE, dtype=np.uint16):
    """Deterministic pixel values that differ between channels."""
    values = np.arange(np.prod(shape)).reshape(shape) % 1000
    return (values + 1000 * channel).astype(dtype)


@pytest.fixture
def zarr_path(tmp_path):
    """Zarr container with two viewer-style channels and a few odd datasets."""
    path = tmp_path / "input.zarr"
    root = zarr.open_group(str(path), mode="w")

    make_dataset(root, "raw/c0/s0", channel_data(0), CHUNKS, VIEWER_ATTRS)
    make_dataset(root, "raw/c1/s0", channel_data(1), CHUNKS, VIEWER_ATTRS)
    make_dataset(
        root,
        "raw/c0/s1",
        channel_data(0, shape=(50, 50, 5)),
        (32, 32, 4),
        {**VIEWER_ATTRS, "downsamplingFactors": [2, 2, 2]},
    )
    make_dataset(root, "short", channel_data(2, shape=(100, 100, 9)), CHUNKS)
    make_dataset(root, "flat", channel_data(3, shape=(40, 30)), (16, 16))
    make_dataset(
        root,
        "broken",
        channel_data(4),
        CHUNKS,
        {"pixelResolution": {"dimensions": [0.5, 0.5], "unit": "um"}},
    )

    return path


@pytest.fixture
def container(zarr_path):
    """Writable ZarrContainer over the sample data."""
    with open_container(str(zarr_path), mode="a") as container:
        yield container


@pytest.fixture
def registry():
    """Registry with the built-in styles."""
    return MetadataRegistry()
