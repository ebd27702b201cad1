"""
Tests for pluggy-based style plugins.

This module tests that the plugin manager provides the built-in styles and
that extra metadata styles contributed by plugins are resolved when a
registry is constructed.
"""

from typing import ClassVar, Tuple

import numpy as np
import pytest
from attrs import field, frozen

from zarrij import CalibrationFields, MetadataRegistry, StyleHandler
from zarrij.metadata import MetadataStyle
from zarrij.metadata.calibration import float_tuple
from zarrij.plugins import ENTRYPOINT_GROUP, get_plugin_manager, hookimpl


@frozen(kw_only=True)
class VoxelSizeMetadata(MetadataStyle):
    style_id: ClassVar[str] = "voxel-size"

    voxel_size: Tuple[float, ...] = field(converter=float_tuple)


class VoxelSizePlugin:
    """Plugin storing spacing under a single ``voxelSize`` key."""

    @hookimpl
    def zarrij_style_handlers(self, config):
        return [
            StyleHandler(
                style_id="voxel-size",
                parse=lambda attrs, path, dataset: VoxelSizeMetadata(
                    path=path, attributes=dataset, voxel_size=attrs["voxelSize"]
                ),
                write=lambda style: {"voxelSize": list(style.voxel_size)},
                to_calibration=lambda style: CalibrationFields(spacing=style.voxel_size),
                from_calibration=lambda calibration, path: VoxelSizeMetadata(
                    path=path, voxel_size=calibration.spacing
                ),
                description="Spacing only",
            )
        ]


class DuplicateViewerPlugin:
    """Plugin that clashes with a built-in style identifier."""

    @hookimpl
    def zarrij_style_handlers(self, config):
        from zarrij.metadata.builtin import BUILTIN_HANDLERS

        return [h for h in BUILTIN_HANDLERS if h.style_id == "viewer"]


class TestPluggyPluginManager:
    """Test pluggy plugin manager functionality."""

    def test_plugin_manager_creation(self):
        """Test that we can create a plugin manager."""
        pm = get_plugin_manager()
        assert pm is not None
        assert pm.project_name == "zarrij"
        assert ENTRYPOINT_GROUP == "zarrij"

    def test_builtin_styles_are_registered(self):
        """Test that the built-in styles module is registered by default."""
        pm = get_plugin_manager()
        assert pm.get_plugin("zarrij.builtin") is not None

    def test_managers_are_independent(self):
        """Test that registering on one manager does not affect another."""
        pm = get_plugin_manager()
        pm.register(VoxelSizePlugin())
        assert "voxel-size" not in MetadataRegistry(plugin_manager=get_plugin_manager())
        assert "voxel-size" in MetadataRegistry(plugin_manager=pm)

    def test_load_entrypoints(self):
        """Test that loading entry points without plugins installed is harmless."""
        registry = MetadataRegistry(plugin_manager=get_plugin_manager(load_entrypoints=True))
        assert "viewer" in registry


class TestPluginStyles:
    """Test registries built with extra plugin styles."""

    @pytest.fixture
    def plugin_registry(self):
        pm = get_plugin_manager()
        pm.register(VoxelSizePlugin())
        return MetadataRegistry(plugin_manager=pm)

    def test_plugin_style_round_trip(self, plugin_registry, container):
        container.write_region("vs", np.zeros((4, 4), np.uint8), (4, 4), "raw")
        calibration = CalibrationFields(spacing=(0.3, 0.7))

        style = plugin_registry.from_image("voxel-size", calibration, "vs")
        plugin_registry.write(style, container, "vs")
        assert container.get_raw_attribute_map("vs") == {"voxelSize": [0.3, 0.7]}

        parsed = plugin_registry.parse(container, "vs", "voxel-size")
        assert plugin_registry.to_calibration(parsed, ndim=2).calibration.spacing == (0.3, 0.7)

    def test_plugin_style_uses_default_channel_layout(self, plugin_registry):
        assert plugin_registry.splits_channels("voxel-size")
        assert not plugin_registry.is_multiscale("voxel-size")

    def test_duplicate_style_rejected(self):
        pm = get_plugin_manager()
        pm.register(DuplicateViewerPlugin())
        with pytest.raises(ValueError, match="registered twice"):
            MetadataRegistry(plugin_manager=pm)
