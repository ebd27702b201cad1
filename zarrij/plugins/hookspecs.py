"""
Plugin hook specifications for zarrij plugins.

A plugin is any object or module with functions marked ``@hookimpl`` that
match the specifications below. Plugins are registered on a plugin manager
(see :func:`zarrij.plugins.get_plugin_manager`) before a
:class:`~zarrij.metadata.MetadataRegistry` is built from it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List

import pluggy

if TYPE_CHECKING:
    from ..metadata.registry import RegistryConfig, StyleHandler

hookspec = pluggy.HookspecMarker("zarrij")
hookimpl = pluggy.HookimplMarker("zarrij")


@hookspec
def zarrij_style_handlers(config: "RegistryConfig") -> List["StyleHandler"]:
    """
    Return the metadata style handlers this plugin provides.

    Called once per registry construction. Style identifiers must be unique
    across all registered plugins.

    Args:
        config: Configuration of the registry being built

    Returns:
        List of StyleHandler instances
    """
