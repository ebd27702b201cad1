"""
Plugin manager for zarrij plugins.

Each call returns a new manager; there is no process-wide plugin state.
"""

from __future__ import annotations

import pluggy

from . import hookspecs

ENTRYPOINT_GROUP = "zarrij"


def get_plugin_manager(load_entrypoints: bool = False) -> pluggy.PluginManager:
    """
    Create a plugin manager with the built-in metadata styles registered.

    Args:
        load_entrypoints: Also register plugins advertised under the
            ``zarrij`` entry-point group of installed distributions

    Returns:
        PluginManager instance configured for zarrij plugins
    """
    from ..metadata import builtin

    pm = pluggy.PluginManager("zarrij")
    pm.add_hookspecs(hookspecs)
    pm.register(builtin, name="zarrij.builtin")
    if load_entrypoints:
        pm.load_setuptools_entrypoints(ENTRYPOINT_GROUP)
    return pm
