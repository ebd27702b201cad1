"""
zarrij plugins package.

Metadata styles beyond the built-in ones are contributed through the
``zarrij_style_handlers`` hook using the pluggy framework.
"""

from .hookspecs import hookimpl, hookspec
from .plugin_manager import ENTRYPOINT_GROUP, get_plugin_manager

__all__ = [
    "ENTRYPOINT_GROUP",
    "get_plugin_manager",
    "hookimpl",
    "hookspec",
]
