"""Adapters — host bindings for external integrations.

Public re-exports for convenient access.
"""

from hostprep.adapters.base import Adapter, Filesystem
from hostprep.adapters.mock import MemoryFilesystem, ScriptedRunner
from hostprep.adapters.registry import AdapterRegistry

__all__ = [
    "Adapter",
    "AdapterRegistry",
    "Filesystem",
    "MemoryFilesystem",
    "ScriptedRunner",
]
