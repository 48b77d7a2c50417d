"""Unit loading, source resolution and import/export between namespaces."""

from .exporter import EXPORT_DEFAULT, EXPORT_OK, ExportContract, export_symbols
from .loader import BEGIN_BLOCK, IMPORT_HOOK, UNIMPORT_HOOK, LoadedUnit, ModuleLoader, UnitPlan
from .resolver import FileSystemResolver, InMemoryResolver, SourceResolver

__all__ = [
    "BEGIN_BLOCK",
    "EXPORT_DEFAULT",
    "EXPORT_OK",
    "IMPORT_HOOK",
    "UNIMPORT_HOOK",
    "ExportContract",
    "FileSystemResolver",
    "InMemoryResolver",
    "LoadedUnit",
    "ModuleLoader",
    "SourceResolver",
    "UnitPlan",
    "export_symbols",
]
