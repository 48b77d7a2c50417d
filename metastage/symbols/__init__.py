"""Namespace and symbol registry."""

from .registry import (
    NAMESPACE_SEPARATOR,
    Namespace,
    SymbolEntry,
    SymbolKind,
    SymbolRef,
    SymbolRegistry,
    coerce_kind,
    get_registry,
    reset_registry,
    split_qualified,
    validate_name,
    validate_namespace,
)

__all__ = [
    "NAMESPACE_SEPARATOR",
    "Namespace",
    "SymbolEntry",
    "SymbolKind",
    "SymbolRef",
    "SymbolRegistry",
    "coerce_kind",
    "get_registry",
    "reset_registry",
    "split_qualified",
    "validate_name",
    "validate_namespace",
]
