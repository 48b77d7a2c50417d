"""
Export contract between a loaded unit and the namespaces importing it.

Importing copies entries, not bindings: the importer gets the entities the
unit exported at import time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from metastage.errors import ExportError, InvalidNameError
from metastage.runtime.phases import UNASSIGNED
from metastage.symbols.registry import SymbolKind, SymbolRegistry

logger = logging.getLogger(__name__)

# Names a unit assigns to declare its exports.
EXPORT_DEFAULT = "__export__"
EXPORT_OK = "__export_ok__"


def _name_list(value: Any, label: str, namespace: str) -> Tuple[str, ...]:
    if value is None or value is UNASSIGNED:
        return ()
    if isinstance(value, str):
        value = [value]
    try:
        names = tuple(value)
    except TypeError:
        raise InvalidNameError(f"{label} must be a sequence of names", namespace=namespace) from None
    for name in names:
        if not isinstance(name, str) or not name:
            raise InvalidNameError(f"{label} contains an invalid name {name!r}", namespace=namespace)
    return tuple(dict.fromkeys(names))


@dataclass(frozen=True)
class ExportContract:
    """
    ``default`` names are exported unless the importer asks for a specific
    list; ``exportable`` names are only exported when asked for. An explicit
    request replaces the defaults, it is never merged with them.
    """

    namespace: str
    default: Tuple[str, ...] = ()
    exportable: Tuple[str, ...] = ()

    @classmethod
    def from_bindings(cls, namespace: str, bindings: Mapping[str, Any]) -> "ExportContract":
        return cls(
            namespace=namespace,
            default=_name_list(bindings.get(EXPORT_DEFAULT), EXPORT_DEFAULT, namespace),
            exportable=_name_list(bindings.get(EXPORT_OK), EXPORT_OK, namespace),
        )

    @property
    def allowed(self) -> Tuple[str, ...]:
        return tuple(dict.fromkeys(self.default + self.exportable))

    def select(self, requested: Optional[Sequence[str]] = None) -> Tuple[str, ...]:
        if not requested:
            return self.default
        allowed = set(self.allowed)
        for name in requested:
            if name not in allowed:
                raise ExportError(
                    f"'{name}' is not exported by '{self.namespace}'",
                    namespace=self.namespace,
                    name=name,
                    hint=f"Exportable names: {', '.join(self.allowed) or 'none'}",
                )
        return tuple(dict.fromkeys(requested))


def export_symbols(
    registry: SymbolRegistry,
    source: str,
    target: str,
    names: Sequence[str],
) -> List[str]:
    """
    Bind every kind registered under each name in ``source`` into ``target``.

    The target entry refers to the same entity as the source entry at the
    time of the import. Imports are a snapshot: re-registering the name in
    ``source`` later does not rebind it in ``target``. Importers that need
    to follow later replacements hold a :meth:`SymbolRegistry.alias` on the
    source entry instead.
    """
    exported = []
    for name in names:
        entries = [registry.lookup(source, name, kind) for kind in SymbolKind]
        entries = [entry for entry in entries if entry is not None]
        if not entries:
            raise ExportError(
                f"'{source}' lists '{name}' as exported but never defines it",
                namespace=source,
                name=name,
            )
        for entry in entries:
            registry.register(target, name, entry.kind, entry.entity)
        exported.append(name)
    logger.debug(f"Exported {', '.join(exported) or 'nothing'} from {source} into {target}")
    return exported
