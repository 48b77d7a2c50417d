"""Process-wide symbol registry keyed by namespace, name and kind."""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from metastage.errors import InvalidNameError, NotFoundError


logger = logging.getLogger(__name__)

NAMESPACE_SEPARATOR = "."

_SEGMENT_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class SymbolKind(str, Enum):
    """Kind tag of a symbol entry."""

    VALUE = "value"
    CALLABLE = "callable"


KindLike = Union[SymbolKind, str]


def coerce_kind(kind: KindLike) -> SymbolKind:
    if isinstance(kind, SymbolKind):
        return kind
    try:
        return SymbolKind(str(kind).lower())
    except ValueError:
        raise InvalidNameError(
            f"Unknown symbol kind '{kind}'",
            code="INVALID_KIND",
            hint="Use 'value' or 'callable'.",
        ) from None


def validate_namespace(path: str) -> str:
    """Return ``path`` if it is a well formed dotted namespace path."""
    if not isinstance(path, str) or not path:
        raise InvalidNameError("Namespace path must be a non-empty string", namespace=str(path))
    for segment in path.split(NAMESPACE_SEPARATOR):
        if not _SEGMENT_PATTERN.match(segment):
            raise InvalidNameError(
                f"Invalid namespace segment '{segment}' in '{path}'",
                namespace=path,
            )
    return path


def validate_name(name: str, namespace: Optional[str] = None) -> str:
    """Return ``name`` if it can be registered as a symbol."""
    if not isinstance(name, str) or not name:
        raise InvalidNameError("Symbol name must be a non-empty string", namespace=namespace)
    if NAMESPACE_SEPARATOR in name:
        raise InvalidNameError(
            f"Symbol name '{name}' contains the namespace separator '{NAMESPACE_SEPARATOR}'",
            namespace=namespace,
            name=name,
            hint="Register the symbol in the nested namespace instead.",
        )
    return name


def split_qualified(qualified: str) -> Tuple[str, str]:
    """Split ``A.B.name`` into ``("A.B", "name")``."""
    namespace, sep, name = qualified.rpartition(NAMESPACE_SEPARATOR)
    if not sep:
        raise InvalidNameError(f"'{qualified}' is not a qualified symbol name", name=qualified)
    return validate_namespace(namespace), validate_name(name, namespace)


@dataclass(frozen=True)
class SymbolEntry:
    """A single binding; replaced wholesale, never mutated in place."""

    namespace: str
    name: str
    kind: SymbolKind
    entity: Any

    @property
    def qualified_name(self) -> str:
        return f"{self.namespace}{NAMESPACE_SEPARATOR}{self.name}"


@dataclass
class Namespace:
    """
    A dotted-path scope owning symbol entries.

    ``bindings`` is the globals mapping that code compiled in this namespace
    executes against. Registrations are mirrored into it so compiled code
    always sees the current entity of a name.
    """

    path: str
    entries: Dict[Tuple[str, SymbolKind], SymbolEntry] = field(default_factory=dict)
    bindings: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.bindings.setdefault("__name__", self.path)

    def get(self, name: str, kind: SymbolKind) -> Optional[SymbolEntry]:
        return self.entries.get((name, kind))

    def names(self) -> List[str]:
        return sorted({name for name, _ in self.entries})

    def __len__(self) -> int:
        return len(self.entries)


class SymbolRef:
    """
    Live handle on a ``(namespace, name, kind)`` entry.

    Every access resolves again, so holders observe replacements made after
    the handle was created. Calling a handle forwards to the current entity.
    """

    __slots__ = ("_registry", "namespace", "name", "kind")

    def __init__(self, registry: "SymbolRegistry", namespace: str, name: str, kind: SymbolKind) -> None:
        self._registry = registry
        self.namespace = namespace
        self.name = name
        self.kind = kind

    def get(self) -> Any:
        return self._registry.resolve(self.namespace, self.name, self.kind)

    def exists(self) -> bool:
        return self._registry.exists(self.namespace, self.name, self.kind)

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        return self.get()(*args, **kwargs)

    def __repr__(self) -> str:
        return f"SymbolRef({self.namespace}{NAMESPACE_SEPARATOR}{self.name}, {self.kind.value})"


class SymbolRegistry:
    """
    Mapping from ``(namespace, name, kind)`` to an entity.

    Writes are serialized by a lock. Reads are a single dictionary lookup on
    an immutable entry, so a resolver never observes a half-written entity
    and never waits on a writer.
    """

    def __init__(self) -> None:
        self._namespaces: Dict[str, Namespace] = {}
        self._lock = threading.RLock()

    # Namespaces
    def namespace(self, path: str) -> Namespace:
        """Get or lazily create the namespace at ``path``."""
        existing = self._namespaces.get(path)
        if existing is not None:
            return existing
        validate_namespace(path)
        with self._lock:
            existing = self._namespaces.get(path)
            if existing is None:
                existing = Namespace(path=path)
                self._namespaces[path] = existing
                logger.debug(f"Created namespace {path}")
            return existing

    def find_namespace(self, path: str) -> Optional[Namespace]:
        return self._namespaces.get(path)

    def namespaces(self) -> List[str]:
        return sorted(self._namespaces)

    # Entries
    def register(self, namespace: str, name: str, kind: KindLike, entity: Any) -> None:
        """Bind ``entity``; an existing entry with the same key is replaced."""
        validate_namespace(namespace)
        validate_name(name, namespace)
        kind = coerce_kind(kind)
        entry = SymbolEntry(namespace=namespace, name=name, kind=kind, entity=entity)
        with self._lock:
            scope = self.namespace(namespace)
            replaced = (name, kind) in scope.entries
            scope.entries[(name, kind)] = entry
            scope.bindings[name] = entity
        logger.debug(
            f"{'Replaced' if replaced else 'Registered'} {kind.value} {entry.qualified_name}"
        )

    def resolve(self, namespace: str, name: str, kind: KindLike) -> Any:
        """Return the current entity bound at the exact key."""
        kind = coerce_kind(kind)
        scope = self._namespaces.get(namespace)
        entry = scope.get(name, kind) if scope is not None else None
        if entry is None:
            raise NotFoundError(
                f"No {kind.value} symbol '{name}' in namespace '{namespace}'",
                namespace=namespace,
                name=name,
                kind=kind.value,
            )
        return entry.entity

    def lookup(self, namespace: str, name: str, kind: KindLike) -> Optional[SymbolEntry]:
        """Like :meth:`resolve` but returns the entry, or ``None`` when absent."""
        scope = self._namespaces.get(namespace)
        if scope is None:
            return None
        return scope.get(name, coerce_kind(kind))

    def exists(self, namespace: str, name: str, kind: KindLike) -> bool:
        return self.lookup(namespace, name, kind) is not None

    def unregister(self, namespace: str, name: str, kind: KindLike) -> None:
        """Remove the entry if present; absent keys are ignored."""
        kind = coerce_kind(kind)
        with self._lock:
            scope = self._namespaces.get(namespace)
            if scope is None:
                return
            entry = scope.entries.pop((name, kind), None)
            if entry is None:
                return
            # The other kind under the same name keeps the binding alive.
            remaining = [e for (n, _), e in scope.entries.items() if n == name]
            if remaining:
                scope.bindings[name] = remaining[-1].entity
            elif scope.bindings.get(name) is entry.entity:
                del scope.bindings[name]
        logger.debug(f"Unregistered {kind.value} {entry.qualified_name}")

    def alias(self, namespace: str, name: str, kind: KindLike) -> SymbolRef:
        """Return a live handle; the key does not need to exist yet."""
        validate_namespace(namespace)
        validate_name(name, namespace)
        return SymbolRef(self, namespace, name, coerce_kind(kind))

    def symbols(self, namespace: str) -> List[SymbolEntry]:
        """Snapshot of a namespace's entries sorted by name then kind."""
        scope = self._namespaces.get(namespace)
        if scope is None:
            return []
        entries = list(scope.entries.values())
        return sorted(entries, key=lambda e: (e.name, e.kind.value))

    def reset(self) -> None:
        with self._lock:
            self._namespaces.clear()


# Global registry instance
_global_registry: Optional[SymbolRegistry] = None
_global_lock = threading.Lock()


def get_registry() -> SymbolRegistry:
    """Get the process-wide registry instance."""
    global _global_registry
    if _global_registry is None:
        with _global_lock:
            if _global_registry is None:
                _global_registry = SymbolRegistry()
    return _global_registry


def reset_registry() -> None:
    """Reset the global registry (for testing)."""
    global _global_registry
    _global_registry = None
