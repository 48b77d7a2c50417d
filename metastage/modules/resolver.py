"""
Source resolution for loadable units.

A resolver maps a dotted namespace path to the source bytes of the unit
that defines it, or raises :class:`NotFoundError`. Matching is
case-sensitive on every path segment, including on file systems that are
not, so a program resolves the same units everywhere.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Protocol, Sequence, Union

from metastage.errors import NotFoundError
from metastage.symbols.registry import NAMESPACE_SEPARATOR, validate_namespace


logger = logging.getLogger(__name__)

DEFAULT_EXTENSIONS = (".py",)


class SourceResolver(Protocol):
    def resolve(self, namespace_path: str) -> bytes:
        """Return the source bytes for ``namespace_path`` or raise NotFoundError."""

    def origin(self, namespace_path: str) -> str:
        """Human readable location of the unit, used in tracebacks and errors."""


def _has_exact_entry(directory: Path, entry: str) -> bool:
    try:
        return entry in os.listdir(directory)
    except OSError:
        return False


class FileSystemResolver:
    """
    Resolves ``app.shared.types`` to ``<search path>/app/shared/types<ext>``.

    Search paths are tried in order, and for each path every extension in
    order; the first match wins.
    """

    def __init__(
        self,
        search_paths: Optional[Sequence[Union[str, os.PathLike]]] = None,
        extensions: Sequence[str] = DEFAULT_EXTENSIONS,
    ) -> None:
        paths = search_paths if search_paths else [os.getcwd()]
        self.search_paths: List[Path] = [Path(p) for p in paths]
        self.extensions = tuple(extensions)

    def resolve_path(self, namespace_path: str) -> Optional[Path]:
        """Return the file defining ``namespace_path``, or None."""
        segments = validate_namespace(namespace_path).split(NAMESPACE_SEPARATOR)
        *directories, stem = segments
        for root in self.search_paths:
            current = root
            for directory in directories:
                if not _has_exact_entry(current, directory) or not (current / directory).is_dir():
                    break
                current = current / directory
            else:
                for ext in self.extensions:
                    filename = f"{stem}{ext}"
                    if _has_exact_entry(current, filename) and (current / filename).is_file():
                        return (current / filename).resolve()
        return None

    def resolve(self, namespace_path: str) -> bytes:
        path = self.resolve_path(namespace_path)
        if path is None:
            searched = ", ".join(str(p) for p in self.search_paths)
            raise NotFoundError(
                f"No unit file for '{namespace_path}' (searched: {searched})",
                namespace=namespace_path,
                hint=f"Expected {namespace_path.replace(NAMESPACE_SEPARATOR, '/')}"
                f"{self.extensions[0] if self.extensions else ''} under a search path.",
            )
        logger.debug(f"Resolved {namespace_path} to {path}")
        return path.read_bytes()

    def origin(self, namespace_path: str) -> str:
        path = self.resolve_path(namespace_path)
        return str(path) if path is not None else f"<unit {namespace_path}>"


class InMemoryResolver:
    """Resolver over a mapping of namespace path to source, for embedding and tests."""

    def __init__(self, sources: Optional[Mapping[str, Union[str, bytes]]] = None) -> None:
        self._sources: Dict[str, bytes] = {}
        for path, source in (sources or {}).items():
            self.add(path, source)

    def add(self, namespace_path: str, source: Union[str, bytes]) -> None:
        validate_namespace(namespace_path)
        self._sources[namespace_path] = source.encode("utf-8") if isinstance(source, str) else source

    def resolve(self, namespace_path: str) -> bytes:
        try:
            return self._sources[namespace_path]
        except KeyError:
            raise NotFoundError(f"No source registered for '{namespace_path}'", namespace=namespace_path) from None

    def origin(self, namespace_path: str) -> str:
        return f"<memory {namespace_path}>"
