"""CLI commands for loading units and inspecting namespaces."""

from __future__ import annotations

import argparse
import sys

from rich.console import Console
from rich.table import Table

from metastage.config import WorkspaceConfig
from metastage.errors import MetastageError
from metastage.meta.descriptors import ClassDescriptor
from metastage.modules.loader import ModuleLoader
from metastage.runtime.phases import PhaseScheduler
from metastage.symbols.registry import SymbolEntry, SymbolRegistry

console = Console()


def _fresh_loader(config: WorkspaceConfig) -> ModuleLoader:
    return ModuleLoader.from_config(config, registry=SymbolRegistry(), scheduler=PhaseScheduler())


def _report(error: MetastageError) -> int:
    print(f"Error: {error.format()}", file=sys.stderr)
    return 1


def _describe(entry: SymbolEntry) -> str:
    entity = entry.entity
    if isinstance(entity, ClassDescriptor):
        return f"class ({', '.join(entity.attribute_names()) or 'no attributes'})"
    if callable(entity):
        return getattr(entity, "__qualname__", type(entity).__name__)
    text = repr(entity)
    return text if len(text) <= 60 else text[:57] + "..."


def cmd_load(args: argparse.Namespace, config: WorkspaceConfig) -> int:
    """Load a unit, import it into the target namespace and list what arrived."""
    loader = _fresh_loader(config)
    target = config.loader.import_target
    try:
        loader.load(args.namespace, *args.names, into=target)
    except MetastageError as exc:
        return _report(exc)

    unit = loader.unit(args.namespace)
    imported = [entry.name for entry in loader.registry.symbols(target)]
    print(f"Loaded {args.namespace} from {unit.origin}")
    print(f"Imported into {target}: {', '.join(dict.fromkeys(imported)) or 'nothing'}")
    return 0


def cmd_symbols(args: argparse.Namespace, config: WorkspaceConfig) -> int:
    """Load a unit and print the entries of its namespace."""
    loader = _fresh_loader(config)
    try:
        loader.require(args.namespace)
    except MetastageError as exc:
        return _report(exc)

    entries = loader.registry.symbols(args.namespace)
    if args.format == 'json':
        console.print_json(
            data=[
                {"name": e.name, "kind": e.kind.value, "entity": _describe(e)}
                for e in entries
            ]
        )
        return 0

    table = Table(title=f"Symbols in {args.namespace} ({len(entries)})")
    table.add_column("Name", style="bold blue")
    table.add_column("Kind", style="green")
    table.add_column("Entity", style="white", max_width=60)
    for entry in entries:
        table.add_row(entry.name, entry.kind.value, _describe(entry))
    console.print(table)
    return 0
