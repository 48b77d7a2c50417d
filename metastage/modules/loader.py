"""
Staged loading of units into namespaces.

A unit is Python source found by a resolver under a dotted namespace path.
Loading it happens in two phases:

- Definition phase, in source order: every top-level ``def``/``class`` is
  compiled and registered as a callable of the namespace, and every
  top-level ``with begin:`` block runs immediately.
- Run phase: every other top-level statement runs, in source order.

Names assigned by top-level statements are declared before the definition
phase starts and hold ``UNASSIGNED`` until their assignment runs, so a
``begin`` block that reads one sees ``UNASSIGNED`` rather than the value
assigned later. Once the run phase completes, assigned public names are
registered as values of the namespace.

A unit cooperates with importers through ``__export__`` / ``__export_ok__``
and optional ``on_import`` / ``on_unimport`` functions.
"""

from __future__ import annotations

import ast
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from metastage.codegen.compiler import PythonCompiler, get_default_compiler
from metastage.config import LoaderSettings, WorkspaceConfig
from metastage.errors import CircularLoadError, LoadError, MetastageError, NotFoundError
from metastage.meta.protocol import MetaobjectProtocol
from metastage.modules.exporter import ExportContract, export_symbols
from metastage.modules.resolver import FileSystemResolver, SourceResolver
from metastage.runtime.phases import UNASSIGNED, PhaseScheduler, declare, get_scheduler
from metastage.symbols.registry import Namespace, SymbolKind, SymbolRegistry, get_registry, validate_namespace


logger = logging.getLogger(__name__)

BEGIN_BLOCK = "begin"
IMPORT_HOOK = "on_import"
UNIMPORT_HOOK = "on_unimport"

_DEFINITIONS = (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)


def _is_begin_block(node: ast.stmt) -> bool:
    return (
        isinstance(node, ast.With)
        and len(node.items) == 1
        and isinstance(node.items[0].context_expr, ast.Name)
        and node.items[0].context_expr.id == BEGIN_BLOCK
        and node.items[0].optional_vars is None
    )


def _assigned_names(node: ast.stmt) -> List[str]:
    if isinstance(node, ast.Assign):
        targets = node.targets
    elif isinstance(node, (ast.AnnAssign, ast.AugAssign)):
        targets = [node.target]
    else:
        return []
    names = []
    for target in targets:
        for sub in ast.walk(target):
            if isinstance(sub, ast.Name) and isinstance(sub.ctx, ast.Store):
                names.append(sub.id)
    return names


@dataclass
class UnitPlan:
    """Top-level statements of a unit split by phase."""

    definitions: List[Tuple[str, ast.stmt]] = field(default_factory=list)
    statements: List[ast.stmt] = field(default_factory=list)
    variables: List[str] = field(default_factory=list)

    @classmethod
    def from_module(cls, tree: ast.Module) -> "UnitPlan":
        plan = cls()
        for node in tree.body:
            if _is_begin_block(node):
                plan.definitions.append((BEGIN_BLOCK, node))
                for inner in node.body:
                    plan.variables.extend(_assigned_names(inner))
            elif isinstance(node, _DEFINITIONS):
                plan.definitions.append(("define", node))
            else:
                plan.statements.append(node)
                plan.variables.extend(_assigned_names(node))
        plan.variables = list(dict.fromkeys(plan.variables))
        return plan


@dataclass
class LoadedUnit:
    namespace: str
    origin: str
    defined: List[str] = field(default_factory=list)
    variables: List[str] = field(default_factory=list)


class ModuleLoader:
    """
    Loads units once per namespace and manages import/export between namespaces.

    Loading is serialized by the scheduler's lock, so a second loader of the
    same namespace waits and then sees the completed unit instead of running
    its top-level code again. The lock is re-entrant: units may load other
    units from their ``begin`` blocks.
    """

    def __init__(
        self,
        resolver: Optional[SourceResolver] = None,
        *,
        registry: Optional[SymbolRegistry] = None,
        scheduler: Optional[PhaseScheduler] = None,
        compiler: Optional[PythonCompiler] = None,
        protocol: Optional[MetaobjectProtocol] = None,
        settings: Optional[LoaderSettings] = None,
    ) -> None:
        self.settings = settings or LoaderSettings()
        self.resolver = resolver if resolver is not None else FileSystemResolver(
            self.settings.search_paths, self.settings.extensions
        )
        self.registry = registry if registry is not None else get_registry()
        self.scheduler = scheduler if scheduler is not None else get_scheduler()
        self.compiler = compiler if compiler is not None else get_default_compiler()
        self.protocol = protocol if protocol is not None else MetaobjectProtocol(
            self.registry, scheduler=self.scheduler
        )
        self._units: Dict[str, LoadedUnit] = {}
        self._loading: List[str] = []

    @classmethod
    def from_config(cls, config: WorkspaceConfig, **kwargs: Any) -> "ModuleLoader":
        settings = LoaderSettings(
            search_paths=config.effective_search_paths(),
            extensions=list(config.loader.extensions),
            import_target=config.loader.import_target,
        )
        return cls(settings=settings, **kwargs)

    @property
    def lock(self):
        return self.scheduler.lock

    def is_loaded(self, namespace_path: str) -> bool:
        return namespace_path in self._units

    def loaded_units(self) -> List[LoadedUnit]:
        return list(self._units.values())

    def unit(self, namespace_path: str) -> LoadedUnit:
        try:
            return self._units[namespace_path]
        except KeyError:
            raise NotFoundError(f"Unit '{namespace_path}' is not loaded", namespace=namespace_path) from None

    # Loading
    def require(self, namespace_path: str) -> Namespace:
        """Load the unit for ``namespace_path`` unless it is already loaded."""
        validate_namespace(namespace_path)
        with self.lock:
            if namespace_path in self._units:
                return self.registry.namespace(namespace_path)
            if namespace_path in self._loading:
                cycle = " -> ".join(self._loading + [namespace_path])
                raise CircularLoadError(
                    f"Circular load detected: {cycle}",
                    namespace=namespace_path,
                )
            self._loading.append(namespace_path)
            try:
                unit = self._load_unit(namespace_path)
            finally:
                self._loading.pop()
            self._units[namespace_path] = unit
        logger.info(
            f"Loaded {namespace_path} from {unit.origin}: "
            f"{len(unit.defined)} definitions, {len(unit.variables)} variables"
        )
        return self.registry.namespace(namespace_path)

    def _load_unit(self, namespace_path: str) -> LoadedUnit:
        try:
            origin = self.resolver.origin(namespace_path)
            source = self.resolver.resolve(namespace_path).decode("utf-8")
            tree = self.compiler.parse(source, filename=origin, namespace=namespace_path)
        except UnicodeDecodeError as exc:
            raise LoadError(f"Unit '{namespace_path}' is not valid UTF-8", namespace=namespace_path) from exc
        except OSError as exc:
            raise LoadError(
                f"Cannot read '{namespace_path}': {exc}",
                namespace=namespace_path,
            ) from exc
        except MetastageError as exc:
            raise LoadError(
                f"Cannot load '{namespace_path}': {exc.message}",
                namespace=namespace_path,
            ) from exc

        plan = UnitPlan.from_module(tree)
        scope = self.registry.namespace(namespace_path)
        self._install_helpers(scope)
        # A retry after a failed load must not see values from the failed run.
        declare(scope.bindings, plan.variables, reset=True)
        unit = LoadedUnit(namespace=namespace_path, origin=origin)

        try:
            self.scheduler.run_definition_block(
                lambda: self._define(scope, plan, origin, unit), unit=namespace_path
            )
            self.scheduler.run_phase(lambda: self._run(scope, plan, origin), unit=namespace_path)
        except LoadError:
            raise
        except Exception as exc:
            kind = getattr(exc, "code", None) or type(exc).__name__
            raise LoadError(
                f"Error while loading '{namespace_path}': {kind}: {exc}",
                namespace=namespace_path,
            ) from exc

        unit.variables = self._publish_variables(scope, plan.variables)
        return unit

    def _define(self, scope: Namespace, plan: UnitPlan, origin: str, unit: LoadedUnit) -> None:
        for step, node in plan.definitions:
            if step == BEGIN_BLOCK:
                code = self.compiler.compile_nodes(node.body, filename=origin, namespace=scope.path)
                exec(code, scope.bindings)
                continue
            code = self.compiler.compile_nodes([node], filename=origin, namespace=scope.path)
            exec(code, scope.bindings)
            self.registry.register(scope.path, node.name, SymbolKind.CALLABLE, scope.bindings[node.name])
            unit.defined.append(node.name)

    def _run(self, scope: Namespace, plan: UnitPlan, origin: str) -> None:
        if not plan.statements:
            return
        code = self.compiler.compile_nodes(plan.statements, filename=origin, namespace=scope.path)
        exec(code, scope.bindings)

    def _publish_variables(self, scope: Namespace, names: List[str]) -> List[str]:
        published = []
        for name in names:
            if name.startswith("_"):
                continue
            value = scope.bindings.get(name, UNASSIGNED)
            if value is UNASSIGNED:
                continue
            self.registry.register(scope.path, name, SymbolKind.VALUE, value)
            published.append(name)
        return published

    def _install_helpers(self, scope: Namespace) -> None:
        path = scope.path
        scope.bindings.update(
            {
                "__namespace__": path,
                "UNASSIGNED": UNASSIGNED,
                "meta": self.protocol.bound_to(path),
                "require": self.require,
                "use": lambda unit_path, *args: self.load(unit_path, *args, into=path),
                "no": lambda unit_path, *args: self.unload(unit_path, *args, into=path),
            }
        )

    # Import / export
    def _hook(self, namespace_path: str, hook_name: str) -> Optional[Callable[..., Any]]:
        entry = self.registry.lookup(namespace_path, hook_name, SymbolKind.CALLABLE)
        return entry.entity if entry is not None else None

    def export_contract(self, namespace_path: str) -> ExportContract:
        scope = self.require(namespace_path)
        return ExportContract.from_bindings(namespace_path, scope.bindings)

    def load(self, namespace_path: str, *args: Any, into: Optional[str] = None) -> Namespace:
        """
        Load a unit and import it into ``into``.

        When the unit defines ``on_import`` it is called with the target
        namespace and ``args``. Otherwise ``args`` are the names to import:
        none selects the unit's ``__export__`` list, any explicit list
        replaces it.
        """
        target = validate_namespace(into or self.settings.import_target)
        scope = self.require(namespace_path)
        hook = self._hook(namespace_path, IMPORT_HOOK)
        try:
            if hook is not None:
                hook(target, *args)
                logger.debug(f"Ran {namespace_path}.{IMPORT_HOOK} for {target}")
            else:
                contract = ExportContract.from_bindings(namespace_path, scope.bindings)
                export_symbols(self.registry, namespace_path, target, contract.select(list(args)))
        except MetastageError:
            raise
        except Exception as exc:
            raise LoadError(
                f"{IMPORT_HOOK} of '{namespace_path}' failed: {type(exc).__name__}: {exc}",
                namespace=namespace_path,
                name=IMPORT_HOOK,
            ) from exc
        return scope

    def unload(self, namespace_path: str, *args: Any, into: Optional[str] = None) -> None:
        """Call the unit's ``on_unimport`` if it has one; otherwise do nothing."""
        target = validate_namespace(into or self.settings.import_target)
        self.require(namespace_path)
        hook = self._hook(namespace_path, UNIMPORT_HOOK)
        if hook is None:
            return
        try:
            hook(target, *args)
        except MetastageError:
            raise
        except Exception as exc:
            raise LoadError(
                f"{UNIMPORT_HOOK} of '{namespace_path}' failed: {type(exc).__name__}: {exc}",
                namespace=namespace_path,
                name=UNIMPORT_HOOK,
            ) from exc
