"""
Metaobject protocol.

Classes are :class:`ClassDescriptor` objects registered in the symbol
registry as ``value`` entries under their class name, so anything holding a
class name (instances, generated code, other namespaces) resolves the
current descriptor.

Redefinition rules:
- creating a class whose name is taken fails; ``replace_class`` is explicit
- adding an attribute whose name is taken fails
- adding a method whose name is taken silently replaces it
"""

from __future__ import annotations

import logging
import threading
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from metastage.codegen.closures import ClosureFactory, Template, get_closure_factory
from metastage.codegen.synthesizer import GETTER_TEMPLATE, SETTER_TEMPLATE, CodeSynthesizer, accessor_sources
from metastage.errors import DuplicateAttributeError, DuplicateClassError, InvalidNameError, NotFoundError
from metastage.meta.descriptors import AttributeDescriptor, ClassDescriptor, Instance
from metastage.runtime.phases import PhaseScheduler, get_scheduler
from metastage.symbols.registry import (
    NAMESPACE_SEPARATOR,
    SymbolKind,
    SymbolRegistry,
    get_registry,
    split_qualified,
    validate_name,
    validate_namespace,
)


logger = logging.getLogger(__name__)

ClassRef = Union[ClassDescriptor, str]

ACCESSOR_STRATEGIES = ("closure", "synthesize")

_GETTER_BODY = """
def getter(obj):
    return obj[attribute]
"""

_SETTER_BODY = """
def setter(obj, value):
    obj[attribute] = value
    return value
"""


class MetaobjectProtocol:
    """Create, mutate and introspect classes at run time."""

    def __init__(
        self,
        registry: Optional[SymbolRegistry] = None,
        *,
        namespace: str = "main",
        closures: Optional[ClosureFactory] = None,
        synthesizer: Optional[CodeSynthesizer] = None,
        scheduler: Optional[PhaseScheduler] = None,
    ) -> None:
        self.registry = registry if registry is not None else get_registry()
        self.namespace = validate_namespace(namespace)
        self.closures = closures if closures is not None else get_closure_factory()
        self._synthesizer = synthesizer
        self.scheduler = scheduler if scheduler is not None else get_scheduler()
        self._lock = threading.RLock()
        # Shared with every protocol returned by bound_to().
        self._templates: Dict[str, Template] = {}

    def bound_to(self, namespace: str) -> "MetaobjectProtocol":
        """Protocol sharing this one's collaborators with a different default namespace."""
        other = MetaobjectProtocol(
            self.registry,
            namespace=namespace,
            closures=self.closures,
            synthesizer=self._synthesizer,
            scheduler=self.scheduler,
        )
        other._lock = self._lock
        other._templates = self._templates
        return other

    @property
    def synthesizer(self) -> CodeSynthesizer:
        if self._synthesizer is None:
            self._synthesizer = CodeSynthesizer(self.registry, self.closures.compiler)
        return self._synthesizer

    # Class lookup
    def _locate(self, name: str, namespace: Optional[str]) -> Tuple[str, str]:
        if NAMESPACE_SEPARATOR in name:
            return split_qualified(name)
        return validate_namespace(namespace or self.namespace), validate_name(name, namespace)

    def find_class(self, name: str, *, namespace: Optional[str] = None) -> ClassDescriptor:
        target, class_name = self._locate(name, namespace)
        entity = self.registry.resolve(target, class_name, SymbolKind.VALUE)
        if not isinstance(entity, ClassDescriptor):
            raise NotFoundError(
                f"'{class_name}' in namespace '{target}' is not a class",
                namespace=target,
                name=class_name,
            )
        return entity

    def has_class(self, name: str, *, namespace: Optional[str] = None) -> bool:
        try:
            self.find_class(name, namespace=namespace)
        except NotFoundError:
            return False
        return True

    def _class(self, cls: ClassRef) -> ClassDescriptor:
        if isinstance(cls, ClassDescriptor):
            return self.find_class(cls.name, namespace=cls.namespace)
        return self.find_class(cls)

    # Creation
    def _build(
        self,
        name: str,
        attributes: Iterable[AttributeDescriptor],
        methods: Optional[Mapping[str, Callable[..., Any]]],
        superclasses: Sequence[ClassRef],
        namespace: Optional[str],
    ) -> ClassDescriptor:
        target, class_name = self._locate(name, namespace)

        layout: List[AttributeDescriptor] = []
        seen = set()
        for attr in attributes:
            validate_name(attr.name, target)
            if attr.name in seen:
                raise DuplicateAttributeError(
                    f"Attribute '{attr.name}' is listed twice for class '{class_name}'",
                    namespace=target,
                    name=attr.name,
                )
            seen.add(attr.name)
            layout.append(attr)

        table: Dict[str, Callable[..., Any]] = {}
        for method_name, fn in (methods or {}).items():
            validate_name(method_name, target)
            if not callable(fn):
                raise TypeError(f"Method '{method_name}' of '{class_name}' is not callable")
            table[method_name] = fn

        parents = []
        for parent in superclasses:
            parent_desc = self._class(parent) if isinstance(parent, ClassDescriptor) else self.find_class(
                parent, namespace=target
            )
            parents.append(parent_desc.qualified_name)

        for attr in layout:
            table.update(self._accessor_methods(attr, target))

        return ClassDescriptor(
            name=class_name,
            namespace=target,
            attributes=layout,
            methods=table,
            superclasses=tuple(parents),
            defined_in=self.scheduler.current_phase,
        )

    def create_class(
        self,
        name: str,
        attributes: Iterable[AttributeDescriptor] = (),
        methods: Optional[Mapping[str, Callable[..., Any]]] = None,
        *,
        superclasses: Sequence[ClassRef] = (),
        namespace: Optional[str] = None,
    ) -> ClassDescriptor:
        """Create and register a class; the registry is untouched if anything fails."""
        with self._lock:
            target, class_name = self._locate(name, namespace)
            if self.has_class(class_name, namespace=target):
                raise DuplicateClassError(
                    f"Class '{class_name}' already exists in namespace '{target}'",
                    namespace=target,
                    name=class_name,
                    hint="Use replace_class() to redefine it.",
                )
            descriptor = self._build(class_name, attributes, methods, superclasses, target)
            self.registry.register(target, class_name, SymbolKind.VALUE, descriptor)
        logger.info(
            f"Created class {descriptor.qualified_name} with {len(descriptor.attributes)} attributes, "
            f"{len(descriptor.methods)} methods during {descriptor.defined_in.value} phase"
        )
        return descriptor

    def replace_class(
        self,
        name: str,
        attributes: Iterable[AttributeDescriptor] = (),
        methods: Optional[Mapping[str, Callable[..., Any]]] = None,
        *,
        superclasses: Sequence[ClassRef] = (),
        namespace: Optional[str] = None,
    ) -> ClassDescriptor:
        """Explicitly (re)define a class, replacing any existing definition."""
        with self._lock:
            descriptor = self._build(name, attributes, methods, superclasses, namespace)
            self.registry.register(descriptor.namespace, descriptor.name, SymbolKind.VALUE, descriptor)
        logger.info(f"Replaced class {descriptor.qualified_name}")
        return descriptor

    def remove_class(self, cls: ClassRef) -> None:
        with self._lock:
            descriptor = self._class(cls)
            self.registry.unregister(descriptor.namespace, descriptor.name, SymbolKind.VALUE)
        logger.info(f"Removed class {descriptor.qualified_name}")

    # Mutation
    def add_attribute(self, cls: ClassRef, attr: AttributeDescriptor) -> ClassDescriptor:
        with self._lock:
            descriptor = self._class(cls)
            validate_name(attr.name, descriptor.namespace)
            if descriptor.get_attribute(attr.name) is not None:
                raise DuplicateAttributeError(
                    f"Class '{descriptor.name}' already has an attribute '{attr.name}'",
                    namespace=descriptor.namespace,
                    name=attr.name,
                )
            accessors = self._accessor_methods(attr, descriptor.namespace)
            descriptor.attributes.append(attr)
            descriptor.methods.update(accessors)
        logger.debug(f"Added attribute {attr.name} to {descriptor.qualified_name}")
        return descriptor

    def remove_attribute(self, cls: ClassRef, name: str) -> AttributeDescriptor:
        with self._lock:
            descriptor = self._class(cls)
            attr = descriptor.get_attribute(name)
            if attr is None:
                raise NotFoundError(
                    f"Class '{descriptor.name}' has no attribute '{name}'",
                    namespace=descriptor.namespace,
                    name=name,
                )
            descriptor.attributes.remove(attr)
            for method_name in attr.accessor_names():
                descriptor.methods.pop(method_name, None)
        return attr

    def add_method(self, cls: ClassRef, name: str, fn: Callable[..., Any]) -> ClassDescriptor:
        with self._lock:
            descriptor = self._class(cls)
            validate_name(name, descriptor.namespace)
            if not callable(fn):
                raise TypeError(f"Method '{name}' of '{descriptor.name}' is not callable")
            replaced = name in descriptor.methods
            descriptor.methods[name] = fn
        if replaced:
            logger.debug(f"Redefined method {name} on {descriptor.qualified_name}")
        return descriptor

    def remove_method(self, cls: ClassRef, name: str) -> Optional[Callable[..., Any]]:
        with self._lock:
            return self._class(cls).methods.pop(name, None)

    # Introspection
    def class_precedence_list(self, cls: ClassRef) -> Tuple[ClassDescriptor, ...]:
        """The class followed by its ancestors, depth-first, left to right, without repeats."""
        order: List[ClassDescriptor] = []
        seen = set()

        def visit(descriptor: ClassDescriptor) -> None:
            if descriptor.qualified_name in seen:
                return
            seen.add(descriptor.qualified_name)
            order.append(descriptor)
            for parent in descriptor.superclasses:
                visit(self.find_class(parent))

        visit(self._class(cls))
        return tuple(order)

    def get_all_attributes(self, cls: ClassRef) -> Tuple[AttributeDescriptor, ...]:
        """Attributes in layout order, inherited ones first."""
        layout: Dict[str, AttributeDescriptor] = {}
        for descriptor in reversed(self.class_precedence_list(cls)):
            for attr in descriptor.attributes:
                layout[attr.name] = attr
        return tuple(layout.values())

    def get_all_methods(self, cls: ClassRef) -> Mapping[str, Callable[..., Any]]:
        """Methods visible on the class; subclass definitions win."""
        table: Dict[str, Callable[..., Any]] = {}
        for descriptor in reversed(self.class_precedence_list(cls)):
            table.update(descriptor.methods)
        return MappingProxyType(table)

    def has_attribute(self, cls: ClassRef, name: str) -> bool:
        return any(attr.name == name for attr in self.get_all_attributes(cls))

    def has_method(self, cls: ClassRef, name: str) -> bool:
        return name in self.get_all_methods(cls)

    def find_method(self, cls: ClassRef, name: str) -> Callable[..., Any]:
        for descriptor in self.class_precedence_list(cls):
            fn = descriptor.methods.get(name)
            if fn is not None:
                return fn
        descriptor = self._class(cls)
        raise NotFoundError(
            f"Class '{descriptor.name}' has no method '{name}'",
            namespace=descriptor.namespace,
            name=name,
        )

    # Objects
    def new_object(self, cls: ClassRef, **init: Any) -> Instance:
        descriptor = self._class(cls)
        layout = self.get_all_attributes(descriptor)
        known = {attr.name for attr in layout}
        unknown = sorted(set(init) - known)
        if unknown:
            raise NotFoundError(
                f"Class '{descriptor.name}' has no attribute(s) {', '.join(unknown)}",
                namespace=descriptor.namespace,
                name=unknown[0],
            )
        values = {
            attr.name: init[attr.name] if attr.name in init else attr.initial_value()
            for attr in layout
        }
        return Instance(self, descriptor.namespace, descriptor.name, values)

    # Accessors
    def generate_accessors(
        self,
        attribute_name: str,
        *,
        strategy: str = "closure",
    ) -> Tuple[Callable[[Any], Any], Callable[[Any, Any], Any]]:
        """
        Build a ``(getter, setter)`` pair for ``attribute_name``.

        The default strategy instantiates two shared closure templates; the
        ``synthesize`` strategy renders and compiles fresh source per pair.
        """
        validate_name(attribute_name, self.namespace)
        if strategy == "closure":
            getter_template, setter_template = self._accessor_templates()
            getter = self.closures.instantiate(
                getter_template, {"attribute": attribute_name}, name=f"get_{attribute_name}"
            )
            setter = self.closures.instantiate(
                setter_template, {"attribute": attribute_name}, name=f"set_{attribute_name}"
            )
            return getter, setter
        if strategy == "synthesize":
            substitutions = accessor_sources(attribute_name)
            getter = self.synthesizer.synthesize(self.namespace, GETTER_TEMPLATE, substitutions)
            setter = self.synthesizer.synthesize(self.namespace, SETTER_TEMPLATE, substitutions)
            return getter, setter
        raise ValueError(
            f"Unknown accessor strategy '{strategy}', expected one of {', '.join(ACCESSOR_STRATEGIES)}"
        )

    def _accessor_templates(self) -> Tuple[Template, Template]:
        with self._lock:
            for role, body in (("getter", _GETTER_BODY), ("setter", _SETTER_BODY)):
                if role not in self._templates:
                    self._templates[role] = self.closures.build_template(["attribute"], body, name=role)
            return self._templates["getter"], self._templates["setter"]

    def _accessor_methods(self, attr: AttributeDescriptor, namespace: str) -> Dict[str, Callable[..., Any]]:
        if not attr.reader and not attr.writer:
            return {}
        getter, setter = self.generate_accessors(attr.name)
        methods = {}
        if attr.reader:
            methods[validate_name(attr.reader, namespace)] = getter
        if attr.writer:
            methods[validate_name(attr.writer, namespace)] = setter
        return methods


_default_protocol: Optional[MetaobjectProtocol] = None


def get_protocol() -> MetaobjectProtocol:
    """Protocol over the global registry, targeting the ``main`` namespace."""
    global _default_protocol
    if _default_protocol is None:
        _default_protocol = MetaobjectProtocol()
    return _default_protocol


def reset_protocol() -> None:
    global _default_protocol
    _default_protocol = None
