"""Metaobjects: class and attribute descriptors, and the instances built from them."""

from __future__ import annotations

import functools
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterator, List, Optional, Tuple

from metastage.errors import NotFoundError
from metastage.runtime.phases import UNASSIGNED, ExecutionPhase
from metastage.symbols.registry import NAMESPACE_SEPARATOR

if TYPE_CHECKING:  # pragma: no cover - only for typing
    from metastage.meta.protocol import MetaobjectProtocol


@dataclass(frozen=True)
class AttributeDescriptor:
    """
    One slot of a class layout.

    ``default`` is a zero-argument generator called once per new object, so
    mutable defaults are never shared. ``reader`` and ``writer`` name accessor
    methods installed on the owning class.
    """

    name: str
    default: Optional[Callable[[], Any]] = None
    reader: Optional[str] = None
    writer: Optional[str] = None

    @property
    def has_default(self) -> bool:
        return self.default is not None

    def initial_value(self) -> Any:
        if self.default is None:
            return UNASSIGNED
        return self.default()

    def accessor_names(self) -> Tuple[str, ...]:
        return tuple(n for n in (self.reader, self.writer) if n)


@dataclass
class ClassDescriptor:
    """Structure of a class: ordered attributes, methods and superclass names."""

    name: str
    namespace: str
    attributes: List[AttributeDescriptor] = field(default_factory=list)
    methods: Dict[str, Callable[..., Any]] = field(default_factory=dict)
    superclasses: Tuple[str, ...] = ()
    defined_in: ExecutionPhase = ExecutionPhase.IDLE

    @property
    def qualified_name(self) -> str:
        return f"{self.namespace}{NAMESPACE_SEPARATOR}{self.name}"

    def attribute_names(self) -> List[str]:
        return [attr.name for attr in self.attributes]

    def get_attribute(self, name: str) -> Optional[AttributeDescriptor]:
        for attr in self.attributes:
            if attr.name == name:
                return attr
        return None

    def __repr__(self) -> str:
        return (
            f"<ClassDescriptor {self.qualified_name} "
            f"attributes={self.attribute_names()} methods={sorted(self.methods)}>"
        )


class Instance:
    """
    An object whose class is resolved by name on every method call.

    Slots are accessed with item syntax (``obj["color"]``), which is what
    generated accessors use. Methods can be called with :meth:`call` or as
    attributes (``obj.tighten()``).
    """

    __slots__ = ("_protocol", "class_name", "namespace", "_values")

    def __init__(
        self,
        protocol: "MetaobjectProtocol",
        namespace: str,
        class_name: str,
        values: Dict[str, Any],
    ) -> None:
        self._protocol = protocol
        self.class_name = class_name
        self.namespace = namespace
        self._values = values

    @property
    def meta(self) -> ClassDescriptor:
        return self._protocol.find_class(self.class_name, namespace=self.namespace)

    def _check_slot(self, name: str) -> None:
        names = [attr.name for attr in self._protocol.get_all_attributes(self.meta)]
        if name not in names:
            raise NotFoundError(
                f"Class '{self.class_name}' has no attribute '{name}'",
                namespace=self.namespace,
                name=name,
            )

    def __getitem__(self, name: str) -> Any:
        if name in self._values:
            return self._values[name]
        self._check_slot(name)
        return UNASSIGNED

    def __setitem__(self, name: str, value: Any) -> None:
        if name not in self._values:
            self._check_slot(name)
        self._values[name] = value

    def __contains__(self, name: str) -> bool:
        return name in self._values and self._values[name] is not UNASSIGNED

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def slots(self) -> Dict[str, Any]:
        return dict(self._values)

    def call(self, method: str, *args: Any, **kwargs: Any) -> Any:
        fn = self._protocol.find_method(self.meta, method)
        return fn(self, *args, **kwargs)

    def isa(self, class_name: str) -> bool:
        return any(cls.name == class_name for cls in self._protocol.class_precedence_list(self.meta))

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            fn = self._protocol.find_method(self.meta, name)
        except NotFoundError:
            raise AttributeError(
                f"'{self.class_name}' object has no method '{name}'"
            ) from None
        return functools.partial(fn, self)

    def __repr__(self) -> str:
        return f"<{self.namespace}{NAMESPACE_SEPARATOR}{self.class_name} {self._values!r}>"
