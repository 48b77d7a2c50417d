"""
Template-based code generation.

A template is compiled once into a factory function whose parameters are
the template's captured names. Each instantiation calls the factory, which
produces a fresh closure: all instances share one code object and differ
only in their captured cells.
"""

from __future__ import annotations

import ast
import keyword
import logging
import textwrap
import types
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, MutableMapping, Optional, Sequence, Tuple

from metastage.codegen.compiler import PythonCompiler, get_default_compiler
from metastage.errors import InvalidNameError, MetaSyntaxError, TemplateParameterError


logger = logging.getLogger(__name__)

_FACTORY_NAME = "__template_factory__"


@dataclass
class Template:
    """A once-compiled body parameterized by named captured values."""

    name: str
    parameter_names: Tuple[str, ...]
    source: str
    code: types.CodeType
    factory: Callable[..., Callable[..., Any]] = field(repr=False)
    instances: int = 0

    @property
    def free_variables(self) -> Tuple[str, ...]:
        return tuple(self.code.co_freevars)


def _validate_parameters(parameter_names: Sequence[str]) -> Tuple[str, ...]:
    names = tuple(parameter_names)
    seen = set()
    for name in names:
        if not isinstance(name, str) or not name.isidentifier() or keyword.iskeyword(name):
            raise InvalidNameError(f"Invalid template parameter name '{name}'", name=str(name))
        if name in seen:
            raise InvalidNameError(f"Duplicate template parameter '{name}'", name=name)
        seen.add(name)
    return names


class ClosureFactory:
    """Builds templates and instantiates closures from them."""

    def __init__(self, compiler: Optional[PythonCompiler] = None) -> None:
        self.compiler = compiler if compiler is not None else get_default_compiler()
        self.compile_count = 0

    def build_template(
        self,
        parameter_names: Sequence[str],
        body_spec: str,
        *,
        name: Optional[str] = None,
        bindings: Optional[MutableMapping[str, Any]] = None,
    ) -> Template:
        """
        Compile ``body_spec`` once.

        ``body_spec`` is the source of a single function definition or a
        lambda expression; the parameter names are the free variables it
        closes over. ``bindings`` is the globals mapping the body sees for
        every other name (a private one by default).
        """
        parameters = _validate_parameters(parameter_names)
        body = textwrap.dedent(body_spec).strip("\n")
        tree = self.compiler.parse(body, filename=f"<template {name or 'anonymous'}>")
        if len(tree.body) != 1:
            raise MetaSyntaxError("Template body must be exactly one function definition or lambda", name=name)
        node = tree.body[0]

        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            inner_name = node.name
            returned = inner_name
        elif isinstance(node, ast.Expr) and isinstance(node.value, ast.Lambda):
            inner_name = "<lambda>"
            returned = f"(\n{body}\n)"
            body = ""
        else:
            raise MetaSyntaxError(
                f"Template body must be a function definition or lambda, got {type(node).__name__}",
                name=name,
                line=getattr(node, "lineno", None),
            )

        template_name = name or (inner_name if inner_name != "<lambda>" else "lambda")
        lines = [f"def {_FACTORY_NAME}({', '.join(parameters)}):"]
        if body:
            lines.append(textwrap.indent(body, "    "))
        lines.append(f"    return {returned}")
        factory_source = "\n".join(lines) + "\n"

        filename = f"<template {template_name}>"
        code = self.compiler.compile_nodes(
            self.compiler.parse(factory_source, filename=filename).body,
            filename=filename,
        )
        scope: Dict[str, Any] = {}
        exec(code, bindings if bindings is not None else {"__name__": f"metastage.templates.{template_name}"}, scope)
        factory = scope[_FACTORY_NAME]
        self.compile_count += 1

        inner_code = next(
            const
            for const in factory.__code__.co_consts
            if isinstance(const, types.CodeType) and const.co_name == inner_name
        )
        logger.debug(
            f"Compiled template {template_name} over ({', '.join(parameters)}) "
            f"capturing {inner_code.co_freevars}"
        )
        return Template(
            name=template_name,
            parameter_names=parameters,
            source=factory_source,
            code=inner_code,
            factory=factory,
        )

    def instantiate(
        self,
        template: Template,
        bound_values: Mapping[str, Any],
        *,
        name: Optional[str] = None,
    ) -> Callable[..., Any]:
        """Return a new closure over ``bound_values`` sharing the template's body."""
        expected = set(template.parameter_names)
        provided = set(bound_values)
        if expected != provided:
            missing = sorted(expected - provided)
            unexpected = sorted(provided - expected)
            details = []
            if missing:
                details.append(f"missing {', '.join(missing)}")
            if unexpected:
                details.append(f"unexpected {', '.join(unexpected)}")
            raise TemplateParameterError(
                f"Bindings for template '{template.name}' do not match its parameters: {'; '.join(details)}",
                name=template.name,
            )
        instance = template.factory(*(bound_values[p] for p in template.parameter_names))
        if name:
            instance.__name__ = name
            instance.__qualname__ = name
        template.instances += 1
        return instance


_default_factory: Optional[ClosureFactory] = None


def get_closure_factory() -> ClosureFactory:
    global _default_factory
    if _default_factory is None:
        _default_factory = ClosureFactory()
    return _default_factory
