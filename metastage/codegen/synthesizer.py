"""
Source synthesis strategy.

Placeholders in a source template are substituted textually using Jinja2
(``{{ name }}``, no escaping) and the resulting Python source is compiled
against the bindings of a namespace. Every call renders and compiles from
scratch; use :mod:`metastage.codegen.closures` when many callables share one
body.
"""

from __future__ import annotations

import itertools
import logging
from typing import Any, Callable, Dict, Mapping, Optional, Set

from jinja2 import StrictUndefined, TemplateSyntaxError, UndefinedError
from jinja2.meta import find_undeclared_variables
from jinja2.sandbox import SandboxedEnvironment

from metastage.codegen.compiler import PythonCompiler, get_default_compiler
from metastage.errors import UnterminatedTemplateError
from metastage.symbols.registry import SymbolKind, SymbolRegistry, get_registry, validate_namespace


logger = logging.getLogger(__name__)


class CodeSynthesizer:
    """
    Generate-then-compile code generation bound to a namespace.

    ``synthesize`` does not register anything: callers that want the result
    visible under a name call :meth:`SymbolRegistry.register` afterwards, and
    a reader resolving that name in between sees ``NotFoundError``.
    """

    def __init__(
        self,
        registry: Optional[SymbolRegistry] = None,
        compiler: Optional[PythonCompiler] = None,
    ) -> None:
        self.registry = registry if registry is not None else get_registry()
        self.compiler = compiler if compiler is not None else get_default_compiler()
        self.env = SandboxedEnvironment(
            autoescape=False,
            undefined=StrictUndefined,
            keep_trailing_newline=True,
        )
        self.compile_count = 0
        self._serial = itertools.count(1)

    def placeholders(self, source_template: str) -> Set[str]:
        """Names referenced by placeholders in ``source_template``."""
        try:
            return set(find_undeclared_variables(self.env.parse(source_template)))
        except TemplateSyntaxError as exc:
            raise UnterminatedTemplateError(
                f"Malformed placeholder at line {exc.lineno}: {exc.message}",
            ) from exc

    def render(self, source_template: str, substitutions: Mapping[str, str]) -> str:
        """Substitute placeholders without compiling."""
        try:
            template = self.env.from_string(source_template)
        except TemplateSyntaxError as exc:
            raise UnterminatedTemplateError(
                f"Malformed placeholder at line {exc.lineno}: {exc.message}",
                hint="Every '{{' needs a matching '}}'.",
            ) from exc
        try:
            return template.render(**{key: str(value) for key, value in substitutions.items()})
        except UndefinedError as exc:
            missing = sorted(self.placeholders(source_template) - set(substitutions))
            raise UnterminatedTemplateError(
                f"Placeholder without substitution: {', '.join(missing) or exc.message}",
                name=missing[0] if missing else None,
            ) from exc

    def synthesize(
        self,
        namespace: str,
        source_template: str,
        substitutions: Optional[Mapping[str, str]] = None,
    ) -> Callable[..., Any]:
        """Render ``source_template`` and compile it against ``namespace``'s bindings."""
        validate_namespace(namespace)
        source = self.render(source_template, substitutions or {})
        scope = self.registry.namespace(namespace)
        filename = f"<synthesized {namespace}#{next(self._serial)}>"
        result = self.compiler.compile(source, scope.bindings, filename=filename, namespace=namespace)
        self.compile_count += 1
        logger.debug(f"Synthesized {filename} ({len(source)} chars)")
        return result

    def synthesize_and_register(
        self,
        namespace: str,
        name: str,
        source_template: str,
        substitutions: Optional[Mapping[str, str]] = None,
        *,
        kind: SymbolKind = SymbolKind.CALLABLE,
    ) -> Callable[..., Any]:
        """Synthesize, then register under ``name``. The two steps are not atomic."""
        result = self.synthesize(namespace, source_template, substitutions)
        self.registry.register(namespace, name, kind, result)
        return result


def accessor_sources(attribute_name: str) -> Dict[str, str]:
    """Substitutions used to synthesize an accessor pair for ``attribute_name``."""
    return {"attribute": repr(attribute_name)}


GETTER_TEMPLATE = "lambda obj: obj[{{ attribute }}]"

SETTER_TEMPLATE = (
    "def setter(obj, value):\n"
    "    obj[{{ attribute }}] = value\n"
    "    return value\n"
)
