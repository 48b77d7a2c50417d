"""Compiler collaborator: turns Python source text into callables bound to a context."""

from __future__ import annotations

import ast
import logging
from typing import Any, Callable, List, MutableMapping, Optional

from metastage.errors import MetaSyntaxError


logger = logging.getLogger(__name__)

_DEFINITIONS = (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)


class PythonCompiler:
    """
    Compiles source against a binding context.

    The binding context is the globals mapping of a namespace: the compiled
    callable keeps a reference to it, so later writes to the namespace are
    visible to the callable when it runs.

    Accepted source shapes:
    - a single ``def``/``async def``/``class`` statement
    - a single expression evaluating to a callable (typically a ``lambda``)
    """

    def parse(self, source: str, *, filename: str = "<metastage>", namespace: Optional[str] = None) -> ast.Module:
        """Parse ``source`` into a module AST, mapping syntax errors to :class:`MetaSyntaxError`."""
        try:
            return ast.parse(source, filename=filename)
        except SyntaxError as exc:
            raise MetaSyntaxError(
                f"Invalid syntax in {filename}: {exc.msg}",
                namespace=namespace,
                line=exc.lineno,
                column=exc.offset,
            ) from exc

    def compile_nodes(
        self,
        nodes: List[ast.stmt],
        *,
        filename: str = "<metastage>",
        namespace: Optional[str] = None,
    ):
        """Compile a list of top-level statements into one code object."""
        module = ast.Module(body=list(nodes), type_ignores=[])
        try:
            return compile(module, filename, "exec", dont_inherit=True)
        except SyntaxError as exc:
            raise MetaSyntaxError(
                f"Invalid syntax in {filename}: {exc.msg}",
                namespace=namespace,
                line=exc.lineno,
                column=exc.offset,
            ) from exc

    def compile(
        self,
        source: str,
        bindings: MutableMapping[str, Any],
        *,
        filename: str = "<metastage>",
        namespace: Optional[str] = None,
    ) -> Callable[..., Any]:
        tree = self.parse(source, filename=filename, namespace=namespace)
        if len(tree.body) != 1:
            raise MetaSyntaxError(
                f"Source must contain exactly one definition or expression, found {len(tree.body)} statements",
                namespace=namespace,
            )
        node = tree.body[0]

        if isinstance(node, ast.Expr):
            expression = ast.Expression(body=node.value)
            try:
                code = compile(expression, filename, "eval", dont_inherit=True)
            except SyntaxError as exc:
                raise MetaSyntaxError(
                    f"Invalid syntax in {filename}: {exc.msg}",
                    namespace=namespace,
                    line=exc.lineno,
                    column=exc.offset,
                ) from exc
            result = eval(code, bindings)
        elif isinstance(node, _DEFINITIONS):
            code = self.compile_nodes([node], filename=filename, namespace=namespace)
            # Separate locals keep the definition out of the namespace until
            # the caller registers it; its globals are still the bindings.
            scope: dict = {}
            exec(code, bindings, scope)
            result = scope[node.name]
        else:
            raise MetaSyntaxError(
                f"Expected a function definition or expression, got {type(node).__name__}",
                namespace=namespace,
                line=getattr(node, "lineno", None),
            )

        if not callable(result):
            raise MetaSyntaxError(
                f"Source in {filename} does not evaluate to a callable",
                namespace=namespace,
            )
        return result


_default_compiler: Optional[PythonCompiler] = None


def get_default_compiler() -> PythonCompiler:
    global _default_compiler
    if _default_compiler is None:
        _default_compiler = PythonCompiler()
    return _default_compiler
