"""Code generation strategies: source synthesis and closure templates."""

from .closures import ClosureFactory, Template, get_closure_factory
from .compiler import PythonCompiler, get_default_compiler
from .synthesizer import CodeSynthesizer

__all__ = [
    "ClosureFactory",
    "CodeSynthesizer",
    "PythonCompiler",
    "Template",
    "get_closure_factory",
    "get_default_compiler",
]
