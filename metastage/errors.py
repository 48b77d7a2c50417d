"""Unified error model for metastage."""

from __future__ import annotations

from typing import Optional


class MetastageError(Exception):
    """Base class for all registry, protocol and loader errors."""

    code: str = "METASTAGE_ERROR"
    hint: Optional[str] = None

    def __init__(
        self,
        message: str,
        *,
        namespace: Optional[str] = None,
        name: Optional[str] = None,
        code: Optional[str] = None,
        hint: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.namespace = namespace
        self.name = name
        if code is not None:
            self.code = code
        if hint is not None:
            self.hint = hint

    @property
    def qualified_name(self) -> Optional[str]:
        if self.namespace and self.name:
            return f"{self.namespace}.{self.name}"
        return self.namespace or self.name

    def format(self) -> str:
        components = [self.message]
        meta_parts = []
        if self.qualified_name:
            meta_parts.append(self.qualified_name)
        if self.code:
            meta_parts.append(self.code)
        if meta_parts:
            components[-1] = f"{components[-1]} ({'; '.join(meta_parts)})"
        if self.hint:
            components.append(f"Hint: {self.hint}")
        return " ".join(part for part in components if part)


class InvalidNameError(MetastageError):
    """Raised when a symbol name or namespace path is malformed."""

    code = "INVALID_NAME"


class NotFoundError(MetastageError):
    """Raised when an exact registry lookup or a source lookup misses."""

    code = "NOT_FOUND"

    def __init__(self, message: str, *, kind: Optional[str] = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.kind = kind


class MetaSyntaxError(MetastageError):
    """Raised when generated or loaded source does not compile."""

    code = "SYNTAX_ERROR"

    def __init__(
        self,
        message: str,
        *,
        line: Optional[int] = None,
        column: Optional[int] = None,
        **kwargs,
    ) -> None:
        super().__init__(message, **kwargs)
        self.line = line
        self.column = column

    def format(self) -> str:
        base = super().format()
        if self.line is not None:
            return f"{base} [line {self.line}]"
        return base


class UnterminatedTemplateError(MetastageError):
    """Raised when a substitution placeholder is unterminated or unmatched."""

    code = "UNTERMINATED_TEMPLATE"


class TemplateParameterError(MetastageError):
    """Raised when closure template bindings do not match its parameters."""

    code = "TEMPLATE_PARAMETERS"


class DuplicateClassError(MetastageError):
    """Raised when creating a class whose name is already taken."""

    code = "DUPLICATE_CLASS"


class DuplicateAttributeError(MetastageError):
    """Raised when adding an attribute whose name is already present."""

    code = "DUPLICATE_ATTRIBUTE"


class UnassignedVariableError(MetastageError):
    """Raised when a declared variable is read before its assignment ran."""

    code = "UNASSIGNED_VARIABLE"


class LoadError(MetastageError):
    """Raised when a unit cannot be resolved, compiled or executed."""

    code = "LOAD_ERROR"

    @property
    def cause_kind(self) -> Optional[str]:
        """Error kind of the wrapped failure, if any."""
        cause = self.__cause__
        if cause is None:
            return None
        return getattr(cause, "code", None) or type(cause).__name__

    def format(self) -> str:
        base = super().format()
        if self.cause_kind:
            return f"{base} caused by {self.cause_kind}"
        return base


class CircularLoadError(LoadError):
    """Raised when a unit requires itself, directly or transitively."""

    code = "CIRCULAR_LOAD"


class ExportError(MetastageError):
    """Raised when an importer requests a name the unit does not export."""

    code = "NOT_EXPORTED"


__all__ = [
    "MetastageError",
    "InvalidNameError",
    "NotFoundError",
    "MetaSyntaxError",
    "UnterminatedTemplateError",
    "TemplateParameterError",
    "DuplicateClassError",
    "DuplicateAttributeError",
    "UnassignedVariableError",
    "LoadError",
    "CircularLoadError",
    "ExportError",
]
