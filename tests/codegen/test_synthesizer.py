"""Tests for source synthesis against namespace bindings."""

import pytest

from metastage.codegen import PythonCompiler
from metastage.codegen.synthesizer import GETTER_TEMPLATE, SETTER_TEMPLATE, accessor_sources
from metastage.errors import MetaSyntaxError, NotFoundError, UnterminatedTemplateError
from metastage.symbols import SymbolKind


class TestSynthesize:
    """synthesize renders, compiles and leaves registration to the caller."""

    def test_substitutes_and_compiles(self, synthesizer):
        fn = synthesizer.synthesize("Tools", "lambda x: x {{ op }} {{ amount }}", {"op": "+", "amount": "3"})
        assert fn(4) == 7
        assert synthesizer.compile_count == 1

    def test_def_statement(self, synthesizer):
        source = "def {{ name }}(a, b):\n    return a * b\n"
        fn = synthesizer.synthesize("Tools", source, {"name": "multiply"})
        assert fn.__name__ == "multiply"
        assert fn(6, 7) == 42

    def test_not_registered_until_caller_registers(self, synthesizer, registry):
        fn = synthesizer.synthesize("Tools", "lambda: 1")
        with pytest.raises(NotFoundError):
            registry.resolve("Tools", "one", SymbolKind.CALLABLE)
        registry.register("Tools", "one", SymbolKind.CALLABLE, fn)
        assert registry.resolve("Tools", "one", SymbolKind.CALLABLE)() == 1

    def test_free_names_resolve_against_namespace(self, synthesizer, registry):
        registry.register("Tools", "scale", SymbolKind.VALUE, 10)
        fn = synthesizer.synthesize("Tools", "lambda x: x * scale")
        assert fn(2) == 20
        # Bindings are live: later registrations are visible.
        registry.register("Tools", "scale", SymbolKind.VALUE, 100)
        assert fn(2) == 200

    def test_each_call_compiles_again(self, synthesizer):
        first = synthesizer.synthesize("Tools", "lambda: 1")
        second = synthesizer.synthesize("Tools", "lambda: 1")
        assert first.__code__ is not second.__code__
        assert synthesizer.compile_count == 2

    def test_synthesize_and_register(self, synthesizer, registry):
        fn = synthesizer.synthesize_and_register("Tools", "double", "lambda x: x * 2")
        assert registry.resolve("Tools", "double", SymbolKind.CALLABLE) is fn
        assert registry.namespace("Tools").bindings["double"] is fn


class TestTemplateErrors:
    """Malformed templates and sources are reported with typed errors."""

    def test_unterminated_placeholder(self, synthesizer):
        with pytest.raises(UnterminatedTemplateError):
            synthesizer.synthesize("Tools", "lambda: {{ value", {"value": "1"})

    def test_placeholder_without_substitution(self, synthesizer):
        with pytest.raises(UnterminatedTemplateError) as exc_info:
            synthesizer.synthesize("Tools", "lambda: {{ value }}")
        assert exc_info.value.name == "value"

    def test_syntax_error_in_rendered_source(self, synthesizer):
        with pytest.raises(MetaSyntaxError) as exc_info:
            synthesizer.synthesize("Tools", "lambda: ({{ value }}", {"value": "1"})
        assert exc_info.value.namespace == "Tools"
        assert exc_info.value.line == 1

    def test_non_callable_result(self, synthesizer):
        with pytest.raises(MetaSyntaxError):
            synthesizer.synthesize("Tools", "{{ value }}", {"value": "42"})

    def test_placeholders(self, synthesizer):
        assert synthesizer.placeholders("{{ a }} + {{ b }} + {{ a }}") == {"a", "b"}

    def test_render_leaves_text_unescaped(self, synthesizer):
        rendered = synthesizer.render("x = {{ value }}", {"value": "'<b>' & 1"})
        assert rendered == "x = '<b>' & 1"


class TestAccessorTemplates:
    """Getter/setter templates used by the protocol."""

    def test_getter_and_setter(self, synthesizer):
        subs = accessor_sources("color")
        getter = synthesizer.synthesize("Tools", GETTER_TEMPLATE, subs)
        setter = synthesizer.synthesize("Tools", SETTER_TEMPLATE, subs)
        record = {"color": "red"}
        assert getter(record) == "red"
        assert setter(record, "blue") == "blue"
        assert record["color"] == "blue"

    def test_attribute_name_is_quoted(self):
        assert accessor_sources("it's") == {"attribute": repr("it's")}


class TestCompiler:
    """PythonCompiler accepts one definition or expression."""

    def test_rejects_multiple_statements(self):
        with pytest.raises(MetaSyntaxError):
            PythonCompiler().compile("x = 1\ny = 2", {})

    def test_rejects_assignment(self):
        with pytest.raises(MetaSyntaxError):
            PythonCompiler().compile("x = 1", {})

    def test_definition_not_leaked_into_bindings(self):
        bindings = {}
        fn = PythonCompiler().compile("def f():\n    return 1\n", bindings)
        assert fn() == 1
        assert "f" not in bindings
