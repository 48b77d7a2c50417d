"""Tests for the metaobject protocol."""

import pytest

from metastage.errors import (
    DuplicateAttributeError,
    DuplicateClassError,
    InvalidNameError,
    NotFoundError,
)
from metastage.meta import AttributeDescriptor, ClassDescriptor, Instance, MetaobjectProtocol
from metastage.runtime import UNASSIGNED, ExecutionPhase
from metastage.symbols import SymbolKind


def tighten(obj):
    return f"tightening {obj['material']}"


def loosen(obj):
    return f"loosening {obj['material']}"


@pytest.fixture
def wrench(protocol):
    return protocol.create_class(
        "Wrench",
        [
            AttributeDescriptor("material", default=lambda: "steel", reader="material_of"),
            AttributeDescriptor("color", reader="color_of", writer="paint"),
        ],
        {"tighten": tighten, "loosen": loosen},
    )


class TestCreateClass:
    """create_class registers a descriptor as a value entry."""

    def test_registered_under_class_name(self, protocol, registry, wrench):
        assert registry.resolve("main", "Wrench", SymbolKind.VALUE) is wrench
        assert protocol.find_class("Wrench") is wrench
        assert protocol.find_class("main.Wrench") is wrench
        assert wrench.qualified_name == "main.Wrench"

    def test_wrench_layout_after_add_attribute(self, protocol, wrench):
        protocol.add_attribute("Wrench", AttributeDescriptor("experience"))
        names = [attr.name for attr in protocol.get_all_attributes("Wrench")]
        assert names == ["material", "color", "experience"]

    def test_duplicate_class_leaves_prior_unchanged(self, protocol, wrench):
        with pytest.raises(DuplicateClassError) as exc_info:
            protocol.create_class("Wrench", [AttributeDescriptor("size")], {"spin": lambda obj: None})
        assert exc_info.value.qualified_name == "main.Wrench"

        current = protocol.find_class("Wrench")
        assert current is wrench
        assert current.attribute_names() == ["material", "color"]
        assert "spin" not in current.methods
        assert {"tighten", "loosen"} <= set(current.methods)

    def test_same_name_in_other_namespace(self, protocol, wrench):
        other = protocol.create_class("Wrench", namespace="Garage")
        assert other.qualified_name == "Garage.Wrench"
        assert protocol.find_class("Wrench") is wrench

    def test_duplicate_attribute_in_layout(self, protocol, registry):
        with pytest.raises(DuplicateAttributeError):
            protocol.create_class("Bad", [AttributeDescriptor("a"), AttributeDescriptor("a")])
        assert not registry.exists("main", "Bad", SymbolKind.VALUE)

    def test_invalid_attribute_name(self, protocol, registry):
        with pytest.raises(InvalidNameError):
            protocol.create_class("Bad", [AttributeDescriptor("a.b")])
        assert not protocol.has_class("Bad")

    def test_unknown_superclass(self, protocol):
        with pytest.raises(NotFoundError):
            protocol.create_class("Socket", superclasses=["Missing"])
        assert not protocol.has_class("Socket")

    def test_non_class_value_is_not_a_class(self, protocol, registry):
        registry.register("main", "answer", SymbolKind.VALUE, 42)
        with pytest.raises(NotFoundError):
            protocol.find_class("answer")

    def test_defined_in_records_phase(self, protocol, scheduler):
        idle = protocol.create_class("Idle")
        staged = scheduler.run_definition_block(lambda: protocol.create_class("Staged"))
        assert idle.defined_in is ExecutionPhase.IDLE
        assert staged.defined_in is ExecutionPhase.DEFINITION


class TestMutation:
    """Attribute and method changes and the redefinition asymmetry."""

    def test_duplicate_attribute_fails(self, protocol, wrench):
        with pytest.raises(DuplicateAttributeError):
            protocol.add_attribute("Wrench", AttributeDescriptor("color"))
        assert protocol.find_class("Wrench").attribute_names() == ["material", "color"]

    def test_method_redefinition_is_silent(self, protocol, wrench):
        protocol.add_method("Wrench", "tighten", lambda obj: "harder")
        obj = protocol.new_object("Wrench")
        assert obj.call("tighten") == "harder"

    def test_remove_attribute_drops_accessors(self, protocol, wrench):
        removed = protocol.remove_attribute("Wrench", "color")
        assert removed.name == "color"
        assert not protocol.has_method("Wrench", "paint")
        assert not protocol.has_attribute("Wrench", "color")
        with pytest.raises(NotFoundError):
            protocol.remove_attribute("Wrench", "color")

    def test_remove_method(self, protocol, wrench):
        assert protocol.remove_method("Wrench", "loosen") is loosen
        assert protocol.remove_method("Wrench", "loosen") is None
        assert not protocol.has_method("Wrench", "loosen")

    def test_remove_class(self, protocol, wrench):
        protocol.remove_class("Wrench")
        assert not protocol.has_class("Wrench")
        with pytest.raises(NotFoundError):
            protocol.remove_class("Wrench")

    def test_replace_class_seen_by_live_instances(self, protocol, wrench):
        obj = protocol.new_object("Wrench")
        protocol.replace_class(
            "Wrench",
            [AttributeDescriptor("material"), AttributeDescriptor("color")],
            {"tighten": lambda o: "replaced"},
        )
        assert obj.tighten() == "replaced"
        assert not protocol.has_method("Wrench", "loosen")


class TestIntrospection:
    """Introspection returns copies and follows inheritance."""

    def test_attribute_list_is_immutable_copy(self, protocol, wrench):
        attributes = protocol.get_all_attributes("Wrench")
        assert isinstance(attributes, tuple)
        protocol.add_attribute("Wrench", AttributeDescriptor("size"))
        assert len(attributes) == 2

    def test_method_mapping_is_read_only_copy(self, protocol, wrench):
        methods = protocol.get_all_methods("Wrench")
        with pytest.raises(TypeError):
            methods["spin"] = lambda obj: None
        protocol.add_method("Wrench", "spin", lambda obj: None)
        assert "spin" not in methods
        assert "spin" in protocol.get_all_methods("Wrench")

    def test_inheritance(self, protocol, wrench):
        protocol.create_class(
            "TorqueWrench",
            [AttributeDescriptor("torque", default=lambda: 0)],
            {"tighten": lambda obj: f"tightening to {obj['torque']}"},
            superclasses=["Wrench"],
        )
        names = [attr.name for attr in protocol.get_all_attributes("TorqueWrench")]
        assert names == ["material", "color", "torque"]

        obj = protocol.new_object("TorqueWrench", torque=40)
        assert obj.tighten() == "tightening to 40"
        assert obj.loosen() == "loosening steel"
        assert obj.isa("Wrench")
        assert [c.name for c in protocol.class_precedence_list("TorqueWrench")] == ["TorqueWrench", "Wrench"]

    def test_precedence_is_depth_first_without_repeats(self, protocol):
        protocol.create_class("Tool")
        protocol.create_class("Hand", superclasses=["Tool"])
        protocol.create_class("Metal", superclasses=["Tool"])
        protocol.create_class("Spanner", superclasses=["Hand", "Metal"])
        order = [c.name for c in protocol.class_precedence_list("Spanner")]
        assert order == ["Spanner", "Hand", "Tool", "Metal"]

    def test_find_method_missing(self, protocol, wrench):
        with pytest.raises(NotFoundError):
            protocol.find_method("Wrench", "hammer")


class TestObjects:
    """new_object and Instance behavior."""

    def test_defaults_and_unassigned(self, protocol, wrench):
        obj = protocol.new_object("Wrench")
        assert isinstance(obj, Instance)
        assert obj["material"] == "steel"
        assert obj["color"] is UNASSIGNED
        assert "color" not in obj
        assert obj.call("tighten") == "tightening steel"

    def test_generated_reader_and_writer_methods(self, protocol, wrench):
        obj = protocol.new_object("Wrench", color="red")
        assert obj.color_of() == "red"
        assert obj.paint("blue") == "blue"
        assert obj["color"] == "blue"
        assert obj.material_of() == "steel"

    def test_default_generators_not_shared(self, protocol):
        protocol.create_class("Box", [AttributeDescriptor("items", default=list)])
        first = protocol.new_object("Box")
        second = protocol.new_object("Box")
        first["items"].append(1)
        assert second["items"] == []

    def test_unknown_slot(self, protocol, wrench):
        with pytest.raises(NotFoundError):
            protocol.new_object("Wrench", weight=3)
        obj = protocol.new_object("Wrench")
        with pytest.raises(NotFoundError):
            obj["weight"] = 3
        with pytest.raises(AttributeError):
            obj.hammer()

    def test_attribute_added_later_is_usable_on_old_objects(self, protocol, wrench):
        obj = protocol.new_object("Wrench")
        protocol.add_attribute("Wrench", AttributeDescriptor("experience"))
        assert obj["experience"] is UNASSIGNED
        obj["experience"] = 3
        assert obj["experience"] == 3


class TestAccessors:
    """generate_accessors with both strategies."""

    @pytest.mark.parametrize("strategy", ["closure", "synthesize"])
    def test_homecourt(self, protocol, strategy):
        get_homecourt, set_homecourt = protocol.generate_accessors("homecourt", strategy=strategy)
        get_rival, set_rival = protocol.generate_accessors("rival", strategy=strategy)
        record = {}
        assert set_homecourt(record, "Pauley") == "Pauley"
        set_rival(record, "Galen")
        assert get_homecourt(record) == "Pauley"
        assert get_rival(record) == "Galen"

    def test_closure_strategy_shares_code(self, protocol, closures):
        getter_a, _ = protocol.generate_accessors("a")
        getter_b, _ = protocol.generate_accessors("b")
        assert getter_a.__code__ is getter_b.__code__
        assert getter_a.__name__ == "get_a"
        assert closures.compile_count == 2

    def test_accessors_work_on_instances(self, protocol, wrench):
        getter, setter = protocol.generate_accessors("color")
        obj = protocol.new_object("Wrench")
        setter(obj, "green")
        assert getter(obj) == "green"

    def test_unknown_strategy(self, protocol):
        with pytest.raises(ValueError):
            protocol.generate_accessors("a", strategy="inline")

    def test_bound_protocol_shares_templates(self, protocol, closures):
        protocol.generate_accessors("a")
        other = protocol.bound_to("Garage")
        assert isinstance(other, MetaobjectProtocol)
        other.generate_accessors("b")
        assert closures.compile_count == 2
        assert other.namespace == "Garage"

    def test_protocols_bound_before_first_use_share_templates(self, protocol, closures):
        garage = protocol.bound_to("Garage")
        shed = protocol.bound_to("Shed")
        get_a, _ = garage.generate_accessors("a")
        get_b, _ = shed.generate_accessors("b")
        assert closures.compile_count == 2
        assert get_a.__code__ is get_b.__code__


def test_class_descriptor_repr(wrench):
    assert isinstance(wrench, ClassDescriptor)
    assert "main.Wrench" in repr(wrench)
