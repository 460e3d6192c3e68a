import typing

import attr
import pytest

from datastore_models import attribute_table
from datastore_models.attribute_table import (
    AttributeTable,
    ModelNode,
    NestedModelsNode,
    Node,
    PropertyNode,
    TransientNode,
    Visitor,
)
from datastore_models.model import Model, attribute, nested, transient


class Scribe(Visitor):
    def __init__(self) -> None:
        self.visits_log: typing.List[typing.Tuple[str, str]] = []

    def visit_property(self, node: "Node") -> None:
        self.visits_log.append(("visit", node.name))

    def leave_property(self, node: "Node") -> None:
        self.visits_log.append(("leave", node.name))

    visit_model = visit_transient = visit_nested_models = visit_property
    leave_model = leave_transient = leave_nested_models = leave_property


class Topping(Model):
    label: str


class Pizza(Model):
    name: str = attribute(tracked=True)
    notes: str = attribute(indexed=False)
    price: float
    secret_sauce: str = transient()
    toppings: typing.List[Topping] = nested()
    menu: typing.ClassVar[str] = "dinner"


def test_builds_table_from_model_fields() -> None:
    result = attribute_table.build(Pizza, "Pizza")

    assert result == AttributeTable(
        root=ModelNode(
            name="pizza",
            type=Pizza,
            kind="Pizza",
            children=[
                PropertyNode(name="name", type=str, tracked=True),
                PropertyNode(name="notes", type=str, indexed=False),
                PropertyNode(name="price", type=float),
                TransientNode(name="secret_sauce", type=str),
                NestedModelsNode(name="toppings", type=Topping),
            ],
        )
    )


def test_model_classes_keep_their_table() -> None:
    table = Pizza.attribute_table()

    assert [node.name for node in table.properties] == ["name", "notes", "price"]
    assert [node.name for node in table.nested] == ["toppings"]
    assert table.root.kind == "Pizza"


def test_skips_identity_fields_and_class_vars() -> None:
    names = [node.name for node in Pizza.attribute_table()]

    assert "id" not in names
    assert "parent_id" not in names
    assert "menu" not in names


@pytest.mark.parametrize(
    "name, expected", [("name", True), ("secret_sauce", True), ("toppings", False), ("unknown", False)]
)
def test_has_attribute(name: str, expected: bool) -> None:
    assert Pizza.attribute_table().has_attribute(name) is expected


def test_set_attribute_only_sets_loadable_attributes() -> None:
    pizza = Pizza()
    table = Pizza.attribute_table()

    assert table.set_attribute(pizza, "name", "Margherita") is True
    assert table.set_attribute(pizza, "crust", "thin") is False
    assert pizza.name == "Margherita"
    assert not hasattr(pizza, "crust")


def test_iterates_depth_first() -> None:
    names = [node.name for node in Pizza.attribute_table()]

    assert names == ["pizza", "name", "notes", "price", "secret_sauce", "toppings"]


def test_visitor_visits_and_leaves_every_node() -> None:
    visitor = Scribe()
    visitor.traverse_from(Pizza.attribute_table().root)

    assert visitor.visits_log == [
        ("visit", "pizza"),
        ("visit", "name"),
        ("leave", "name"),
        ("visit", "notes"),
        ("leave", "notes"),
        ("visit", "price"),
        ("leave", "price"),
        ("visit", "secret_sauce"),
        ("leave", "secret_sauce"),
        ("visit", "toppings"),
        ("leave", "toppings"),
        ("leave", "pizza"),
    ]


def test_nodes_are_attrs_classes() -> None:
    assert attr.has(PropertyNode)
    assert [field.name for field in attr.fields(ModelNode)] == ["name", "type", "children", "kind"]
