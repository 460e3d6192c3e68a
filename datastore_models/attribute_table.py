import abc
import inspect
import typing
from collections import deque

import attr
import inflection

# Keys of the metadata attached to attrs attributes by attribute(), transient() and nested()
ROLE = "datastore_models.role"
TRACKED = "datastore_models.tracked"
INDEXED = "datastore_models.indexed"
VALIDATORS = "datastore_models.validators"

PERSISTED = "persisted"
TRANSIENT = "transient"
NESTED = "nested"
INTERNAL = "internal"


def _is_generic(field_type: typing.Any) -> bool:
    return hasattr(field_type, "__origin__")


def _get_wrapped_type(wrapped_type: typing.Any) -> typing.Any:
    return wrapped_type.__args__[0]


def _is_list(field_type: typing.Any) -> bool:
    return _is_generic(field_type) and field_type.__origin__ in (list, typing.List)


def _forward_name(field_type: typing.Any) -> typing.Optional[str]:
    if isinstance(field_type, str):
        return field_type
    if isinstance(field_type, typing.ForwardRef):
        return field_type.__forward_arg__
    return None


class Visitor:
    def traverse_from(self, node: "Node") -> None:
        node.accept(self)
        for child in node.children:
            self.traverse_from(child)
        node.farewell(self)

    def visit_model(self, model: "ModelNode") -> None:
        pass

    def leave_model(self, model: "ModelNode") -> None:
        pass

    def visit_property(self, prop: "PropertyNode") -> None:
        pass

    def leave_property(self, prop: "PropertyNode") -> None:
        pass

    def visit_transient(self, transient: "TransientNode") -> None:
        pass

    def leave_transient(self, transient: "TransientNode") -> None:
        pass

    def visit_nested_models(self, nested_models: "NestedModelsNode") -> None:
        pass

    def leave_nested_models(self, nested_models: "NestedModelsNode") -> None:
        pass


class NodeMeta(type):
    def __new__(mcs, name: str, bases: tuple, namespace: dict) -> typing.Type:
        cls = super().__new__(mcs, name, bases, namespace)
        if inspect.isabstract(cls):
            return cls
        return attr.s(auto_attribs=True)(cls)


class Node(metaclass=NodeMeta):
    name: str
    type: typing.Any
    children: typing.List["Node"] = attr.Factory(list)

    @abc.abstractmethod
    def accept(self, visitor: Visitor) -> None:
        pass

    @abc.abstractmethod
    def farewell(self, visitor: Visitor) -> None:
        pass


class ModelNode(Node):
    kind: str = ""

    def accept(self, visitor: Visitor) -> None:
        visitor.visit_model(self)

    def farewell(self, visitor: Visitor) -> None:
        visitor.leave_model(self)


class PropertyNode(Node):
    tracked: bool = False
    indexed: bool = True
    validators: typing.Tuple[typing.Callable, ...] = ()
    attribute: typing.Optional[attr.Attribute] = attr.ib(default=None, eq=False, repr=False)

    def accept(self, visitor: Visitor) -> None:
        visitor.visit_property(self)

    def farewell(self, visitor: Visitor) -> None:
        visitor.leave_property(self)


class TransientNode(Node):
    validators: typing.Tuple[typing.Callable, ...] = ()
    attribute: typing.Optional[attr.Attribute] = attr.ib(default=None, eq=False, repr=False)

    def accept(self, visitor: Visitor) -> None:
        visitor.visit_transient(self)

    def farewell(self, visitor: Visitor) -> None:
        visitor.leave_transient(self)


class NestedModelsNode(Node):
    validators: typing.Tuple[typing.Callable, ...] = ()
    attribute: typing.Optional[attr.Attribute] = attr.ib(default=None, eq=False, repr=False)

    def accept(self, visitor: Visitor) -> None:
        visitor.visit_nested_models(self)

    def farewell(self, visitor: Visitor) -> None:
        visitor.leave_nested_models(self)


@attr.s(auto_attribs=True)
class AttributeTable:
    root: ModelNode
    _by_name: typing.Dict[str, Node] = attr.ib(init=False, eq=False, repr=False)

    def __attrs_post_init__(self) -> None:
        self._by_name = {node.name: node for node in self.root.children}

    def __iter__(self) -> typing.Generator[Node, None, None]:
        def iterate_dfs() -> typing.Generator[Node, None, None]:
            nodes_left: typing.Deque[Node] = deque([self.root])

            while nodes_left:
                current = nodes_left.pop()
                yield current
                nodes_left.extend(current.children[::-1])

        return iterate_dfs()

    @property
    def properties(self) -> typing.List[PropertyNode]:
        return [node for node in self.root.children if isinstance(node, PropertyNode)]

    @property
    def nested(self) -> typing.List[NestedModelsNode]:
        return [node for node in self.root.children if isinstance(node, NestedModelsNode)]

    def node(self, name: str) -> typing.Optional[Node]:
        return self._by_name.get(name)

    def has_attribute(self, name: str) -> bool:
        """True for attributes an entity property may be loaded into."""
        return isinstance(self._by_name.get(name), (PropertyNode, TransientNode))

    def set_attribute(self, instance: typing.Any, name: str, value: typing.Any) -> bool:
        if not self.has_attribute(name):
            return False
        setattr(instance, name, value)
        return True


def build(root: typing.Type, kind: str) -> AttributeTable:
    children: typing.List[Node] = []

    for field in attr.fields(root):
        role = field.metadata.get(ROLE, PERSISTED)
        validators = tuple(field.metadata.get(VALIDATORS, ()))

        if role == INTERNAL:
            continue
        if role == TRANSIENT:
            children.append(TransientNode(field.name, field.type, [], validators, field))
        elif role == NESTED:
            child_type = _get_wrapped_type(field.type) if _is_list(field.type) else None
            children.append(NestedModelsNode(field.name, child_type, [], validators, field))
        else:
            children.append(
                PropertyNode(
                    field.name,
                    field.type,
                    [],
                    bool(field.metadata.get(TRACKED, False)),
                    bool(field.metadata.get(INDEXED, True)),
                    validators,
                    field,
                )
            )

    return AttributeTable(ModelNode(inflection.underscore(root.__name__), root, children, kind))
