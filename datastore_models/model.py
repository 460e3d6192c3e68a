import abc
import inspect
import types
import typing

import attr

from datastore_models import attribute_table
from datastore_models.attribute_table import (
    INDEXED,
    INTERNAL,
    NESTED,
    PERSISTED,
    ROLE,
    TRACKED,
    TRANSIENT,
    VALIDATORS,
    AttributeTable,
    _is_list,
)
from datastore_models.callbacks import Callbacks, collect_hooks
from datastore_models.finders import Finders
from datastore_models.keys import IdOrName
from datastore_models.nested import NestedAttributes
from datastore_models.persistence import Persistence
from datastore_models.property_values import PropertyValues
from datastore_models.registry import registry
from datastore_models.tracking import TrackChanges, TrackedAttribute, track_change
from datastore_models.validations import Errors, Validations


class InvalidModelDefinition(TypeError):
    pass


# Per instance state kept outside the attrs fields
RESERVED_NAMES = frozenset(
    [
        "errors",
        "exclude_from_save",
        "marked_for_destruction",
        "nested_attributes",
        "destroyed",
        "entity_property_values",
        "kind",
        "connection",
    ]
)


def attribute(
    default: typing.Any = None,
    *,
    tracked: bool = False,
    indexed: bool = True,
    validators: typing.Iterable[typing.Callable] = (),
    **kwargs: typing.Any,
) -> typing.Any:
    """A persisted attribute, written to the entity as a property of the same name."""
    if "factory" in kwargs:
        default = attr.Factory(kwargs.pop("factory"))
    metadata = {ROLE: PERSISTED, TRACKED: tracked, INDEXED: indexed, VALIDATORS: tuple(validators)}
    return attr.ib(default=default, metadata=metadata, **kwargs)


def transient(
    default: typing.Any = None, *, validators: typing.Iterable[typing.Callable] = (), **kwargs: typing.Any
) -> typing.Any:
    """An attribute that lives in memory only. Loading still assigns it when the entity has it."""
    return attr.ib(default=default, metadata={ROLE: TRANSIENT, VALIDATORS: tuple(validators)}, **kwargs)


def nested(*, validators: typing.Iterable[typing.Callable] = (), **kwargs: typing.Any) -> typing.Any:
    """A list of child models, assigned through ``assign_nested_attributes``. Never written."""
    return attr.ib(default=attr.Factory(list), metadata={ROLE: NESTED, VALIDATORS: tuple(validators)}, **kwargs)


def _is_class_var(annotation: typing.Any) -> bool:
    if isinstance(annotation, str):
        return annotation.startswith(("typing.ClassVar", "ClassVar"))
    return annotation is typing.ClassVar or getattr(annotation, "__origin__", None) is typing.ClassVar


def _check_definition(cls: typing.Type, table: AttributeTable) -> None:
    for field in attr.fields(cls):
        if field.metadata.get(ROLE) == INTERNAL:
            continue
        if field.name in RESERVED_NAMES or field.name.startswith("_"):
            raise InvalidModelDefinition(f"{cls.__name__}.{field.name} clashes with model state")
    for node in table.nested:
        if not isinstance(node.attribute.type, str) and not _is_list(node.attribute.type):
            raise InvalidModelDefinition(f"{cls.__name__}.{node.name} must be annotated as typing.List[Child]")


class ModelMeta(abc.ABCMeta):
    def __new__(mcs, name: str, bases: tuple, namespace: dict):
        cls = super().__new__(mcs, name, bases, namespace)
        for field_name, annotation in inspect.get_annotations(cls).items():
            if field_name not in namespace and not _is_class_var(annotation):
                setattr(cls, field_name, attribute())
        if "kind" not in namespace:
            cls.kind = name

        attr_cls = attr.s(auto_attribs=True, on_setattr=track_change)(cls)
        table = attribute_table.build(attr_cls, attr_cls.kind)
        _check_definition(attr_cls, table)
        attr_cls._attribute_table = table
        attr_cls._tracked = {node.name: TrackedAttribute(node.name) for node in table.properties if node.tracked}
        attr_cls._hooks = collect_hooks(attr_cls)
        if name != "Model":
            registry.register(attr_cls, table)
        return attr_cls


class Model(
    Validations, Callbacks, TrackChanges, PropertyValues, NestedAttributes, Persistence, Finders, metaclass=ModelMeta
):
    """Base class of everything stored as an entity.

    Subclasses are attrs classes: annotate attributes and use ``attribute()``, ``transient()`` or
    ``nested()`` to configure them. Bare annotations are persisted attributes defaulting to None.
    """

    id: typing.Optional[IdOrName] = attr.ib(default=None, kw_only=True, metadata={ROLE: INTERNAL})
    parent_id: typing.Optional[IdOrName] = attr.ib(default=None, kw_only=True, metadata={ROLE: INTERNAL})

    kind: typing.ClassVar[str]
    _attribute_table: typing.ClassVar[AttributeTable]

    def __attrs_post_init__(self) -> None:
        self.errors = Errors()
        self.marked_for_destruction = False
        self.nested_attributes: typing.Optional[typing.List[str]] = None
        self.destroyed = False
        self._entity_property_values: typing.Dict[str, typing.Any] = {}
        self._partially_loaded = False
        self._parent_key = None
        self.reload()

    @classmethod
    def attribute_table(cls) -> AttributeTable:
        return cls._attribute_table

    @classmethod
    def no_index_attributes(cls) -> typing.List[str]:
        return [prop.name for prop in cls.attribute_table().properties if not prop.indexed]

    @property
    def entity_property_values(self) -> typing.Mapping[str, typing.Any]:
        """Properties of the entity this model was loaded from, as they were at load time."""
        return types.MappingProxyType(self._entity_property_values)
