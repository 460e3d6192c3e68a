import copy
import typing

from google.cloud.datastore import Entity, Key

from datastore_models.attribute_table import ModelNode, PropertyNode, Visitor
from datastore_models.dataset import Dataset
from datastore_models.keys import build_key, coerce_id, derive_ancestor_key, ensure_key

if typing.TYPE_CHECKING:
    from datastore_models.model import Model


class EntityBuildingVisitor(Visitor):
    def __init__(self, dataset: Dataset, model: "Model", parent: typing.Optional[Key]) -> None:
        self._dataset = dataset
        self._model = model
        self._parent = parent
        self._properties: typing.Dict[str, typing.Any] = {}
        self._excluded: typing.List[str] = []
        self.entity: typing.Optional[Entity] = None

    def visit_property(self, prop: PropertyNode) -> None:
        self._properties[prop.name] = getattr(self._model, prop.name)
        if not prop.indexed:
            self._excluded.append(prop.name)

    def leave_model(self, model: ModelNode) -> None:
        key = build_key(self._dataset, model.kind, self._model.id, self._parent)
        self.entity = self._dataset.entity(key, self._excluded)
        self.entity.update(self._properties)


def resolve_parent(dataset: Dataset, model: "Model", parent: typing.Optional[Key] = None) -> typing.Optional[Key]:
    """Parent key the model's entity is written under.

    An explicit `parent` wins, then the key the model was last loaded or saved under, then the
    conventional "Parent" + kind key derived from `parent_id`.
    """
    if parent is not None:
        return ensure_key(parent)
    if model.parent_id is None:
        return None
    known = model._parent_key
    if known is not None and known.id_or_name == coerce_id(model.parent_id):
        return known
    return derive_ancestor_key(dataset, model.kind, model.parent_id)


def to_entity(dataset: Dataset, model: "Model", parent: typing.Optional[Key] = None) -> Entity:
    visitor = EntityBuildingVisitor(dataset, model, resolve_parent(dataset, model, parent))
    visitor.traverse_from(model.attribute_table().root)
    return visitor.entity


def from_entity(
    model_cls: typing.Type["Model"], entity: typing.Optional[Entity], partial: bool = False
) -> typing.Optional["Model"]:
    if entity is None:
        return None
    model = model_cls()
    model.id = entity.key.id_or_name
    if entity.key.parent is not None:
        model.parent_id = entity.key.parent.id_or_name
        model._parent_key = entity.key.parent
    model._entity_property_values = copy.deepcopy(dict(entity))
    table = model_cls.attribute_table()
    for name, value in entity.items():
        table.set_attribute(model, name, value)
    model._partially_loaded = partial
    model.reload()
    return model


def from_entities(
    model_cls: typing.Type["Model"], entities: typing.Iterable[Entity], partial: bool = False
) -> typing.List["Model"]:
    return [from_entity(model_cls, entity, partial) for entity in entities]


def exclude_from_index(entity: Entity, flag: bool) -> Entity:
    """Flags every property of `entity` as excluded from (or included in) the store's indexes."""
    if flag:
        entity.exclude_from_indexes.update(entity.keys())
    else:
        entity.exclude_from_indexes.difference_update(entity.keys())
    return entity
