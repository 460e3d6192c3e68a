import typing

from google.cloud.datastore import Entity, Key

from datastore_models import translator
from datastore_models.errors import EntityError
from datastore_models.keys import IdOrName, build_key, coerce_id, derive_ancestor_key
from datastore_models.query import QuerySpec, build_query

Cursor = typing.Optional[typing.Union[bytes, str]]


def _flatten(ids_or_names: typing.Iterable[typing.Any]) -> typing.List[IdOrName]:
    flat: typing.List[IdOrName] = []
    for item in ids_or_names:
        if isinstance(item, (list, tuple)):
            flat.extend(_flatten(item))
        elif item is not None:
            item = coerce_id(item)
            if item not in flat:
                flat.append(item)
    return flat


class Finders:
    @classmethod
    def parent_key(cls, parent_id: IdOrName) -> Key:
        """The conventional "Parent" + kind key grouping this kind's entities."""
        return derive_ancestor_key(cls.connection.get(), cls.kind, parent_id)

    @classmethod
    def build_query(cls, **options: typing.Any) -> QuerySpec:
        return build_query(cls.kind, **options)

    @classmethod
    def from_entity(cls, entity: typing.Optional[Entity]) -> typing.Optional[typing.Any]:
        return translator.from_entity(cls, entity)

    @classmethod
    def from_entities(cls, entities: typing.Iterable[Entity]) -> typing.List[typing.Any]:
        return translator.from_entities(cls, entities)

    @classmethod
    def find_entity(cls, id_or_name: IdOrName, parent: typing.Optional[Key] = None) -> typing.Optional[Entity]:
        dataset = cls.connection.get()
        key = build_key(dataset, cls.kind, id_or_name, parent)
        return cls.connection.retry.strict(dataset.find, key)

    @classmethod
    def find_entities(cls, *ids_or_names: typing.Any, parent: typing.Optional[Key] = None) -> typing.List[Entity]:
        dataset = cls.connection.get()
        keys = [build_key(dataset, cls.kind, id_or_name, parent) for id_or_name in _flatten(ids_or_names)]
        return cls.connection.retry.strict(dataset.find_all, keys)

    @classmethod
    def find(cls, *ids: typing.Any, parent: typing.Optional[Key] = None) -> typing.Any:
        """Finds models by id: ``find(1)``, ``find(1, 5, 6)`` or ``find([5, 6, 10])``.

        One id gives a model or None, unless it was passed inside a list. Several ids give the
        models found, in request order.
        """
        expects_list = bool(ids) and isinstance(ids[0], (list, tuple))
        flat = _flatten(ids)
        if not flat:
            raise EntityError(f"Couldn't find {cls.__name__} without an id")
        if len(flat) == 1:
            model = cls.from_entity(cls.find_entity(flat[0], parent))
            if expects_list:
                return [model] if model is not None else []
            return model
        return cls.from_entities(cls.find_entities(flat, parent=parent))

    @classmethod
    def find_by(cls, ancestor: typing.Optional[Key] = None, **criteria: typing.Any) -> typing.Optional[typing.Any]:
        """First model whose properties equal every keyword given, e.g. ``find_by(name="Joe")``."""
        where = [(name, "=", value) for name, value in criteria.items()]
        spec = build_query(cls.kind, ancestor=ancestor, limit=1, where=where)
        dataset = cls.connection.get()
        return cls.from_entity(cls.connection.retry.strict(dataset.run, spec).first())

    @classmethod
    def all(cls, **options: typing.Any) -> typing.Union[typing.List[typing.Any], typing.Tuple[typing.List[typing.Any], Cursor]]:
        """Runs a query built from `options`, see ``build_query``.

        Without a limit returns every model. With one returns ``(models, cursor)``; the cursor is
        None unless the page came back full.
        """
        spec = cls.build_query(**options)
        dataset = cls.connection.get()
        results = cls.connection.retry.strict(dataset.run, spec)
        models = translator.from_entities(cls, results, partial=bool(spec.projection))
        if spec.limit is None:
            return models
        cursor = results.cursor if len(results) == spec.limit else None
        return models, cursor
