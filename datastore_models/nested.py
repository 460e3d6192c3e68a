import typing

import inflection

from datastore_models.attribute_table import NestedModelsNode, _forward_name
from datastore_models.errors import ConfigurationError, EntityError
from datastore_models.registry import registry
from datastore_models.validations import Errors, is_blank

DESTROY_FLAGS = (True, 1, "1", "t", "T", "true", "TRUE")
UNASSIGNABLE_KEYS = frozenset(["id", "_destroy"])

Attributes = typing.Mapping[str, typing.Any]


def _destroy_flag(attributes: Attributes) -> bool:
    return attributes.get("_destroy") in DESTROY_FLAGS


def _normalize(attributes: typing.Any) -> typing.Dict[str, Attributes]:
    if isinstance(attributes, (list, tuple)):
        attributes = {str(i): entry for i, entry in enumerate(attributes)}
    if not isinstance(attributes, typing.Mapping):
        raise ConfigurationError(
            f"Mapping or list expected, got {type(attributes).__name__} ({attributes!r})"
        )
    for entry in attributes.values():
        if not isinstance(entry, typing.Mapping):
            raise ConfigurationError(f"Mapping expected for nested model attributes, got {entry!r}")
    return dict(attributes)


def _assignable(attributes: Attributes) -> typing.Dict[str, typing.Any]:
    return {key: value for key, value in attributes.items() if key not in UNASSIGNABLE_KEYS}


def _reject_if(attributes: Attributes, reject_if: typing.Any) -> bool:
    if reject_if == "all_blank":
        return all(is_blank(value) for key, value in attributes.items() if key != "_destroy")
    if callable(reject_if):
        return bool(reject_if(attributes))
    return False


class NestedAttributes:
    nested_attributes: typing.Optional[typing.List[str]]
    marked_for_destruction: bool

    @classmethod
    def nested_model_class(cls, name: str) -> typing.Type:
        node = cls.attribute_table().node(name)
        if not isinstance(node, NestedModelsNode):
            raise ConfigurationError(f"{cls.__name__}.{name} is not a nested model attribute")
        forward = _forward_name(node.type)
        if node.type is not None and forward is None:
            return node.type
        return registry.model_for(forward or inflection.camelize(inflection.singularize(name)))

    def has_nested_attributes(self) -> bool:
        return isinstance(self.nested_attributes, list) and bool(self.nested_attributes)

    def nested_models(self) -> typing.List[typing.Any]:
        if not self.has_nested_attributes():
            return []
        return [child for name in self.nested_attributes for child in getattr(self, name) or ()]

    def nested_model_class_names(self) -> typing.List[str]:
        names: typing.List[str] = []
        for child in self.nested_models():
            if type(child).__name__ not in names:
                names.append(type(child).__name__)
        return names

    def nested_errors(self) -> typing.List[Errors]:
        return [child.errors for child in self.nested_models()]

    def mark_for_destruction(self) -> None:
        self.marked_for_destruction = True

    def assign_nested_attributes(self, name: str, attributes: typing.Any, reject_if: typing.Any = None) -> None:
        """Builds, updates or marks for destruction the child models held in `name`.

        `attributes` is a list of mappings or a mapping of index to mapping, as submitted by a form.
        Entries without an id become new children unless `reject_if` ("all_blank" or a callable)
        rejects them; entries with an id update the matching child, or mark it for destruction when
        their `_destroy` flag is set.
        """
        entries = _normalize(attributes)
        child_cls = self.nested_model_class(name)
        if getattr(self, name) is None:
            setattr(self, name, [])
        children = getattr(self, name)

        for params in entries.values():
            if is_blank(params.get("id")):
                if _destroy_flag(params) or _reject_if(params, reject_if):
                    continue
                child = child_cls()
                child.assign_attributes(**_assignable(params))
                children.append(child)
                continue

            existing = next((child for child in children if str(child.id) == str(params["id"])), None)
            if existing is None:
                raise EntityError(f"Couldn't find {child_cls.__name__} with id={params['id']} in {name}")
            existing.assign_attributes(**_assignable(params))
            if _destroy_flag(params):
                existing.mark_for_destruction()

        if self.nested_attributes is None:
            self.nested_attributes = []
        self.nested_attributes.append(name)
