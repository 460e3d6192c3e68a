import logging
import typing

import attr
from google.cloud.datastore import Entity, Key

from datastore_models.attribute_table import NestedModelsNode
from datastore_models.callbacks import HaltedCallbackChain
from datastore_models.connection import ConnectionProvider, default_provider
from datastore_models.errors import ConfigurationError, EntityError, EntityNotSavedError, Error
from datastore_models.keys import build_key, ensure_key
from datastore_models.translator import resolve_parent, to_entity

logger = logging.getLogger(__name__)

NESTED_ATTRIBUTES_SUFFIX = "_attributes"


class StoreWriteFailed(Error):
    """The store kept failing a write or delete until the retry budget ran out."""


class Persistence:
    connection: typing.ClassVar[ConnectionProvider] = default_provider

    kind: typing.ClassVar[str]
    id: typing.Any
    parent_id: typing.Any
    destroyed: bool

    def is_persisted(self) -> bool:
        return self.id is not None and not self.destroyed

    def has_parent(self) -> bool:
        return self.parent_id is not None

    def assign_attributes(self, **attributes: typing.Any) -> None:
        """Sets declared attributes from keyword arguments.

        ``<name>_attributes`` keys are handed to ``assign_nested_attributes`` when ``<name>`` is a
        nested model attribute. Unknown names raise ConfigurationError.
        """
        table = self.attribute_table()
        fields = attr.fields_dict(type(self))
        for name, value in attributes.items():
            nested_name = name[: -len(NESTED_ATTRIBUTES_SUFFIX)]
            if name.endswith(NESTED_ATTRIBUTES_SUFFIX) and isinstance(table.node(nested_name), NestedModelsNode):
                self.assign_nested_attributes(nested_name, value)
            elif name in fields:
                setattr(self, name, value)
            else:
                raise ConfigurationError(f"{type(self).__name__} has no attribute {name!r}")

    def build_entity(self, parent: typing.Optional[Key] = None) -> Entity:
        return to_entity(self.connection.get(), self, parent)

    def fill_id_from_entity(self, entity: Entity) -> None:
        self.id = entity.key.id_or_name
        if entity.key.parent is not None:
            self.parent_id = entity.key.parent.id_or_name
            self._parent_key = entity.key.parent

    def _ensure_writable(self) -> None:
        if self.destroyed:
            raise EntityError(f"{type(self).__name__} {self.id} has been destroyed")

    def _write(self, event: str, parent: typing.Optional[Key] = None) -> None:
        dataset = self.connection.get()
        with self.run_callbacks(event):
            entity = self.build_entity(parent)
            if self.connection.retry.soft(dataset.save, entity) is False:
                raise StoreWriteFailed(f"Failed to write {entity.key.kind}")
            self.fill_id_from_entity(entity)
            logger.debug("Wrote %s %s", entity.key.kind, self.id)

    def strict_save(self, parent: typing.Optional[Key] = None) -> bool:
        self._ensure_writable()
        if parent is not None:
            ensure_key(parent)
        if not self.is_valid():
            raise EntityNotSavedError(f"Failed to save the entity: {', '.join(self.errors.full_messages())}")
        try:
            self._write("save", parent)
        except (HaltedCallbackChain, StoreWriteFailed) as e:
            raise EntityNotSavedError(f"Failed to save the entity: {e}") from e
        return True

    def save(self, parent: typing.Optional[Key] = None) -> bool:
        """Validates and writes the model, filling in the id the store assigned.

        Returns False, without writing, when validation fails or a before hook halts, and also
        when the write keeps failing after every retry.
        """
        try:
            return self.strict_save(parent)
        except EntityNotSavedError:
            return False

    def update(self, **attributes: typing.Any) -> bool:
        """Assigns `attributes`, revalidates and overwrites the whole stored entity."""
        self._ensure_writable()
        if self._partially_loaded:
            raise EntityError(
                f"{type(self).__name__} {self.id} was loaded with a projection, updating it would drop properties"
            )
        self.assign_attributes(**attributes)
        if not self.is_valid():
            return False
        try:
            self._write("update")
        except (HaltedCallbackChain, StoreWriteFailed):
            return False
        return True

    def destroy(self) -> bool:
        if self.id is None:
            raise EntityError(f"Can't destroy a {type(self).__name__} that was never saved")
        self._ensure_writable()
        dataset = self.connection.get()
        key = build_key(dataset, self.kind, self.id, resolve_parent(dataset, self))
        try:
            with self.run_callbacks("destroy"):
                if self.connection.retry.soft(dataset.delete, key) is False:
                    raise StoreWriteFailed(f"Failed to delete {key.kind} {self.id}")
                self.destroyed = True
        except (HaltedCallbackChain, StoreWriteFailed):
            return False
        logger.debug("Destroyed %s %s", key.kind, self.id)
        return True
