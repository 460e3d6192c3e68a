import logging
import os
import typing

import attr
from google.cloud import datastore
from google.cloud.datastore import Entity, Key

from datastore_models.config import DatastoreConfig
from datastore_models.keys import IdOrName

if typing.TYPE_CHECKING:
    from datastore_models.query import QuerySpec

logger = logging.getLogger(__name__)


@attr.s(auto_attribs=True)
class QueryResults:
    entities: typing.List[Entity]
    cursor: typing.Optional[typing.Union[bytes, str]] = None

    def __len__(self) -> int:
        return len(self.entities)

    def __iter__(self) -> typing.Iterator[Entity]:
        return iter(self.entities)

    def first(self) -> typing.Optional[Entity]:
        return self.entities[0] if self.entities else None


class Dataset:
    """The only object that sends requests to the store.

    Wraps a ``google.cloud.datastore.Client`` (or anything exposing the same methods) and gives
    the rest of the package three result shapes: one entity or None, a list of entities, and a
    page of entities with a continuation cursor.
    """

    def __init__(self, client: datastore.Client) -> None:
        self.client = client

    @classmethod
    def from_config(cls, config: DatastoreConfig) -> "Dataset":
        """Creates the client described by `config`.

        When `config.emulator_host` is set this exports DATASTORE_EMULATOR_HOST for the whole
        process: the client only switches to the emulator's plain-text channel from that variable,
        so every client created afterwards talks to the emulator as well.
        """
        if config.emulator_host and os.environ.get("DATASTORE_EMULATOR_HOST") != config.emulator_host:
            logger.warning("Exporting DATASTORE_EMULATOR_HOST=%s for this process", config.emulator_host)
            os.environ["DATASTORE_EMULATOR_HOST"] = config.emulator_host
        client = datastore.Client(
            project=config.project, namespace=config.namespace, credentials=config.credentials()
        )
        logger.info("Created datastore client for project %s", client.project)
        return cls(client)

    @property
    def project(self) -> str:
        return self.client.project

    def key(self, kind: str, id_or_name: typing.Optional[IdOrName] = None, parent: typing.Optional[Key] = None) -> Key:
        path = (kind,) if id_or_name is None else (kind, id_or_name)
        return self.client.key(*path, parent=parent)

    def entity(self, key: Key, exclude_from_indexes: typing.Iterable[str] = ()) -> Entity:
        return Entity(key=key, exclude_from_indexes=tuple(exclude_from_indexes))

    def save(self, *entities: Entity) -> typing.List[Entity]:
        """Writes entities in one call; incomplete keys are completed in place, in order."""
        entities_list = list(entities)
        self.client.put_multi(entities_list)
        logger.debug("Saved %d entities", len(entities_list))
        return entities_list

    def find(self, key: Key) -> typing.Optional[Entity]:
        return self.client.get(key)

    def find_all(self, keys: typing.Sequence[Key]) -> typing.List[Entity]:
        """Looks keys up in one call. Missing keys are left out, the rest keep request order."""
        if not keys:
            return []
        found = {entity.key: entity for entity in self.client.get_multi(list(keys))}
        return [found[key] for key in keys if key in found]

    def delete(self, *keys: Key) -> bool:
        self.client.delete_multi(list(keys))
        logger.debug("Deleted %d entities", len(keys))
        return True

    def run(self, spec: "QuerySpec") -> QueryResults:
        query = spec.compile(self.client)
        iterator = query.fetch(limit=spec.limit, start_cursor=spec.cursor)
        entities = list(iterator)
        return QueryResults(entities, iterator.next_page_token)
