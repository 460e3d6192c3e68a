import base64
import operator
import os
import typing
import uuid

import pytest
from _pytest.config.argparsing import Parser
from _pytest.fixtures import SubRequest
from _pytest.monkeypatch import MonkeyPatch
from google.auth.credentials import AnonymousCredentials
from google.cloud import datastore
from google.cloud.datastore import Entity, Key

from datastore_models.config import DatastoreConfig
from datastore_models.connection import ConnectionProvider
from datastore_models.dataset import Dataset
from datastore_models.model import Model
from datastore_models.retry import RetryExecutor

PROJECT = "datastore-models-test"

COMPARATORS = {
    "=": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "IN": lambda value, options: value in options,
    "NOT_IN": lambda value, options: value not in options,
}


def pytest_addoption(parser: Parser) -> None:
    parser.addoption("--datastore-emulator-host", action="store", default=None)


def _copy(entity: Entity) -> Entity:
    copied = Entity(key=entity.key, exclude_from_indexes=tuple(entity.exclude_from_indexes))
    copied.update(entity)
    return copied


def _has_ancestor(key: Key, ancestor: Key) -> bool:
    parent = key.parent
    while parent is not None:
        if parent == ancestor:
            return True
        parent = parent.parent
    return False


def _encode_cursor(offset: int) -> bytes:
    return base64.urlsafe_b64encode(str(offset).encode())


def _decode_cursor(cursor: typing.Union[bytes, str]) -> int:
    if isinstance(cursor, str):
        cursor = cursor.encode()
    return int(base64.urlsafe_b64decode(cursor).decode())


class FakeIterator:
    def __init__(self, entities: typing.List[Entity], next_page_token: bytes) -> None:
        self._entities = entities
        self.next_page_token = next_page_token

    def __iter__(self) -> typing.Iterator[Entity]:
        return iter(self._entities)


class FakeQuery:
    def __init__(
        self,
        client: "FakeClient",
        kind: typing.Optional[str] = None,
        projection: typing.Sequence[str] = (),
        order: typing.Sequence[str] = (),
        distinct_on: typing.Sequence[str] = (),
    ) -> None:
        self._client = client
        self.kind = kind
        self.projection = list(projection)
        self.order = list(order)
        self.distinct_on = list(distinct_on)
        self.ancestor: typing.Optional[Key] = None
        self.filters: typing.List[typing.Tuple[str, str, typing.Any]] = []

    def add_filter(self, *, filter: typing.Any) -> "FakeQuery":
        self.filters.append((filter.property_name, filter.operator, filter.value))
        return self

    def _matches(self, entity: Entity) -> bool:
        if entity.key.kind != self.kind:
            return False
        if self.ancestor is not None and not _has_ancestor(entity.key, self.ancestor):
            return False
        for name, op, value in self.filters:
            if name not in entity or not COMPARATORS[op](entity[name], value):
                return False
        return True

    def fetch(
        self, limit: typing.Optional[int] = None, start_cursor: typing.Optional[typing.Union[bytes, str]] = None
    ) -> FakeIterator:
        self._client.calls.append("run_query")
        results = [entity for entity in self._client.store.values() if self._matches(entity)]
        for name in reversed(self.order):
            descending = name.startswith("-")
            name = name.lstrip("-")
            results.sort(key=lambda entity: entity[name], reverse=descending)
        if self.projection:
            results = [self._project(entity) for entity in results]
        if self.distinct_on:
            seen = set()
            distinct = []
            for entity in results:
                marker = tuple(entity.get(name) for name in self.distinct_on)
                if marker not in seen:
                    seen.add(marker)
                    distinct.append(entity)
            results = distinct

        offset = _decode_cursor(start_cursor) if start_cursor else 0
        page = results[offset : offset + limit] if limit is not None else results[offset:]
        return FakeIterator([_copy(entity) for entity in page], _encode_cursor(offset + len(page)))

    def _project(self, entity: Entity) -> Entity:
        projected = Entity(key=entity.key)
        projected.update({name: entity[name] for name in self.projection if name in entity})
        return projected


class FakeClient:
    """In-memory stand-in for ``google.cloud.datastore.Client`` with the calls Dataset makes."""

    def __init__(self, project: str = PROJECT, namespace: typing.Optional[str] = None) -> None:
        self.project = project
        self.namespace = namespace
        self.store: typing.Dict[Key, Entity] = {}
        self.calls: typing.List[str] = []
        self._last_id = 1000

    def key(self, *path_args: typing.Any, parent: typing.Optional[Key] = None) -> Key:
        return Key(*path_args, parent=parent, project=self.project, namespace=self.namespace)

    def put_multi(self, entities: typing.List[Entity]) -> None:
        self.calls.append("put_multi")
        for entity in entities:
            if entity.key.is_partial:
                self._last_id += 1
                entity.key = entity.key.completed_key(self._last_id)
            self.store[entity.key] = _copy(entity)

    def get(self, key: Key) -> typing.Optional[Entity]:
        self.calls.append("get")
        found = self.store.get(key)
        return _copy(found) if found is not None else None

    def get_multi(self, keys: typing.List[Key]) -> typing.List[Entity]:
        self.calls.append("get_multi")
        # the store does not keep request order
        return [_copy(self.store[key]) for key in reversed(keys) if key in self.store]

    def delete_multi(self, keys: typing.List[Key]) -> None:
        self.calls.append("delete_multi")
        for key in keys:
            self.store.pop(key, None)

    def query(self, **kwargs: typing.Any) -> FakeQuery:
        return FakeQuery(self, **kwargs)


class Flaky:
    """Wraps a callable so that its first `failures` calls raise `error`."""

    def __init__(self, call: typing.Callable, failures: int, error: Exception) -> None:
        self._call = call
        self._failures = failures
        self._error = error
        self.attempts = 0

    def __call__(self, *args: typing.Any, **kwargs: typing.Any) -> typing.Any:
        self.attempts += 1
        if self.attempts <= self._failures:
            raise self._error
        return self._call(*args, **kwargs)


@pytest.fixture(autouse=True)
def _restore_emulator_host() -> typing.Iterator[None]:
    """Dataset.from_config exports DATASTORE_EMULATOR_HOST directly; restore it after each test."""
    original = os.environ.get("DATASTORE_EMULATOR_HOST")
    yield
    if original is None:
        os.environ.pop("DATASTORE_EMULATOR_HOST", None)
    else:
        os.environ["DATASTORE_EMULATOR_HOST"] = original


@pytest.fixture()
def client(request: SubRequest, monkeypatch: MonkeyPatch) -> typing.Any:
    emulator_host = request.config.getoption("--datastore-emulator-host")
    if not emulator_host:
        return FakeClient()
    monkeypatch.setenv("DATASTORE_EMULATOR_HOST", emulator_host)
    return datastore.Client(project=PROJECT, namespace=f"test-{uuid.uuid4().hex}", credentials=AnonymousCredentials())


@pytest.fixture()
def sleeps() -> typing.List[float]:
    return []


@pytest.fixture()
def connection(client: typing.Any, sleeps: typing.List[float], monkeypatch: MonkeyPatch) -> ConnectionProvider:
    provider = ConnectionProvider(
        config=DatastoreConfig(project=client.project),
        factory=lambda config: Dataset(client),
        retry=RetryExecutor(sleep=sleeps.append),
    )
    monkeypatch.setattr(Model, "connection", provider)
    return provider


@pytest.fixture()
def dataset(connection: ConnectionProvider) -> Dataset:
    return connection.get()


@pytest.fixture()
def offline_client() -> datastore.Client:
    return datastore.Client(project=PROJECT, credentials=AnonymousCredentials())


@pytest.fixture()
def flaky() -> typing.Type[Flaky]:
    return Flaky
