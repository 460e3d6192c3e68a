import typing

from google.cloud.datastore import Key

from datastore_models.errors import ConfigurationError

if typing.TYPE_CHECKING:
    from datastore_models.dataset import Dataset


IdOrName = typing.Union[int, str]

ANCESTOR_KIND_PREFIX = "Parent"


def coerce_id(id_or_name: typing.Optional[IdOrName]) -> typing.Optional[IdOrName]:
    # Ids travel through forms and urls as strings, the store hands out integers
    if isinstance(id_or_name, str) and id_or_name.isdigit():
        return int(id_or_name)
    return id_or_name


def ancestor_kind(kind: str) -> str:
    return f"{ANCESTOR_KIND_PREFIX}{kind}"


def derive_ancestor_key(dataset: "Dataset", kind: str, parent_id: IdOrName) -> Key:
    return dataset.key(ancestor_kind(kind), coerce_id(parent_id))


def ensure_key(parent: typing.Any) -> Key:
    if not isinstance(parent, Key):
        raise ConfigurationError(f"Must be a Key, got {type(parent).__name__}")
    return parent


def build_key(
    dataset: "Dataset", kind: str, id_or_name: typing.Optional[IdOrName] = None, parent: typing.Optional[Key] = None
) -> Key:
    if parent is not None:
        ensure_key(parent)
    return dataset.key(kind, coerce_id(id_or_name), parent=parent)

