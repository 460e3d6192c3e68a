import contextlib
import logging
import typing

from google.cloud.datastore import Entity, Key

from datastore_models.callbacks import HaltedCallbackChain
from datastore_models.connection import ConnectionProvider
from datastore_models.keys import ensure_key
from datastore_models.persistence import StoreWriteFailed
from datastore_models.translator import to_entity

if typing.TYPE_CHECKING:
    from datastore_models.model import Model

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 500


def _slices(models: typing.Sequence["Model"], size: int) -> typing.Generator[typing.Sequence["Model"], None, None]:
    for start in range(0, len(models), size):
        yield models[start : start + size]


def _fill_id(model: "Model", results: typing.List[Entity], position: int) -> None:
    if results:
        model.fill_id_from_entity(results[position])


def _save_slice(
    connection: ConnectionProvider, models: typing.Sequence["Model"], parent: typing.Optional[Key]
) -> None:
    dataset = connection.get()
    entities: typing.List[Entity] = []
    results: typing.List[Entity] = []

    with contextlib.ExitStack() as pending:
        for position, model in enumerate(models):
            pending.enter_context(model.run_callbacks("save"))
            entities.append(to_entity(dataset, model, parent))
            # runs before the model's own after save hooks, once the write has happened
            pending.callback(_fill_id, model, results, position)

        saved = connection.retry.soft(dataset.save, *entities)
        if saved is False:
            raise StoreWriteFailed(f"Failed to write a batch of {len(entities)} entities")
        results.extend(saved)


def save_all(
    models: typing.Sequence["Model"],
    parent: typing.Optional[Key] = None,
    connection: typing.Optional[ConnectionProvider] = None,
) -> typing.List["Model"]:
    """Saves models in batches of up to 500 entities, one store call per batch.

    Every model is validated first; if any is invalid nothing is written. Each model's save hooks
    wrap the building of its entity, and its after save hooks see the id it was given. Models are
    returned in input order. A batch whose write keeps failing leaves its models without ids.
    """
    models = list(models)
    if not models:
        return models
    if parent is not None:
        ensure_key(parent)
    for model in models:
        model._ensure_writable()
    if not all([model.is_valid() for model in models]):
        logger.info("Not saving %d models, at least one is invalid", len(models))
        return models

    connection = connection or type(models[0]).connection
    size = min(connection.config.batch_size, MAX_BATCH_SIZE)
    to_write = [model for model in models if not model.exclude_from_save]
    for number, batch in enumerate(_slices(to_write, size)):
        try:
            _save_slice(connection, batch, parent)
        except (HaltedCallbackChain, StoreWriteFailed) as e:
            logger.error("Batch %d of %d models was not saved: %s", number, len(batch), e)
            continue
        logger.info("Saved batch %d of %d models", number, len(batch))
    return models
