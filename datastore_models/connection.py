import logging
import threading
import typing

from datastore_models.config import DatastoreConfig
from datastore_models.dataset import Dataset
from datastore_models.retry import RetryExecutor

logger = logging.getLogger(__name__)

DatasetFactory = typing.Callable[[DatastoreConfig], Dataset]


class ConnectionProvider:
    """Lazily creates and memoizes one Dataset per process.

    The handle is safe to share between threads for reads. It is not safe to carry across a
    fork: call ``reset()`` in the child before its first use.
    """

    def __init__(
        self,
        config: typing.Optional[DatastoreConfig] = None,
        factory: DatasetFactory = Dataset.from_config,
        retry: typing.Optional[RetryExecutor] = None,
    ) -> None:
        self._config = config
        self._factory = factory
        self._retry = retry
        self._dataset: typing.Optional[Dataset] = None
        self._lock = threading.Lock()

    @property
    def config(self) -> DatastoreConfig:
        if self._config is None:
            self._config = DatastoreConfig.from_env()
        return self._config

    @property
    def retry(self) -> RetryExecutor:
        if self._retry is None:
            self._retry = RetryExecutor.from_config(self.config)
        return self._retry

    def get(self) -> Dataset:
        if self._dataset is None:
            with self._lock:
                if self._dataset is None:
                    self._dataset = self._factory(self.config)
        return self._dataset

    def reset(self) -> None:
        with self._lock:
            if self._dataset is not None:
                logger.info("Dropping memoized datastore handle")
            self._dataset = None


default_provider = ConnectionProvider()


def get_handle() -> Dataset:
    return default_provider.get()


def reset_handle() -> None:
    default_provider.reset()
