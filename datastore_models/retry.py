import logging
import time
import typing

import attr
from google.api_core import exceptions

from datastore_models.config import DatastoreConfig
from datastore_models.errors import TransientStoreError

logger = logging.getLogger(__name__)

T = typing.TypeVar("T")

TRANSIENT_ERRORS: typing.Tuple[typing.Type[BaseException], ...] = (
    exceptions.ServerError,
    exceptions.TooManyRequests,
    exceptions.Aborted,
    exceptions.RetryError,
    ConnectionError,
    TimeoutError,
    TransientStoreError,
)


@attr.s(auto_attribs=True)
class RetryExecutor:
    """Runs one store call, retrying transient failures with a doubling delay.

    With the defaults a call is attempted up to six times, sleeping 0.25, 0.5, 1, 2 and 4 seconds
    in between. The calling thread blocks for every sleep.
    """

    max_retries: int = 5
    initial_delay: float = 0.25
    retry_on: typing.Tuple[typing.Type[BaseException], ...] = TRANSIENT_ERRORS
    sleep: typing.Callable[[float], None] = time.sleep

    @classmethod
    def from_config(cls, config: DatastoreConfig) -> "RetryExecutor":
        return cls(max_retries=config.max_retries, initial_delay=config.retry_delay)

    def strict(self, call: typing.Callable[..., T], *args: typing.Any, **kwargs: typing.Any) -> T:
        """Returns the call's result, re-raising the last error once retries are exhausted."""
        delay = self.initial_delay
        retries = 0
        while True:
            try:
                return call(*args, **kwargs)
            except self.retry_on as e:
                if retries >= self.max_retries:
                    logger.error("%s failed after %d attempts: %r", _name(call), retries + 1, e)
                    raise
                logger.warning("Rescued exception %r from %s, retrying in %ss", e, _name(call), delay)
                self.sleep(delay)
                retries += 1
                delay *= 2

    def soft(self, call: typing.Callable[..., T], *args: typing.Any, **kwargs: typing.Any) -> typing.Union[T, bool]:
        """Like strict, but returns False instead of raising.

        Covers exhausted retries and terminal store errors such as InvalidArgument, which are never
        retried. Errors raised outside the store, ConfigurationError included, still propagate.
        """
        try:
            return self.strict(call, *args, **kwargs)
        except self.retry_on:
            return False
        except exceptions.GoogleAPICallError as e:
            logger.error("%s failed with a terminal store error: %r", _name(call), e)
            return False


def _name(call: typing.Callable) -> str:
    return getattr(call, "__qualname__", None) or repr(call)
