from datastore_models.batch import save_all
from datastore_models.callbacks import HaltedCallbackChain, after, before
from datastore_models.config import DatastoreConfig
from datastore_models.connection import ConnectionProvider, get_handle, reset_handle
from datastore_models.errors import (
    ConfigurationError,
    EntityError,
    EntityNotSavedError,
    Error,
    TrackChangesError,
    TransientStoreError,
)
from datastore_models.model import InvalidModelDefinition, Model, attribute, nested, transient
from datastore_models.retry import RetryExecutor
from datastore_models.translator import exclude_from_index
from datastore_models.validations import Errors, associated, length, required
