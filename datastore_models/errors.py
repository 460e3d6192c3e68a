class Error(Exception):
    """Base class of every error raised by datastore_models."""


class EntityNotSavedError(Error):
    pass


class EntityError(Error):
    """Raised when an entity can not be looked up or is no longer usable."""


class TrackChangesError(Error, TypeError):
    """Raised when change tracking is used on something never configured for it."""


class ConfigurationError(Error, ValueError):
    """Caller misuse detected before any request is sent to the store."""


class TransientStoreError(Error):
    """A retryable failure of a store call."""
