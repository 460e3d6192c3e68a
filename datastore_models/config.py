"""Settings consumed by the connection provider.

Everything is read from the environment so the same code runs against the local emulator, a
test emulator and a managed runtime. Nothing here talks to the store.
"""
import logging
import os
import typing

import attr
from google.oauth2 import service_account

logger = logging.getLogger(__name__)

TOKEN_URI = "https://oauth2.googleapis.com/token"


def _optional_int(value: typing.Optional[str], default: int) -> int:
    return int(value) if value else default


def _optional_float(value: typing.Optional[str], default: float) -> float:
    return float(value) if value else default


@attr.s(auto_attribs=True, frozen=True)
class DatastoreConfig:
    project: typing.Optional[str] = None
    namespace: typing.Optional[str] = None
    emulator_host: typing.Optional[str] = None
    private_key: typing.Optional[str] = attr.ib(default=None, repr=False)
    client_email: typing.Optional[str] = None
    max_retries: int = 5
    retry_delay: float = 0.25
    batch_size: int = attr.ib(default=500, validator=attr.validators.instance_of(int))

    @batch_size.validator
    def _check_batch_size(self, attribute: attr.Attribute, value: int) -> None:
        if not 0 < value <= 500:
            raise ValueError(f"{attribute.name} must be between 1 and 500, got {value}")

    @classmethod
    def from_env(cls) -> "DatastoreConfig":
        return cls(
            project=os.getenv("DATASTORE_PROJECT_ID") or os.getenv("GCLOUD_PROJECT"),
            namespace=os.getenv("DATASTORE_NAMESPACE") or None,
            emulator_host=os.getenv("DATASTORE_EMULATOR_HOST") or None,
            private_key=os.getenv("SERVICE_ACCOUNT_PRIVATE_KEY") or None,
            client_email=os.getenv("SERVICE_ACCOUNT_CLIENT_EMAIL") or None,
            max_retries=_optional_int(os.getenv("DATASTORE_MAX_RETRIES"), 5),
            retry_delay=_optional_float(os.getenv("DATASTORE_RETRY_DELAY"), 0.25),
            batch_size=_optional_int(os.getenv("DATASTORE_BATCH_SIZE"), 500),
        )

    @property
    def has_explicit_credentials(self) -> bool:
        return bool(self.private_key and self.client_email)

    def credentials(self) -> typing.Optional[service_account.Credentials]:
        """Service account credentials, or None to let the client discover them."""
        if self.emulator_host or not self.has_explicit_credentials:
            return None
        # Keys pasted into env vars usually carry escaped newlines
        private_key = self.private_key.replace("\\n", "\n")
        logger.debug("Using service account credentials for %s", self.client_email)
        return service_account.Credentials.from_service_account_info(
            {"private_key": private_key, "client_email": self.client_email, "token_uri": TOKEN_URI}
        )
