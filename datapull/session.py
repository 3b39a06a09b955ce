import logging
import threading
import time
from typing import Callable, Optional

from datapull.auth import Authenticator
from datapull.contracts.aws import Credential
from datapull.exceptions.exceptions import MissingBasePathError
from datapull.paths import join_path


logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


class CredentialStore:
    """
    Holds at most one credential. A new credential replaces the previous one
    as a whole.
    """

    def __init__(self) -> None:
        self._credential: Optional[Credential] = None

    def is_valid(self, now: int) -> bool:
        return self._credential is not None and self._credential.is_valid(now)

    def set(self, credential: Credential) -> None:
        self._credential = credential

    def current(self) -> Optional[Credential]:
        return self._credential

    def clear(self) -> None:
        self._credential = None


class SessionManager:
    """
    Keeps a valid credential around for object store calls.

    Without a token nothing is ever authenticated and the object store falls
    back to ambient credentials. With a token, a round trip to the token
    exchange endpoint only happens when no credential is held yet or the held
    one has expired.
    """

    def __init__(
        self,
        token: str = "",
        authenticator: Optional[Authenticator] = None,
        store: Optional[CredentialStore] = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._token = token
        self._authenticator = authenticator or Authenticator()
        self._store = store or CredentialStore()
        self._clock = clock
        self._has_authenticated = False
        self._lock = threading.Lock()

    @property
    def has_token(self) -> bool:
        return bool(self._token)

    @property
    def has_authenticated(self) -> bool:
        return self._has_authenticated

    @property
    def credential(self) -> Optional[Credential]:
        return self._store.current()

    def ensure_valid(self, now: Optional[int] = None) -> Optional[Credential]:
        if not self._token:
            return None
        # check-then-set must not interleave between transfer threads
        with self._lock:
            if now is None:
                now = self._clock()
            if not self._store.is_valid(now):
                if self._store.current() is None:
                    logger.debug("No credentials yet, authenticating")
                else:
                    logger.debug("Credentials expired, authenticating")
                self._has_authenticated = True
                self._store.set(self._authenticator.authenticate(self._token))
            return self._store.current()

    def base_path(self, bucket: str = "", account_id: str = "") -> str:
        if self._token:
            credential = self.ensure_valid()
            assert credential
            return credential.base_path
        if not bucket or not account_id:
            raise MissingBasePathError()
        return join_path(f"s3://{bucket}/v1", f"account_id={account_id}")
