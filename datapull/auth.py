import asyncio
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Optional

from yarl import URL

from datapull.config import DEFAULT_AUTH_TIMEOUT_S, DEFAULT_AUTH_URL
from datapull.contracts.aws import Credential, S3Path
from datapull.exceptions.exceptions import (
    AuthAPIError,
    AuthConnectionError,
    AuthTimeoutError,
    MalformedResponseError,
    MissingTokenError,
    ObjectStoreError,
)
from datapull.utils.async_utils import asyncio_run_in_thread


if TYPE_CHECKING:
    from aiohttp import ClientSession


logger = logging.getLogger(__name__)

_CREDENTIAL_FIELDS = ("accessKeyId", "secretAccessKey", "sessionToken", "expiration")


def _require(payload: Dict[str, Any], name: str, path: str) -> Any:
    value = payload.get(name)
    if value is None or value == "":
        raise MalformedResponseError(f"missing or empty field '{path}'")
    return value


def parse_expiration_ms(value: Any) -> int:
    """
    Converts the credential expiration into epoch milliseconds.

    Accepts epoch milliseconds or an ISO-8601 timestamp. Timestamps without an
    offset are taken as UTC.
    """
    if isinstance(value, bool):
        raise MalformedResponseError(f"invalid expiration {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            expires_at = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            raise MalformedResponseError(f"invalid expiration {value!r}")
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return int(expires_at.timestamp() * 1000)
    raise MalformedResponseError(f"invalid expiration {value!r}")


def parse_credential(payload: Any) -> Credential:
    if not isinstance(payload, dict):
        raise MalformedResponseError("response body is not an object")
    credentials = payload.get("credentials")
    if not isinstance(credentials, dict):
        raise MalformedResponseError("missing or empty field 'credentials'")
    values = {
        name: _require(credentials, name, f"credentials.{name}")
        for name in _CREDENTIAL_FIELDS
    }
    base_path = _require(payload, "s3Path", "s3Path")
    if not all(
        isinstance(values[name], str)
        for name in ("accessKeyId", "secretAccessKey", "sessionToken")
    ) or not isinstance(base_path, str):
        raise MalformedResponseError("credential fields must be strings")
    try:
        S3Path.parse(base_path)
    except ObjectStoreError:
        raise MalformedResponseError(f"invalid field 's3Path' {base_path!r}")
    return Credential(
        access_key_id=values["accessKeyId"],
        secret_access_key=values["secretAccessKey"],
        session_token=values["sessionToken"],
        expires_at_ms=parse_expiration_ms(values["expiration"]),
        base_path=base_path.rstrip("/") + "/",
    )


class TokenExchangeClient:
    def __init__(self, *, client: "ClientSession", url: URL) -> None:
        self._client = client
        self._url = url

    async def request(self, token: str) -> Credential:
        if not token:
            raise MissingTokenError()

        async with self._client.get(
            self._url,
            headers={
                "accept": "application/json",
                "authorization": f"Bearer {token}",
            },
        ) as resp:
            body = await resp.text()
            if resp.status != 200:
                raise AuthAPIError(resp.status, body)
            try:
                payload = await resp.json(content_type=None)
            except ValueError:
                raise MalformedResponseError("response body is not valid JSON")
            return parse_credential(payload)


class Authenticator:
    """
    Exchanges a long lived access token for short lived object store
    credentials. Every call is one blocking round trip to the token exchange
    endpoint, bounded by ``timeout_s``.
    """

    def __init__(
        self,
        url: Optional[URL] = None,
        *,
        timeout_s: float = DEFAULT_AUTH_TIMEOUT_S,
    ) -> None:
        self._url = url if url is not None else DEFAULT_AUTH_URL
        self._timeout_s = timeout_s

    @property
    def url(self) -> URL:
        return self._url

    def authenticate(self, token: str) -> Credential:
        if not token:
            raise MissingTokenError()
        logger.debug("Exchanging access token at %s", self._url)
        credential = asyncio_run_in_thread(self._authenticate(token))
        logger.debug(
            "Received credentials %s expiring at %d",
            credential.access_key_id,
            credential.expires_at_ms,
        )
        return credential

    async def _authenticate(self, token: str) -> Credential:
        from aiohttp import ClientError, ClientSession, ClientTimeout

        try:
            async with ClientSession(
                timeout=ClientTimeout(total=self._timeout_s)
            ) as client:
                return await TokenExchangeClient(client=client, url=self._url).request(
                    token
                )
        except asyncio.TimeoutError as err:
            raise AuthTimeoutError(self._timeout_s) from err
        except ClientError as err:
            raise AuthConnectionError(str(err)) from err
