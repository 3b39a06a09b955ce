import json
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from yarl import URL

from datapull.exceptions.exceptions import ConfigError, InvalidConfigurationError


DEFAULT_DATAPULL_PATH = Path(
    os.getenv("DATAPULL_DEFAULT_PATH", Path.home() / ".datapull")
)
DEFAULT_PATH = DEFAULT_DATAPULL_PATH / "config.json"
DEFAULT_AUTH_URL = URL("https://api.datapull.io/v1/auth/s3-credentials")
DEFAULT_AUTH_TIMEOUT_S = 30.0

_ENV_KEY_TOKEN = "DATAPULL_TOKEN"
_ENV_KEY_BUCKET = "DATAPULL_BUCKET"
_ENV_KEY_ACCOUNT_ID = "DATAPULL_ACCOUNT_ID"
_ENV_KEY_AUTH_URL = "DATAPULL_AUTH_URL"
_ENV_KEY_AUTH_TIMEOUT = "DATAPULL_AUTH_TIMEOUT"
_ENV_KEY_S3_ENDPOINT_URL = "DATAPULL_S3_ENDPOINT_URL"
_ENV_KEY_CONFIG_PATH = "DATAPULL_CONFIG_PATH"


def get_config_path() -> Path:
    return Path(os.getenv(_ENV_KEY_CONFIG_PATH, DEFAULT_PATH))


@dataclass(frozen=True)
class S3Config:
    endpoint_url: Optional[URL] = None

    @classmethod
    def create_default(cls) -> "S3Config":
        return cls()


@dataclass(frozen=True)
class Config:
    auth_url: URL = DEFAULT_AUTH_URL
    token: str = field(default="", repr=False)
    bucket: str = ""
    account_id: str = ""
    output: Path = Path(".")
    auth_timeout_s: float = DEFAULT_AUTH_TIMEOUT_S
    s3: S3Config = S3Config.create_default()

    @property
    def has_token(self) -> bool:
        return bool(self.token)

    def with_overrides(self, **overrides: Any) -> "Config":
        """
        Returns a copy with every override that is not None applied.
        """
        values = {k: v for k, v in overrides.items() if v is not None}
        if "endpoint_url" in values:
            values["s3"] = S3Config(endpoint_url=URL(values.pop("endpoint_url")))
        if "auth_url" in values:
            values["auth_url"] = URL(values["auth_url"])
        if "output" in values:
            values["output"] = Path(values["output"])
        return replace(self, **values)

    def with_env(self, environ: Mapping[str, str]) -> "Config":
        timeout = environ.get(_ENV_KEY_AUTH_TIMEOUT)
        try:
            auth_timeout_s = float(timeout) if timeout else None
        except ValueError:
            raise ConfigError(
                f"Invalid {_ENV_KEY_AUTH_TIMEOUT} value {timeout!r}",
                "Set it to a number of seconds.",
            )
        return self.with_overrides(
            token=environ.get(_ENV_KEY_TOKEN) or None,
            bucket=environ.get(_ENV_KEY_BUCKET) or None,
            account_id=environ.get(_ENV_KEY_ACCOUNT_ID) or None,
            auth_url=environ.get(_ENV_KEY_AUTH_URL) or None,
            endpoint_url=environ.get(_ENV_KEY_S3_ENDPOINT_URL) or None,
            auth_timeout_s=auth_timeout_s,
        )


class ConfigRecord:
    @classmethod
    def from_s3(cls, config: S3Config) -> Dict[str, Any]:
        if not config.endpoint_url:
            return {}
        return {"endpoint_url": str(config.endpoint_url)}

    @classmethod
    def to_s3(cls, record: Dict[str, Any]) -> S3Config:
        if not record.get("endpoint_url"):
            return S3Config.create_default()
        return S3Config(endpoint_url=URL(record["endpoint_url"]))

    @classmethod
    def from_config(cls, config: Config) -> Dict[str, Any]:
        record: Dict[str, Any] = {"auth_url": str(config.auth_url)}
        if config.token:
            record["token"] = config.token
        if config.bucket:
            record["bucket"] = config.bucket
        if config.account_id:
            record["account_id"] = config.account_id
        if config.output != Path("."):
            record["output"] = str(config.output)
        if config.auth_timeout_s != DEFAULT_AUTH_TIMEOUT_S:
            record["auth_timeout_s"] = config.auth_timeout_s
        s3_record = cls.from_s3(config.s3)
        if s3_record:
            record["s3"] = s3_record
        return record

    @classmethod
    def to_config(cls, record: Dict[str, Any]) -> Config:
        if not isinstance(record, dict):
            raise ValueError("Configuration must be a JSON object")
        return Config(
            auth_url=URL(record.get("auth_url", str(DEFAULT_AUTH_URL))),
            token=record.get("token", ""),
            bucket=str(record.get("bucket", "")),
            account_id=str(record.get("account_id", "")),
            output=Path(record.get("output", ".")),
            auth_timeout_s=float(record.get("auth_timeout_s", DEFAULT_AUTH_TIMEOUT_S)),
            s3=cls.to_s3(record.get("s3", {})),
        )


class ConfigStore:
    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def save(self, config: Config) -> None:
        record = ConfigRecord.from_config(config)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._path, "w") as f:
            json.dump(record, f)
        self._path.chmod(0o600)

    def load(self) -> Config:
        """
        Loads the stored configuration, falling back to defaults when there is
        no configuration file.
        """
        if not self._path.exists():
            return Config()
        try:
            with open(self._path, "r") as f:
                return ConfigRecord.to_config(json.load(f))
        except Exception:
            raise InvalidConfigurationError(self._path)

    def delete(self) -> None:
        try:
            self._path.unlink()
        except FileNotFoundError:
            pass


def load_config(
    path: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None
) -> Config:
    if path is None:
        path = get_config_path()
    if environ is None:
        environ = os.environ
    return ConfigStore(path).load().with_env(environ)
