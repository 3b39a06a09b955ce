from .config import (  # noqa
    DEFAULT_AUTH_TIMEOUT_S,
    DEFAULT_AUTH_URL,
    DEFAULT_DATAPULL_PATH,
    DEFAULT_PATH,
    Config,
    ConfigRecord,
    ConfigStore,
    S3Config,
    get_config_path,
    load_config,
)


def is_debug_on() -> bool:
    import os

    return _str2bool(os.environ.get("DATAPULL_DEBUG", "false"))


def _str2bool(v: str) -> bool:
    return v.lower() not in ("", "no", "false", "0")
