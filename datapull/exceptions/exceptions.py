from pathlib import Path

from rich.markup import escape


RICH_ERROR_COLOR = "rgb(251,147,60)"


class DataPullException(Exception):
    def __init__(self, error_msg: str = "", suggestion: str = ""):
        self._error_msg = error_msg
        self._suggestion = suggestion
        super().__init__(self._format_message())

    @property
    def error_msg(self) -> str:
        return self._error_msg

    @property
    def error_msg_rich(self) -> str:
        return escape(self.error_msg)

    @property
    def suggestion(self) -> str:
        return self._suggestion

    def _format_message(self) -> str:
        message = f"Error: {self._error_msg}"
        if self._suggestion:
            message += f",\nSuggestion: {self._suggestion}"
        return message


class ConfigError(DataPullException):
    pass


class InvalidConfigurationError(ConfigError):
    def __init__(self, path: Path):
        self._path: Path = path
        super().__init__(
            f"Invalid configuration file {path.resolve()}",
            "Fix or remove the file and try again.",
        )

    @property
    def path(self) -> Path:
        return self._path


class ValidationError(DataPullException):
    pass


class InvalidRangeError(ValidationError):
    def __init__(self, start: object, end: object):
        self.start = start
        self.end = end
        super().__init__(
            f"Start date {start} is after end date {end}",
            "Pass an --end date on or after --start.",
        )


class MissingBasePathError(DataPullException):
    def __init__(self) -> None:
        super().__init__(
            "Cannot determine the dataset location.",
            "Pass --token, or both --bucket and --account-id.",
        )


class AuthException(DataPullException):
    pass


class MissingTokenError(AuthException):
    def __init__(self) -> None:
        super().__init__(
            "No access token configured.",
            "Pass --token or set DATAPULL_TOKEN.",
        )


class AuthAPIError(AuthException):
    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Token exchange failed with HTTP {status_code}: {body}")

    @property
    def error_msg_rich(self) -> str:
        return (
            f"Token exchange failed with HTTP [bold {RICH_ERROR_COLOR}]"
            f"{self.status_code}[/bold {RICH_ERROR_COLOR}]: {escape(self.body)}"
        )


class MalformedResponseError(AuthException):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Malformed token exchange response: {reason}")


class AuthTimeoutError(AuthException):
    def __init__(self, timeout_s: float):
        super().__init__(
            f"Token exchange did not complete within {timeout_s:g}s.",
            "Check your internet connection.",
        )


class AuthConnectionError(AuthException):
    def __init__(self, details: str):
        super().__init__(
            f"Token exchange endpoint unreachable. {details}",
            "Check your internet connection.",
        )


class ObjectStoreError(DataPullException):
    def __init__(self, prefix: str, details: str):
        self.prefix = prefix
        super().__init__(f"Object store request for {prefix} failed: {details}")
