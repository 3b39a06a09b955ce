import logging
import sys
from logging import Logger
from typing import Callable, Optional

import wrapt  # type: ignore
from rich.console import Console
from rich.markup import escape

from .exceptions import RICH_ERROR_COLOR, DataPullException


default_logger = logging.getLogger(__name__)


def exception_handler(
    console: Optional[Console] = None, logger: Logger = default_logger
) -> Callable:  # type: ignore
    """
    Top level handler for the command line entry point.

    Any exception raised by the wrapped function is logged with its stacktrace
    at debug level, reported on stderr and turned into exit status 1. This is
    the only place where the process is terminated on failure.

    :param console: console to report errors on. Defaults to stderr.
    :param logger: logger to log the stacktrace with.
    """

    @wrapt.decorator
    def wrapper(wrapped, instance, args, kwargs):  # type: ignore
        err_console = console or Console(stderr=True)
        try:
            return wrapped(*args, **kwargs)
        except DataPullException as e:
            _log_exception_from_execution(logger)
            err_console.print(
                f"[bold {RICH_ERROR_COLOR}]Error:[/bold {RICH_ERROR_COLOR}] "
                f"{e.error_msg_rich}",
                highlight=False,
            )
            if e.suggestion:
                err_console.print(f"Suggestion: {escape(e.suggestion)}", highlight=False)
        except Exception as e:
            _log_exception_from_execution(logger)
            reason = getattr(e, "message", repr(e))
            err_console.print(f"[red]Unexpected error: {escape(reason)}[/red]")
        sys.exit(1)

    return wrapper


def _log_exception_from_execution(logger: Logger) -> None:
    logger.debug("Caught exception stacktrace:", exc_info=True)
