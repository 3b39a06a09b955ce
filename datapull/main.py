import argparse
import concurrent.futures
import logging
import shlex
from dataclasses import dataclass
from typing import List, NoReturn, Optional, Sequence

import humanize  # type: ignore
from rich.console import Console

from datapull.auth import Authenticator
from datapull.config import Config, is_debug_on, load_config
from datapull.exceptions.exception_handler import exception_handler
from datapull.exceptions.exceptions import MissingTokenError, ValidationError
from datapull.paths import PartitionPath, PathSpec, build_paths
from datapull.session import SessionManager
from datapull.tracker.output import TransferProgressTracker
from datapull.utils.s3 import ObjectStore, S3ObjectStore


logger = logging.getLogger(__name__)

COMMANDS = ("help", "auth", "paths", "ls", "load")

DESCRIPTION = """\
commands:
  help    show this message
  auth    exchange the access token for credentials and print them as
          shell exports
  paths   print the dataset locations matching the options
  ls      list the objects stored under each location
  load    download every location into --output
"""


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> NoReturn:
        raise ValidationError(message, "Run `datapull help` for usage.")


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="datapull",
        description="Locate and download a partitioned dataset.",
        epilog=DESCRIPTION,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        add_help=False,
    )
    parser.add_argument("command", nargs="?", default="help", choices=COMMANDS)
    parser.add_argument("-v", "--verbose", action="store_true")
    parser.add_argument("--bucket", help="bucket holding the dataset")
    parser.add_argument("--account-id", help="account the dataset belongs to")
    parser.add_argument("--token", help="access token to exchange for credentials")
    parser.add_argument("--type", dest="dataset_type", help="decisions or events")
    parser.add_argument("--start", "--date", dest="start", help="first day, YYYY-MM-DD")
    parser.add_argument("--end", help="last day, YYYY-MM-DD, defaults to --start")
    partition = parser.add_mutually_exclusive_group()
    partition.add_argument("--experiment", help="experiment id")
    partition.add_argument("--event", help="event name")
    parser.add_argument("--output", help="local directory for `load`, defaults to .")
    parser.add_argument(
        "--jobs", type=int, default=1, help="number of dates loaded in parallel"
    )
    parser.add_argument("--auth-url", help="token exchange endpoint")
    parser.add_argument("--endpoint-url", help="S3 compatible endpoint")
    return parser


@dataclass(frozen=True)
class Options:
    command: str = "help"
    verbose: bool = False
    dataset_type: Optional[str] = None
    start: Optional[str] = None
    end: Optional[str] = None
    experiment: Optional[str] = None
    event: Optional[str] = None
    jobs: int = 1

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "Options":
        if args.jobs < 1:
            raise ValidationError(f"Invalid --jobs value {args.jobs}", "Use 1 or more.")
        return cls(
            command=args.command,
            verbose=args.verbose,
            dataset_type=args.dataset_type,
            start=args.start,
            end=args.end,
            experiment=args.experiment,
            event=args.event,
            jobs=args.jobs,
        )


class CommandDispatcher:
    def __init__(
        self,
        config: Config,
        session: SessionManager,
        store: ObjectStore,
        *,
        console: Optional[Console] = None,
        help_text: str = "",
    ) -> None:
        self._config = config
        self._session = session
        self._store = store
        self._console = console or Console(stderr=True)
        self._help_text = help_text

    def run(self, options: Options) -> None:
        logger.debug("Running %s", options.command)
        if options.command == "help":
            print(self._help_text, end="")
        elif options.command == "auth":
            self.auth()
        elif options.command == "paths":
            self.show_paths(options)
        elif options.command == "ls":
            self.ls(options)
        elif options.command == "load":
            self.load(options)
        else:
            raise ValidationError(f"Unknown command {options.command!r}")

    def paths(self, options: Options) -> List[PartitionPath]:
        spec = PathSpec.create(
            base_path=self._session.base_path(
                self._config.bucket, self._config.account_id
            ),
            dataset_type=options.dataset_type,
            start=options.start,
            end=options.end,
            experiment=options.experiment,
            event=options.event,
        )
        return build_paths(spec)

    def auth(self) -> None:
        if not self._session.has_token:
            raise MissingTokenError()
        credential = self._session.ensure_valid()
        assert credential
        for name, value in credential.as_env().items():
            print(f"export {name}={shlex.quote(value)}")

    def show_paths(self, options: Options) -> None:
        for path in self.paths(options):
            if options.verbose:
                print(f"{path.relative or '.'}\t{path.absolute}")
            else:
                print(path.absolute)

    def ls(self, options: Options) -> None:
        for path in self.paths(options):
            self._session.ensure_valid()
            logger.debug("Listing %s", path.absolute)
            for obj in self._store.list(path.absolute):
                modified = (
                    obj.last_modified.strftime("%Y-%m-%d %H:%M:%S")
                    if obj.last_modified
                    else "-"
                )
                print(f"{humanize.naturalsize(obj.size):>10}  {modified}  {obj.key}")

    def load(self, options: Options) -> None:
        paths = self.paths(options)
        tracker = TransferProgressTracker(console=self._console)
        with tracker.track():
            if options.jobs == 1:
                for path in paths:
                    self._load_one(tracker, path)
                return
            with concurrent.futures.ThreadPoolExecutor(
                max_workers=options.jobs
            ) as executor:
                futures = [
                    executor.submit(self._load_one, tracker, path) for path in paths
                ]
                try:
                    for future in concurrent.futures.as_completed(futures):
                        future.result()
                except BaseException:
                    for future in futures:
                        future.cancel()
                    raise

    def _load_one(self, tracker: TransferProgressTracker, path: PartitionPath) -> None:
        state = tracker.add_transfer(path.relative or path.absolute)
        self._session.ensure_valid()
        local_dir = self._config.output / path.relative
        logger.debug("Loading %s into %s", path.absolute, local_dir)
        self._store.sync(path.absolute, local_dir, state)
        tracker.mark_done(state)


def configure_logging(verbose: bool) -> None:
    from rich.logging import RichHandler

    handler = RichHandler(console=Console(stderr=True), show_path=False)
    package_logger = logging.getLogger("datapull")
    package_logger.handlers = [handler]
    package_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    package_logger.propagate = False


def create_dispatcher(
    config: Config, parser: Optional[argparse.ArgumentParser] = None
) -> CommandDispatcher:
    session = SessionManager(
        token=config.token,
        authenticator=Authenticator(config.auth_url, timeout_s=config.auth_timeout_s),
    )
    store = S3ObjectStore(session.ensure_valid, endpoint_url=config.s3.endpoint_url)
    return CommandDispatcher(
        config,
        session,
        store,
        help_text=(parser or build_parser()).format_help(),
    )


@exception_handler()
def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose or is_debug_on())
    options = Options.from_args(args)
    config = load_config().with_overrides(
        token=args.token,
        bucket=args.bucket,
        account_id=args.account_id,
        output=args.output,
        auth_url=args.auth_url,
        endpoint_url=args.endpoint_url,
    )
    create_dispatcher(config, parser).run(options)


if __name__ == "__main__":
    main()
