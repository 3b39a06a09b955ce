import abc
import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional

from yarl import URL

from datapull.contracts.aws import Credential, ObjectDescriptor, S3Path
from datapull.contracts.tracker import ResourceTransferState
from datapull.exceptions.exceptions import ObjectStoreError


logger = logging.getLogger(__name__)

CredentialsProvider = Callable[[], Optional[Credential]]


class ObjectStore(abc.ABC):
    @abc.abstractmethod
    def list(self, prefix: str) -> Iterator[ObjectDescriptor]:
        pass

    @abc.abstractmethod
    def sync(
        self,
        prefix: str,
        local_dir: Path,
        state: Optional[ResourceTransferState] = None,
    ) -> None:
        pass


def _no_credentials() -> Optional[Credential]:
    return None


class S3ObjectStore(ObjectStore):
    """
    Object store backed by S3.

    ``credentials_provider`` is called before every request. When it returns
    None, boto3 resolves credentials from the environment.
    """

    def __init__(
        self,
        credentials_provider: CredentialsProvider = _no_credentials,
        *,
        endpoint_url: Optional[URL] = None,
    ) -> None:
        self._credentials_provider = credentials_provider
        self._endpoint_url = endpoint_url

    def _bucket(self, bucket_name: str) -> Any:
        import boto3

        # one session per call, boto3's default session is not shared across threads
        session_kwargs: Dict[str, Any] = {}
        credential = self._credentials_provider()
        if credential:
            session_kwargs.update(credential.as_boto3_kwargs())
        session = boto3.Session(**session_kwargs)  # type: ignore
        s3 = session.resource(
            "s3", endpoint_url=self._endpoint_url and str(self._endpoint_url)
        )
        return s3.Bucket(bucket_name)

    def list(self, prefix: str) -> Iterator[ObjectDescriptor]:
        from botocore.exceptions import BotoCoreError, ClientError

        s3_path = S3Path.parse(prefix)
        bucket = self._bucket(s3_path.bucket)
        logger.debug("Listing %s", s3_path)
        try:
            for obj in bucket.objects.filter(Prefix=s3_path.key):
                yield ObjectDescriptor(
                    key=obj.key, size=obj.size, last_modified=obj.last_modified
                )
        except (BotoCoreError, ClientError) as err:
            raise ObjectStoreError(prefix, str(err)) from err

    def sync(
        self,
        prefix: str,
        local_dir: Path,
        state: Optional[ResourceTransferState] = None,
    ) -> None:
        from botocore.exceptions import BotoCoreError, ClientError

        if not state:
            state = ResourceTransferState()

        s3_path = S3Path.parse(prefix)
        bucket = self._bucket(s3_path.bucket)
        local_dir.mkdir(parents=True, exist_ok=True)

        to_download: List[Dict[str, Any]] = []
        total_num_files = 0
        total_file_bytes = 0
        try:
            for obj in bucket.objects.filter(Prefix=s3_path.key):
                if obj.key[-1] == "/":
                    continue
                target = os.path.join(local_dir, os.path.relpath(obj.key, s3_path.key))
                total_num_files += 1
                total_file_bytes += obj.size
                if os.path.exists(target) and os.path.getsize(target) == obj.size:
                    logger.debug("Skipping up to date %s", target)
                    state.increment_num_skipped_files(1)
                    state.increment_transferred_resource_size_bytes(obj.size)
                    continue
                os.makedirs(os.path.dirname(target), exist_ok=True)
                to_download.append({"args": [obj.key, target]})

            state.total_num_files = total_num_files
            state.total_resource_size_bytes = total_file_bytes
            for function_params in to_download:
                logger.debug("Downloading %s", function_params["args"][0])
                bucket.download_file(
                    *function_params["args"],
                    Callback=state.increment_transferred_resource_size_bytes,
                )
                state.increment_num_transferred_files(1)
        except (BotoCoreError, ClientError) as err:
            raise ObjectStoreError(prefix, str(err)) from err
