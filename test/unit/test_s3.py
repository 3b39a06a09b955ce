import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional
from unittest import mock

import pytest
from botocore.exceptions import ClientError

from datapull.contracts.aws import Credential, S3Path
from datapull.contracts.tracker import ResourceTransferState
from datapull.exceptions.exceptions import ObjectStoreError
from datapull.paths import PathSpec, build_paths
from datapull.utils.s3 import S3ObjectStore


PREFIX = "s3://test-bucket/v1/account_id=1/type=events/date=2020-07-01/"
KEY_PREFIX = "v1/account_id=1/type=events/date=2020-07-01/"
MODIFIED = datetime(2020, 7, 2, 3, 4, 5, tzinfo=timezone.utc)


class _FakeObject:
    def __init__(self, key: str, size: int) -> None:
        self.key = key
        self.size = size
        self.last_modified = MODIFIED


class _FakeBucket:
    def __init__(self, objects: List[_FakeObject]) -> None:
        self._objects = objects
        self.filters: List[str] = []
        self.downloads: List[str] = []
        self.objects = mock.Mock()
        self.objects.filter.side_effect = self._filter

    def _filter(self, Prefix: str) -> Iterator[_FakeObject]:
        self.filters.append(Prefix)
        return iter([o for o in self._objects if o.key.startswith(Prefix)])

    def download_file(self, key: str, target: str, Callback: Any) -> None:
        self.downloads.append(key)
        size = next(o.size for o in self._objects if o.key == key)
        Path(target).write_bytes(b"x" * size)
        Callback(size)


@pytest.fixture()
def bucket() -> _FakeBucket:
    return _FakeBucket(
        [
            _FakeObject(KEY_PREFIX, 0),
            _FakeObject(KEY_PREFIX + "part-0.parquet", 10),
            _FakeObject(KEY_PREFIX + "nested/part-1.parquet", 20),
            _FakeObject("v1/account_id=1/type=events/date=2020-07-02/other", 5),
        ]
    )


@pytest.fixture()
def session(bucket: _FakeBucket) -> Iterator[mock.MagicMock]:
    with mock.patch("boto3.Session") as boto3_session:
        boto3_session.return_value.resource.return_value.Bucket.return_value = bucket
        yield boto3_session


class TestS3Path:
    def test_parse(self) -> None:
        assert S3Path.parse(PREFIX) == S3Path(bucket="test-bucket", key=KEY_PREFIX)
        assert str(S3Path.parse(PREFIX)) == PREFIX

    @pytest.mark.parametrize("name", ["sign up", "a#b", "a?b", "caf%C3%A9"])
    def test_parse_keeps_event_name_verbatim(self, name: str) -> None:
        paths = build_paths(
            PathSpec.create(
                "s3://test-bucket/v1/account_id=1",
                "events",
                "2020-07-01",
                event=name,
            )
        )
        s3_path = S3Path.parse(paths[0].absolute)

        assert s3_path.bucket == "test-bucket"
        assert s3_path.key == f"{KEY_PREFIX}event={name}/"
        assert str(s3_path) == paths[0].absolute

    @pytest.mark.parametrize("path", ["/local/path", "https://b/key", "s3:///key"])
    def test_parse_not_an_object_store_path(self, path: str) -> None:
        with pytest.raises(ObjectStoreError):
            S3Path.parse(path)


class TestS3ObjectStore:
    def test_list(self, session: mock.MagicMock, bucket: _FakeBucket) -> None:
        objects = list(S3ObjectStore().list(PREFIX))

        assert [o.key for o in objects] == [
            KEY_PREFIX,
            KEY_PREFIX + "part-0.parquet",
            KEY_PREFIX + "nested/part-1.parquet",
        ]
        assert objects[1].size == 10
        assert objects[1].last_modified == MODIFIED
        assert bucket.filters == [KEY_PREFIX]
        session.return_value.resource.return_value.Bucket.assert_called_with(
            "test-bucket"
        )

    def test_list_sends_unquoted_prefix(
        self, session: mock.MagicMock, bucket: _FakeBucket
    ) -> None:
        list(S3ObjectStore().list(PREFIX + "event=sign up/"))
        list(S3ObjectStore().list(PREFIX + "event=a#b/"))

        assert bucket.filters == [
            KEY_PREFIX + "event=sign up/",
            KEY_PREFIX + "event=a#b/",
        ]

    def test_ambient_credentials(self, session: mock.MagicMock) -> None:
        list(S3ObjectStore().list(PREFIX))
        session.assert_called_with()
        session.return_value.resource.assert_called_with("s3", endpoint_url=None)

    def test_provided_credentials_and_endpoint(self, session: mock.MagicMock) -> None:
        from yarl import URL

        credential = Credential(
            access_key_id="id",
            secret_access_key="secret",
            session_token="session",
            expires_at_ms=0,
            base_path="s3://test-bucket/v1/account_id=1/",
        )
        calls: List[Optional[Credential]] = []

        def _provider() -> Optional[Credential]:
            calls.append(credential)
            return credential

        store = S3ObjectStore(_provider, endpoint_url=URL("http://localhost:9000"))
        list(store.list(PREFIX))

        assert len(calls) == 1
        session.assert_called_with(
            aws_access_key_id="id",
            aws_secret_access_key="secret",
            aws_session_token="session",
        )
        session.return_value.resource.assert_called_with(
            "s3", endpoint_url="http://localhost:9000"
        )

    def test_concurrent_calls_use_their_own_session(self, bucket: _FakeBucket) -> None:
        sessions: List[mock.MagicMock] = []
        lock = threading.Lock()

        def _new_session(**kwargs: Any) -> mock.MagicMock:
            created = mock.MagicMock()
            created.resource.return_value.Bucket.return_value = bucket
            with lock:
                sessions.append(created)
            return created

        store = S3ObjectStore()
        with mock.patch("boto3.resource") as default_resource, mock.patch(
            "boto3.Session", side_effect=_new_session
        ):
            with ThreadPoolExecutor(max_workers=4) as executor:
                results = list(
                    executor.map(lambda _: list(store.list(PREFIX)), range(8))
                )

        default_resource.assert_not_called()
        assert len(sessions) == 8
        assert all(len(objects) == 3 for objects in results)

    def test_sync(
        self, session: mock.MagicMock, bucket: _FakeBucket, tmp_dir: Path
    ) -> None:
        local_dir = tmp_dir / "out" / "type=events" / "date=2020-07-01"
        state = ResourceTransferState("date=2020-07-01")

        S3ObjectStore().sync(PREFIX, local_dir, state)

        assert (local_dir / "part-0.parquet").read_bytes() == b"x" * 10
        assert (local_dir / "nested" / "part-1.parquet").stat().st_size == 20
        assert bucket.downloads == [
            KEY_PREFIX + "part-0.parquet",
            KEY_PREFIX + "nested/part-1.parquet",
        ]
        assert state.total_num_files == 2
        assert state.transferred_num_files == 2
        assert state.total_resource_size_bytes == 30
        assert state.transferred_resource_size_bytes == 30
        assert state.is_complete

    def test_sync_creates_empty_local_dir(self, tmp_dir: Path) -> None:
        with mock.patch("boto3.Session") as boto3_session:
            boto3_session.return_value.resource.return_value.Bucket.return_value = (
                _FakeBucket([])
            )
            S3ObjectStore().sync(PREFIX, tmp_dir / "empty")
        assert (tmp_dir / "empty").is_dir()

    def test_sync_skips_up_to_date_files(
        self, session: mock.MagicMock, bucket: _FakeBucket, tmp_dir: Path
    ) -> None:
        (tmp_dir / "part-0.parquet").write_bytes(b"y" * 10)
        state = ResourceTransferState()

        S3ObjectStore().sync(PREFIX, tmp_dir, state)

        assert bucket.downloads == [KEY_PREFIX + "nested/part-1.parquet"]
        assert (tmp_dir / "part-0.parquet").read_bytes() == b"y" * 10
        assert state.skipped_num_files == 1
        assert state.is_complete

    def test_client_error_is_wrapped(self, tmp_dir: Path) -> None:
        error: Dict[str, Any] = {"Error": {"Code": "AccessDenied", "Message": "denied"}}
        failing = _FakeBucket([])
        failing.objects.filter.side_effect = ClientError(error, "ListObjects")
        with mock.patch("boto3.Session") as boto3_session:
            boto3_session.return_value.resource.return_value.Bucket.return_value = (
                failing
            )
            with pytest.raises(ObjectStoreError, match="AccessDenied"):
                list(S3ObjectStore().list(PREFIX))
            with pytest.raises(ObjectStoreError):
                S3ObjectStore().sync(PREFIX, tmp_dir)
