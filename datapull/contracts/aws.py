from dataclasses import dataclass, field
from datetime import datetime
from typing import ClassVar, Dict, Optional

from datapull.exceptions.exceptions import ObjectStoreError


@dataclass(frozen=True)
class Credential:
    access_key_id: str
    secret_access_key: str = field(repr=False)
    session_token: str = field(repr=False)
    expires_at_ms: int
    base_path: str

    def is_valid(self, now_ms: int) -> bool:
        return self.expires_at_ms > now_ms

    def as_boto3_kwargs(self) -> Dict[str, str]:
        return {
            "aws_access_key_id": self.access_key_id,
            "aws_secret_access_key": self.secret_access_key,
            "aws_session_token": self.session_token,
        }

    def as_env(self) -> Dict[str, str]:
        return {
            "AWS_ACCESS_KEY_ID": self.access_key_id,
            "AWS_SECRET_ACCESS_KEY": self.secret_access_key,
            "AWS_SESSION_TOKEN": self.session_token,
            "DATAPULL_BASE_PATH": self.base_path,
        }


@dataclass(frozen=True)
class S3Path:
    bucket: str
    key: str

    SCHEME: ClassVar[str] = "s3://"

    @classmethod
    def parse(cls, path: str) -> "S3Path":
        """
        Splits an ``s3://bucket/key`` path. The key is kept verbatim, without
        any URL quoting or query and fragment handling.
        """
        if not path.startswith(cls.SCHEME):
            raise ObjectStoreError(path, "not an s3:// path")
        bucket, _, key = path[len(cls.SCHEME) :].partition("/")
        if not bucket:
            raise ObjectStoreError(path, "missing bucket name")
        return cls(bucket=bucket, key=key)

    def __str__(self) -> str:
        return f"{self.SCHEME}{self.bucket}/{self.key}"


@dataclass(frozen=True)
class ObjectDescriptor:
    key: str
    size: int
    last_modified: Optional[datetime] = None
