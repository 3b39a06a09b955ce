from .auth import Authenticator  # noqa
from .contracts.aws import Credential, ObjectDescriptor, S3Path  # noqa
from .paths import (  # noqa
    DatasetType,
    DateRange,
    Event,
    Experiment,
    PartitionPath,
    PathBuilder,
    PathSpec,
    build_paths,
    expand,
)
from .session import CredentialStore, SessionManager  # noqa
from .utils.s3 import ObjectStore, S3ObjectStore  # noqa


__version__ = "0.3.0"
