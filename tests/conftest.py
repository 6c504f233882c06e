import io
import os
import tempfile
from pathlib import Path

# Keep module-level defaults away from the working tree and from real AWS
_TMP_ROOT = Path(tempfile.mkdtemp(prefix="plates-tests-"))
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_TMP_ROOT / 'default.db'}")
os.environ.setdefault("DOCUMENTS_DIR", str(_TMP_ROOT / "documents"))
os.environ.pop("AWS_S3_BUCKET_NAME", None)

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError
from PIL import Image

from plates.catalog import CatalogStore, KeyValueStore
from plates.database import Base, make_engine, make_session_factory
from plates.local_cache import LocalBlobCache
from plates.optimizer import ImageOptimizer
from plates.s3_utils import RemoteObjectStore, RemoteServiceState
from plates.service import PlateService


def make_image_bytes(width: int = 64, height: int = 48, fmt: str = "JPEG", noise: bool = False, color=(200, 30, 30)) -> bytes:
    if noise:
        image = Image.frombytes("RGB", (width, height), os.urandom(width * height * 3))
    else:
        image = Image.new("RGB", (width, height), color)
    buffer = io.BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


def client_error(code: str, status: int = 400, operation: str = "PutObject") -> ClientError:
    return ClientError(
        {"Error": {"Code": code, "Message": f"{code} (test)"}, "ResponseMetadata": {"HTTPStatusCode": status}},
        operation,
    )


def network_error() -> EndpointConnectionError:
    return EndpointConnectionError(endpoint_url="https://test-bucket.s3.amazonaws.com")


class FakeS3Client:
    """In-memory stand-in for a boto3 S3 client.

    ``failures[method]`` is a list of exceptions raised, in order, by the
    next calls to that method.
    """

    def __init__(self):
        self.objects = {}
        self.calls = {"put_object": 0, "get_object": 0, "delete_object": 0, "head_bucket": 0}
        self.failures = {name: [] for name in self.calls}

    def _maybe_fail(self, method: str) -> None:
        self.calls[method] += 1
        if self.failures[method]:
            raise self.failures[method].pop(0)

    def put_object(self, Bucket, Key, Body, ContentType=None, Metadata=None):
        self._maybe_fail("put_object")
        self.objects[Key] = {"body": Body.read(), "content_type": ContentType, "metadata": dict(Metadata or {})}
        return {}

    def get_object(self, Bucket, Key):
        self._maybe_fail("get_object")
        if Key not in self.objects:
            raise client_error("NoSuchKey", 404, "GetObject")
        return {"Body": io.BytesIO(self.objects[Key]["body"])}

    def delete_object(self, Bucket, Key):
        self._maybe_fail("delete_object")
        self.objects.pop(Key, None)
        return {}

    def head_bucket(self, Bucket):
        self._maybe_fail("head_bucket")
        return {}


class SleepRecorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)

    @property
    def total(self) -> float:
        return sum(self.delays)


@pytest.fixture
def catalog(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'catalog.db'}")
    Base.metadata.create_all(bind=engine)
    yield CatalogStore(KeyValueStore(make_session_factory(engine)))
    engine.dispose()


@pytest.fixture
def cache(tmp_path):
    return LocalBlobCache(tmp_path / "documents")


@pytest.fixture
def s3_client():
    return FakeS3Client()


@pytest.fixture
def sleeper():
    return SleepRecorder()


@pytest.fixture
def remote(s3_client, sleeper):
    return RemoteObjectStore(
        state=RemoteServiceState(),
        client=s3_client,
        bucket_name="test-bucket",
        max_attempts=3,
        retry_delay=2.0,
        sleep=sleeper,
    )


@pytest.fixture
def service(catalog, cache, remote):
    return PlateService(
        catalog=catalog,
        cache=cache,
        remote=remote,
        optimizer=ImageOptimizer(max_dimension=2048, max_bytes=10 * 1024 * 1024),
    )
