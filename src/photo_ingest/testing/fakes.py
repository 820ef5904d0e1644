"""Fake implementations for testing purposes."""

import io
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Set
from urllib.parse import parse_qs, urlparse

import httpx
from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from botocore.exceptions import ClientError
from PIL import Image

from ..core.config import PipelineSettings
from ..core.error_handling import RetryPolicy
from ..core.models import EventStatsDelta, TransformSpec, WatermarkSpec


def make_client_error(code: str, operation: str = "Operation", status: int = 400) -> ClientError:
    """Build a botocore ``ClientError`` the way AWS clients raise it."""
    return ClientError(
        {
            "Error": {"Code": code, "Message": f"Simulated {code}"},
            "ResponseMetadata": {"HTTPStatusCode": status},
        },
        operation,
    )


@dataclass
class S3Object:
    """Fake S3 object for testing."""

    key: str
    body: bytes
    content_type: str = "image/jpeg"
    acl: Optional[str] = None
    cache_control: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.body)


@dataclass
class S3Bucket:
    """Fake S3 bucket for testing."""

    name: str
    objects: Dict[str, S3Object] = field(default_factory=dict)

    def add_object(self, key: str, body: bytes = b"", content_type: str = "image/jpeg") -> None:
        """Add object to bucket."""
        self.objects[key] = S3Object(key=key, body=body, content_type=content_type)

    def list_objects(self, prefix: str = "") -> List[S3Object]:
        """List objects with optional prefix filter."""
        return [obj for key, obj in sorted(self.objects.items()) if key.startswith(prefix)]


class FakeS3Client:
    """
    Async fake of the aioboto3 S3 client.

    Failures are injected with ``set_failure_mode``: a plain message raises
    ``Exception``, an error ``code`` raises a botocore ``ClientError``.
    ``fail_times`` limits how many calls fail before the client recovers.
    """

    def __init__(self, page_size: int = 1000):
        self.buckets: Dict[str, S3Bucket] = {}
        self.put_calls: List[Dict[str, Any]] = []
        self.list_calls = 0
        self.page_size = page_size
        self.should_fail = False
        self.failure_message = "Simulated S3 failure"
        self.failure_code: Optional[str] = None
        self.failure_status = 400
        self.fail_times: Optional[int] = None

    def create_bucket(self, name: str) -> S3Bucket:
        """Create a new bucket."""
        bucket = S3Bucket(name=name)
        self.buckets[name] = bucket
        return bucket

    def get_bucket(self, name: str) -> Optional[S3Bucket]:
        return self.buckets.get(name)

    def set_failure_mode(
        self,
        should_fail: bool,
        message: str = "Simulated failure",
        code: Optional[str] = None,
        status: int = 400,
        fail_times: Optional[int] = None,
    ) -> None:
        """Configure failure mode for testing error handling."""
        self.should_fail = should_fail
        self.failure_message = message
        self.failure_code = code
        self.failure_status = status
        self.fail_times = fail_times

    def _maybe_fail(self, operation: str) -> None:
        if not self.should_fail:
            return
        if self.fail_times is not None:
            if self.fail_times <= 0:
                return
            self.fail_times -= 1
        if self.failure_code:
            raise make_client_error(self.failure_code, operation, self.failure_status)
        raise Exception(self.failure_message)

    def _bucket(self, name: str) -> S3Bucket:
        bucket = self.buckets.get(name)
        if bucket is None:
            raise make_client_error("NoSuchBucket", "PutObject", 404)
        return bucket

    async def put_object(self, **kwargs: Any) -> Dict[str, Any]:
        self.put_calls.append(kwargs)
        self._maybe_fail("PutObject")
        bucket = self._bucket(kwargs["Bucket"])
        bucket.objects[kwargs["Key"]] = S3Object(
            key=kwargs["Key"],
            body=kwargs["Body"],
            content_type=kwargs.get("ContentType", "binary/octet-stream"),
            acl=kwargs.get("ACL"),
            cache_control=kwargs.get("CacheControl"),
        )
        return {
            "ETag": f'"fake-etag-{kwargs["Key"]}"',
            "ResponseMetadata": {"HTTPStatusCode": 200},
        }

    def get_paginator(self, operation_name: str) -> "FakeS3Paginator":
        return FakeS3Paginator(self, operation_name)


class FakeS3Paginator:
    """Async paginator over a fake bucket, ``page_size`` keys per page."""

    def __init__(self, s3_client: FakeS3Client, operation_name: str):
        self.s3_client = s3_client
        self.operation_name = operation_name

    async def paginate(self, Bucket: str, Prefix: str = "") -> AsyncIterator[Dict[str, Any]]:
        self.s3_client.list_calls += 1
        self.s3_client._maybe_fail("ListObjectsV2")
        objects = self.s3_client._bucket(Bucket).list_objects(Prefix)
        page_size = self.s3_client.page_size
        if not objects:
            yield {"KeyCount": 0}
            return
        for start in range(0, len(objects), page_size):
            page = objects[start:start + page_size]
            yield {
                "Contents": [{"Key": obj.key, "Size": obj.size} for obj in page],
                "KeyCount": len(page),
            }


class FakeRekognitionClient:
    """Async fake of the Rekognition client with throttling injection."""

    def __init__(self, faces_per_image: int = 1):
        self.collections: Set[str] = set()
        self.indexed: Dict[str, List[str]] = {}
        self.index_calls: List[Dict[str, Any]] = []
        self.faces_per_image = faces_per_image
        self.throttle_times = 0
        self.failing_keys: Set[str] = set()
        self.create_error: Optional[Exception] = None

    async def create_collection(self, CollectionId: str) -> Dict[str, Any]:
        if self.create_error is not None:
            raise self.create_error
        if CollectionId in self.collections:
            raise make_client_error("ResourceAlreadyExistsException", "CreateCollection")
        self.collections.add(CollectionId)
        return {"StatusCode": 200, "CollectionArn": f"arn:aws:rekognition:::collection/{CollectionId}"}

    async def index_faces(self, **kwargs: Any) -> Dict[str, Any]:
        self.index_calls.append(kwargs)
        key = kwargs["Image"]["S3Object"]["Name"]
        if self.throttle_times > 0:
            self.throttle_times -= 1
            raise make_client_error("ThrottlingException", "IndexFaces")
        if key in self.failing_keys:
            raise make_client_error("InvalidImageFormatException", "IndexFaces")
        if kwargs["CollectionId"] not in self.collections:
            raise make_client_error("ResourceNotFoundException", "IndexFaces")
        face_ids = [f"face-{len(self.index_calls)}-{i}" for i in range(self.faces_per_image)]
        self.indexed.setdefault(kwargs["CollectionId"], []).append(kwargs["ExternalImageId"])
        return {"FaceRecords": [{"Face": {"FaceId": face_id}} for face_id in face_ids]}


class FakeDynamoDBClient:
    """Async fake of the DynamoDB client holding plain Python items per table."""

    def __init__(self) -> None:
        self.tables: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.update_calls: List[Dict[str, Any]] = []
        self.should_fail = False
        self._serializer = TypeSerializer()
        self._deserializer = TypeDeserializer()

    def put(self, table: str, key_value: str, item: Dict[str, Any]) -> None:
        self.tables.setdefault(table, {})[key_value] = item

    async def get_item(self, TableName: str, Key: Dict[str, Any]) -> Dict[str, Any]:
        if self.should_fail:
            raise make_client_error("InternalServerError", "GetItem", 500)
        key_value = self._deserializer.deserialize(next(iter(Key.values())))
        item = self.tables.get(TableName, {}).get(key_value)
        if item is None:
            return {}
        return {"Item": {k: self._serializer.serialize(v) for k, v in item.items()}}

    async def update_item(self, **kwargs: Any) -> Dict[str, Any]:
        self.update_calls.append(kwargs)
        if self.should_fail:
            raise make_client_error("InternalServerError", "UpdateItem", 500)
        values = {
            k: self._deserializer.deserialize(v)
            for k, v in kwargs.get("ExpressionAttributeValues", {}).items()
        }
        key_value = self._deserializer.deserialize(next(iter(kwargs["Key"].values())))
        item = self.tables.setdefault(kwargs["TableName"], {}).setdefault(key_value, {})
        item["photoCount"] = item.get("photoCount", 0) + values.get(":pc", 0)
        item["totalImageSize"] = values.get(":tis")
        item["totalImageSizeUnit"] = values.get(":tisUnit")
        item["totalCompressedSize"] = values.get(":tcs")
        item["totalCompressedSizeUnit"] = values.get(":tcsUnit")
        return {}


class FakeEventDirectory:
    """In-memory event and user records."""

    def __init__(
        self,
        events: Optional[Dict[str, Dict[str, Any]]] = None,
        users: Optional[Dict[str, Dict[str, Any]]] = None,
    ):
        self.events = dict(events or {})
        self.users = dict(users or {})
        self.should_fail = False
        self.lookups: List[str] = []

    async def get_event(self, event_id: str) -> Optional[Dict[str, Any]]:
        self.lookups.append(f"event:{event_id}")
        if self.should_fail:
            raise Exception("Simulated directory failure")
        return self.events.get(event_id)

    async def get_user(self, email: str) -> Optional[Dict[str, Any]]:
        self.lookups.append(f"user:{email}")
        return self.users.get(email)


class FakeStatsSink:
    """Records statistics pushes."""

    def __init__(self) -> None:
        self.updates: List[Dict[str, Any]] = []
        self.should_fail = False

    async def update_event_stats(self, event_id: str, delta: EventStatsDelta) -> None:
        if self.should_fail:
            raise Exception("Simulated stats failure")
        self.updates.append({"event_id": event_id, "delta": delta})


class FakeLogoSource:
    """Serves logo bytes by reference."""

    def __init__(self, logos: Optional[Dict[str, bytes]] = None):
        self.logos = dict(logos or {})
        self.requests: List[Optional[str]] = []

    async def fetch(self, logo_ref: Optional[str]) -> Optional[bytes]:
        self.requests.append(logo_ref)
        if not logo_ref:
            return None
        return self.logos.get(logo_ref)


class FakeDriveServer:
    """
    ``httpx.MockTransport`` handler imitating Drive folder pages and downloads.

    ``fail_first[file_id] = n`` answers the first ``n`` download requests
    for that file with HTTP 503; ``always_fail`` files always get 503 and
    ``html_files`` get an HTML page labelled ``image/jpeg``.
    """

    def __init__(
        self,
        files: Optional[Dict[str, bytes]] = None,
        folders: Optional[Dict[str, List[str]]] = None,
        site_files: Optional[Dict[str, bytes]] = None,
    ):
        self.files = dict(files or {})
        self.folders = dict(folders or {})
        self.site_files = dict(site_files or {})
        self.fail_first: Dict[str, int] = {}
        self.always_fail: Set[str] = set()
        self.html_files: Set[str] = set()
        self.requests: List[str] = []
        self.download_counts: Dict[str, int] = {}

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport)

    def handle(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)
        parsed = urlparse(url)

        if parsed.path.startswith("/drive/folders/"):
            folder_id = parsed.path.rsplit("/", 1)[-1]
            if folder_id not in self.folders:
                return httpx.Response(404, text="Not found")
            links = "".join(
                f'<div data-id="{file_id}"><a href="/file/d/{file_id}/view">{file_id}</a></div>'
                for file_id in self.folders[folder_id]
            )
            return httpx.Response(200, html=f"<html><body>{links}</body></html>")

        if parsed.path == "/uc":
            file_id = parse_qs(parsed.query).get("id", [""])[0]
            self.download_counts[file_id] = self.download_counts.get(file_id, 0) + 1
            if file_id in self.always_fail:
                return httpx.Response(503, text="Service Unavailable")
            if self.fail_first.get(file_id, 0) > 0:
                self.fail_first[file_id] -= 1
                return httpx.Response(503, text="Service Unavailable")
            if file_id in self.html_files:
                return httpx.Response(
                    200,
                    content=b"<html><body>Virus scan warning</body></html>",
                    headers={"content-type": "image/jpeg"},
                )
            if file_id not in self.files:
                return httpx.Response(404, text="Not found")
            return httpx.Response(
                200, content=self.files[file_id], headers={"content-type": "image/jpeg"}
            )

        if parsed.path in self.site_files:
            return httpx.Response(
                200, content=self.site_files[parsed.path], headers={"content-type": "image/png"}
            )
        return httpx.Response(404, text="Not found")


def create_test_image(
    width: int = 100,
    height: int = 100,
    mode: str = "RGB",
    image_format: str = "JPEG",
) -> bytes:
    """Create a patterned test image in memory."""
    image = Image.new(mode, (width, height), color="red")
    block = max(1, min(width, height) // 10)
    for x in range(0, width, block * 2):
        for y in range(0, height, block * 2):
            image.paste("blue", (x, y, min(x + block, width), min(y + block, height)))

    img_bytes = io.BytesIO()
    image.save(img_bytes, format=image_format, quality=95)
    return img_bytes.getvalue()


def create_test_logo(width: int = 200, height: int = 100) -> bytes:
    """Create a semi-transparent RGBA PNG logo."""
    image = Image.new("RGBA", (width, height), (255, 255, 255, 0))
    image.paste((0, 128, 0, 200), (0, 0, width, height // 2))
    img_bytes = io.BytesIO()
    image.save(img_bytes, format="PNG")
    return img_bytes.getvalue()


def drive_id(n: int) -> str:
    """A Drive-shaped file id (33 url-safe characters) for index ``n``."""
    return f"1AbCdEfGhIjKlMnOpQrStUvWxYz{n:06d}"


def create_test_settings(**overrides: Any) -> PipelineSettings:
    """Settings with zero retry delays so tests never wait."""
    values: Dict[str, Any] = {
        "bucket": "test-bucket",
        "item_retry": RetryPolicy(max_attempts=5, base_delay=0.0, max_delay=0.0, jitter=0.0),
        "index_retry": RetryPolicy(max_attempts=3, base_delay=0.0, max_delay=0.0, jitter=0.0),
        "index_chunk_delay": 0.0,
        "transform": TransformSpec(watermark=WatermarkSpec()),
    }
    values.update(overrides)
    return PipelineSettings(**values)


def setup_test_aws_environment(bucket: str = "test-bucket") -> Dict[str, Any]:
    """Fake S3, Rekognition and DynamoDB clients with an empty bucket."""
    s3_client = FakeS3Client()
    s3_client.create_bucket(bucket)
    return {
        "s3": s3_client,
        "rekognition": FakeRekognitionClient(),
        "dynamodb": FakeDynamoDBClient(),
    }
