"""Shared fakes for the s3uploader test-suite."""
from typing import Any, Dict, List, Optional

import pytest

from s3uploader.exceptions import ObjectNotFoundError
from s3uploader.models import AdapterConfig, TransferProgress
from s3uploader.utils.events import EventEmitter


class FakeUpload(EventEmitter):
    """In-flight upload that drains its body the way the S3 transfer manager does."""

    def __init__(self, client: "FakeStorageClient", params: Dict[str, Any], options: Dict[str, Any]):
        super().__init__()
        self.params = params
        self.options = options
        self.body = params["Body"]
        self.received = bytearray()
        self._client = client

    async def result(self) -> Dict[str, Any]:
        client = self._client
        loaded = 0
        while True:
            chunk = await self.body.read(client.read_size)
            if not chunk:
                break
            self.received.extend(chunk)
            loaded += len(chunk)
            self.emit("progress", TransferProgress(loaded=loaded))
            if client.fail_after is not None and loaded >= client.fail_after:
                raise RuntimeError("connection reset by peer")
            if not client.read_to_eof:
                break

        client.objects[self.params["Key"]] = bytes(self.received)
        return dict(client.completion)


class FakeStorageClient:
    """In-memory IStorageClient."""

    def __init__(self):
        self.objects: Dict[str, bytes] = {}
        self.uploads: List[FakeUpload] = []
        self.signed: List[Dict[str, Any]] = []
        self.requests: List[tuple] = []
        self.completion: Dict[str, Any] = {"ETag": '"abc123"', "VersionId": "v1"}
        self.read_size = 4
        self.fail_after: Optional[int] = None
        self.read_to_eof = True
        self.closed = False

    def put(self, params, options=None):
        upload = FakeUpload(self, params, dict(options or {}))
        self.uploads.append(upload)
        return upload

    async def list_objects(self, params):
        prefix = params.get("Prefix") or ""
        for key in sorted(self.objects):
            if key.startswith(prefix):
                yield {"Key": key, "Size": len(self.objects[key])}

    async def delete_object(self, params):
        self.requests.append(("delete", params))
        self.objects.pop(params["Key"], None)
        return {"DeleteMarker": False}

    async def get_object(self, params):
        self.requests.append(("get", params))
        try:
            return self.objects[params["Key"]]
        except KeyError:
            raise ObjectNotFoundError("get failed: missing", "get", key=params["Key"], code="NoSuchKey")

    async def iter_object(self, params, chunk_size=1024 * 1024):
        data = await self.get_object(params)
        for start in range(0, len(data), chunk_size):
            yield data[start:start + chunk_size]

    async def generate_signed_url(self, operation, params, expires_in=900):
        self.signed.append({"operation": operation, "params": params, "expires_in": expires_in})
        return f"https://signed.example/{params['Bucket']}/{params['Key']}?op={operation}&expires={expires_in}"

    async def close(self):
        self.closed = True


@pytest.fixture
def fake_client():
    return FakeStorageClient()


@pytest.fixture
def config():
    return AdapterConfig(bucket="media", directory_prefix="uploads")
