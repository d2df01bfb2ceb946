"""Shared fixtures: an in-memory metadata service and blob store."""

import io
import itertools
import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from PIL import Image
from pytest_httpx import HTTPXMock

API_URL = "http://api.test/api/v1"
STORAGE_URL = "https://bucket.test"
CDN_URL = "https://cdn.test"


def make_image(
    width: int, height: int, fmt: str = "PNG", mode: str = "RGB", color: str = "orange"
) -> bytes:
    """Encode a solid-colour image."""
    image = Image.new(mode, (width, height), color=color)
    buf = io.BytesIO()
    image.save(buf, format=fmt)
    return buf.getvalue()


class FakeFileService:
    """Metadata service plus blob store, served through httpx_mock.

    Keeps every confirmed record until it is deleted; "latest" is the
    highest id in a category. Set ``fail[operation] = status`` to make an
    operation return that status, or ``network_error`` to make it raise.
    """

    def __init__(self) -> None:
        self.records: dict[int, dict] = {}
        self.pending: dict[str, dict] = {}
        self.blobs: dict[str, bytes] = {}
        self.blob_content_types: dict[str, str] = {}
        self.cancelled: list[dict] = []
        self.confirmed_tokens: list[str] = []
        self.calls: list[str] = []
        self.fail: dict[str, int | str] = {}
        self.expires_in = timedelta(minutes=15)
        self.max_file_size_bytes = 10 * 1024 * 1024
        self.allowed_content_types: list[str] | None = None
        self._ids = itertools.count(100)
        self._tokens = itertools.count(1)

    # -- helpers -------------------------------------------------------------

    @staticmethod
    def _ok(data, status_code: int = 200) -> httpx.Response:
        return httpx.Response(status_code, json={"data": data})

    def _failure(self, operation: str, request: httpx.Request) -> httpx.Response | None:
        failure = self.fail.get(operation)
        if failure is None:
            return None
        if failure == "network_error":
            raise httpx.ConnectError("Connection refused", request=request)
        return httpx.Response(
            int(failure), json={"message": f"{operation} rejected by test"}
        )

    def add_record(self, **overrides) -> dict:
        """Insert a confirmed record directly."""
        record_id = next(self._ids)
        record = {
            "id": record_id,
            "entityType": "Tenant",
            "entityId": 42,
            "fileCategory": "TenantImage",
            "documentType": None,
            "fileName": f"existing-{record_id}.png",
            "fileSize": 1234,
            "contentType": "image/png",
            "cloudFrontUrl": f"{CDN_URL}/existing-{record_id}.png",
            "uploadedAt": datetime.now(timezone.utc).isoformat(),
            "uploadedBy": 1,
        }
        record.update(overrides)
        self.records[record["id"]] = record
        return record

    def files_for(self, entity_type: str, entity_id: int, category: str | None = None):
        return [
            r
            for r in sorted(self.records.values(), key=lambda r: r["id"])
            if r["entityType"] == entity_type
            and r["entityId"] == entity_id
            and (category is None or r["fileCategory"] == category)
        ]

    # -- dispatch ------------------------------------------------------------

    def handle(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if url.startswith(STORAGE_URL):
            return self._transfer(request)

        path = request.url.path.removeprefix("/api/v1")
        parts = [p for p in path.split("/") if p]

        if request.method == "POST" and path == "/files/request-upload":
            return self._negotiate(request)
        if request.method == "POST" and path == "/files/confirm-upload":
            return self._confirm(request)
        if request.method == "POST" and path == "/files/cancel-upload":
            return self._cancel(request)
        if parts[:2] == ["files", "file"] and len(parts) == 3:
            if request.method == "DELETE":
                return self._delete(request, int(parts[2]))
            return self._get(request, int(parts[2]))
        if request.method == "GET" and len(parts) == 5 and parts[3] == "latest":
            return self._latest(request, parts[1], int(parts[2]), parts[4])
        if request.method == "GET" and len(parts) == 3:
            return self._list(request, parts[1], int(parts[2]))
        return httpx.Response(404, json={"message": f"No route for {path}"})

    # -- operations ----------------------------------------------------------

    def _negotiate(self, request: httpx.Request) -> httpx.Response:
        self.calls.append("negotiate")
        if (failure := self._failure("negotiate", request)) is not None:
            return failure
        body = json.loads(request.content)
        token = f"upload-token-{next(self._tokens):04d}"
        key = (
            f"{body['entityType']}/{body['entityId']}/{body['fileCategory']}/"
            f"{token[-4:]}-{body['fileName']}"
        )
        self.pending[token] = {"intent": body, "key": key}
        return self._ok(
            {
                "uploadUrl": f"{STORAGE_URL}/{key}?X-Amz-Signature=abc123",
                "uploadToken": token,
                "s3Key": key,
                "expiresAt": (datetime.now(timezone.utc) + self.expires_in).isoformat(),
                "maxFileSizeBytes": self.max_file_size_bytes,
                "allowedContentTypes": self.allowed_content_types
                if self.allowed_content_types is not None
                else [body["contentType"]],
            }
        )

    def _transfer(self, request: httpx.Request) -> httpx.Response:
        self.calls.append("transfer")
        if (failure := self._failure("transfer", request)) is not None:
            return failure
        key = request.url.path.lstrip("/")
        self.blobs[key] = request.content
        self.blob_content_types[key] = request.headers.get("Content-Type", "")
        return httpx.Response(200, headers={"ETag": f'"etag-{len(request.content)}"'})

    def _confirm(self, request: httpx.Request) -> httpx.Response:
        self.calls.append("confirm")
        if (failure := self._failure("confirm", request)) is not None:
            return failure
        body = json.loads(request.content)
        pending = self.pending.pop(body["uploadToken"], None)
        if pending is None or pending["key"] != body["s3Key"]:
            return httpx.Response(400, json={"message": "Invalid upload token"})
        if pending["key"] not in self.blobs:
            return httpx.Response(400, json={"message": "Object not found in storage"})

        intent = pending["intent"]
        record = self.add_record(
            entityType=intent["entityType"],
            entityId=intent["entityId"],
            fileCategory=intent["fileCategory"],
            documentType=intent.get("documentType"),
            fileName=intent["fileName"],
            fileSize=len(self.blobs[pending["key"]]),
            contentType=intent["contentType"],
            cloudFrontUrl=f"{CDN_URL}/{pending['key']}",
        )
        self.confirmed_tokens.append(body["uploadToken"])
        return self._ok(
            {
                "fileId": record["id"],
                "cloudFrontUrl": record["cloudFrontUrl"],
                "fileName": record["fileName"],
                "fileSize": record["fileSize"],
                "uploadedAt": record["uploadedAt"],
                "message": "File uploaded successfully",
            }
        )

    def _cancel(self, request: httpx.Request) -> httpx.Response:
        self.calls.append("cancel")
        if (failure := self._failure("cancel", request)) is not None:
            return failure
        body = json.loads(request.content)
        self.pending.pop(body["uploadToken"], None)
        self.cancelled.append(body)
        return self._ok(True)

    def _list(
        self, request: httpx.Request, entity_type: str, entity_id: int
    ) -> httpx.Response:
        self.calls.append("list")
        if (failure := self._failure("list", request)) is not None:
            return failure
        category = request.url.params.get("fileCategory")
        files = self.files_for(entity_type, entity_id, category)
        return self._ok(
            {
                "entityType": entity_type,
                "entityId": entity_id,
                "files": files,
                "totalFileSize": sum(f["fileSize"] for f in files),
                "totalFileCount": len(files),
            }
        )

    def _latest(
        self, request: httpx.Request, entity_type: str, entity_id: int, category: str
    ) -> httpx.Response:
        self.calls.append("latest")
        if (failure := self._failure("latest", request)) is not None:
            return failure
        files = self.files_for(entity_type, entity_id, category)
        if not files:
            return httpx.Response(404, json={"message": "No file found"})
        return self._ok(files[-1])

    def _get(self, request: httpx.Request, file_id: int) -> httpx.Response:
        self.calls.append("get")
        if (failure := self._failure("get", request)) is not None:
            return failure
        if file_id not in self.records:
            return httpx.Response(404, json={"message": "File not found"})
        return self._ok(self.records[file_id])

    def _delete(self, request: httpx.Request, file_id: int) -> httpx.Response:
        self.calls.append("delete")
        if (failure := self._failure("delete", request)) is not None:
            return failure
        if self.records.pop(file_id, None) is None:
            return httpx.Response(404, json={"message": "File not found"})
        return self._ok(True)


@pytest.fixture
def file_service(httpx_mock: HTTPXMock) -> FakeFileService:
    """In-memory file service answering every request made through httpx."""
    service = FakeFileService()
    httpx_mock.add_callback(service.handle, is_reusable=True, is_optional=True)
    return service
