from __future__ import annotations

import threading

import pytest
import requests
from botocore.exceptions import ClientError

from infrastructure.credentials import StaticCredentialProvider


class FakeResponse:
    def __init__(self, status_code: int = 201, text: str = '{"result":"created"}') -> None:
        self.status_code = status_code
        self.text = text


class FakeSession:
    """Stands in for ``requests.Session``; records every POST."""

    def __init__(self, statuses: list[int] | None = None, error: Exception | None = None) -> None:
        self.statuses = list(statuses or [])
        self.error = error
        self.calls: list[dict] = []
        self._lock = threading.Lock()

    def post(self, url, data=None, headers=None, timeout=None):
        with self._lock:
            self.calls.append({"url": url, "data": data, "headers": headers, "timeout": timeout})
            if self.error is not None:
                raise self.error
            status = self.statuses.pop(0) if self.statuses else 201
        return FakeResponse(status_code=status)


@pytest.fixture
def credentials() -> StaticCredentialProvider:
    return StaticCredentialProvider("AKIDEXAMPLE", "wJalrXUtnFEMI/K7MDENG+bPxRfiCYEXAMPLEKEY", "session-token")


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def connection_error() -> Exception:
    return requests.ConnectionError("connection refused")


class FakeBody:
    def __init__(self, data: bytes) -> None:
        self.data = data
        self.closed = False

    def iter_chunks(self, chunk_size: int = 1024):
        for start in range(0, len(self.data), chunk_size):
            yield self.data[start : start + chunk_size]

    def close(self) -> None:
        self.closed = True


class FakeS3Client:
    def __init__(self, objects: dict[tuple[str, str], bytes]) -> None:
        self.objects = objects
        self.bodies: list[FakeBody] = []

    def get_object(self, Bucket: str, Key: str) -> dict:
        try:
            data = self.objects[(Bucket, Key)]
        except KeyError:
            raise ClientError(
                {"Error": {"Code": "NoSuchKey", "Message": "The specified key does not exist."}},
                "GetObject",
            ) from None
        body = FakeBody(data)
        self.bodies.append(body)
        return {"Body": body}


def s3_event(*locations: tuple[str, str]) -> dict:
    return {
        "Records": [
            {"s3": {"bucket": {"name": bucket}, "object": {"key": key}}}
            for bucket, key in locations
        ]
    }
