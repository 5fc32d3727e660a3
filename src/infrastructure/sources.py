from __future__ import annotations

import base64
import binascii
import logging
from collections.abc import Iterable, Iterator
from typing import Any
from urllib.parse import unquote_plus

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from domain.errors import StreamError

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024


class S3ObjectSource:
    def __init__(self, client: Any | None = None, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self.client = client or boto3.client("s3")
        self.chunk_size = chunk_size

    def open(self, bucket: str, key: str) -> Iterator[bytes]:
        """Stream the object body; nothing is requested until iteration starts."""
        try:
            response = self.client.get_object(Bucket=bucket, Key=key)
            body = response["Body"]
            try:
                yield from body.iter_chunks(chunk_size=self.chunk_size)
            finally:
                body.close()
        except (ClientError, BotoCoreError) as exc:
            logger.error("object_read_failed", extra={"bucket": bucket, "key": key, "error": str(exc)})
            raise StreamError(
                f'Error getting object "{key}" from bucket "{bucket}". Make sure they exist '
                "and your bucket is in the same region as this function."
            ) from exc

    def open_all(self, locations: Iterable[tuple[str, str]]) -> Iterator[bytes]:
        for bucket, key in locations:
            yield from terminated(self.open(bucket, key))


def s3_locations(event: dict) -> list[tuple[str, str]]:
    locations = []
    for record in event.get("Records", []):
        try:
            bucket = record["s3"]["bucket"]["name"]
            key = unquote_plus(record["s3"]["object"]["key"])
        except (KeyError, TypeError) as exc:
            raise StreamError(f"Malformed S3 event record: missing {exc}") from exc
        locations.append((bucket, key))
    return locations


def kinesis_chunks(event: dict) -> Iterator[bytes]:
    """Yield each stream record's decoded payload as one chunk."""
    for record in event.get("Records", []):
        try:
            payload = base64.b64decode(record["kinesis"]["data"], validate=True)
        except (KeyError, TypeError, binascii.Error) as exc:
            raise StreamError(f"Malformed Kinesis record: {exc}") from exc
        yield payload


def terminated(chunks: Iterable[bytes]) -> Iterator[bytes]:
    """Pass chunks through, adding a final newline if the source lacks one."""
    last = b""
    for chunk in chunks:
        if chunk:
            last = chunk
            yield chunk
    if last and not last.endswith(b"\n"):
        yield b"\n"
