"""AWS Lambda entry points.

``s3_handler`` streams stored access-log objects into the index, one parsed
line per document. ``kinesis_handler`` forwards stream records, each holding
one JSON document that is posted whole, line breaks included. Either way one
invocation is one pipeline run: the handler returns the run summary on success
and raises ``RunFailedError`` otherwise, so the invocation is reported as
failed and retried by the event source.
"""
from __future__ import annotations

import logging
from collections.abc import Iterator

from application.services import IngestionService
from application.splitter import split_records
from infrastructure.logging import configure_logging
from infrastructure.settings import settings
from infrastructure.sources import S3ObjectSource, kinesis_chunks, s3_locations

logger = logging.getLogger(__name__)


def s3_handler(
    event: dict,
    context: object,
    *,
    source: S3ObjectSource | None = None,
    service: IngestionService | None = None,
) -> dict:
    configure_logging(settings.log_level)
    logger.info("event_received", extra={"event": event})
    source = source or S3ObjectSource(chunk_size=settings.read_chunk_size)
    service = service or IngestionService(settings)
    latch = service.ingest(_object_chunks(event, source), fmt=settings.log_format)
    return latch.result().model_dump(mode="json")


def kinesis_handler(
    event: dict,
    context: object,
    *,
    service: IngestionService | None = None,
) -> dict:
    configure_logging(settings.log_level)
    logger.info("event_received", extra={"event": event})
    service = service or IngestionService(settings)
    latch = service.ingest(kinesis_chunks(event), fmt=settings.stream_format, framing=split_records)
    return latch.result().model_dump(mode="json")


def _object_chunks(event: dict, source: S3ObjectSource) -> Iterator[bytes]:
    # Event errors surface inside the run so they are reported like read failures.
    yield from source.open_all(s3_locations(event))
