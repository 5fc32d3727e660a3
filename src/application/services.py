from __future__ import annotations

import logging
from collections.abc import Iterable

import requests

from application.completion import CompletionLatch
from application.parsers import LogParser
from application.pipeline import Framing, PipelineCoordinator
from application.sink import IndexSink
from application.splitter import split_lines
from domain.models import RunSummary
from infrastructure.credentials import BotoCredentialProvider, CredentialProvider
from infrastructure.settings import Settings
from infrastructure.signing import SigV4RequestSigner

logger = logging.getLogger(__name__)


class IngestionService:
    def __init__(
        self,
        settings: Settings,
        credentials: CredentialProvider | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.settings = settings
        self.credentials = credentials
        self.session = session

    def build_sink(self) -> IndexSink:
        # Credentials are resolved at most once per sink, i.e. once per run.
        credentials = self.credentials or BotoCredentialProvider()
        signer = SigV4RequestSigner(
            credentials,
            region=self.settings.index_region,
            service=self.settings.index_service,
        )
        return IndexSink(
            endpoint=self.settings.index_endpoint,
            index=self.settings.index_name,
            doc_type=self.settings.index_doc_type,
            signer=signer,
            session=self.session,
            scheme=self.settings.index_scheme,
            timeout=self.settings.request_timeout,
        )

    def build_coordinator(self, fmt: str | None = None) -> PipelineCoordinator:
        return PipelineCoordinator(
            parser=LogParser(fmt or self.settings.log_format),
            sink=self.build_sink(),
            strictness=self.settings.strictness,
            parse_error_policy=self.settings.parse_error_policy,
            max_concurrency=self.settings.max_concurrency,
        )

    def ingest(
        self,
        chunks: Iterable[bytes],
        fmt: str | None = None,
        framing: Framing = split_lines,
    ) -> CompletionLatch:
        latch = CompletionLatch()
        self.build_coordinator(fmt).run(chunks, latch, framing=framing)
        return latch

    def ingest_lines(self, lines: Iterable[str], fmt: str | None = None) -> RunSummary:
        chunks = (f"{line}\n".encode("utf-8") for line in lines)
        latch = self.ingest(chunks, fmt)
        return latch.summary
