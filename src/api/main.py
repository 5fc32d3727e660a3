from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Literal

from fastapi import FastAPI, HTTPException, Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    generate_latest,
)
from pydantic import BaseModel, Field

from application.services import IngestionService
from domain.models import RunSummary
from infrastructure.logging import configure_logging
from infrastructure.settings import settings

logger = logging.getLogger(__name__)
_PROM_REGISTRY = CollectorRegistry()
_ENV_LABEL = settings.environment
_METRIC_RUNS = Counter(
    "ingest_runs_total",
    "Pipeline runs by terminal status",
    ["environment", "status"],
    registry=_PROM_REGISTRY,
)
_METRIC_SUBMITTED = Counter(
    "ingest_documents_submitted_total",
    "Documents accepted by the index",
    ["environment"],
    registry=_PROM_REGISTRY,
)
_METRIC_FAILED = Counter(
    "ingest_documents_failed_total",
    "Documents the index rejected or that could not be sent",
    ["environment"],
    registry=_PROM_REGISTRY,
)
_METRIC_DROPPED = Counter(
    "ingest_lines_dropped_total",
    "Lines skipped because they did not parse",
    ["environment"],
    registry=_PROM_REGISTRY,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.log_level)
    if app.state.service is None:
        app.state.service = IngestionService(settings)
    yield


app = FastAPI(title=settings.app_name, lifespan=lifespan)
app.state.service = None


class IngestRequest(BaseModel):
    format: Literal["clf", "jsonl"] = "clf"
    lines: list[str] = Field(default_factory=list)


@app.get("/health")
def health() -> dict:
    return {
        "status": "ok",
        "environment": settings.environment,
        "index": f"{settings.index_endpoint}/{settings.index_name}/{settings.index_doc_type}",
    }


@app.post("/ingest", response_model=RunSummary)
def ingest(request: IngestRequest) -> RunSummary:
    service: IngestionService = app.state.service
    summary = service.ingest_lines(request.lines, request.format)
    _record_metrics(summary)
    if not summary.ok:
        logger.warning("ingest_request_failed", extra={"reason": summary.reason})
        raise HTTPException(status_code=502, detail=summary.model_dump(mode="json"))
    return summary


@app.get("/metrics/prometheus")
def prometheus_metrics() -> Response:
    payload = generate_latest(_PROM_REGISTRY)
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


def _record_metrics(summary: RunSummary) -> None:
    _METRIC_RUNS.labels(_ENV_LABEL, summary.status.value).inc()
    _METRIC_SUBMITTED.labels(_ENV_LABEL).inc(summary.succeeded)
    _METRIC_FAILED.labels(_ENV_LABEL).inc(summary.failed)
    _METRIC_DROPPED.labels(_ENV_LABEL).inc(summary.dropped)
