from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from domain.errors import SubmissionError


class AccessLogRecord(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    remote_addr: str
    ident: str | None = None
    remote_user: str | None = None
    time_local: str
    timestamp: datetime | None = None
    request: str
    method: str | None = None
    path: str | None = None
    protocol: str | None = None
    status: int
    body_bytes_sent: int | None = None
    http_referer: str | None = Field(
        default=None,
        validation_alias=AliasChoices("http_referer", "referrer", "referer"),
    )
    http_user_agent: str | None = Field(
        default=None,
        validation_alias=AliasChoices("http_user_agent", "user_agent"),
    )

    def to_document(self) -> dict:
        return self.model_dump(mode="json")


class JsonDocument(BaseModel):
    """A stream document forwarded as-is; every key of the source object is kept."""

    model_config = ConfigDict(extra="allow", frozen=True)

    def to_document(self) -> dict:
        return self.model_dump(mode="json")


Record = AccessLogRecord | JsonDocument


@dataclass(frozen=True)
class SubmissionResult:
    ok: bool
    status_code: int | None = None
    response_body: str | None = None
    error: SubmissionError | None = None


class Strictness(str, Enum):
    FAIL_FAST = "fail_fast"
    BEST_EFFORT = "best_effort"


class ParseErrorPolicy(str, Enum):
    SKIP = "skip"
    ABORT = "abort"


class RunState(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    AWAITING_COMPLETION = "awaiting_completion"
    DONE = "done"
    FAILED = "failed"


class RunSummary(BaseModel):
    run_id: str
    status: RunState
    expected: int = 0
    completed: int = 0
    succeeded: int = 0
    failed: int = 0
    dropped: int = 0
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == RunState.DONE
