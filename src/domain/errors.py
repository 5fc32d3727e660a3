from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from domain.models import RunSummary


class IngestError(Exception):
    pass


class StreamError(IngestError):
    """The byte source could not be opened or failed while being read."""


class ParseError(IngestError):
    def __init__(self, line: str, reason: str = "line did not match log format") -> None:
        super().__init__(f"{reason}: {line!r}")
        self.line = line
        self.reason = reason


class SubmissionError(IngestError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SigningError(SubmissionError):
    pass


class RunFailedError(IngestError):
    def __init__(self, summary: RunSummary) -> None:
        super().__init__(summary.reason or "pipeline run failed")
        self.summary = summary
