from __future__ import annotations

import threading

from domain.errors import RunFailedError
from domain.models import RunSummary


class CompletionLatch:
    """Completion signal that accepts exactly one terminal outcome."""

    def __init__(self) -> None:
        self.summary: RunSummary | None = None
        self.reason: str | None = None
        self.succeeded: bool | None = None
        self._lock = threading.Lock()

    @property
    def signaled(self) -> bool:
        return self.summary is not None

    def succeed(self, summary: RunSummary) -> None:
        self._record(True, summary, None)

    def fail(self, reason: str, summary: RunSummary) -> None:
        self._record(False, summary, reason)

    def result(self) -> RunSummary:
        """Return the success summary, or raise ``RunFailedError`` for a failed run."""
        if self.summary is None:
            raise RuntimeError("Run has not signaled completion")
        if not self.succeeded:
            raise RunFailedError(self.summary)
        return self.summary

    def _record(self, succeeded: bool, summary: RunSummary, reason: str | None) -> None:
        with self._lock:
            if self.summary is not None:
                raise RuntimeError(f"Completion already signaled for run {summary.run_id}")
            self.summary = summary
            self.succeeded = succeeded
            self.reason = reason
