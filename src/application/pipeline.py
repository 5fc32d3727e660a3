from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable, Iterable, Iterator
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from functools import partial
from typing import Protocol

from application.parsers import LogParser
from application.splitter import split_lines
from domain.errors import ParseError, StreamError, SubmissionError
from domain.models import (
    ParseErrorPolicy,
    Record,
    RunState,
    RunSummary,
    Strictness,
    SubmissionResult,
)

logger = logging.getLogger(__name__)

Framing = Callable[[Iterable[bytes]], Iterator[str]]


class CompletionSignal(Protocol):
    def succeed(self, summary: RunSummary) -> None: ...

    def fail(self, reason: str, summary: RunSummary) -> None: ...


class Submitter(Protocol):
    def submit(self, record: Record) -> SubmissionResult: ...


class PipelineRun:
    """Counters and state for a single invocation.

    Submission callbacks arrive from worker threads, so every counter update
    happens under ``_lock``. ``settled`` is set by whichever side observes
    ``completed == expected`` after streaming has finished.
    """

    def __init__(self, run_id: str | None = None) -> None:
        self.run_id = run_id or uuid.uuid4().hex
        self.state = RunState.IDLE
        self.expected = 0
        self.completed = 0
        self.succeeded = 0
        self.failed = 0
        self.dropped = 0
        self.fatal_reason: str | None = None
        self.first_failure: str | None = None
        self.settled = threading.Event()
        self._lock = threading.Lock()

    @property
    def aborted(self) -> bool:
        return self.fatal_reason is not None

    def start(self) -> None:
        with self._lock:
            self._transition(RunState.IDLE, RunState.STREAMING)

    def issue(self) -> None:
        with self._lock:
            self.expected += 1

    def drop(self) -> None:
        with self._lock:
            self.dropped += 1

    def abort(self, reason: str) -> None:
        with self._lock:
            if self.fatal_reason is None:
                self.fatal_reason = reason

    def complete(self, result: SubmissionResult) -> None:
        with self._lock:
            self.completed += 1
            if result.ok:
                self.succeeded += 1
            else:
                self.failed += 1
                if self.first_failure is None:
                    self.first_failure = str(result.error)
            self._settle_if_accounted()

    def finish_streaming(self) -> None:
        with self._lock:
            self._transition(RunState.STREAMING, RunState.AWAITING_COMPLETION)
            self._settle_if_accounted()

    def terminate(self) -> RunSummary:
        with self._lock:
            if self.state in (RunState.DONE, RunState.FAILED):
                raise RuntimeError(f"Run {self.run_id} already finished as {self.state.value}")
            self.state = RunState.FAILED if self.fatal_reason else RunState.DONE
            return self._summary()

    def summary(self) -> RunSummary:
        with self._lock:
            return self._summary()

    def _summary(self) -> RunSummary:
        reason = self.fatal_reason
        if reason is None and self.failed:
            reason = f"{self.failed} of {self.expected} submissions failed; first: {self.first_failure}"
        return RunSummary(
            run_id=self.run_id,
            status=self.state,
            expected=self.expected,
            completed=self.completed,
            succeeded=self.succeeded,
            failed=self.failed,
            dropped=self.dropped,
            reason=reason,
        )

    def _settle_if_accounted(self) -> None:
        if self.state == RunState.AWAITING_COMPLETION and self.completed == self.expected:
            self.settled.set()

    def _transition(self, current: RunState, target: RunState) -> None:
        if self.state != current:
            raise RuntimeError(f"Run {self.run_id} cannot move to {target.value} from {self.state.value}")
        self.state = target


class PipelineCoordinator:
    def __init__(
        self,
        parser: LogParser,
        sink: Submitter,
        strictness: Strictness = Strictness.FAIL_FAST,
        parse_error_policy: ParseErrorPolicy = ParseErrorPolicy.SKIP,
        max_concurrency: int = 4,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.parser = parser
        self.sink = sink
        self.strictness = Strictness(strictness)
        self.parse_error_policy = ParseErrorPolicy(parse_error_policy)
        self.max_concurrency = max_concurrency

    def run(
        self,
        chunks: Iterable[bytes],
        signal: CompletionSignal,
        framing: Framing = split_lines,
    ) -> RunSummary:
        """Drive one run. ``framing`` turns the raw chunks into the units handed to the parser."""
        run = PipelineRun()
        run.start()
        logger.info(
            "run_started",
            extra={"run_id": run.run_id, "strictness": self.strictness.value},
        )
        with ThreadPoolExecutor(
            max_workers=self.max_concurrency, thread_name_prefix="index-submit"
        ) as executor:
            try:
                self._stream(run, framing(chunks), executor)
            except StreamError as exc:
                logger.error("stream_failed", extra={"run_id": run.run_id, "error": str(exc)})
                run.abort(str(exc))
            except Exception as exc:
                logger.exception("run_crashed", extra={"run_id": run.run_id})
                run.abort(f"Unexpected error: {exc}")
            run.finish_streaming()
            run.settled.wait()
        return self._report(run, signal)

    def _stream(self, run: PipelineRun, lines: Iterable[str], executor: ThreadPoolExecutor) -> None:
        in_flight: set[Future] = set()
        max_in_flight = self.max_concurrency * 2
        for line in lines:
            if run.aborted:
                break
            try:
                record = self.parser.parse_line(line)
            except ParseError as exc:
                if self.parse_error_policy is ParseErrorPolicy.ABORT:
                    run.abort(str(exc))
                    break
                run.drop()
                logger.warning("record_dropped", extra={"run_id": run.run_id, "reason": exc.reason})
                continue
            if len(in_flight) >= max_in_flight:
                _, in_flight = wait(in_flight, return_when=FIRST_COMPLETED)
            future = executor.submit(self.sink.submit, record)
            run.issue()
            future.add_done_callback(partial(self._on_submitted, run))
            in_flight.add(future)

    def _on_submitted(self, run: PipelineRun, future: Future) -> None:
        # run.complete must always be reached or run.settled never fires.
        result = SubmissionResult(ok=False, error=SubmissionError("Submission outcome unavailable"))
        try:
            exc = future.exception()
            if exc is not None:
                result = SubmissionResult(ok=False, error=SubmissionError(f"Submitter raised: {exc}"))
            else:
                outcome = future.result()
                if isinstance(outcome, SubmissionResult):
                    result = outcome
                else:
                    result = SubmissionResult(
                        ok=False,
                        error=SubmissionError(
                            f"Submitter returned {type(outcome).__name__}, not a SubmissionResult"
                        ),
                    )
            if not result.ok:
                logger.warning(
                    "submission_failed",
                    extra={"run_id": run.run_id, "error": str(result.error)},
                )
                if self.strictness is Strictness.FAIL_FAST:
                    run.abort(str(result.error))
        finally:
            run.complete(result)

    def _report(self, run: PipelineRun, signal: CompletionSignal) -> RunSummary:
        summary = run.terminate()
        logger.info("run_finished", extra=summary.model_dump(mode="json"))
        if summary.status == RunState.FAILED:
            signal.fail(summary.reason or "pipeline run failed", summary)
        else:
            signal.succeed(summary)
        return summary
