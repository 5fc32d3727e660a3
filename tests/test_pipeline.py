import json
import threading
import time

import pytest

from application.completion import CompletionLatch
from application.parsers import LogParser
from application.pipeline import PipelineCoordinator, PipelineRun
from application.sink import IndexSink
from domain.errors import RunFailedError, SubmissionError
from domain.models import ParseErrorPolicy, RunState, Strictness, SubmissionResult
from infrastructure.signing import SigV4RequestSigner

SCENARIO = (
    b'1.2.3.4 - - [x] "GET / HTTP/1.1" 200 10\n'
    b'5.6.7.8 - - [x] "GET /a HTTP/1.1" 404 0\n'
)


def _line(i: int) -> bytes:
    return f'10.0.0.{i} - - [x] "GET /item/{i} HTTP/1.1" 200 {i}\n'.encode()


class RecordingSignal:
    def __init__(self) -> None:
        self.calls: list[tuple] = []

    def succeed(self, summary) -> None:
        self.calls.append(("succeed", summary))

    def fail(self, reason, summary) -> None:
        self.calls.append(("fail", reason, summary))


class FakeSink:
    def __init__(self, fail_on: set[int] | None = None, delay: float = 0.0) -> None:
        self.fail_on = fail_on or set()
        self.delay = delay
        self.records = []
        self._lock = threading.Lock()

    def submit(self, record):
        with self._lock:
            index = len(self.records)
            self.records.append(record)
        if self.delay:
            time.sleep(self.delay)
        if index in self.fail_on:
            return SubmissionResult(ok=False, status_code=500, error=SubmissionError("HTTP 500", 500))
        return SubmissionResult(ok=True, status_code=201)


def test_two_line_scenario_end_to_end(session, credentials) -> None:
    signer = SigV4RequestSigner(credentials, region="us-east-1")
    sink = IndexSink("search.example.com", "logs", "apache", signer, session=session)
    coordinator = PipelineCoordinator(LogParser(), sink)
    signal = RecordingSignal()

    summary = coordinator.run([SCENARIO], signal)

    assert len(session.calls) == 2
    statuses = sorted(_body_status(call["data"]) for call in session.calls)
    assert statuses == [200, 404]
    assert summary.status == RunState.DONE
    assert summary.expected == 2
    assert summary.completed == 2
    assert [call[0] for call in signal.calls] == ["succeed"]


def _body_status(data: bytes) -> int:
    return json.loads(data)["status"]


@pytest.mark.parametrize("concurrency", [1, 8])
def test_all_records_accounted_once(concurrency: int) -> None:
    sink = FakeSink(delay=0.001)
    coordinator = PipelineCoordinator(LogParser(), sink, max_concurrency=concurrency)
    signal = RecordingSignal()

    summary = coordinator.run([_line(i) for i in range(50)], signal)

    assert len(signal.calls) == 1
    assert signal.calls[0][0] == "succeed"
    assert summary.completed == summary.expected == summary.succeeded == 50
    assert len(sink.records) == 50


def test_empty_input_succeeds() -> None:
    signal = RecordingSignal()
    summary = PipelineCoordinator(LogParser(), FakeSink()).run([], signal)
    assert summary.status == RunState.DONE
    assert summary.expected == 0
    assert [call[0] for call in signal.calls] == ["succeed"]


def test_source_failure_mid_stream_fails_run() -> None:
    def source():
        yield _line(1)
        yield _line(2)
        raise ConnectionError("object stream reset")

    sink = FakeSink()
    signal = RecordingSignal()
    summary = PipelineCoordinator(LogParser(), sink).run(source(), signal)

    assert summary.status == RunState.FAILED
    assert "object stream reset" in summary.reason
    assert len(sink.records) <= 2
    assert [call[0] for call in signal.calls] == ["fail"]


def test_fail_fast_aborts_on_first_parse_error() -> None:
    lines = [_line(i) for i in range(10)]
    lines.insert(3, b"this is not an access log line\n")
    sink = FakeSink()
    signal = RecordingSignal()
    coordinator = PipelineCoordinator(
        LogParser(),
        sink,
        strictness=Strictness.FAIL_FAST,
        parse_error_policy=ParseErrorPolicy.ABORT,
    )

    summary = coordinator.run(lines, signal)

    assert summary.status == RunState.FAILED
    assert len(sink.records) < 10
    assert len(sink.records) == 3
    assert [call[0] for call in signal.calls] == ["fail"]


def test_parse_errors_skipped_by_default() -> None:
    lines = [_line(1), b"junk\n", _line(2), b"more junk\n"]
    sink = FakeSink()
    signal = RecordingSignal()

    summary = PipelineCoordinator(LogParser(), sink).run(lines, signal)

    assert summary.status == RunState.DONE
    assert summary.dropped == 2
    assert summary.completed == 2
    assert signal.calls[0][0] == "succeed"


def test_fail_fast_submission_failure_fails_run() -> None:
    sink = FakeSink(fail_on={0})
    signal = RecordingSignal()
    coordinator = PipelineCoordinator(LogParser(), sink, max_concurrency=1)

    summary = coordinator.run([_line(i) for i in range(20)], signal)

    assert summary.status == RunState.FAILED
    assert summary.failed >= 1
    assert summary.completed == summary.expected
    assert len(sink.records) < 20
    assert [call[0] for call in signal.calls] == ["fail"]


def test_best_effort_reports_failed_count() -> None:
    sink = FakeSink(fail_on={1, 4})
    signal = RecordingSignal()
    coordinator = PipelineCoordinator(LogParser(), sink, strictness=Strictness.BEST_EFFORT)

    summary = coordinator.run([_line(i) for i in range(6)], signal)

    assert summary.status == RunState.DONE
    assert summary.expected == 6
    assert summary.succeeded == 4
    assert summary.failed == 2
    assert "2 of 6 submissions failed" in summary.reason
    assert [call[0] for call in signal.calls] == ["succeed"]


def test_raising_submitter_is_counted_as_failure() -> None:
    class ExplodingSink:
        def submit(self, record):
            raise RuntimeError("boom")

    signal = RecordingSignal()
    summary = PipelineCoordinator(LogParser(), ExplodingSink()).run([_line(1)], signal)
    assert summary.status == RunState.FAILED
    assert summary.completed == 1
    assert "boom" in summary.reason


@pytest.mark.parametrize("outcome", [None, {"ok": True}])
def test_submitter_returning_wrong_type_still_completes(outcome) -> None:
    class OddSink:
        def submit(self, record):
            return outcome

    signal = RecordingSignal()
    summary = PipelineCoordinator(
        LogParser(), OddSink(), strictness=Strictness.BEST_EFFORT
    ).run([_line(1), _line(2)], signal)
    assert summary.status == RunState.DONE
    assert summary.completed == summary.expected == 2
    assert summary.failed == 2
    assert "not a SubmissionResult" in summary.reason


def test_run_terminates_only_once() -> None:
    run = PipelineRun()
    run.start()
    run.finish_streaming()
    assert run.terminate().status == RunState.DONE
    with pytest.raises(RuntimeError):
        run.terminate()


def test_completion_latch_rejects_second_signal() -> None:
    latch = CompletionLatch()
    summary = PipelineCoordinator(LogParser(), FakeSink()).run([_line(1)], latch)
    assert latch.result() == summary
    with pytest.raises(RuntimeError):
        latch.fail("late", summary)


def test_completion_latch_raises_for_failed_run() -> None:
    latch = CompletionLatch()
    PipelineCoordinator(LogParser(), FakeSink(fail_on={0})).run([_line(1)], latch)
    with pytest.raises(RunFailedError) as info:
        latch.result()
    assert info.value.summary.failed == 1
