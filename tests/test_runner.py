"""
Submission pipeline tests: retry/backoff, terminal failures, draft fallback,
identity memory and the in-flight guard.
"""

import threading

import pytest

from conftest import NOW, StubRenderer, StubTransport, upload_data
from jobs.autosave import AutoSaver
from pipeline.drafts import MemoryKeyValueStore
from pipeline.errors import ArtifactGenerationError, TransportError
from pipeline.officer_storage import OfficerInfoStore
from pipeline.runner import SubmissionPipeline, format_retry_notice, message_for
from pipeline.schema import ErrorKind, SubmissionState, UploadFields
from pipeline.transport import TransportResult


class Recorder:
    def __init__(self):
        self.sleeps = []
        self.events = []

    def sleep(self, seconds):
        self.sleeps.append(seconds)

    def observe(self, event):
        self.events.append(event)

    @property
    def states(self):
        return [event.state for event in self.events]


def _pipeline(config, drafts, transport, renderer=None, **kwargs):
    recorder = Recorder()
    pipeline = SubmissionPipeline(
        config,
        transport,
        renderer or StubRenderer(),
        drafts,
        clock=lambda: NOW,
        sleep=recorder.sleep,
        **kwargs,
    )
    pipeline.subscribe(recorder.observe)
    return pipeline, recorder


class TestRetry:
    def test_two_retryable_failures_then_success(self, config, drafts, upload_fields):
        drafts.save("upload", {"badge": "old"})
        transport = StubTransport([
            TransportError("HTTP 503", ErrorKind.SERVER, 503),
            TransportError("Request timeout", ErrorKind.TIMEOUT),
            TransportResult(submission_id="FVU-42"),
        ])
        pipeline, recorder = _pipeline(config, drafts, transport)

        outcome = pipeline.submit(upload_fields)

        assert outcome.success is True
        assert outcome.submission_id == "FVU-42"
        assert outcome.attempts == 3
        assert transport.calls == 3
        assert recorder.sleeps == [1.0, 2.0]
        assert drafts.load("upload") is None
        assert pipeline.state == SubmissionState.SUCCEEDED
        assert recorder.states == [
            SubmissionState.VALIDATING,
            SubmissionState.PREPARING,
            SubmissionState.SUBMITTING,
            SubmissionState.RETRYING,
            SubmissionState.SUBMITTING,
            SubmissionState.RETRYING,
            SubmissionState.SUBMITTING,
            SubmissionState.SUCCEEDED,
        ]

    def test_client_error_is_not_retried(self, config, drafts, upload_fields):
        transport = StubTransport([TransportError("HTTP 400", ErrorKind.REJECTED, 400, retryable=False)] * 5)
        pipeline, recorder = _pipeline(config, drafts, transport)

        outcome = pipeline.submit(upload_fields)

        assert outcome.success is False
        assert outcome.attempts == 1
        assert transport.calls == 1
        assert recorder.sleeps == []
        assert outcome.draft_saved is True
        assert drafts.load("upload") == upload_fields.model_dump()
        assert pipeline.state == SubmissionState.FAILED

    def test_exhausted_retries_save_draft(self, config, drafts, upload_fields):
        transport = StubTransport([TransportError("offline", ErrorKind.OFFLINE)] * 3)
        pipeline, recorder = _pipeline(config, drafts, transport)

        outcome = pipeline.submit(upload_fields)

        assert transport.calls == 3
        assert recorder.sleeps == [1.0, 2.0]
        assert outcome.error_kind == ErrorKind.OFFLINE
        assert outcome.message == config.messages.error_offline
        assert outcome.draft_saved is True

    def test_rejection_surfaces_server_message(self, config, drafts, upload_fields):
        transport = StubTransport([
            TransportError("rejected", ErrorKind.REJECTED, retryable=False, server_message="Occurrence already open"),
        ])
        pipeline, _ = _pipeline(config, drafts, transport)
        outcome = pipeline.submit(upload_fields)
        assert outcome.message == "Occurrence already open"

    def test_raw_cause_not_in_message(self, config, drafts, upload_fields):
        transport = StubTransport([TransportError("HTTPSConnectionPool(host='x') secret detail", ErrorKind.UNKNOWN, retryable=False)])
        pipeline, _ = _pipeline(config, drafts, transport)
        outcome = pipeline.submit(upload_fields)
        assert "secret detail" not in outcome.message
        assert outcome.message == config.messages.error_unknown


class TestPreparation:
    def test_renderer_failure_is_terminal(self, config, drafts, upload_fields):
        transport = StubTransport()
        renderer = StubRenderer(error=ArtifactGenerationError("boom"))
        pipeline, _ = _pipeline(config, drafts, transport, renderer=renderer)

        outcome = pipeline.submit(upload_fields)

        assert outcome.error_kind == ErrorKind.ARTIFACT_GENERATION
        assert outcome.message == config.messages.error_pdf_generation
        assert transport.calls == 0
        assert drafts.has_draft("upload")

    def test_unexpected_renderer_exception_is_wrapped(self, config, drafts, upload_fields):
        pipeline, _ = _pipeline(config, drafts, StubTransport(), renderer=StubRenderer(error=KeyError("font")))
        outcome = pipeline.submit(upload_fields)
        assert outcome.error_kind == ErrorKind.ARTIFACT_GENERATION

    def test_payload_contains_both_attachments(self, config, drafts, upload_fields):
        transport = StubTransport()
        pipeline, _ = _pipeline(config, drafts, transport)
        pipeline.submit(upload_fields)

        payload = transport.payloads[0]
        assert [a.kind for a in payload.attachments] == ["pdf", "json"]
        assert payload.attachments[0].filename.startswith("upload_")
        assert payload.attachments[0].data == b"%PDF-1.7 stub"
        assert "=== EVIDENCE ===" in payload.file_details


class TestValidationGate:
    def test_invalid_fields_never_reach_transport(self, config, drafts):
        transport = StubTransport()
        pipeline, recorder = _pipeline(config, drafts, transport)

        outcome = pipeline.submit(UploadFields(**upload_data(officer_email="jane@gmail.com")))

        assert outcome.success is False
        assert outcome.error_kind == ErrorKind.VALIDATION
        assert "officer_email" in outcome.field_errors
        assert transport.calls == 0
        assert recorder.states[-1] == SubmissionState.IDLE
        assert drafts.has_draft("upload") is False


class TestSideChannels:
    def test_identity_saved_on_every_attempt(self, config, drafts, upload_fields):
        officers = OfficerInfoStore(MemoryKeyValueStore(), config)
        transport = StubTransport([TransportError("HTTP 400", ErrorKind.REJECTED, 400, retryable=False)])
        pipeline, _ = _pipeline(config, drafts, transport, officer_store=officers)

        pipeline.submit(upload_fields)

        assert officers.load()["officer_name"] == "Jane Smith"

    def test_autosave_suspended_during_submission(self, config, drafts, upload_fields):
        autosaver = AutoSaver(drafts, "upload", delay=60)
        seen = []

        class ObservingTransport(StubTransport):
            def send(self, payload):
                seen.append(autosaver.is_suspended)
                autosaver.schedule({"badge": "typed during submit"})
                return super().send(payload)

        pipeline, _ = _pipeline(config, drafts, ObservingTransport(), autosaver=autosaver)
        autosaver.schedule({"badge": "pending"})

        outcome = pipeline.submit(upload_fields)

        assert outcome.success is True
        assert seen == [True]
        assert autosaver.is_suspended is False
        assert autosaver.has_pending is False
        assert drafts.load("upload") is None


class TestInFlightGuard:
    def test_reentrant_submit_is_rejected(self, config, drafts, upload_fields):
        entered = threading.Event()
        release = threading.Event()

        class BlockingTransport(StubTransport):
            def send(self, payload):
                entered.set()
                release.wait(5)
                return super().send(payload)

        transport = BlockingTransport()
        pipeline, _ = _pipeline(config, drafts, transport)
        results = []
        worker = threading.Thread(target=lambda: results.append(pipeline.submit(upload_fields)))
        worker.start()
        assert entered.wait(5)

        assert pipeline.is_submitting is True
        assert pipeline.submit(upload_fields) is None

        release.set()
        worker.join(5)
        assert results[0].success is True
        assert transport.calls == 1


@pytest.mark.parametrize("kind,attr", [
    (ErrorKind.TIMEOUT, "error_timeout"),
    (ErrorKind.SERVER, "error_server"),
    (ErrorKind.RATE_LIMITED, "error_rate_limited"),
    (ErrorKind.ARTIFACT_GENERATION, "error_pdf_generation"),
    (ErrorKind.UNKNOWN, "error_unknown"),
])
def test_message_for_kind(config, kind, attr):
    assert message_for(kind, config) == getattr(config.messages, attr)


def test_retry_notice_text(config, drafts, upload_fields):
    transport = StubTransport([TransportError("HTTP 503", ErrorKind.SERVER, 503)])
    pipeline, recorder = _pipeline(config, drafts, transport)
    pipeline.submit(upload_fields)
    retrying = next(e for e in recorder.events if e.state == SubmissionState.RETRYING)
    assert format_retry_notice(retrying, config.messages) == "Connection issue. Retrying... (attempt 2 of 3)"
