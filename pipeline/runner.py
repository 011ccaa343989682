"""
Submission runner: orchestrates one submission attempt end to end.
Runs validation → document build → artifact rendering → transmission with retry.

Stages:
    1. Validating: field rules; invalid input returns to Idle with field errors
    2. Preparing: document model, PDF and JSON attachments (never retried)
    3. Submitting / Retrying: transport calls with exponential backoff
    4. Succeeded (draft cleared) or Failed (draft saved)
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from contextlib import nullcontext
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from jobs.autosave import AutoSaver
from pipeline.config import Messages, PipelineConfig
from pipeline.document_model import build_document, derive_calculations, serialize_json_record
from pipeline.drafts import DraftStore
from pipeline.errors import ArtifactGenerationError, TransportError
from pipeline.file_details import build_file_details
from pipeline.officer_storage import OfficerInfoStore
from pipeline.pdf_renderer import ReportRenderer
from pipeline.schema import (
    Attachment,
    BaseFields,
    ErrorKind,
    SubmissionEvent,
    SubmissionOutcome,
    SubmissionState,
)
from pipeline.transport import SubmissionPayload, SubmissionTransport, TransportResult
from pipeline.validate import validate_form

logger = logging.getLogger(__name__)

Observer = Callable[[SubmissionEvent], None]


def message_for(kind: ErrorKind, config: PipelineConfig, server_message: Optional[str] = None) -> str:
    """User-facing message for a failure kind. Raw causes are only logged."""
    messages = config.messages
    if kind == ErrorKind.REJECTED:
        return server_message or messages.submission_error
    return {
        ErrorKind.TIMEOUT: messages.error_timeout,
        ErrorKind.OFFLINE: messages.error_offline,
        ErrorKind.SERVER: messages.error_server,
        ErrorKind.RATE_LIMITED: messages.error_rate_limited,
        ErrorKind.ARTIFACT_GENERATION: messages.error_pdf_generation,
    }.get(kind, messages.error_unknown)


def format_retry_notice(event: SubmissionEvent, messages: Messages) -> str:
    """Status line for a submission event, e.g. 'Retrying... (attempt 2 of 3)'."""
    if event.state == SubmissionState.RETRYING:
        return messages.retry_attempt.format(attempt=event.attempt + 1, max=event.max_attempts)
    labels = {
        SubmissionState.IDLE: "",
        SubmissionState.VALIDATING: "Validating...",
        SubmissionState.PREPARING: "Preparing...",
        SubmissionState.SUBMITTING: "Submitting...",
        SubmissionState.SUCCEEDED: messages.submission_success,
        SubmissionState.FAILED: messages.submission_error,
    }
    return labels.get(event.state, "")


class SubmissionPipeline:
    """
    Submission state machine for one form instance.

    At most one submission runs at a time; a submit() while another is active
    returns None without doing anything.
    """

    def __init__(
        self,
        config: PipelineConfig,
        transport: SubmissionTransport,
        renderer: ReportRenderer,
        drafts: DraftStore,
        officer_store: Optional[OfficerInfoStore] = None,
        autosaver: Optional[AutoSaver] = None,
        clock: Callable[[], datetime] = datetime.now,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.transport = transport
        self.renderer = renderer
        self.drafts = drafts
        self.officer_store = officer_store
        self.autosaver = autosaver
        self.clock = clock
        self.sleep = sleep
        self.state = SubmissionState.IDLE
        self._observers: List[Observer] = []
        self._in_flight = threading.Lock()

    @property
    def is_submitting(self) -> bool:
        return self._in_flight.locked()

    def subscribe(self, observer: Observer) -> None:
        self._observers.append(observer)

    def _emit(self, state: SubmissionState, attempt: int = 0, delay: float = 0.0) -> None:
        self.state = state
        event = SubmissionEvent(
            state=state,
            attempt=attempt,
            max_attempts=self.config.retry.max_attempts,
            delay_seconds=delay,
        )
        for observer in self._observers:
            observer(event)

    def submit(self, fields: BaseFields) -> Optional[SubmissionOutcome]:
        """
        Run a full submission attempt for a captured field set.

        Returns:
            SubmissionOutcome, or None if a submission was already in flight
        """
        if not self._in_flight.acquire(blocking=False):
            logger.warning(f"Submission already in progress for {fields.form_type.value}; ignoring")
            return None
        try:
            guard = self.autosaver.suspended() if self.autosaver is not None else nullcontext()
            with guard:
                return self._run(fields)
        finally:
            self._in_flight.release()

    def _run(self, fields: BaseFields) -> SubmissionOutcome:
        form_type = fields.form_type
        if self.officer_store is not None:
            self.officer_store.save(fields)

        now = self.clock()
        self._emit(SubmissionState.VALIDATING)
        validation = validate_form(fields, now, self.config)
        if not validation.is_valid:
            logger.info(f"{form_type.value} submission blocked by {len(validation.field_errors)} validation error(s)")
            self._emit(SubmissionState.IDLE)
            return SubmissionOutcome(
                success=False,
                message=f"Please correct {len(validation.field_errors)} error(s) before submitting",
                error_kind=ErrorKind.VALIDATION,
                field_errors=validation.field_errors,
            )

        self._emit(SubmissionState.PREPARING)
        try:
            payload = self._prepare(fields, now)
        except ArtifactGenerationError as e:
            logger.error(f"Artifact generation failed for {form_type.value}: {e}")
            return self._fail(fields, ErrorKind.ARTIFACT_GENERATION, attempts=0)

        result, error, attempts = self._send_with_retry(payload)
        if result is None:
            return self._fail(fields, error.kind, attempts, error.server_message)

        cleared = self.drafts.clear(form_type)
        if not cleared:
            logger.warning(f"Submission {result.submission_id} succeeded but draft could not be cleared")
        logger.info(f"✅ {form_type.value} request submitted: id={result.submission_id} attempts={attempts}")
        self._emit(SubmissionState.SUCCEEDED, attempt=attempts)
        return SubmissionOutcome(
            success=True,
            submission_id=result.submission_id,
            message=self.config.messages.submission_success,
            attempts=attempts,
        )

    def _prepare(self, fields: BaseFields, now: datetime) -> SubmissionPayload:
        """Build the document model and both attachments."""
        try:
            derived = derive_calculations(fields, now, self.config)
            document = build_document(fields, now, self.config, derived)
            json_bytes = serialize_json_record(document)
            file_details = build_file_details(fields, derived, self.config)
        except Exception as e:
            raise ArtifactGenerationError(f"Document build failed: {e}") from e

        pdf_bytes = self._render(document)

        timestamp_ms = int(now.timestamp() * 1000)
        prefix = f"{fields.form_type.value}_{timestamp_ms}"
        attachments = [
            Attachment(kind="pdf", filename=f"{prefix}.pdf", content_type="application/pdf", data=pdf_bytes),
            Attachment(kind="json", filename=f"{prefix}.json", content_type="application/json", data=json_bytes),
        ]
        return SubmissionPayload(
            fields=fields,
            file_details=file_details,
            attachments=attachments,
            timestamp_ms=timestamp_ms,
        )

    def _render(self, document) -> bytes:
        timeout = self.config.render_timeout_seconds
        executor = ThreadPoolExecutor(max_workers=1)
        try:
            future = executor.submit(self.renderer.render, document)
            return future.result(timeout=timeout)
        except FutureTimeoutError as e:
            raise ArtifactGenerationError(f"PDF rendering exceeded {timeout}s") from e
        except ArtifactGenerationError:
            raise
        except Exception as e:
            raise ArtifactGenerationError(f"PDF rendering failed: {e}") from e
        finally:
            executor.shutdown(wait=False)

    def _send_with_retry(
        self, payload: SubmissionPayload
    ) -> Tuple[Optional[TransportResult], Optional[TransportError], int]:
        retry = self.config.retry
        attempt = 0
        while True:
            attempt += 1
            self._emit(SubmissionState.SUBMITTING, attempt=attempt)
            try:
                return self.transport.send(payload), None, attempt
            except TransportError as e:
                error = e
            except Exception as e:
                logger.error(f"Unexpected transport failure on attempt {attempt}: {e}", exc_info=True)
                return None, TransportError(str(e), ErrorKind.UNKNOWN, retryable=False), attempt

            logger.warning(
                f"Submission attempt {attempt} of {retry.max_attempts} failed "
                f"({error.kind.value}, status={error.status}): {error}"
            )
            if not error.retryable or attempt >= retry.max_attempts:
                return None, error, attempt

            delay = retry.delay_for(attempt)
            logger.info(f"Retrying in {delay:g}s...")
            self._emit(SubmissionState.RETRYING, attempt=attempt, delay=delay)
            self.sleep(delay)

    def _fail(
        self,
        fields: BaseFields,
        kind: ErrorKind,
        attempts: int,
        server_message: Optional[str] = None,
    ) -> SubmissionOutcome:
        draft_saved = self.drafts.save(fields.form_type, fields.model_dump())
        if draft_saved:
            logger.info(f"Saved {fields.form_type.value} draft after failed submission")
        else:
            logger.error(f"❌ Could not save {fields.form_type.value} draft after failed submission")
        self._emit(SubmissionState.FAILED, attempt=attempts)
        return SubmissionOutcome(
            success=False,
            message=message_for(kind, self.config, server_message),
            error_kind=kind,
            attempts=attempts,
            draft_saved=draft_saved,
        )
