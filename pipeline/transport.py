"""
Submission transports.

A transport performs exactly one transmission attempt and either returns a
TransportResult or raises TransportError. Retrying is the runner's job.

Two implementations exist:
    - LegacyFormTransport: multipart POST to the legacy ticketing endpoint (requests)
    - SupabaseTransport: row insert into ``form_submissions`` (see supabase_submit.py)
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

import requests

from pipeline.config import PipelineConfig
from pipeline.document_model import display_value
from pipeline.errors import TransportError, classify_status
from pipeline.schema import Attachment, BaseFields, ErrorKind, FormType, UploadFields
from utils.formatting import is_blank

logger = logging.getLogger(__name__)

# Field names expected by the legacy ticketing system.
LEGACY_FIELD_MAP: Dict[str, str] = {
    "officer_name": "rName",
    "officer_email": "requestingEmail",
    "officer_phone": "requestingPhone",
    "badge": "badge",
    "occurrence_number": "occNumber",
    "occurrence_date": "occDate",
    "evidence_bag": "evidenceBag",
    "media_type": "mediaType",
    "media_type_other": "mediaTypeOther",
    "locker_number": "lockerNumber",
    "business_name": "businessName",
    "location_address": "locationAddress",
    "city": "city",
    "city_other": "cityOther",
    "video_start_time": "videoStartTime",
    "video_end_time": "videoEndTime",
    "is_time_date_correct": "isTimeDateCorrect",
    "time_offset": "timeOffset",
    "dvr_earliest_date": "dvrEarliestDate",
    "other_info": "otherInfo",
    "offence_type": "offenceType",
    "offence_type_other": "offenceTypeOther",
    "video_location": "videoLocation",
    "video_location_other": "videoLocationOther",
    "bag_number": "bagNumber",
    "video_seized_from": "videoSeizedFrom",
    "recording_date": "recordingDate",
    "job_required": "jobRequired",
    "file_names": "fileNames",
    "service_required": "serviceRequired",
    "service_required_other": "serviceRequiredOther",
    "request_details": "requestDetails",
    "additional_info": "additionalInfo",
    "unit": "unit",
    "location_contact": "locationContact",
    "location_contact_phone": "locationContactPhone",
    "extraction_start_time": "extractionStartTime",
    "extraction_end_time": "extractionEndTime",
    "time_period_type": "timePeriodType",
    "dvr_make_model": "dvrMakeModel",
    "camera_details": "cameraDetails",
    "dvr_username": "dvrUsername",
    "dvr_password": "dvrPassword",
    "has_video_monitor": "hasVideoMonitor",
    "incident_description": "incidentDescription",
}

REQUEST_AREA = "36"

OCCURRENCE_TYPE_IDS = {
    "homicide": "1",
    "missing person": "2",
}

REQUEST_HEADERS = {
    FormType.UPLOAD: "FVU Upload Request",
    FormType.ANALYSIS: "FVU Analysis Request",
    FormType.RECOVERY: "FVU Recovery Request",
}

TICKET_STATUS_IDS = {
    FormType.ANALYSIS: "1",
    FormType.RECOVERY: "2",
    FormType.UPLOAD: "4",
}


@dataclass(frozen=True)
class SubmissionPayload:
    """Everything one transmission attempt needs. Built once per attempt."""

    fields: BaseFields
    file_details: str
    attachments: List[Attachment]
    timestamp_ms: int

    @property
    def form_type(self) -> FormType:
        return self.fields.form_type


@dataclass(frozen=True)
class TransportResult:
    submission_id: str
    message: str = ""
    raw: Dict[str, Any] = field(default_factory=dict)


class SubmissionTransport(Protocol):
    def send(self, payload: SubmissionPayload) -> TransportResult:
        ...


def occurrence_type_id(offence_type: Optional[str]) -> str:
    """Legacy occurrence type id for an offence label. Unknown labels map to "1"."""
    if not offence_type:
        return "1"
    return OCCURRENCE_TYPE_IDS.get(offence_type.strip().lower(), "1")


def legacy_form_data(payload: SubmissionPayload, placeholder: str) -> Dict[str, str]:
    """
    Flatten a payload into the legacy system's field names.

    Blank values are omitted. Upload requests carry the first location under the
    flat location names and the full list as JSON in ``locations``.
    """
    fields = payload.fields
    data: Dict[str, str] = {}

    def _put(name: str, value: Any) -> None:
        if is_blank(value, placeholder):
            return
        data[LEGACY_FIELD_MAP.get(name, name)] = str(value)

    for name, value in fields.field_map().items():
        _put(name, value)

    if isinstance(fields, UploadFields) and fields.locations:
        for name, value in fields.locations[0].model_dump().items():
            _put(name, value)
        data["locations"] = json.dumps([
            {LEGACY_FIELD_MAP.get(k, k): v for k, v in location.model_dump().items() if not is_blank(v, placeholder)}
            for location in fields.locations
        ])

    form_type = payload.form_type
    data["formType"] = form_type.value
    data["fileDetails"] = payload.file_details
    data["fileNr"] = fields.occurrence_number or ""
    if "requestDetails" in data:
        data["rfsDetails"] = data["requestDetails"]
    offence_type = display_value(getattr(fields, "offence_type", None), getattr(fields, "offence_type_other", None))
    data["occType"] = occurrence_type_id(offence_type)
    data["reqArea"] = REQUEST_AREA
    data["rfsHeader"] = REQUEST_HEADERS.get(form_type, "FVU Request")
    data["ticketStatus"] = TICKET_STATUS_IDS.get(form_type, "1")
    return data


class LegacyFormTransport:
    """Multipart POST to the legacy PHP endpoint."""

    def __init__(self, config: PipelineConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or requests.Session()

    def send(self, payload: SubmissionPayload) -> TransportResult:
        data = legacy_form_data(payload, self.config.placeholder)
        files = {}
        slot_names = {"pdf": "fileAttachmentA", "json": "fileAttachmentB"}
        for attachment in payload.attachments:
            slot = slot_names.get(attachment.kind)
            if slot:
                files[slot] = (attachment.filename, attachment.data, attachment.content_type)

        try:
            response = self.session.post(
                self.config.legacy_endpoint_url,
                data=data,
                files=files,
                timeout=self.config.request_timeout_seconds,
            )
        except requests.exceptions.Timeout as e:
            raise TransportError("Request timeout", ErrorKind.TIMEOUT) from e
        except requests.exceptions.ConnectionError as e:
            raise TransportError("Network offline", ErrorKind.OFFLINE) from e
        except requests.exceptions.RequestException as e:
            raise TransportError(f"Network error: {e}", ErrorKind.UNKNOWN) from e

        return self._parse_response(response)

    def _parse_response(self, response: requests.Response) -> TransportResult:
        try:
            body = response.json()
        except ValueError:
            if not response.ok:
                raise classify_status(response.status_code)
            raise TransportError("Invalid response format", ErrorKind.UNKNOWN, response.status_code)

        if not isinstance(body, dict):
            raise TransportError("Invalid response format", ErrorKind.UNKNOWN, response.status_code)

        if not response.ok:
            error = classify_status(response.status_code)
            error.server_message = body.get("message")
            raise error

        if body.get("success") is False:
            raise TransportError(
                body.get("message") or "Request rejected",
                ErrorKind.REJECTED,
                response.status_code,
                retryable=False,
                server_message=body.get("message"),
            )

        submission_id = body.get("ticketNumber") or body.get("submissionId") or body.get("id")
        if not submission_id:
            raise TransportError("Response missing ticket number", ErrorKind.UNKNOWN, response.status_code)

        logger.info(f"Legacy endpoint accepted submission: ticket={submission_id}")
        return TransportResult(submission_id=str(submission_id), message=body.get("message", ""), raw=body)


def make_transport(config: PipelineConfig) -> SubmissionTransport:
    """Select the transport named by ``config.backend``."""
    if config.backend == "legacy":
        return LegacyFormTransport(config)
    if config.backend == "supabase":
        from pipeline.supabase_submit import SupabaseTransport
        return SupabaseTransport(config)
    raise ValueError(f"Unknown submission backend: {config.backend}")
