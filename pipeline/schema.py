"""
Data models for FVU request intake.
Uses Pydantic for validation and type safety.
"""

from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, computed_field


class FormType(str, Enum):
    """The three request form variants."""
    UPLOAD = "upload"
    ANALYSIS = "analysis"
    RECOVERY = "recovery"


class Direction(str, Enum):
    """Which way a device clock is off from real time."""
    AHEAD = "AHEAD"
    BEHIND = "BEHIND"


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    TIMEOUT = "timeout"
    OFFLINE = "offline"
    SERVER = "server"
    RATE_LIMITED = "rate_limited"
    REJECTED = "rejected"
    ARTIFACT_GENERATION = "artifact_generation"
    UNKNOWN = "unknown"


class SubmissionState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    PREPARING = "preparing"
    SUBMITTING = "submitting"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Raw field sets (one typed record per form variant)
# ---------------------------------------------------------------------------

class _FieldModel(BaseModel):
    # Captured field sets are immutable for the duration of an attempt.
    model_config = ConfigDict(extra="forbid", frozen=True)


class Location(_FieldModel):
    """One recording location on an upload request. Order is significant."""
    business_name: Optional[str] = None
    location_address: Optional[str] = None
    city: Optional[str] = None
    city_other: Optional[str] = None
    video_start_time: Optional[str] = None
    video_end_time: Optional[str] = None
    is_time_date_correct: Optional[str] = None
    time_offset: Optional[str] = None
    dvr_earliest_date: Optional[str] = None


class BaseFields(_FieldModel):
    """Investigator and case fields shared by every form."""
    form_type: ClassVar[FormType]

    officer_name: Optional[str] = None
    badge: Optional[str] = None
    officer_phone: Optional[str] = None
    officer_email: Optional[str] = None
    occurrence_number: Optional[str] = None

    def field_map(self) -> Dict[str, Any]:
        """Flat name -> value mapping of the scalar fields (no repeated groups)."""
        return self.model_dump(exclude={"locations"})


class UploadFields(BaseFields):
    form_type: ClassVar[FormType] = FormType.UPLOAD

    evidence_bag: Optional[str] = None
    media_type: Optional[str] = None
    media_type_other: Optional[str] = None
    locker_number: Optional[str] = None
    other_info: Optional[str] = None
    locations: List[Location] = Field(default_factory=list)


class AnalysisFields(BaseFields):
    form_type: ClassVar[FormType] = FormType.ANALYSIS

    occurrence_date: Optional[str] = None
    offence_type: Optional[str] = None
    offence_type_other: Optional[str] = None
    video_location: Optional[str] = None
    video_location_other: Optional[str] = None
    bag_number: Optional[str] = None
    locker_number: Optional[str] = None
    video_seized_from: Optional[str] = None
    business_name: Optional[str] = None
    location_address: Optional[str] = None
    city: Optional[str] = None
    city_other: Optional[str] = None
    recording_date: Optional[str] = None
    job_required: Optional[str] = None
    file_names: Optional[str] = None
    service_required: Optional[str] = None
    service_required_other: Optional[str] = None
    request_details: Optional[str] = None
    additional_info: Optional[str] = None


class RecoveryFields(BaseFields):
    form_type: ClassVar[FormType] = FormType.RECOVERY

    offence_type: Optional[str] = None
    offence_type_other: Optional[str] = None
    unit: Optional[str] = None
    business_name: Optional[str] = None
    location_address: Optional[str] = None
    city: Optional[str] = None
    city_other: Optional[str] = None
    location_contact: Optional[str] = None
    location_contact_phone: Optional[str] = None
    extraction_start_time: Optional[str] = None
    extraction_end_time: Optional[str] = None
    time_period_type: Optional[str] = None
    dvr_make_model: Optional[str] = None
    is_time_date_correct: Optional[str] = None
    time_offset: Optional[str] = None
    dvr_earliest_date: Optional[str] = None
    has_video_monitor: Optional[str] = None
    camera_details: Optional[str] = None
    dvr_username: Optional[str] = None
    dvr_password: Optional[str] = None
    incident_description: Optional[str] = None


FIELD_MODELS: Dict[FormType, Type[BaseFields]] = {
    FormType.UPLOAD: UploadFields,
    FormType.ANALYSIS: AnalysisFields,
    FormType.RECOVERY: RecoveryFields,
}


def parse_fields(form_type: "FormType | str", data: Dict[str, Any]) -> BaseFields:
    """Build the typed field set for a form type. Unknown field names raise."""
    model = FIELD_MODELS[FormType(form_type)]
    return model.model_validate(data or {})


# ---------------------------------------------------------------------------
# Derived values
# ---------------------------------------------------------------------------

class RetentionInfo(BaseModel):
    days: Optional[int] = None
    message: str = ""
    is_urgent: bool = False


class DurationInfo(BaseModel):
    hours: int = 0
    minutes: int = 0
    total_minutes: int = 0
    formatted: str = ""
    is_valid: bool = False


class OffsetInfo(BaseModel):
    hours: int = 0
    minutes: int = 0
    seconds: int = 0
    direction: Optional[Direction] = None
    formatted: str = ""

    @property
    def total_seconds(self) -> int:
        return self.hours * 3600 + self.minutes * 60 + self.seconds


class ValidationResult(BaseModel):
    """Outcome of one validation pass. Recomputed every time, never persisted."""
    field_errors: Dict[str, str] = Field(default_factory=dict)
    first_invalid_field: Optional[str] = None

    @computed_field
    @property
    def is_valid(self) -> bool:
        return not self.field_errors

    def location_errors(self) -> Dict[int, Dict[str, str]]:
        """Regroup ``locations.<index>.<field>`` errors by location index."""
        grouped: Dict[int, Dict[str, str]] = {}
        for key, message in self.field_errors.items():
            parts = key.split(".")
            if len(parts) == 3 and parts[0] == "locations" and parts[1].isdigit():
                grouped.setdefault(int(parts[1]), {})[parts[2]] = message
        return grouped


# ---------------------------------------------------------------------------
# Document model
# ---------------------------------------------------------------------------

class ReportSection(BaseModel):
    """
    One block of the rendered report.

    kind:
        - "table": label/value rows in ``fields``
        - "text": free text in ``text``
        - "banner": highlighted notice in ``text``; ``level`` is "urgent" or "warning"
    """
    title: str
    kind: str = "table"
    fields: List[List[str]] = Field(default_factory=list)
    text: Optional[str] = None
    level: Optional[str] = None


class DocumentModel(BaseModel):
    form_type: FormType
    title: str
    generated_at: datetime
    sections: List[ReportSection]
    json_record: Dict[str, Any]
    calculations: Dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Persistence and submission
# ---------------------------------------------------------------------------

class Draft(BaseModel):
    form_type: FormType
    data: Dict[str, Any]
    saved_at_ms: int
    expires_at_ms: int


class Attachment(BaseModel):
    kind: str  # "pdf" or "json"
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


class SubmissionEvent(BaseModel):
    """State transition emitted by the submission runner for observers."""
    state: SubmissionState
    attempt: int = 0
    max_attempts: int = 0
    delay_seconds: float = 0.0


class SubmissionOutcome(BaseModel):
    success: bool
    submission_id: Optional[str] = None
    message: str = ""
    error_kind: Optional[ErrorKind] = None
    attempts: int = 0
    draft_saved: bool = False
    field_errors: Dict[str, str] = Field(default_factory=dict)
