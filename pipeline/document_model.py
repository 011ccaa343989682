"""
Document model builder.

Turns a validated field set into:
    - an ordered list of report sections (consumed by the PDF renderer)
    - a canonical JSON record

Both are produced from one DerivedCalculations value so the report and the
record can never disagree about retention, durations or offsets.
"""

import json
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

from pipeline.calculations import adjusted_time, parse_time_offset, retention_info, video_duration
from pipeline.config import FORM_TITLES, PipelineConfig
from pipeline.schema import (
    AnalysisFields,
    BaseFields,
    DocumentModel,
    DurationInfo,
    FormType,
    OffsetInfo,
    RecoveryFields,
    ReportSection,
    RetentionInfo,
    UploadFields,
)
from utils.formatting import clean_value, format_date, format_datetime, format_phone, is_blank

NOT_AVAILABLE = "N/A"


class TimingCalculations(BaseModel):
    """Derived timing facts for one recording source (a location or a DVR)."""
    retention: Optional[RetentionInfo] = None
    duration: Optional[DurationInfo] = None
    offset: Optional[OffsetInfo] = None
    corrected_start: Optional[datetime] = None
    corrected_end: Optional[datetime] = None


class DerivedCalculations(BaseModel):
    form: TimingCalculations = Field(default_factory=TimingCalculations)
    locations: List[TimingCalculations] = Field(default_factory=list)

    @property
    def is_urgent(self) -> bool:
        timings = [self.form] + list(self.locations)
        return any(t.retention is not None and t.retention.is_urgent for t in timings)


def derive_timing(
    values: Mapping[str, Any],
    start_key: str,
    end_key: str,
    now: datetime,
    config: PipelineConfig,
) -> TimingCalculations:
    """Compute retention, duration and offset for one group of fields."""
    placeholder = config.placeholder
    timing = TimingCalculations()

    earliest = values.get("dvr_earliest_date")
    if not is_blank(earliest, placeholder):
        timing.retention = retention_info(earliest, now, config.retention)

    start, end = values.get(start_key), values.get(end_key)
    if not is_blank(start, placeholder) and not is_blank(end, placeholder):
        timing.duration = video_duration(start, end)

    offset_text = values.get("time_offset")
    if values.get("is_time_date_correct") == "No" and not is_blank(offset_text, placeholder):
        offset = parse_time_offset(offset_text)
        timing.offset = offset
        if offset.total_seconds:
            timing.corrected_start = adjusted_time(start, offset)
            timing.corrected_end = adjusted_time(end, offset)

    return timing


def derive_calculations(fields: BaseFields, now: datetime, config: PipelineConfig) -> DerivedCalculations:
    """The single derivation step shared by the report, the JSON record and summaries."""
    derived = DerivedCalculations()
    if isinstance(fields, UploadFields):
        derived.locations = [
            derive_timing(location.model_dump(), "video_start_time", "video_end_time", now, config)
            for location in fields.locations
        ]
    elif isinstance(fields, RecoveryFields):
        derived.form = derive_timing(
            fields.field_map(), "extraction_start_time", "extraction_end_time", now, config
        )
    return derived


# ---------------------------------------------------------------------------
# Section helpers
# ---------------------------------------------------------------------------

def display_value(value: Optional[str], other: Optional[str]) -> Optional[str]:
    """Value of a selector, replaced by its companion text when set to "Other"."""
    if value == "Other" and other and other.strip():
        return other.strip()
    return value


def _table(title: str, rows: Sequence[Tuple[str, Any]], config: PipelineConfig) -> Optional[ReportSection]:
    cleaned = [(label, clean_value(value, config.placeholder)) for label, value in rows]
    if all(value is None for _, value in cleaned):
        return None
    return ReportSection(
        title=title,
        kind="table",
        fields=[[label, value if value is not None else NOT_AVAILABLE] for label, value in cleaned],
    )


def _text(title: str, value: Any, config: PipelineConfig) -> Optional[ReportSection]:
    text = clean_value(value, config.placeholder)
    if text is None:
        return None
    return ReportSection(title=title, kind="text", text=text)


def _banner(title: str, text: str, level: str) -> ReportSection:
    return ReportSection(title=title, kind="banner", text=text, level=level)


def _investigator(fields: BaseFields, config: PipelineConfig) -> Optional[ReportSection]:
    return _table("Submitting Investigator", [
        ("Name", fields.officer_name),
        ("Badge #", fields.badge),
        ("Phone", format_phone(fields.officer_phone) if fields.officer_phone else None),
        ("Email", fields.officer_email),
    ], config)


def _timing_rows(timing: TimingCalculations, values: Mapping[str, Any], start_key: str, end_key: str) -> List[Tuple[str, Any]]:
    rows: List[Tuple[str, Any]] = [
        ("Start Time", format_datetime(values.get(start_key)) if values.get(start_key) else None),
        ("End Time", format_datetime(values.get(end_key)) if values.get(end_key) else None),
        ("Duration", timing.duration.formatted if timing.duration else None),
        ("Time Synchronized", values.get("is_time_date_correct")),
    ]
    if timing.offset is not None:
        rows.append(("Time Offset", timing.offset.formatted))
    if timing.corrected_start is not None:
        rows.append(("Corrected Start Time", format_datetime(timing.corrected_start)))
    if timing.corrected_end is not None:
        rows.append(("Corrected End Time", format_datetime(timing.corrected_end)))
    return rows


def _offset_banner(timing: TimingCalculations, suffix: str) -> Optional[ReportSection]:
    if timing.offset is None:
        return None
    return _banner(f"Time Offset{suffix}", f"Time Offset: {timing.offset.formatted}", "warning")


def _retention_banner(timing: TimingCalculations, suffix: str) -> Optional[ReportSection]:
    if timing.retention is None or not timing.retention.is_urgent:
        return None
    return _banner(f"URGENT: DVR Retention{suffix}", timing.retention.message, "urgent")


# ---------------------------------------------------------------------------
# Per-form section lists
# ---------------------------------------------------------------------------

def _upload_sections(fields: UploadFields, derived: DerivedCalculations, config: PipelineConfig) -> List[Optional[ReportSection]]:
    multiple = len(fields.locations) > 1
    sections: List[Optional[ReportSection]] = []

    for index, timing in enumerate(derived.locations):
        sections.append(_retention_banner(timing, f" - Location {index + 1}" if multiple else ""))

    sections.append(_table("Evidence Information", [
        ("Occurrence Number", fields.occurrence_number),
        ("Evidence Bag #", fields.evidence_bag),
        ("Media Type", display_value(fields.media_type, fields.media_type_other)),
        ("Locker Number", fields.locker_number),
    ], config))
    sections.append(_investigator(fields, config))

    for index, (location, timing) in enumerate(zip(fields.locations, derived.locations)):
        number = index + 1
        values = location.model_dump()
        sections.append(_table(f"Location {number}" if multiple else "Location Information", [
            ("Business Name", location.business_name),
            ("Address", location.location_address),
            ("City", display_value(location.city, location.city_other)),
        ], config))
        rows = _timing_rows(timing, values, "video_start_time", "video_end_time")
        rows.append(("DVR Earliest Date", format_date(location.dvr_earliest_date) if location.dvr_earliest_date else None))
        rows.append(("DVR Retention", timing.retention.message if timing.retention else None))
        sections.append(_table(f"Video Timeframe - Location {number}" if multiple else "Video Timeframe", rows, config))
        sections.append(_offset_banner(timing, f" - Location {number}" if multiple else ""))

    sections.append(_text("Additional Information", fields.other_info, config))
    return sections


def _file_list(file_names: Optional[str]) -> Optional[str]:
    if not file_names:
        return None
    lines = [line.strip() for line in file_names.splitlines() if line.strip()]
    return "\n".join(lines) or None


def _analysis_sections(fields: AnalysisFields, derived: DerivedCalculations, config: PipelineConfig) -> List[Optional[ReportSection]]:
    return [
        _table("Case Information", [
            ("Occurrence Number", fields.occurrence_number),
            ("Occurrence Date", format_date(fields.occurrence_date) if fields.occurrence_date else None),
            ("Offence Type", display_value(fields.offence_type, fields.offence_type_other)),
        ], config),
        _investigator(fields, config),
        _table("Evidence", [
            ("Storage Location", display_value(fields.video_location, fields.video_location_other)),
            ("Bag Number", fields.bag_number),
            ("Locker Number", fields.locker_number),
        ], config),
        _table("Video Source", [
            ("Seized From", fields.video_seized_from),
            ("Business Name", fields.business_name),
            ("Address", fields.location_address),
            ("City", display_value(fields.city, fields.city_other)),
            ("Recording Date", format_date(fields.recording_date) if fields.recording_date else None),
        ], config),
        _text("Files", _file_list(fields.file_names), config),
        _table("Service Required", [
            ("Service", display_value(fields.service_required, fields.service_required_other)),
        ], config),
        _text("Job Required", fields.job_required, config),
        _text("Request Details", fields.request_details, config),
        _text("Additional Information", fields.additional_info, config),
    ]


def _recovery_sections(fields: RecoveryFields, derived: DerivedCalculations, config: PipelineConfig) -> List[Optional[ReportSection]]:
    timing = derived.form
    values = fields.field_map()
    return [
        _retention_banner(timing, ""),
        _table("Case Information", [
            ("Occurrence Number", fields.occurrence_number),
            ("Offence Type", display_value(fields.offence_type, fields.offence_type_other)),
            ("Unit", fields.unit),
        ], config),
        _investigator(fields, config),
        _table("Location Information", [
            ("Business Name", fields.business_name),
            ("Address", fields.location_address),
            ("City", display_value(fields.city, fields.city_other)),
            ("Location Contact", fields.location_contact),
            ("Contact Phone", format_phone(fields.location_contact_phone) if fields.location_contact_phone else None),
        ], config),
        _table("Extraction Period", _timing_rows(timing, values, "extraction_start_time", "extraction_end_time") + [
            ("Time Period Type", fields.time_period_type),
        ], config),
        _offset_banner(timing, ""),
        _table("DVR Information", [
            ("Make / Model", fields.dvr_make_model),
            ("DVR Earliest Date", format_date(fields.dvr_earliest_date) if fields.dvr_earliest_date else None),
            ("DVR Retention", timing.retention.message if timing.retention else None),
            ("Video Monitor On Site", fields.has_video_monitor),
            ("Username", fields.dvr_username),
            ("Password", fields.dvr_password),
        ], config),
        _text("Camera Details", fields.camera_details, config),
        _text("Incident Description", fields.incident_description, config),
    ]


_SECTION_BUILDERS = {
    FormType.UPLOAD: _upload_sections,
    FormType.ANALYSIS: _analysis_sections,
    FormType.RECOVERY: _recovery_sections,
}


def build_report_sections(fields: BaseFields, derived: DerivedCalculations, config: PipelineConfig) -> List[ReportSection]:
    """Ordered, non-empty report sections for a field set."""
    builder = _SECTION_BUILDERS[fields.form_type]
    return [section for section in builder(fields, derived, config) if section is not None]


# ---------------------------------------------------------------------------
# JSON record
# ---------------------------------------------------------------------------

def clean_form_data(fields: BaseFields, config: PipelineConfig) -> Dict[str, Any]:
    """Raw field values with empty and placeholder values normalised to None."""
    def _clean(mapping: Mapping[str, Any]) -> Dict[str, Any]:
        return {key: (None if is_blank(value, config.placeholder) else value) for key, value in mapping.items()}

    cleaned = _clean(fields.field_map())
    if isinstance(fields, UploadFields):
        cleaned["locations"] = [_clean(location.model_dump()) for location in fields.locations]
    return cleaned


def timing_to_json(timing: TimingCalculations) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    if timing.retention is not None:
        data["retentionDays"] = timing.retention.days
        data["retentionStatus"] = timing.retention.message
        data["isUrgent"] = timing.retention.is_urgent
    if timing.duration is not None:
        data["videoDuration"] = {
            "totalMinutes": timing.duration.total_minutes,
            "formatted": timing.duration.formatted,
        }
    if timing.offset is not None:
        data["timeOffset"] = {
            "hours": timing.offset.hours,
            "minutes": timing.offset.minutes,
            "seconds": timing.offset.seconds,
            "direction": timing.offset.direction.value if timing.offset.direction else None,
            "formatted": timing.offset.formatted,
        }
    if timing.corrected_start is not None:
        data["correctedStartTime"] = timing.corrected_start.isoformat()
    if timing.corrected_end is not None:
        data["correctedEndTime"] = timing.corrected_end.isoformat()
    return data


def calculations_to_json(fields: BaseFields, derived: DerivedCalculations) -> Dict[str, Any]:
    if isinstance(fields, UploadFields):
        return {
            "locations": [timing_to_json(timing) for timing in derived.locations],
            "locationCount": len(derived.locations),
            "isUrgent": derived.is_urgent,
        }
    if isinstance(fields, RecoveryFields):
        return timing_to_json(derived.form)
    return {}


def build_document(
    fields: BaseFields,
    now: datetime,
    config: PipelineConfig,
    derived: Optional[DerivedCalculations] = None,
) -> DocumentModel:
    """
    Build the document model for one submission attempt.

    Args:
        fields: A field set that has already passed validation
        now: Generation timestamp and "today" reference
        config: Pipeline configuration
        derived: Pre-computed calculations; derived here when omitted

    Returns:
        DocumentModel with report sections and JSON record
    """
    if derived is None:
        derived = derive_calculations(fields, now, config)

    calculations = calculations_to_json(fields, derived)
    json_record = {
        "metadata": {
            "formType": fields.form_type.value,
            "schemaVersion": config.schema_version,
            "generatedAt": now.isoformat(),
            "generator": config.generator,
        },
        "formData": clean_form_data(fields, config),
        "calculations": calculations,
    }
    return DocumentModel(
        form_type=fields.form_type,
        title=FORM_TITLES[fields.form_type.value],
        generated_at=now,
        sections=build_report_sections(fields, derived, config),
        json_record=json_record,
        calculations=calculations,
    )


def serialize_json_record(document: DocumentModel) -> bytes:
    """Pretty-printed UTF-8 JSON bytes for the record attachment."""
    return json.dumps(document.json_record, indent=2, ensure_ascii=False).encode("utf-8")
