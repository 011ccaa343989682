"""
Plain-text summaries sent to the legacy ticketing endpoint.

The legacy system stores one free-text "file details" blob per ticket. Each
form variant produces its own layout; timing values come from the shared
DerivedCalculations so the text agrees with the PDF and JSON record.
"""

from typing import List, Optional

from pipeline.config import FORM_TITLES, PipelineConfig
from pipeline.document_model import DerivedCalculations, TimingCalculations, display_value
from pipeline.schema import AnalysisFields, BaseFields, RecoveryFields, UploadFields
from utils.formatting import clean_value, format_datetime

HEADER_WIDTH = 40


def _header(title: str) -> str:
    line = "=" * HEADER_WIDTH
    padding = " " * ((HEADER_WIDTH - len(title)) // 2)
    return f"{line}\n{padding}{title}\n{line}"


def _block(name: str, lines: List[str]) -> Optional[str]:
    if not lines:
        return None
    return f"=== {name} ===\n" + "\n".join(lines)


def _investigator_lines(fields: BaseFields, include_badge_only: bool = False) -> List[str]:
    lines = []
    if fields.officer_name and fields.badge:
        lines.append(f"Name: {fields.officer_name} (Badge: {fields.badge})")
    elif fields.officer_name:
        lines.append(f"Name: {fields.officer_name}")
    elif fields.badge and include_badge_only:
        lines.append(f"Badge: {fields.badge}")
    if fields.officer_phone:
        lines.append(f"Phone: {fields.officer_phone}")
    if fields.officer_email:
        lines.append(f"Email: {fields.officer_email}")
    return lines


def _address(address: Optional[str], city: Optional[str]) -> Optional[str]:
    if not address:
        return None
    return f"{address}, {city}" if city else address


def _retention_line(timing: TimingCalculations, config: PipelineConfig) -> Optional[str]:
    if timing.retention is None or timing.retention.days is None:
        return None
    text = f"DVR Retention: {timing.retention.days} days"
    if timing.retention.days <= config.retention.summary_urgent_max_days:
        text += " - URGENT"
    return text


def upload_file_details(fields: UploadFields, derived: DerivedCalculations, config: PipelineConfig) -> str:
    blocks = [_header(FORM_TITLES["upload"].upper())]

    evidence = []
    if fields.occurrence_number:
        evidence.append(f"Occurrence: {fields.occurrence_number}")
    if fields.evidence_bag:
        evidence.append(f"Evidence Bag: {fields.evidence_bag}")
    media = clean_value(display_value(fields.media_type, fields.media_type_other), config.placeholder)
    if media:
        evidence.append(f"Media Type: {media}")
    blocks.append(_block("EVIDENCE", evidence))
    blocks.append(_block("INVESTIGATOR", _investigator_lines(fields)))

    for index, (location, timing) in enumerate(zip(fields.locations, derived.locations)):
        lines = []
        if location.business_name:
            lines.append(f"Business: {location.business_name}")
        city = clean_value(display_value(location.city, location.city_other), config.placeholder)
        address = _address(location.location_address, city)
        if address:
            lines.append(f"Address: {address}")
        if location.video_start_time and location.video_end_time:
            lines.append(
                f"Video Period: {format_datetime(location.video_start_time)} "
                f"to {format_datetime(location.video_end_time)}"
            )
            if timing.duration is not None and timing.duration.is_valid:
                lines.append(f"Duration: {timing.duration.formatted}")
        if location.is_time_date_correct:
            lines.append(f"Time Sync: {location.is_time_date_correct}")
            if timing.offset is not None:
                lines.append(f"Time Offset: {timing.offset.formatted}")
        retention = _retention_line(timing, config)
        if retention:
            lines.append(retention)
        blocks.append(_block(f"LOCATION {index + 1}", lines))

    if fields.other_info and fields.other_info.strip():
        blocks.append(_block("ADDITIONAL", [fields.other_info.strip()]))

    return "\n\n".join(block for block in blocks if block)


def analysis_file_details(fields: AnalysisFields, derived: DerivedCalculations, config: PipelineConfig) -> str:
    placeholder = config.placeholder
    blocks = [_header(FORM_TITLES["analysis"].upper())]

    case = []
    if fields.occurrence_number:
        case.append(f"Occurrence: {fields.occurrence_number}")
    offence = clean_value(display_value(fields.offence_type, fields.offence_type_other), placeholder)
    if offence:
        case.append(f"Offence: {offence}")
    if fields.job_required:
        case.append(f"Priority: {fields.job_required}")
    blocks.append(_block("CASE", case))

    evidence = []
    storage = clean_value(display_value(fields.video_location, fields.video_location_other), placeholder)
    if storage:
        evidence.append(f"Storage: {storage}")
    if fields.bag_number:
        evidence.append(f"Bag #: {fields.bag_number}")
    if fields.locker_number:
        evidence.append(f"Locker: {fields.locker_number}")
    blocks.append(_block("EVIDENCE", evidence))
    blocks.append(_block("INVESTIGATOR", _investigator_lines(fields, include_badge_only=True)))

    location = []
    if fields.video_seized_from:
        location.append(f"Seized From: {fields.video_seized_from}")
    if fields.business_name:
        location.append(f"Business: {fields.business_name}")
    city = clean_value(display_value(fields.city, fields.city_other), placeholder)
    if fields.location_address:
        location.append(f"Address: {_address(fields.location_address, city)}")
    elif city:
        location.append(f"City: {city}")
    if fields.recording_date:
        location.append(f"Recording Date: {fields.recording_date}")
    blocks.append(_block("LOCATION", location))

    if fields.file_names:
        files = [name.strip() for name in fields.file_names.splitlines() if name.strip()]
        blocks.append(_block("FILES", files))

    service = clean_value(display_value(fields.service_required, fields.service_required_other), placeholder)
    if service:
        blocks.append(_block("SERVICE", [service]))
    if fields.request_details:
        blocks.append(_block("REQUEST", [fields.request_details]))
    if fields.additional_info:
        blocks.append(_block("ADDITIONAL", [fields.additional_info]))

    return "\n\n".join(block for block in blocks if block)


def recovery_file_details(fields: RecoveryFields, derived: DerivedCalculations, config: PipelineConfig) -> str:
    """One-line pipe-separated summary."""
    parts = []
    if fields.business_name:
        parts.append(f"Business: {fields.business_name}")
    city = clean_value(display_value(fields.city, fields.city_other), config.placeholder)
    parts.append(f"Location: {fields.location_address or ''}, {city or ''}")

    duration = derived.form.duration
    if duration is not None and duration.is_valid:
        parts.append(f"Extraction period: {duration.total_minutes} minutes")
    if fields.time_period_type:
        parts.append(f"Time type: {fields.time_period_type}")
    if fields.camera_details:
        cameras = [line for line in fields.camera_details.splitlines() if line.strip()]
        parts.append(f"{len(cameras)} camera(s) listed")
    return " | ".join(parts)


def build_file_details(fields: BaseFields, derived: DerivedCalculations, config: PipelineConfig) -> str:
    """Legacy free-text summary for any form variant."""
    if isinstance(fields, UploadFields):
        return upload_file_details(fields, derived, config)
    if isinstance(fields, AnalysisFields):
        return analysis_file_details(fields, derived, config)
    return recovery_file_details(fields, derived, config)
