"""
Validation policy tables per form type.

Adding a new "Other" companion field: append a ConditionalRule to
CONDITIONAL_RULES. Nothing else needs to change; the validator, the
completion calculation and the UI toggle endpoint all read this table.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Tuple

# DVR retention thresholds (days). The report/urgency path and the legacy
# file-details summary historically disagree (<=3 vs <=4); both are kept as
# named values until product confirms a single boundary.
RETENTION_URGENT_MAX_DAYS = 3
RETENTION_ADVISORY_MAX_DAYS = 7
LEGACY_SUMMARY_URGENT_MAX_DAYS = 4


@dataclass(frozen=True)
class RetentionPolicy:
    urgent_max_days: int = RETENTION_URGENT_MAX_DAYS
    advisory_max_days: int = RETENTION_ADVISORY_MAX_DAYS
    summary_urgent_max_days: int = LEGACY_SUMMARY_URGENT_MAX_DAYS


@dataclass(frozen=True)
class ConditionalRule:
    """When ``selector`` equals ``sentinel``, ``dependent`` becomes required.

    ``message_key`` names the Messages attribute used for the error.
    """

    selector: str
    sentinel: str
    dependent: str
    message_key: str


OTHER = "Other"

CONDITIONAL_RULES: Tuple[ConditionalRule, ...] = (
    ConditionalRule("media_type", OTHER, "media_type_other", "media_other_required"),
    ConditionalRule("city", OTHER, "city_other", "city_other_required"),
    ConditionalRule("offence_type", OTHER, "offence_type_other", "offence_other_required"),
    ConditionalRule("service_required", OTHER, "service_required_other", "service_other_required"),
    ConditionalRule("video_location", OTHER, "video_location_other", "video_location_other_required"),
    ConditionalRule("is_time_date_correct", "No", "time_offset", "time_offset_required"),
)

INVESTIGATOR_FIELDS: Tuple[str, ...] = ("officer_name", "badge", "officer_phone", "officer_email")

REQUIRED_FIELDS: Dict[str, FrozenSet[str]] = {
    "upload": frozenset(INVESTIGATOR_FIELDS + ("occurrence_number", "media_type")),
    "analysis": frozenset(INVESTIGATOR_FIELDS + (
        "occurrence_number",
        "offence_type",
        "video_location",
        "video_seized_from",
        "recording_date",
        "job_required",
        "service_required",
        "request_details",
    )),
    "recovery": frozenset(INVESTIGATOR_FIELDS + (
        "occurrence_number",
        "offence_type",
        "location_address",
        "city",
        "location_contact",
        "location_contact_phone",
        "extraction_start_time",
        "extraction_end_time",
        "time_period_type",
        "is_time_date_correct",
        "camera_details",
        "dvr_password",
        "incident_description",
    )),
}

LOCATION_REQUIRED_FIELDS: FrozenSet[str] = frozenset({
    "location_address",
    "city",
    "video_start_time",
    "video_end_time",
    "is_time_date_correct",
})

# (start field, end field) pairs checked with the date-range rule.
DATE_RANGES: Dict[str, List[Tuple[str, str]]] = {
    "upload": [],
    "analysis": [],
    "recovery": [("extraction_start_time", "extraction_end_time")],
}
LOCATION_DATE_RANGES: List[Tuple[str, str]] = [("video_start_time", "video_end_time")]

# Single dates that must parse and must not lie in the future.
PAST_DATE_FIELDS: FrozenSet[str] = frozenset({"recording_date", "dvr_earliest_date", "occurrence_date"})

# Fields that must parse as ISO date/datetime values when filled.
DATETIME_FIELDS: FrozenSet[str] = frozenset({
    "video_start_time",
    "video_end_time",
    "extraction_start_time",
    "extraction_end_time",
}) | PAST_DATE_FIELDS

PHONE_FIELDS: FrozenSet[str] = frozenset({"officer_phone", "location_contact_phone"})


def rules_for(fields: Dict[str, object]) -> List[ConditionalRule]:
    """Conditional rules whose selector exists in the given field mapping."""
    return [rule for rule in CONDITIONAL_RULES if rule.selector in fields]


def required_fields_for(form_type: str) -> FrozenSet[str]:
    """Return the statically required field names for a form type."""
    return REQUIRED_FIELDS.get(form_type, frozenset(INVESTIGATOR_FIELDS))
