"""
Validation module: field rules, conditional companion fields, date ranges,
repeatable location groups and completion percentage.

Validation never raises for bad input; it returns a ValidationResult.
"""

import math
from datetime import datetime
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Set

from pipeline.config import PipelineConfig
from pipeline.schema import BaseFields, Location, UploadFields, ValidationResult
from pipeline.validation_policy import (
    DATE_RANGES,
    DATETIME_FIELDS,
    LOCATION_DATE_RANGES,
    LOCATION_REQUIRED_FIELDS,
    PAST_DATE_FIELDS,
    PHONE_FIELDS,
    required_fields_for,
    rules_for,
)
from utils.formatting import clean_phone, is_blank, parse_datetime

DEFAULT_CONFIG = PipelineConfig()


class Completion(NamedTuple):
    percentage: int
    is_complete: bool
    filled: int
    total: int


def validate_field(
    value: Any,
    field_name: str,
    required: bool = False,
    config: PipelineConfig = DEFAULT_CONFIG,
) -> Optional[str]:
    """
    Validate a single field value.

    Returns:
        Error message, or None if the value is acceptable
    """
    messages = config.messages
    if is_blank(value, config.placeholder):
        return messages.required_field if required else None

    text = str(value).strip()
    patterns = config.patterns

    if field_name == "officer_email":
        return None if patterns.email.match(text) else messages.invalid_email
    if field_name in PHONE_FIELDS:
        return None if patterns.phone.match(clean_phone(text)) else messages.invalid_phone
    if field_name == "occurrence_number":
        return None if patterns.case_number.match(text) else messages.invalid_occurrence
    if field_name == "time_offset":
        return None if patterns.time_offset.search(text) else messages.time_offset_required
    if field_name == "locker_number":
        return _validate_locker_number(text, config)
    if field_name in DATETIME_FIELDS:
        return None if parse_datetime(text) is not None else messages.invalid_datetime
    return None


def _validate_locker_number(text: str, config: PipelineConfig) -> Optional[str]:
    digits = text[1:] if text.startswith("-") else text
    if not digits.isdecimal():
        return config.messages.locker_not_number
    number = int(text)
    if number < config.locker_min or number > config.locker_max:
        return config.messages.locker_out_of_range.format(min=config.locker_min, max=config.locker_max)
    return None


def validate_date_range(
    start: Any,
    end: Any,
    now: datetime,
    config: PipelineConfig = DEFAULT_CONFIG,
) -> Optional[str]:
    """
    Check an ordered start/end pair.

    Missing values are left to the required-field rule. When the range is both
    inverted and in the future, only the ordering error is reported.
    """
    start_dt = parse_datetime(start)
    end_dt = parse_datetime(end)
    if start_dt is None or end_dt is None:
        return None
    if end_dt <= start_dt:
        return config.messages.end_before_start
    if start_dt > now or end_dt > now:
        return config.messages.future_time
    return None


def validate_not_future(value: Any, now: datetime, config: PipelineConfig = DEFAULT_CONFIG) -> Optional[str]:
    """A single date must not be after today (day granularity)."""
    parsed = parse_datetime(value)
    if parsed is None:
        return None
    if parsed.date() > now.date():
        return config.messages.future_date
    return None


def active_dependents(fields: Mapping[str, Any]) -> Set[str]:
    """Companion fields that are currently required by a conditional rule."""
    active = set()
    for rule in rules_for(fields):
        if fields.get(rule.selector) == rule.sentinel:
            active.add(rule.dependent)
    return active


def inactive_dependents(fields: Mapping[str, Any]) -> Set[str]:
    """Companion fields whose selector is present but not set to its sentinel."""
    inactive = set()
    for rule in rules_for(fields):
        if fields.get(rule.selector) != rule.sentinel:
            inactive.add(rule.dependent)
    return inactive


def conditional_errors(fields: Mapping[str, Any], config: PipelineConfig = DEFAULT_CONFIG) -> Dict[str, str]:
    """Errors for companion fields left empty while their selector is on its sentinel."""
    errors: Dict[str, str] = {}
    for rule in rules_for(fields):
        if fields.get(rule.selector) != rule.sentinel:
            continue
        if is_blank(fields.get(rule.dependent), config.placeholder):
            errors[rule.dependent] = getattr(config.messages, rule.message_key)
    return errors


def _validate_group(
    values: Mapping[str, Any],
    required: Set[str],
    ranges: List[tuple],
    now: datetime,
    config: PipelineConfig,
) -> Dict[str, str]:
    """Validate one flat group of fields (a whole form or a single location)."""
    errors: Dict[str, str] = {}
    skipped = inactive_dependents(values)
    dependents = active_dependents(values)

    for name, value in values.items():
        if name in skipped:
            continue
        if name in dependents and is_blank(value, config.placeholder):
            # Reported once, below, with the rule's own message.
            continue
        error = validate_field(value, name, name in required, config)
        if error is None and name in PAST_DATE_FIELDS:
            error = validate_not_future(value, now, config)
        if error:
            errors[name] = error

    errors.update(conditional_errors(values, config))

    for start_name, end_name in ranges:
        if start_name in errors or end_name in errors:
            continue
        error = validate_date_range(values.get(start_name), values.get(end_name), now, config)
        if error:
            errors[end_name] = error

    return errors


def validate_locations(
    locations: List[Location],
    now: datetime,
    config: PipelineConfig = DEFAULT_CONFIG,
) -> Dict[str, str]:
    """
    Validate every location independently.

    Returns:
        Errors keyed ``locations.<index>.<field>``
    """
    errors: Dict[str, str] = {}
    for index, location in enumerate(locations):
        group_errors = _validate_group(
            location.model_dump(),
            set(LOCATION_REQUIRED_FIELDS),
            LOCATION_DATE_RANGES,
            now,
            config,
        )
        for name, message in group_errors.items():
            errors[f"locations.{index}.{name}"] = message
    return errors


def _field_order(fields: BaseFields) -> List[str]:
    order = [name for name in type(fields).model_fields if name != "locations"]
    if isinstance(fields, UploadFields):
        location_names = list(Location.model_fields)
        for index in range(len(fields.locations)):
            order.extend(f"locations.{index}.{name}" for name in location_names)
    return order


def validate_form(
    fields: BaseFields,
    now: datetime,
    config: PipelineConfig = DEFAULT_CONFIG,
) -> ValidationResult:
    """
    Run every rule for a captured field set.

    Args:
        fields: Typed field set for one form variant
        now: Wall-clock reference for "not in the future" checks
        config: Pipeline configuration

    Returns:
        ValidationResult with errors ordered as the fields appear on the form
    """
    form_type = fields.form_type.value
    errors = _validate_group(
        fields.field_map(),
        set(required_fields_for(form_type)),
        DATE_RANGES.get(form_type, []),
        now,
        config,
    )
    if isinstance(fields, UploadFields):
        errors.update(validate_locations(fields.locations, now, config))

    order = _field_order(fields)
    position = {name: i for i, name in enumerate(order)}
    ordered = dict(sorted(errors.items(), key=lambda item: position.get(item[0], len(order))))
    first = next(iter(ordered), None)
    return ValidationResult(field_errors=ordered, first_invalid_field=first)


def _count_filled(values: Mapping[str, Any], required: Set[str], config: PipelineConfig) -> tuple:
    names = set(required) | active_dependents(values)
    filled = sum(1 for name in names if not is_blank(values.get(name), config.placeholder))
    return filled, len(names)


def form_completion(fields: BaseFields, config: PipelineConfig = DEFAULT_CONFIG) -> Completion:
    """
    Percentage of required fields (including active companion fields) filled in.

    Informational only; it has no bearing on whether a form may be submitted.
    """
    filled, total = _count_filled(fields.field_map(), set(required_fields_for(fields.form_type.value)), config)
    if isinstance(fields, UploadFields):
        for location in fields.locations:
            loc_filled, loc_total = _count_filled(location.model_dump(), set(LOCATION_REQUIRED_FIELDS), config)
            filled += loc_filled
            total += loc_total

    percentage = math.floor(filled / total * 100 + 0.5) if total else 0
    return Completion(percentage=percentage, is_complete=filled == total, filled=filled, total=total)
