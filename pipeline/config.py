"""
Runtime configuration for the intake pipeline.

A single PipelineConfig value is built once (usually via ``from_env``) and
passed explicitly into the validator, draft store, transports and runner.
Nothing in the pipeline reads module-level mutable settings.
"""

import os
import re
from dataclasses import dataclass, field
from typing import Dict, Optional, Pattern

from pipeline.validation_policy import RetentionPolicy
from utils.formatting import PLACEHOLDER

FORM_TITLES: Dict[str, str] = {
    "upload": "Video Evidence Upload Request",
    "analysis": "Forensic Analysis Request",
    "recovery": "CCTV Recovery Request",
}


@dataclass(frozen=True)
class ValidationPatterns:
    """Regular expressions used by the field-level rules."""

    phone: Pattern = re.compile(r"^\d{10}$")
    email: Pattern = re.compile(r"^[^\s@]+@peelpolice\.ca$", re.IGNORECASE)
    case_number: Pattern = re.compile(r"^PR\d+$", re.IGNORECASE)
    time_offset: Pattern = re.compile(r"\d+")


@dataclass(frozen=True)
class Messages:
    """User-facing messages. Raw transport details never appear here."""

    required_field: str = "This field is required"
    invalid_email: str = "Must be a valid @peelpolice.ca email"
    invalid_phone: str = "Must be 10 digits"
    invalid_occurrence: str = "Must start with PR followed by numbers"
    time_offset_required: str = "Please specify the time offset"
    city_other_required: str = "Please specify the city name"
    media_other_required: str = "Please specify the media type"
    offence_other_required: str = "Please specify the offence type"
    video_location_other_required: str = "Please specify the storage location"
    service_other_required: str = "Please specify the service required"
    locker_not_number: str = "Locker number must be a number"
    locker_out_of_range: str = "Locker number must be between {min} and {max}"
    invalid_datetime: str = "Please enter a valid date/time"
    end_before_start: str = "End time must be after start time"
    future_time: str = "Times cannot be in the future"
    future_date: str = "Date cannot be in the future"
    submission_success: str = "Request submitted successfully"
    submission_error: str = "Error submitting request"
    error_timeout: str = "Request timed out. Please check your connection and try again."
    error_offline: str = "You appear to be offline. Your draft has been saved."
    error_server: str = "Server error. Please try again in a few minutes."
    error_rate_limited: str = "Too many requests. Please wait a moment and try again."
    error_pdf_generation: str = "Failed to generate PDF. Please try again."
    error_unknown: str = "Submission failed. Your draft has been saved."
    retry_attempt: str = "Connection issue. Retrying... (attempt {attempt} of {max})"


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff: base, 2*base, 4*base ... for max_attempts sends."""

    max_attempts: int = 3
    base_delay_seconds: float = 1.0

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after the given (1-based) failed attempt."""
        return self.base_delay_seconds * (2 ** (attempt - 1))


@dataclass(frozen=True)
class PipelineConfig:
    backend: str = "supabase"  # "supabase" or "legacy"
    legacy_endpoint_url: str = "rfs_request_process.php"
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    supabase_table: str = "form_submissions"
    request_timeout_seconds: float = 30.0
    render_timeout_seconds: float = 30.0

    draft_expiry_days: int = 7
    draft_key_prefix: str = "fvu_draft_"
    autosave_debounce_seconds: float = 2.0

    officer_storage_key: str = "fvu_officer_info"
    officer_storage_version: str = "1.0"
    officer_first_time_key: str = "fvu_officer_storage_acknowledged"

    placeholder: str = PLACEHOLDER
    locker_min: int = 1
    locker_max: int = 28
    schema_version: str = "1.0"
    generator: str = "FVU Request System"

    patterns: ValidationPatterns = field(default_factory=ValidationPatterns)
    messages: Messages = field(default_factory=Messages)
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    retention: RetentionPolicy = field(default_factory=RetentionPolicy)

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        """
        Build configuration from environment variables.

        Recognised variables:
            SUBMISSION_BACKEND, LEGACY_ENDPOINT_URL, SUPABASE_URL,
            SUPABASE_ANON_KEY, API_TIMEOUT_SECONDS, DRAFT_EXPIRY_DAYS,
            RETRY_MAX_ATTEMPTS, RETRY_BASE_DELAY_SECONDS, LOCKER_MAX
        """
        env = os.environ
        return cls(
            backend=env.get("SUBMISSION_BACKEND", "supabase").strip().lower(),
            legacy_endpoint_url=env.get("LEGACY_ENDPOINT_URL", cls.legacy_endpoint_url),
            supabase_url=env.get("SUPABASE_URL") or None,
            supabase_key=env.get("SUPABASE_ANON_KEY") or None,
            request_timeout_seconds=float(env.get("API_TIMEOUT_SECONDS", 30)),
            draft_expiry_days=int(env.get("DRAFT_EXPIRY_DAYS", 7)),
            locker_max=int(env.get("LOCKER_MAX", 28)),
            retry=RetryPolicy(
                max_attempts=int(env.get("RETRY_MAX_ATTEMPTS", 3)),
                base_delay_seconds=float(env.get("RETRY_BASE_DELAY_SECONDS", 1.0)),
            ),
        )
