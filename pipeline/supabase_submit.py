"""
Supabase submission transport.

Inserts one row per request into the ``form_submissions`` table with the PDF
and JSON attachments embedded as base64.
"""

import base64
import logging
from typing import Any, Dict, Optional

import httpx
from postgrest.exceptions import APIError
from supabase import Client, create_client

from pipeline.config import PipelineConfig
from pipeline.errors import TransportError, classify_status
from pipeline.schema import BaseFields, ErrorKind, FormType, UploadFields
from pipeline.transport import SubmissionPayload, TransportResult, legacy_form_data
from utils.formatting import clean_value

logger = logging.getLogger(__name__)


def normalize_supabase_url(url: Optional[str]) -> Optional[str]:
    """Ensure Supabase URL ends with a trailing slash."""
    if not url:
        return None
    return url if url.endswith("/") else f"{url}/"


def get_supabase_client(config: PipelineConfig) -> Optional[Client]:
    """
    Create a Supabase client from the configured URL and anon key.

    Returns:
        Supabase client instance, or None if credentials are missing
    """
    supabase_url = normalize_supabase_url(config.supabase_url)
    if not supabase_url or not config.supabase_key:
        return None
    return create_client(supabase_url, config.supabase_key)


def request_area(fields: BaseFields, placeholder: str) -> str:
    """
    Value stored as ``request_type``: the request's city for upload and
    analysis requests (first location for uploads), "recovery" for recovery.
    """
    if fields.form_type == FormType.RECOVERY:
        return FormType.RECOVERY.value
    if isinstance(fields, UploadFields):
        city = fields.locations[0].city if fields.locations else None
    else:
        city = getattr(fields, "city", None)
    return clean_value(city, placeholder) or ""


def build_submission_row(payload: SubmissionPayload, placeholder: str) -> Dict[str, Any]:
    """Row for ``form_submissions``. Attachment data is base64 encoded."""
    form_data = legacy_form_data(payload, placeholder)
    fields = payload.fields
    area = request_area(fields, placeholder)
    form_data["reqArea"] = area
    return {
        "request_type": area,
        "form_data": form_data,
        "requesting_email": fields.officer_email,
        "requesting_name": fields.officer_name,
        "occurrence_number": fields.occurrence_number or None,
        "status": "pending",
        "attachments": [
            {
                "type": attachment.kind,
                "filename": f"{area}_{payload.timestamp_ms}.{attachment.kind}",
                "data": base64.b64encode(attachment.data).decode("utf-8"),
                "size": attachment.size,
            }
            for attachment in payload.attachments
        ],
    }


def _classify_api_error(error: APIError) -> TransportError:
    code = str(getattr(error, "code", "") or "")
    message = getattr(error, "message", None) or str(error)
    if code.isdigit() and len(code) == 3:
        transport_error = classify_status(int(code))
        transport_error.server_message = message
        return transport_error
    # Postgres / PostgREST error codes: the row itself was refused.
    return TransportError(
        f"Supabase rejected submission: {message}",
        ErrorKind.REJECTED,
        retryable=False,
        server_message=message,
    )


class SupabaseTransport:
    """Insert submissions into Supabase."""

    def __init__(self, config: PipelineConfig, client: Optional[Client] = None):
        self.config = config
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_client(self.config)
            if self._client is None:
                raise TransportError(
                    "Supabase is not configured (SUPABASE_URL / SUPABASE_ANON_KEY)",
                    ErrorKind.UNKNOWN,
                    retryable=False,
                )
        return self._client

    def send(self, payload: SubmissionPayload) -> TransportResult:
        row = build_submission_row(payload, self.config.placeholder)
        try:
            result = self.client.table(self.config.supabase_table).insert(row).execute()
        except TransportError:
            raise
        except APIError as e:
            raise _classify_api_error(e) from e
        except httpx.TimeoutException as e:
            raise TransportError("Request timeout", ErrorKind.TIMEOUT) from e
        except httpx.NetworkError as e:
            raise TransportError("Network offline", ErrorKind.OFFLINE) from e
        except httpx.HTTPError as e:
            raise TransportError(f"Network error: {e}", ErrorKind.UNKNOWN) from e

        rows = result.data or []
        if not rows or not rows[0].get("id"):
            raise TransportError("Supabase returned no submission id", ErrorKind.UNKNOWN)

        submission_id = str(rows[0]["id"])
        logger.info(f"Stored submission in {self.config.supabase_table}: id={submission_id}")
        return TransportResult(submission_id=submission_id, message="Request submitted successfully", raw=rows[0])
