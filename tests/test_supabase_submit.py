"""
Supabase transport tests (the client is mocked).
"""

import base64
from unittest.mock import MagicMock, patch

import httpx
import pytest
from postgrest.exceptions import APIError

from conftest import analysis_data, upload_data
from pipeline.config import PipelineConfig
from pipeline.errors import TransportError
from pipeline.schema import AnalysisFields, Attachment, ErrorKind, UploadFields
from pipeline.supabase_submit import SupabaseTransport, build_submission_row, get_supabase_client, request_area
from pipeline.transport import SubmissionPayload, make_transport

CONFIG = PipelineConfig(supabase_url="https://test.supabase.co", supabase_key="anon-key")


def _payload(fields):
    return SubmissionPayload(
        fields=fields,
        file_details="details",
        attachments=[
            Attachment(kind="pdf", filename="a.pdf", content_type="application/pdf", data=b"%PDF-1.7"),
            Attachment(kind="json", filename="a.json", content_type="application/json", data=b"{}"),
        ],
        timestamp_ms=1705752000000,
    )


def _client(data=None, error=None):
    client = MagicMock()
    execute = client.table.return_value.insert.return_value.execute
    if error is not None:
        execute.side_effect = error
    else:
        execute.return_value.data = data
    return client


class TestSubmissionRow:
    def test_row_shape(self, upload_fields):
        row = build_submission_row(_payload(upload_fields), CONFIG.placeholder)
        assert row["request_type"] == "Brampton"
        assert row["form_data"]["reqArea"] == "Brampton"
        assert row["status"] == "pending"
        assert row["requesting_email"] == "jane.smith@peelpolice.ca"
        assert row["requesting_name"] == "Jane Smith"
        assert row["occurrence_number"] == "PR240001"
        assert row["form_data"]["rName"] == "Jane Smith"

        pdf = row["attachments"][0]
        assert pdf["type"] == "pdf"
        assert pdf["filename"] == "Brampton_1705752000000.pdf"
        assert base64.b64decode(pdf["data"]) == b"%PDF-1.7"
        assert pdf["size"] == 8

    def test_recovery_request_type(self, recovery_fields):
        row = build_submission_row(_payload(recovery_fields), CONFIG.placeholder)
        assert row["request_type"] == "recovery"
        assert row["attachments"][1]["filename"] == "recovery_1705752000000.json"

    @pytest.mark.parametrize("fields,expected", [
        (UploadFields(**upload_data(locations=[])), ""),
        (AnalysisFields(**analysis_data(city="Caledon")), "Caledon"),
        (AnalysisFields(**analysis_data(city="Select...")), ""),
    ])
    def test_request_area(self, fields, expected):
        assert request_area(fields, CONFIG.placeholder) == expected


class TestSupabaseTransport:
    def test_insert_returns_row_id(self, upload_fields):
        client = _client(data=[{"id": "a1b2"}])
        result = SupabaseTransport(CONFIG, client=client).send(_payload(upload_fields))

        assert result.submission_id == "a1b2"
        client.table.assert_called_once_with("form_submissions")

    def test_api_error_is_rejection(self, upload_fields):
        error = APIError({"message": "violates row-level security", "code": "42501", "hint": None, "details": None})
        transport = SupabaseTransport(CONFIG, client=_client(error=error))
        with pytest.raises(TransportError) as exc_info:
            transport.send(_payload(upload_fields))
        assert exc_info.value.kind == ErrorKind.REJECTED
        assert exc_info.value.retryable is False

    def test_timeout_is_retryable(self, upload_fields):
        transport = SupabaseTransport(CONFIG, client=_client(error=httpx.ReadTimeout("slow")))
        with pytest.raises(TransportError) as exc_info:
            transport.send(_payload(upload_fields))
        assert exc_info.value.kind == ErrorKind.TIMEOUT
        assert exc_info.value.retryable is True

    def test_network_error_is_offline(self, upload_fields):
        transport = SupabaseTransport(CONFIG, client=_client(error=httpx.ConnectError("down")))
        with pytest.raises(TransportError) as exc_info:
            transport.send(_payload(upload_fields))
        assert exc_info.value.kind == ErrorKind.OFFLINE

    def test_empty_response_is_error(self, upload_fields):
        transport = SupabaseTransport(CONFIG, client=_client(data=[]))
        with pytest.raises(TransportError):
            transport.send(_payload(upload_fields))

    def test_missing_credentials_is_terminal(self, upload_fields):
        transport = SupabaseTransport(PipelineConfig())
        with pytest.raises(TransportError) as exc_info:
            transport.send(_payload(upload_fields))
        assert exc_info.value.retryable is False


@patch("pipeline.supabase_submit.create_client")
def test_client_created_with_normalized_url(mock_create_client):
    get_supabase_client(CONFIG)
    mock_create_client.assert_called_once_with("https://test.supabase.co/", "anon-key")


def test_make_transport_defaults_to_supabase():
    assert isinstance(make_transport(CONFIG), SupabaseTransport)
