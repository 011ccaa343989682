"""
Flask API tests using the test client with injected collaborators.
"""

import pytest

from conftest import NOW, StubRenderer, StubTransport, analysis_data, upload_data
from flask_app import create_app
from pipeline.config import PipelineConfig
from pipeline.drafts import MemoryKeyValueStore
from pipeline.errors import TransportError
from pipeline.schema import ErrorKind, FormType


@pytest.fixture
def transport():
    return StubTransport()


@pytest.fixture
def app(transport):
    app = create_app(
        config=PipelineConfig(),
        store=MemoryKeyValueStore(),
        transport=transport,
        renderer=StubRenderer(),
        clock=lambda: NOW,
        sleep=lambda seconds: None,
    )
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


class TestValidateEndpoint:
    def test_valid_fields(self, client):
        response = client.post("/api/analysis/validate", json={"fields": analysis_data()})
        body = response.get_json()
        assert response.status_code == 200
        assert body["is_valid"] is True
        assert body["completion"] == 100

    def test_errors_and_visible_dependents(self, client):
        response = client.post("/api/analysis/validate", json=analysis_data(offence_type="Other"))
        body = response.get_json()
        assert body["is_valid"] is False
        assert body["field_errors"] == {"offence_type_other": "Please specify the offence type"}
        assert body["visible_dependents"] == ["offence_type_other"]

    def test_unknown_field_is_bad_request(self, client):
        response = client.post("/api/upload/validate", json={"fields": {"rName": "legacy name"}})
        assert response.status_code == 400

    def test_superscript_locker_is_field_error(self, client):
        response = client.post("/api/upload/validate", json={"fields": upload_data(locker_number="²")})
        assert response.status_code == 200
        assert response.get_json()["field_errors"] == {"locker_number": "Locker number must be a number"}

    @pytest.mark.parametrize("path", ["/api/upload/validate", "/api/upload/submit", "/api/calculations", "/api/upload/draft"])
    def test_non_object_body_is_bad_request(self, client, path):
        response = client.post(path, json=["not", "an", "object"])
        assert response.status_code == 400
        assert response.get_json()["success"] is False

    def test_unknown_form_type(self, client):
        assert client.post("/api/transfer/validate", json={}).status_code == 404


class TestDraftEndpoints:
    def test_save_load_clear(self, client):
        assert client.post("/api/upload/draft", json={"fields": {"badge": "123"}}).status_code == 200

        loaded = client.get("/api/upload/draft").get_json()
        assert loaded["data"]["badge"] == "123"
        assert loaded["age"] == "Just now"

        assert client.delete("/api/upload/draft").get_json()["success"] is True
        assert client.get("/api/upload/draft").status_code == 404

    def test_debounced_save_is_scheduled(self, client, app):
        response = client.post("/api/upload/draft", json={"fields": {"badge": "1"}, "debounce": True})
        assert response.status_code == 202
        autosaver = app.extensions["fvu"]["autosavers"][FormType.UPLOAD]
        assert autosaver.has_pending is True
        autosaver.cancel()


class TestSubmitEndpoint:
    def test_success_clears_draft_and_remembers_officer(self, client):
        client.post("/api/upload/draft", json={"fields": {"badge": "123"}})

        response = client.post("/api/upload/submit", json={"fields": upload_data()})

        assert response.status_code == 200
        assert response.get_json()["submission_id"] == "FVU-1"
        assert client.get("/api/upload/draft").status_code == 404

        defaults = client.get("/api/recovery/defaults").get_json()
        assert defaults["fields"]["officer_name"] == "Jane Smith"
        assert defaults["has_draft"] is False

    def test_validation_failure(self, client, transport):
        response = client.post("/api/upload/submit", json={"fields": upload_data(occurrence_number="123")})
        assert response.status_code == 422
        assert "occurrence_number" in response.get_json()["field_errors"]
        assert transport.calls == 0

    def test_transport_failure_keeps_draft(self, client, transport):
        transport.script = [TransportError("HTTP 500", ErrorKind.SERVER, 500)] * 3
        response = client.post("/api/upload/submit", json={"fields": upload_data()})
        body = response.get_json()
        assert response.status_code == 502
        assert body["error_kind"] == "server"
        assert body["draft_saved"] is True
        assert client.get("/api/upload/draft").get_json()["data"]["occurrence_number"] == "PR240001"


def test_defaults_first_time_flag(client):
    assert client.get("/api/upload/defaults").get_json()["first_time"] is True
    client.post("/api/officer/acknowledge")
    assert client.get("/api/upload/defaults").get_json()["first_time"] is False


def test_calculations_preview(client):
    body = client.post("/api/calculations", json={
        "dvr_earliest_date": "2024-01-19",
        "start_time": "2024-01-15T10:00",
        "end_time": "2024-01-15T10:45",
        "time_offset": "5 min behind",
    }).get_json()
    assert body["retention"]["is_urgent"] is True
    assert body["duration"]["formatted"] == "45 minutes"
    assert body["time_offset"]["direction"] == "BEHIND"


def test_health(client):
    assert client.get("/health").get_json()["status"] == "ok"
