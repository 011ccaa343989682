"""Pytest fixtures for FVU request intake: fixed clock, sample field sets, stub collaborators."""

from datetime import datetime

import pytest

from pipeline.config import PipelineConfig, RetryPolicy
from pipeline.drafts import DraftStore, MemoryKeyValueStore
from pipeline.errors import TransportError
from pipeline.schema import AnalysisFields, RecoveryFields, UploadFields
from pipeline.transport import TransportResult

NOW = datetime(2024, 1, 20, 12, 0)
NOW_MS = int(NOW.timestamp() * 1000)

OFFICER = {
    "officer_name": "Jane Smith",
    "badge": "12345",
    "officer_phone": "9055551234",
    "officer_email": "jane.smith@peelpolice.ca",
}


def upload_data(**overrides):
    data = dict(OFFICER)
    data.update({
        "occurrence_number": "PR240001",
        "evidence_bag": "EB-100",
        "media_type": "USB",
        "locker_number": "12",
        "locations": [{
            "business_name": "Corner Store",
            "location_address": "1 Main St",
            "city": "Brampton",
            "video_start_time": "2024-01-15T10:00",
            "video_end_time": "2024-01-15T11:05",
            "is_time_date_correct": "Yes",
            "dvr_earliest_date": "2024-01-05",
        }],
    })
    data.update(overrides)
    return data


def analysis_data(**overrides):
    data = dict(OFFICER)
    data.update({
        "occurrence_number": "PR240002",
        "occurrence_date": "2024-01-10",
        "offence_type": "Homicide",
        "video_location": "Locker",
        "locker_number": "5",
        "video_seized_from": "Gas station",
        "recording_date": "2024-01-09",
        "job_required": "Clarify plate",
        "file_names": "cam1.mp4\n\ncam2.mp4\n",
        "service_required": "Video Clarification",
        "request_details": "Enhance the licence plate at 10:32.",
    })
    data.update(overrides)
    return data


def recovery_data(**overrides):
    data = dict(OFFICER)
    data.update({
        "occurrence_number": "PR240003",
        "offence_type": "Missing Person",
        "location_address": "50 Queen St",
        "city": "Mississauga",
        "location_contact": "Store Manager",
        "location_contact_phone": "9055550000",
        "extraction_start_time": "2024-01-18T08:00",
        "extraction_end_time": "2024-01-18T09:30",
        "time_period_type": "DVR Time",
        "is_time_date_correct": "No",
        "time_offset": "DVR is 1hr 5min AHEAD",
        "dvr_earliest_date": "2024-01-18",
        "camera_details": "Front door\nParking lot",
        "dvr_password": "admin",
        "incident_description": "Subject last seen entering store.",
    })
    data.update(overrides)
    return data


class StubTransport:
    """Replays a script of results/errors, one per send()."""

    def __init__(self, script=None):
        self.script = list(script or [])
        self.payloads = []

    @property
    def calls(self):
        return len(self.payloads)

    def send(self, payload):
        self.payloads.append(payload)
        step = self.script.pop(0) if self.script else TransportResult(submission_id="FVU-1")
        if isinstance(step, Exception):
            raise step
        return step


class StubRenderer:
    def __init__(self, error=None):
        self.error = error
        self.documents = []

    def render(self, document):
        self.documents.append(document)
        if self.error:
            raise self.error
        return b"%PDF-1.7 stub"


@pytest.fixture
def config():
    return PipelineConfig(retry=RetryPolicy(max_attempts=3, base_delay_seconds=1.0))


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def kv_store():
    return MemoryKeyValueStore()


@pytest.fixture
def drafts(kv_store, config):
    return DraftStore(kv_store, config, clock=lambda: NOW_MS)


@pytest.fixture
def upload_fields():
    return UploadFields(**upload_data())


@pytest.fixture
def analysis_fields():
    return AnalysisFields(**analysis_data())


@pytest.fixture
def recovery_fields():
    return RecoveryFields(**recovery_data())


@pytest.fixture
def stub_renderer():
    return StubRenderer()


@pytest.fixture
def retryable_error():
    return TransportError("HTTP 503", status=503)
