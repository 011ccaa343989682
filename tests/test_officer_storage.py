"""
Identity memory tests.
"""

import json

from pipeline.config import PipelineConfig
from pipeline.drafts import MemoryKeyValueStore
from pipeline.officer_storage import OfficerInfoStore

CONFIG = PipelineConfig()


def _store():
    kv = MemoryKeyValueStore()
    return OfficerInfoStore(kv, CONFIG, clock=lambda: 1000), kv


def test_save_and_load(upload_fields):
    store, kv = _store()
    assert store.save(upload_fields) is True
    assert store.load() == {
        "officer_name": "Jane Smith",
        "badge": "12345",
        "officer_phone": "9055551234",
        "officer_email": "jane.smith@peelpolice.ca",
    }
    assert json.loads(kv.get("fvu_officer_info"))["version"] == "1.0"


def test_version_mismatch_is_ignored():
    store, kv = _store()
    kv.set("fvu_officer_info", json.dumps({"version": "0.9", "data": {"badge": "1"}}))
    assert store.load() is None
    assert store.has_officer_info() is True


def test_apply_defaults_fills_only_blanks(upload_fields):
    store, _ = _store()
    store.save(upload_fields)
    merged = store.apply_defaults({"officer_name": "", "badge": "999", "media_type": "USB"})
    assert merged["officer_name"] == "Jane Smith"
    assert merged["badge"] == "999"
    assert merged["officer_email"] == "jane.smith@peelpolice.ca"
    assert merged["media_type"] == "USB"


def test_apply_defaults_without_stored_identity():
    store, _ = _store()
    assert store.apply_defaults({"badge": ""}) == {"badge": ""}


def test_first_time_acknowledgement():
    store, _ = _store()
    assert store.is_first_time() is True
    store.acknowledge()
    assert store.is_first_time() is False


def test_clear(upload_fields):
    store, _ = _store()
    store.save(upload_fields)
    assert store.clear() is True
    assert store.load() is None
