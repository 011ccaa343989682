"""
Identity memory: remembers the submitting investigator between requests so
the officer fields can be pre-filled on the next form.
"""

import json
import logging
from typing import Any, Callable, Dict, Optional

from pipeline.config import PipelineConfig
from pipeline.drafts import KeyValueStore, now_ms
from pipeline.schema import BaseFields
from pipeline.validation_policy import INVESTIGATOR_FIELDS
from utils.formatting import is_blank

logger = logging.getLogger(__name__)


class OfficerInfoStore:
    def __init__(self, store: KeyValueStore, config: PipelineConfig, clock: Callable[[], int] = now_ms):
        self.store = store
        self.config = config
        self.clock = clock

    def is_first_time(self) -> bool:
        return not self.store.get(self.config.officer_first_time_key)

    def acknowledge(self) -> None:
        self.store.set(self.config.officer_first_time_key, "true")

    def save(self, fields: BaseFields) -> bool:
        """Store the investigator fields of a submission attempt."""
        values = fields.field_map()
        record = {
            "version": self.config.officer_storage_version,
            "data": {name: values.get(name) or "" for name in INVESTIGATOR_FIELDS},
            "savedAt": self.clock(),
        }
        try:
            self.store.set(self.config.officer_storage_key, json.dumps(record))
            return True
        except Exception as e:
            logger.error(f"Error saving officer info: {e}")
            return False

    def load(self) -> Optional[Dict[str, str]]:
        """Stored investigator fields, or None when absent or from another version."""
        try:
            raw = self.store.get(self.config.officer_storage_key)
        except Exception as e:
            logger.error(f"Error loading officer info: {e}")
            return None
        if not raw:
            return None
        try:
            parsed = json.loads(raw)
        except ValueError:
            logger.warning("Discarding unreadable officer info")
            return None
        if not isinstance(parsed, dict) or parsed.get("version") != self.config.officer_storage_version:
            logger.info("Officer info stored with a different version; ignoring")
            return None
        return parsed.get("data")

    def clear(self) -> bool:
        try:
            self.store.delete(self.config.officer_storage_key)
            return True
        except Exception as e:
            logger.error(f"Error clearing officer info: {e}")
            return False

    def has_officer_info(self) -> bool:
        return self.store.get(self.config.officer_storage_key) is not None

    def apply_defaults(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Fill blank investigator fields in ``data`` from the stored identity."""
        stored = self.load()
        if not stored:
            return dict(data)
        merged = dict(data)
        for name in INVESTIGATOR_FIELDS:
            if is_blank(merged.get(name), self.config.placeholder) and stored.get(name):
                merged[name] = stored[name]
        return merged
