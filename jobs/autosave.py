"""
Debounced background draft writes.

Field edits call ``schedule()``; the draft is written once the form has been
quiet for ``delay`` seconds. Only the latest data is ever written.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, Optional, Union

from pipeline.drafts import DraftStore
from pipeline.schema import FormType

logger = logging.getLogger(__name__)


class AutoSaver:
    def __init__(
        self,
        drafts: DraftStore,
        form_type: Union[FormType, str],
        delay: Optional[float] = None,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
    ):
        self.drafts = drafts
        self.form_type = FormType(form_type)
        self.delay = drafts.config.autosave_debounce_seconds if delay is None else delay
        self._timer_factory = timer_factory
        self._timer: Optional[threading.Timer] = None
        self._pending: Optional[Dict[str, Any]] = None
        self._suspended = False
        self._lock = threading.Lock()
        # Held for the whole duration of a draft write.
        self._write_lock = threading.Lock()

    @property
    def is_suspended(self) -> bool:
        return self._suspended

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    def schedule(self, data: Dict[str, Any]) -> bool:
        """Queue a write of ``data``, restarting the quiet period. Ignored while suspended."""
        with self._lock:
            if self._suspended:
                logger.debug(f"Autosave for {self.form_type.value} ignored during submission")
                return False
            self._pending = data
            if self._timer is not None:
                self._timer.cancel()
            self._timer = self._timer_factory(self.delay, self._fire)
            self._timer.daemon = True
            self._timer.start()
            return True

    def _fire(self) -> None:
        with self._write_lock:
            with self._lock:
                data = self._pending
                self._pending = None
                self._timer = None
                if self._suspended or data is None:
                    return
            self.drafts.save(self.form_type, data)

    def _take_pending(self) -> Optional[Dict[str, Any]]:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        data = self._pending
        self._pending = None
        return data

    def flush(self) -> bool:
        """Write any pending data now. Returns True if something was written."""
        with self._write_lock:
            with self._lock:
                data = self._take_pending()
            if data is None:
                return False
            return self.drafts.save(self.form_type, data)

    def cancel(self) -> None:
        """Drop pending data without writing it."""
        with self._lock:
            self._take_pending()

    @contextmanager
    def suspended(self) -> Iterator["AutoSaver"]:
        """
        Flush pending writes, then block new ones until the block exits.

        Waits for a timer-driven write that is already running, so no draft
        write can land inside the block.
        """
        with self._write_lock:
            with self._lock:
                self._suspended = True
                data = self._take_pending()
            if data is not None:
                self.drafts.save(self.form_type, data)
        try:
            yield self
        finally:
            with self._lock:
                self._suspended = False
