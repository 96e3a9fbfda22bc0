"""Debounced autosave of a live survey session.

Each mutation restarts the timer. When it fires, the latest in-memory state is
snapshotted at write time, so a slow write can never overwrite a newer save
with older data.
"""
import asyncio
import logging
from enum import Enum
from typing import Callable

from sitesurvey.services.storage import SurveyStorage

logger = logging.getLogger(__name__)


class SaveStatus(str, Enum):
    SAVED = "saved"
    SAVING = "saving"
    NOT_SAVED = "not_saved"


class Autosaver:
    def __init__(
        self,
        survey_id: str,
        snapshot: Callable[[], dict],
        storage: SurveyStorage,
        delay_seconds: float = 2.0,
    ):
        self.survey_id = survey_id
        self._snapshot = snapshot
        self._storage = storage
        self._delay = delay_seconds
        self._timer: asyncio.Task | None = None
        self._lock = asyncio.Lock()
        self._generation = 0
        self._written_generation = 0
        self._closed = False
        self.status = SaveStatus.SAVED
        self.last_saved: str | None = None

    @property
    def pending(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def schedule(self) -> None:
        """Note a mutation and (re)start the debounce timer."""
        if self._closed:
            return
        self._generation += 1
        self.status = SaveStatus.SAVING
        self._cancel_timer()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop to run the timer on; the next flush() picks the change up.
            logger.debug("No running loop, autosave of %s deferred", self.survey_id)
            return
        self._timer = loop.create_task(self._delayed_save())

    def _cancel_timer(self) -> None:
        if self._timer is not None and not self._timer.done() and not self._timer.get_loop().is_closed():
            self._timer.cancel()
        self._timer = None

    async def _delayed_save(self) -> None:
        await asyncio.sleep(self._delay)
        if self._timer is asyncio.current_task():
            # Past this point a new mutation must not cancel the write.
            self._timer = None
        await self._write()

    async def flush(self) -> SaveStatus:
        """Write now, skipping the debounce window."""
        self._cancel_timer()
        await self._write(force=True)
        return self.status

    def close(self) -> None:
        """Stop autosaving; nothing is written after this."""
        self._closed = True
        self._cancel_timer()

    async def aclose(self) -> None:
        """Close, then wait for a write already in flight to finish."""
        self.close()
        async with self._lock:
            pass

    async def _write(self, force: bool = False) -> None:
        async with self._lock:
            if self._closed:
                return
            generation = self._generation
            if generation <= self._written_generation and not force:
                return
            state = self._snapshot()
            saved_at = await self._storage.save_progress(self.survey_id, state)

            if saved_at is None:
                self.status = SaveStatus.NOT_SAVED
                logger.warning("Autosave of %s failed, keeping in-memory state", self.survey_id)
                return

            self._written_generation = max(self._written_generation, generation)
            self.last_saved = saved_at
            if generation == self._generation:
                self.status = SaveStatus.SAVED
            logger.debug("Autosaved %s (generation %d)", self.survey_id, generation)
