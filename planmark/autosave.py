# autosave.py: debounce edits into a single delayed save

import logging
import threading
from typing import Any, Callable, Optional

log = logging.getLogger(__name__)

SAVED, SAVING, UNSAVED = "saved", "saving", "unsaved"


class AutoSaver:
    """One pending save at most; every trigger restarts the countdown.

    The payload is built when the timer fires, so the save always carries the
    latest document rather than the one current at trigger time.
    """

    def __init__(self, save_func: Callable[[Any], Any], delay: float = 1.0,
                 on_status: Optional[Callable[[str], None]] = None):
        self.save_func = save_func
        self.delay = delay
        self.on_status = on_status
        self._status = SAVED
        self._timer: Optional[threading.Timer] = None
        self._pending: Optional[Callable[[], Any]] = None
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def status(self) -> str:
        return self._status

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def _set_status(self, status: str) -> None:
        self._status = status
        if self.on_status:
            self.on_status(status)

    def trigger(self, payload_factory: Callable[[], Any]) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            self._pending = payload_factory
            self._timer = threading.Timer(self.delay, self._fire, args=(self._generation,))
            self._timer.daemon = True
            self._timer.start()
        self._set_status(UNSAVED)

    def _take(self, generation: Optional[int] = None):
        with self._lock:
            if generation is not None and generation != self._generation:
                return None, None
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            factory, self._pending = self._pending, None
            return factory, self._generation

    def _fire(self, generation: int) -> None:
        factory, gen = self._take(generation)
        if factory is not None:
            self._run(factory, gen)

    def _run(self, factory: Callable[[], Any], generation: int) -> bool:
        self._set_status(SAVING)
        try:
            self.save_func(factory())
        except Exception as e:
            log.error("Autosave failed: %s", e, exc_info=True)
            self._set_status(UNSAVED)
            return False
        # a newer edit arrived while saving; it still owes a save
        if generation == self._generation:
            self._set_status(SAVED)
        else:
            self._set_status(UNSAVED)
        return True

    def flush(self) -> bool:
        """Run a pending save now. Returns False only when a save was attempted and failed."""
        factory, gen = self._take()
        if factory is None:
            return True
        return self._run(factory, gen)

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._pending = None
            self._generation += 1
