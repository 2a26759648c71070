import logging
import threading
import typing

from playground_progress.utils.aws_env_vars import get_autosave_interval_seconds

_LOGGER = logging.getLogger(__name__)


class SupportsSave(typing.Protocol):
    has_unsaved_changes: bool

    def save(self) -> bool: ...


class PeriodicAutosave:
    """
    Retries persisting a tracker whose last write failed, every `interval_seconds`.

    Fire-and-forget: `start` returns immediately and nothing waits on the timer.
    Each tick runs on a daemon timer thread and only writes when the tracker
    reports unsaved changes.
    """

    def __init__(self, tracker: SupportsSave, interval_seconds: typing.Optional[float] = None) -> None:
        self.tracker = tracker
        self.interval_seconds = interval_seconds if interval_seconds is not None else get_autosave_interval_seconds()
        self._timer: typing.Optional[threading.Timer] = None
        self._lock = threading.Lock()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        with self._lock:
            if self._running:
                return
            self._running = True
            self._schedule_locked()

    def stop(self) -> None:
        with self._lock:
            self._running = False
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _schedule_locked(self) -> None:
        self._timer = threading.Timer(self.interval_seconds, self._tick)
        self._timer.daemon = True
        self._timer.start()

    def flush(self) -> bool:
        """
        Runs one autosave pass now.

        :return: True if nothing was pending or the write succeeded.
        """
        if not self.tracker.has_unsaved_changes:
            return True
        _LOGGER.info("Autosave retrying unsaved progress.")
        return self.tracker.save()

    def _tick(self) -> None:
        try:
            self.flush()
        except Exception as e:
            _LOGGER.error(f"Autosave tick failed: {e}", exc_info=True)
        with self._lock:
            if self._running:
                self._schedule_locked()
