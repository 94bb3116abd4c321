"""Background check that decides when the newsletter goes out."""
from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from .date_utils import weekday_index
from .models import MONDAY, NewsletterConfig

# @tweakable seconds between two schedule checks
DEFAULT_CHECK_INTERVAL = 3600


def is_same_day(first: datetime, second: datetime) -> bool:
    """True when both instants fall on the same calendar day in ``second``'s zone."""
    if first.tzinfo is not None and second.tzinfo is not None:
        first = first.astimezone(second.tzinfo)
    return first.date() == second.date()


def should_send_newsletter(config: NewsletterConfig, now: datetime) -> bool:
    """Decide whether the digest is due at ``now``. Has no side effects."""
    if not config.enabled:
        return False

    if config.last_sent_at is not None and is_same_day(config.last_sent_at, now):
        return False

    if config.frequency == "monthly":
        return now.day == config.day_of_month
    if config.frequency == "weekly":
        return weekday_index(now.date()) == MONDAY
    return False


class SchedulerState(Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    STOP_REQUESTED = "stop_requested"


class NewsletterScheduler:
    """Runs :func:`should_send_newsletter` on a timer and calls ``sender.send``.

    ``sender`` is anything with a ``send(now) -> int`` method, normally a
    :class:`~vacaytracker.newsletter_service.NewsletterService`, which is
    also responsible for recording ``last_sent_at``.
    """

    def __init__(
        self,
        storage,
        sender,
        interval: float = DEFAULT_CHECK_INTERVAL,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.storage = storage
        self.sender = sender
        self.interval = interval
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.Lock()
        self._state = SchedulerState.STOPPED
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def state(self) -> SchedulerState:
        with self._lock:
            return self._state

    @property
    def is_running(self) -> bool:
        return self.state is SchedulerState.RUNNING

    def tick(self, now: Optional[datetime] = None) -> Optional[int]:
        """Run one check. Returns the number of recipients, or ``None`` if nothing was sent."""
        now = now or self._clock()
        try:
            settings = self.storage.get_settings()
            if not should_send_newsletter(settings.newsletter, now):
                return None
            logging.info("Newsletter scheduler: sending %s newsletter", settings.newsletter.frequency)
            return self.sender.send(now)
        except Exception:
            logging.exception("Newsletter scheduler: check failed; retrying next interval")
            return None

    def _run(self, stop_event: threading.Event) -> None:
        logging.info("Newsletter scheduler started (interval %ss)", self.interval)
        self.tick()
        while not stop_event.wait(self.interval):
            self.tick()

        with self._lock:
            if self._thread is threading.current_thread():
                self._state = SchedulerState.STOPPED
                self._thread = None
        logging.info("Newsletter scheduler stopped")

    def start(self) -> None:
        """Start the background loop; a no-op while it is already running."""
        with self._lock:
            if self._state is SchedulerState.RUNNING:
                return
            previous = self._thread if self._state is SchedulerState.STOP_REQUESTED else None

        if previous is not None:
            previous.join()

        with self._lock:
            if self._state is SchedulerState.RUNNING:
                return
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._run,
                args=(self._stop_event,),
                name="newsletter-scheduler",
                daemon=True,
            )
            self._state = SchedulerState.RUNNING
            self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Ask the loop to exit and wait up to ``timeout`` seconds for it.

        Calling it when the scheduler is not running does nothing.
        """
        with self._lock:
            if self._state is not SchedulerState.RUNNING:
                thread = self._thread if self._state is SchedulerState.STOP_REQUESTED else None
            else:
                self._state = SchedulerState.STOP_REQUESTED
                self._stop_event.set()
                thread = self._thread

        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
