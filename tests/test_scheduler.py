import threading
import time
from datetime import datetime, timedelta, timezone

import pytest

from fakes import FakeStorage, RecordingNotifier

from vacaytracker.models import NewsletterConfig, Settings
from vacaytracker.newsletter_service import NewsletterService
from vacaytracker.scheduler import NewsletterScheduler, SchedulerState, should_send_newsletter

UTC = timezone.utc


@pytest.mark.parametrize(
    "config, now, expected",
    [
        (NewsletterConfig(enabled=False, day_of_month=15), datetime(2025, 12, 15, 9, tzinfo=UTC), False),
        (NewsletterConfig(enabled=True, day_of_month=15), datetime(2025, 12, 15, 9, tzinfo=UTC), True),
        (NewsletterConfig(enabled=True, day_of_month=15), datetime(2025, 12, 14, 9, tzinfo=UTC), False),
        (
            NewsletterConfig(enabled=True, day_of_month=15, last_sent_at=datetime(2025, 12, 15, 0, 5, tzinfo=UTC)),
            datetime(2025, 12, 15, 23, 0, tzinfo=UTC),
            False,
        ),
        (
            NewsletterConfig(enabled=True, day_of_month=15, last_sent_at=datetime(2025, 11, 15, 9, tzinfo=UTC)),
            datetime(2025, 12, 15, 9, tzinfo=UTC),
            True,
        ),
        # Monday 15 December 2025
        (NewsletterConfig(enabled=True, frequency="weekly"), datetime(2025, 12, 15, 9, tzinfo=UTC), True),
        (NewsletterConfig(enabled=True, frequency="weekly"), datetime(2025, 12, 16, 9, tzinfo=UTC), False),
        (NewsletterConfig(enabled=True, frequency="daily", day_of_month=15), datetime(2025, 12, 15, 9, tzinfo=UTC), False),
    ],
)
def test_should_send_newsletter(config, now, expected):
    assert should_send_newsletter(config, now) is expected


def test_same_day_guard_compares_in_the_local_zone():
    local = timezone(timedelta(hours=-5))
    # 02:00 UTC on the 16th is still the 15th five hours west.
    config = NewsletterConfig(enabled=True, day_of_month=15, last_sent_at=datetime(2025, 12, 16, 2, 0, tzinfo=UTC))

    assert should_send_newsletter(config, datetime(2025, 12, 15, 22, 0, tzinfo=local)) is False


def test_monthly_tick_sends_once_per_day():
    storage = FakeStorage(Settings(newsletter=NewsletterConfig(enabled=True, frequency="monthly", day_of_month=15)))
    storage.add_employee('emma', name='Emma', preferences={'weeklyDigest': True})
    notifier = RecordingNotifier()
    scheduler = NewsletterScheduler(storage, NewsletterService(storage, notifier))
    morning = datetime(2025, 12, 15, 9, 0, tzinfo=UTC)

    assert scheduler.tick(morning) == 1
    assert storage.settings.newsletter.last_sent_at == morning

    assert scheduler.tick(morning + timedelta(hours=8)) is None
    assert notifier.names() == ['digest']


def test_tick_logs_and_survives_failures():
    storage = FakeStorage()
    storage.fail_on.add('get_settings')
    scheduler = NewsletterScheduler(storage, NewsletterService(storage, RecordingNotifier()))

    assert scheduler.tick(datetime(2025, 12, 15, 9, tzinfo=UTC)) is None


class CountingSender:
    def __init__(self):
        self.calls = 0
        self.called = threading.Event()

    def send(self, now):
        self.calls += 1
        self.called.set()
        return 1


def _always_due_storage():
    storage = FakeStorage(Settings(newsletter=NewsletterConfig(enabled=True, frequency="weekly")))
    return storage


def test_start_runs_an_immediate_check_and_is_idempotent():
    sender = CountingSender()
    monday = datetime(2025, 12, 15, 9, tzinfo=UTC)
    scheduler = NewsletterScheduler(_always_due_storage(), sender, interval=3600, clock=lambda: monday)

    scheduler.start()
    scheduler.start()
    try:
        assert sender.called.wait(5)
        assert scheduler.state is SchedulerState.RUNNING
    finally:
        scheduler.stop(timeout=5)

    assert sender.calls == 1
    assert scheduler.state is SchedulerState.STOPPED


def test_stop_does_not_wait_for_the_interval():
    scheduler = NewsletterScheduler(FakeStorage(), CountingSender(), interval=3600)
    scheduler.start()

    started = time.monotonic()
    scheduler.stop(timeout=5)

    assert time.monotonic() - started < 5
    assert scheduler.state is SchedulerState.STOPPED


def test_stop_when_not_running_is_a_noop():
    scheduler = NewsletterScheduler(FakeStorage(), CountingSender())

    scheduler.stop()
    scheduler.stop()

    assert scheduler.state is SchedulerState.STOPPED


def test_scheduler_can_restart_after_stop():
    scheduler = NewsletterScheduler(FakeStorage(), CountingSender(), interval=3600)

    scheduler.start()
    scheduler.stop(timeout=5)
    scheduler.start()
    try:
        assert scheduler.is_running
    finally:
        scheduler.stop(timeout=5)
    assert not scheduler.is_running


def test_interval_must_be_positive():
    with pytest.raises(ValueError):
        NewsletterScheduler(FakeStorage(), CountingSender(), interval=0)
