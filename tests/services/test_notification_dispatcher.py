"""
Tests for the outbox dispatcher.

A failing sender must never raise out of dispatch_pending; the failure is
recorded on the row and retried until max_attempts.
"""

import pytest
from sqlalchemy import select

from stock_kernel.domain.dtos import OutboxStatus
from stock_kernel.models.outbox import OutboxEvent
from stock_services import LoggingNotificationSender


class RecordingSender:
    def __init__(self):
        self.sent = []

    def send(self, event_type, aggregate_id, payload):
        self.sent.append((event_type, aggregate_id, payload["ncr_no"]))


class FailingSender:
    def __init__(self, failures=None):
        self.calls = 0
        self.failures = failures

    def send(self, event_type, aggregate_id, payload):
        self.calls += 1
        if self.failures is None or self.calls <= self.failures:
            raise RuntimeError("smtp down")


@pytest.fixture
def kitchen(make_location):
    return make_location()


@pytest.fixture
def queued(stock, kitchen, test_actor_id):
    """Two NCR_CREATED events."""
    first = stock.ncrs.create_manual_ncr(kitchen.id, "Damaged", 10, test_actor_id)
    second = stock.ncrs.create_manual_ncr(kitchen.id, "Short", 20, test_actor_id)
    return first, second


def _events(session):
    return session.execute(select(OutboxEvent).order_by(OutboxEvent.created_at)).scalars().all()


class TestDispatch:

    def test_dispatches_pending(self, stock, session, queued, deterministic_clock):
        sender = RecordingSender()

        result = stock.notifications.dispatch_pending(sender)

        assert result.dispatched == 2
        assert result.failed == 0
        assert sorted(no for _, _, no in sender.sent) == ["NCR-2025-001", "NCR-2025-002"]
        for event in _events(session):
            assert event.status == OutboxStatus.DISPATCHED
            assert event.attempts == 1
            assert event.dispatched_at == deterministic_clock.now()

    def test_nothing_left_after_dispatch(self, stock, queued):
        stock.notifications.dispatch_pending(RecordingSender())

        assert stock.notifications.dispatch_pending(RecordingSender()).attempted == 0

    def test_logging_sender(self, stock, queued, captured_logs):
        stock.notifications.dispatch_pending(LoggingNotificationSender())

        sent = [r for r in captured_logs() if r["message"] == "notification_sent"]
        assert sorted(r["ncr_no"] for r in sent) == ["NCR-2025-001", "NCR-2025-002"]

    def test_limit(self, stock, queued):
        assert stock.notifications.dispatch_pending(RecordingSender(), limit=1).dispatched == 1


class TestFailures:

    def test_failure_recorded_not_raised(self, stock, session, queued, captured_logs):
        result = stock.notifications.dispatch_pending(FailingSender())

        assert result.failed == 2
        for event in _events(session):
            assert event.status == OutboxStatus.FAILED
            assert event.attempts == 1
            assert event.last_error == "RuntimeError: smtp down"

        failures = [r for r in captured_logs() if r["message"] == "notification_dispatch_failed"]
        assert len(failures) == 2
        assert failures[0]["level"] == "WARNING"
        assert failures[0]["exc_type"] == "RuntimeError"

    def test_ncr_untouched_by_failure(self, stock, queued):
        stock.notifications.dispatch_pending(FailingSender())

        assert stock.ncrs.get_ncr(queued[0].id).ncr_no == "NCR-2025-001"

    def test_retried_until_max_attempts(self, stock, session, queued):
        sender = FailingSender()

        for _ in range(3):
            stock.notifications.dispatch_pending(sender)
        final = stock.notifications.dispatch_pending(sender)

        assert final.attempted == 0
        assert sender.calls == 6
        assert {e.attempts for e in _events(session)} == {3}

    def test_retry_succeeds(self, stock, session, queued):
        sender = FailingSender(failures=2)

        first = stock.notifications.dispatch_pending(sender)
        second = stock.notifications.dispatch_pending(sender)

        assert (first.failed, second.dispatched) == (2, 2)
        for event in _events(session):
            assert event.status == OutboxStatus.DISPATCHED
            assert event.last_error is None
            assert event.attempts == 2
