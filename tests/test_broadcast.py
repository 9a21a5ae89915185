"""Unit tests for QueueBroadcastChannel."""

import threading

import pytest

from salon_queue.broadcast import ALL_SALONS, QueueBroadcastChannel
from salon_queue.schemas import QueueAction, QueueChange, QueueEvent, QueueStatus, WaitingListItem


def _event(salon_id: str = "salon-1", entry_id: str = "e1") -> QueueEvent:
    return QueueEvent(
        salon_id=salon_id,
        change=QueueChange(entry_id=entry_id, action=QueueAction.join, status=QueueStatus.waiting),
        waiting=[
            WaitingListItem(entry_id=entry_id, user_id="u1", position=0, estimated_wait_minutes=0)
        ],
        timestamp=1000,
    )


@pytest.fixture
def received():
    return []


class TestSubscriptions:
    def test_subscribe_and_count(self, channel: QueueBroadcastChannel):
        assert channel.subscriber_count("salon-1") == 0

        a = channel.subscribe("salon-1", lambda e: None)
        _ = channel.subscribe("salon-1", lambda e: None)

        assert channel.subscriber_count("salon-1") == 2
        assert a.salon_id == "salon-1"

    def test_unsubscribe_is_idempotent(self, channel: QueueBroadcastChannel):
        subscription = channel.subscribe("salon-1", lambda e: None)

        assert channel.unsubscribe(subscription) is True
        assert channel.unsubscribe(subscription) is False
        assert channel.subscriber_count("salon-1") == 0

    def test_subscriptions_are_distinct(self, channel: QueueBroadcastChannel):
        a = channel.subscribe("salon-1", lambda e: None)
        b = channel.subscribe("salon-1", lambda e: None)

        assert a != b
        _ = channel.unsubscribe(a)
        assert channel.subscriber_count("salon-1") == 1


class TestPublish:
    def test_publish_without_listeners(self, channel: QueueBroadcastChannel):
        assert channel.publish("salon-1", _event()) == 0
        assert channel.join(timeout=1)

    def test_listener_receives_its_salon_only(self, channel: QueueBroadcastChannel, received):
        _ = channel.subscribe("salon-1", received.append)

        assert channel.publish("salon-1", _event("salon-1", "a")) == 1
        assert channel.publish("salon-2", _event("salon-2", "b")) == 0
        assert channel.join(timeout=2)

        assert [e.change.entry_id for e in received] == ["a"]

    def test_events_arrive_in_publish_order(self, channel: QueueBroadcastChannel, received):
        _ = channel.subscribe("salon-1", received.append)

        for i in range(20):
            _ = channel.publish("salon-1", _event(entry_id=f"e{i}"))
        assert channel.join(timeout=2)

        assert [e.change.entry_id for e in received] == [f"e{i}" for i in range(20)]

    def test_all_salons_listener(self, channel: QueueBroadcastChannel, received):
        _ = channel.subscribe(ALL_SALONS, received.append)

        assert channel.publish("salon-1", _event("salon-1")) == 1
        assert channel.publish("salon-2", _event("salon-2")) == 1
        assert channel.join(timeout=2)

        assert [e.salon_id for e in received] == ["salon-1", "salon-2"]

    def test_failing_listener_is_isolated(self, channel: QueueBroadcastChannel, received):
        def broken(event: QueueEvent) -> None:
            raise ValueError("boom")

        _ = channel.subscribe("salon-1", broken)
        _ = channel.subscribe("salon-1", received.append)

        assert channel.publish("salon-1", _event()) == 2
        assert channel.publish("salon-1", _event()) == 2
        assert channel.join(timeout=2)

        assert len(received) == 2

    def test_unsubscribed_listener_receives_nothing(self, channel: QueueBroadcastChannel, received):
        subscription = channel.subscribe("salon-1", received.append)
        _ = channel.publish("salon-1", _event("salon-1", "before"))
        assert channel.join(timeout=2)

        _ = channel.unsubscribe(subscription)
        assert channel.publish("salon-1", _event("salon-1", "after")) == 0
        assert channel.join(timeout=2)

        assert [e.change.entry_id for e in received] == ["before"]

    def test_unsubscribe_before_delivery_skips_listener(
        self, channel: QueueBroadcastChannel, received
    ):
        gate = threading.Event()
        _ = channel.subscribe("salon-1", lambda e: gate.wait(timeout=2))
        late = channel.subscribe("salon-1", received.append)

        _ = channel.publish("salon-1", _event())
        _ = channel.unsubscribe(late)
        gate.set()
        assert channel.join(timeout=3)

        assert received == []

    def test_publish_does_not_wait_for_listeners(self, channel: QueueBroadcastChannel):
        gate = threading.Event()
        _ = channel.subscribe("salon-1", lambda e: gate.wait(timeout=2))

        _ = channel.publish("salon-1", _event())
        assert channel.join(timeout=0.05) is False

        gate.set()
        assert channel.join(timeout=2)


class TestLifecycle:
    def test_stop_delivers_backlog(self, received):
        channel = QueueBroadcastChannel()
        _ = channel.subscribe("salon-1", received.append)
        for _i in range(3):
            _ = channel.publish("salon-1", _event())

        channel.stop(timeout=2)

        assert len(received) == 3

    def test_restart_after_stop(self, received):
        channel = QueueBroadcastChannel()
        channel.start()
        channel.stop()

        _ = channel.subscribe("salon-1", received.append)
        _ = channel.publish("salon-1", _event())
        assert channel.join(timeout=2)
        channel.stop()

        assert len(received) == 1

    def test_stop_without_start(self):
        QueueBroadcastChannel().stop()
