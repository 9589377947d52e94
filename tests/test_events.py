"""Tests for the extraction event broker."""

import pytest
from pydantic import ValidationError

from memorylane.scheduler import EventBroker, ExtractionEvent


def event(kind: str = "run_started", run_id: str = "run_1", **fields) -> ExtractionEvent:
    return ExtractionEvent(kind=kind, run_id=run_id, **fields)


class TestExtractionEvent:
    def test_defaults(self):
        e = event()
        assert e.created == 0
        assert e.file_path is None
        assert e.timestamp.tzinfo is not None

    def test_unknown_kind(self):
        with pytest.raises(ValidationError):
            event("run_exploded")

    def test_frozen(self):
        with pytest.raises(ValidationError):
            event().created = 3


class TestEventBroker:
    """Tests for EventBroker fan-out."""

    def test_publish_without_subscribers(self):
        broker = EventBroker()
        broker.publish(event())
        assert broker.dropped == 0

    def test_fan_out(self):
        broker = EventBroker()
        first = broker.subscribe()
        second = broker.subscribe()

        broker.publish(event("run_started"))
        broker.publish(event("run_completed"))

        assert broker.subscriber_count == 2
        assert [e.kind for e in EventBroker.drain(first)] == ["run_started", "run_completed"]
        assert [e.kind for e in EventBroker.drain(second)] == ["run_started", "run_completed"]

    def test_full_queue_drops_oldest(self):
        """A slow subscriber loses its oldest events, never the newest."""
        broker = EventBroker(queue_size=2)
        queue = broker.subscribe()

        for run_id in ("run_1", "run_2", "run_3"):
            broker.publish(event(run_id=run_id))

        assert [e.run_id for e in EventBroker.drain(queue)] == ["run_2", "run_3"]
        assert broker.dropped == 1

    def test_per_subscriber_size(self):
        broker = EventBroker(queue_size=10)
        small = broker.subscribe(maxsize=1)
        large = broker.subscribe()

        broker.publish(event(run_id="run_1"))
        broker.publish(event(run_id="run_2"))

        assert [e.run_id for e in EventBroker.drain(small)] == ["run_2"]
        assert len(EventBroker.drain(large)) == 2

    def test_unsubscribe(self):
        broker = EventBroker()
        queue = broker.subscribe()
        broker.unsubscribe(queue)
        broker.unsubscribe(queue)

        broker.publish(event())

        assert broker.subscriber_count == 0
        assert queue.empty()

    def test_drain_empty(self):
        assert EventBroker.drain(EventBroker().subscribe()) == []
