"""Tests for EventBus handler isolation and subscription bookkeeping."""

import asyncio

from mnemora.domain.events import ContinuityDeleted, EntityCreated
from mnemora.services.event_bus import EventBus


def _created(entity_id="e1"):
    return EntityCreated(entity_id=entity_id, entity_type="event", world_id="w1")


class TestEventBus:

    def test_handlers_receive_matching_events_only(self):
        bus = EventBus()
        seen = []
        bus.subscribe("entity.created", seen.append)

        asyncio.run(bus.publish(_created()))
        asyncio.run(bus.publish(ContinuityDeleted(continuity_id="c1", world_id="w1")))

        assert [e.event_type for e in seen] == ["entity.created"]

    def test_wildcard_sees_everything(self):
        bus = EventBus()
        seen = []
        bus.subscribe_all(seen.append)
        asyncio.run(bus.publish_all([_created(), ContinuityDeleted(continuity_id="c1", world_id="w1")]))
        assert len(seen) == 2

    def test_failing_handler_does_not_block_others(self):
        bus = EventBus()
        seen = []

        def broken(event):
            raise RuntimeError("handler bug")

        async def slow_but_fine(event):
            await asyncio.sleep(0)
            seen.append(event.entity_id)

        bus.subscribe("entity.created", broken)
        bus.subscribe("entity.created", slow_but_fine)

        # Must not raise
        asyncio.run(bus.publish(_created("e42")))
        assert seen == ["e42"]

    def test_unsubscribe_and_clear(self):
        bus = EventBus()
        unsubscribe = bus.subscribe("entity.created", lambda e: None)
        bus.subscribe_all(lambda e: None)
        assert bus.handler_count("entity.created") == 1
        assert bus.handler_count() == 2

        unsubscribe()
        unsubscribe()
        assert bus.handler_count("entity.created") == 0

        bus.clear()
        assert bus.handler_count() == 0

    def test_payload_excludes_timestamp(self):
        payload = _created().payload()
        assert payload == {"entity_id": "e1", "entity_type": "event", "world_id": "w1", "campaign_id": None}
