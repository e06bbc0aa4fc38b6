"""Tests for the event system."""

import logging
from unittest.mock import AsyncMock, Mock

import pytest

from layerstore.events import EventEmitter, EventType, Subscription


class TestSubscription:
    """Test subscription handles."""

    def test_subscribe_returns_handle(self):
        """subscribe() returns an active handle with a unique id."""
        emitter = EventEmitter()

        first = emitter.subscribe(EventType.CREATE, Mock())
        second = emitter.subscribe(EventType.CREATE, Mock())

        assert isinstance(first, Subscription)
        assert first.id != second.id
        assert first.event_type is EventType.CREATE
        assert first.active is True

    def test_event_type_by_name(self):
        """Event types can be given as their string value."""
        emitter = EventEmitter()

        subscription = emitter.subscribe("delete", Mock())

        assert subscription.event_type is EventType.DELETE

    def test_unknown_event_type(self):
        emitter = EventEmitter()

        with pytest.raises(ValueError):
            emitter.subscribe("rename", Mock())

    def test_listener_must_be_callable(self):
        emitter = EventEmitter()

        with pytest.raises(TypeError, match="callable"):
            emitter.subscribe(EventType.CREATE, "not a function")

    def test_cancel(self):
        """cancel() removes the listener once."""
        emitter = EventEmitter()
        subscription = emitter.subscribe(EventType.UPDATE, Mock())

        assert subscription.cancel() is True
        assert subscription.active is False
        assert subscription.cancel() is False
        assert emitter.listener_count() == 0

    def test_listener_count(self):
        emitter = EventEmitter()
        emitter.subscribe(EventType.CREATE, Mock())
        emitter.subscribe(EventType.CREATE, Mock())
        emitter.subscribe(EventType.DELETE, Mock())

        assert emitter.listener_count() == 3
        assert emitter.listener_count("create") == 2
        assert emitter.listener_count(EventType.UPDATE) == 0

    def test_clear(self):
        emitter = EventEmitter()
        subscription = emitter.subscribe(EventType.CREATE, Mock())

        emitter.clear()

        assert emitter.listener_count() == 0
        assert subscription.active is False


class TestEmit:
    """Test event delivery."""

    @pytest.mark.asyncio
    async def test_only_matching_listeners_called(self):
        emitter = EventEmitter()
        created, deleted = Mock(), Mock()
        emitter.subscribe(EventType.CREATE, created)
        emitter.subscribe(EventType.DELETE, deleted)

        await emitter.emit(EventType.CREATE, {"id": "1"})

        created.assert_called_once_with({"id": "1"})
        deleted.assert_not_called()

    @pytest.mark.asyncio
    async def test_listeners_called_in_subscription_order(self):
        emitter = EventEmitter()
        calls = []
        for name in ["first", "second", "third"]:
            emitter.subscribe(EventType.UPDATE, lambda entry, name=name: calls.append(name))

        await emitter.emit(EventType.UPDATE, {"id": "1"})

        assert calls == ["first", "second", "third"]

    @pytest.mark.asyncio
    async def test_coroutine_listeners_awaited(self):
        """Async listeners finish before emit() returns."""
        emitter = EventEmitter()
        listener = AsyncMock()
        emitter.subscribe(EventType.CREATE, listener)

        await emitter.emit(EventType.CREATE, {"id": "1"})

        listener.assert_awaited_once_with({"id": "1"})

    @pytest.mark.asyncio
    async def test_failing_listener_is_logged(self, caplog):
        """A failing listener does not stop the others."""
        emitter = EventEmitter()
        after = Mock()
        emitter.subscribe(EventType.CREATE, Mock(side_effect=RuntimeError("boom")))
        emitter.subscribe(EventType.CREATE, after)

        with caplog.at_level(logging.ERROR, logger="layerstore.events"):
            await emitter.emit(EventType.CREATE, {"id": "1"})

        after.assert_called_once()
        assert "failed on create event" in caplog.text
        assert "boom" in caplog.text

    @pytest.mark.asyncio
    async def test_listener_may_cancel_itself(self):
        """Listeners can unsubscribe while being notified."""
        emitter = EventEmitter()
        calls = []

        def once(entry):
            calls.append(entry)
            subscription.cancel()

        subscription = emitter.subscribe(EventType.CREATE, once)

        await emitter.emit(EventType.CREATE, 1)
        await emitter.emit(EventType.CREATE, 2)

        assert calls == [1]
