"""Tests for LocalObserverManager."""

import asyncio

import pytest

from hexdeploy.kernel.orchestration.events import StageSkipped
from hexdeploy.stdlib.adapters.local import LocalObserverManager


@pytest.fixture
def event():
    return StageSkipped(name="approval", reason="guard evaluated to False")


@pytest.mark.asyncio
async def test_sync_and_async_handlers_receive_events(event):
    received = []

    async def async_handler(e):
        received.append(("async", e.name))

    manager = LocalObserverManager(event_log_level=None)
    manager.register(lambda e: received.append(("sync", e.name)))
    manager.register(async_handler)

    await manager.notify(event)

    assert sorted(received) == [("async", "approval"), ("sync", "approval")]


@pytest.mark.asyncio
async def test_failing_handler_does_not_affect_others(event):
    received = []

    def broken(e):
        raise RuntimeError("observer bug")

    manager = LocalObserverManager(event_log_level=None)
    manager.register(broken)
    manager.register(received.append)

    await manager.notify(event)

    assert received == [event]


@pytest.mark.asyncio
async def test_slow_handler_times_out(event):
    async def slow(e):
        await asyncio.sleep(1)

    manager = LocalObserverManager(observer_timeout=0.05, event_log_level=None)
    manager.register(slow)
    await asyncio.wait_for(manager.notify(event), timeout=0.5)


def test_register_and_unregister():
    manager = LocalObserverManager()
    handler_id = manager.register(print, observer_id="printer")
    assert handler_id == "printer"
    assert len(manager) == 1
    assert manager.unregister("printer")
    assert not manager.unregister("printer")
    assert len(manager) == 0


def test_rejects_non_callable():
    with pytest.raises(TypeError, match="callable"):
        LocalObserverManager().register("not a function")  # type: ignore[arg-type]


def test_event_log_message(event):
    assert event.log_message().endswith("Stage 'approval' skipped: guard evaluated to False")
