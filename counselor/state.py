"""Observable session state and the channel that feeds it.

Generation runs partly on worker threads, but the fields a UI observes may
only change on the event-loop thread. Producers publish ``StateUpdate``
messages into a ``StateChannel``; a single ``StateDispatcher`` task drains
the channel and applies each update to the ``SessionView``.

Usage:
    channel = StateChannel()
    view = SessionView()
    dispatcher = StateDispatcher(channel, view)
    task = asyncio.create_task(dispatcher.run())

    channel.publish(StateUpdate(SessionField.OUTPUT, "Hello"))  # any thread
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)


class SessionField(StrEnum):
    """UI-observable fields of the session."""

    RUNNING = "running"
    OUTPUT = "output"
    STATUS = "status"
    MODEL_INFO = "model_info"


@dataclass(frozen=True)
class StateUpdate:
    """A single field assignment to apply on the event-loop thread."""

    field: SessionField
    value: Any


Listener = Callable[[SessionField, Any], None]


class StateChannel:
    """Thread-safe hand-off of StateUpdates to the event loop.

    The channel binds to the first running loop that publishes into it (or
    to the loop passed to ``bind``). Publishing from a worker thread
    schedules the enqueue with ``call_soon_threadsafe`` and returns
    immediately.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[StateUpdate | None] = asyncio.Queue()
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def loop(self) -> asyncio.AbstractEventLoop | None:
        return self._loop

    def bind(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Attach to ``loop``, or to the running loop when omitted."""
        self._loop = loop or asyncio.get_running_loop()

    def _on_loop_thread(self) -> bool:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            return False
        if self._loop is None:
            self._loop = running
        return running is self._loop

    def publish(self, update: StateUpdate | None) -> None:
        """Enqueue ``update`` from any thread. ``None`` is the close sentinel.

        Raises:
            RuntimeError: If called off-loop before the channel is bound.
        """
        if self._on_loop_thread():
            self._queue.put_nowait(update)
            return
        if self._loop is None:
            raise RuntimeError("StateChannel is not bound to an event loop")
        self._loop.call_soon_threadsafe(self._queue.put_nowait, update)

    def close(self) -> None:
        """Ask the dispatcher to stop once queued updates are applied."""
        self.publish(None)

    async def get(self) -> StateUpdate | None:
        return await self._queue.get()

    def get_nowait(self) -> StateUpdate | None:
        return self._queue.get_nowait()

    def empty(self) -> bool:
        return self._queue.empty()


class SessionView:
    """The fields a presentation layer observes.

    Only ``apply`` mutates them, and only from the thread that first
    applied an update (the event-loop thread).
    """

    def __init__(self) -> None:
        self.running = False
        self.output = ""
        self.status = ""
        self.model_info = ""
        self._listeners: list[Listener] = []
        self._owner_thread: int | None = None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener(field, value)``; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def apply(self, update: StateUpdate) -> None:
        thread_id = threading.get_ident()
        if self._owner_thread is None:
            self._owner_thread = thread_id
        elif thread_id != self._owner_thread:
            raise RuntimeError("SessionView mutated off its owning thread")

        setattr(self, update.field.value, update.value)
        for listener in list(self._listeners):
            try:
                listener(update.field, update.value)
            except Exception:
                logger.exception("Session listener failed for %s", update.field)

    def snapshot(self) -> dict[str, Any]:
        return {
            "running": self.running,
            "output": self.output,
            "status": self.status,
            "model_info": self.model_info,
        }


class StateDispatcher:
    """Single consumer that applies channel updates to a SessionView."""

    def __init__(self, channel: StateChannel, view: SessionView) -> None:
        self.channel = channel
        self.view = view

    async def run(self) -> None:
        """Apply updates until the channel is closed."""
        self.channel.bind()
        while True:
            update = await self.channel.get()
            if update is None:
                logger.debug("State channel closed")
                return
            self.view.apply(update)

    def drain(self) -> int:
        """Apply every update already queued without waiting. Returns the count."""
        applied = 0
        while not self.channel.empty():
            update = self.channel.get_nowait()
            if update is None:
                break
            self.view.apply(update)
            applied += 1
        return applied
