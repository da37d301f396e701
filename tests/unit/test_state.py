"""Unit tests for the state-update channel, view and dispatcher."""

import asyncio
import threading

import pytest

from counselor.state import SessionField, SessionView, StateChannel, StateDispatcher, StateUpdate
from tests.conftest import drain_updates


class TestSessionView:
    """Tests for applying updates to the observable view."""

    def test_defaults(self):
        view = SessionView()
        assert view.snapshot() == {"running": False, "output": "", "status": "", "model_info": ""}

    def test_apply_sets_field(self):
        view = SessionView()
        view.apply(StateUpdate(SessionField.OUTPUT, "hello"))
        view.apply(StateUpdate(SessionField.RUNNING, True))
        assert view.output == "hello"
        assert view.running is True

    def test_listeners_notified_in_order(self):
        """Listeners see every update with its field and value."""
        view = SessionView()
        seen = []
        view.subscribe(lambda field, value: seen.append((field, value)))
        view.apply(StateUpdate(SessionField.STATUS, "Tokens/second: 1.000"))
        view.apply(StateUpdate(SessionField.MODEL_INFO, "Loaded x"))
        assert seen == [
            (SessionField.STATUS, "Tokens/second: 1.000"),
            (SessionField.MODEL_INFO, "Loaded x"),
        ]

    def test_unsubscribe(self):
        view = SessionView()
        seen = []
        unsubscribe = view.subscribe(lambda field, value: seen.append(value))
        unsubscribe()
        view.apply(StateUpdate(SessionField.OUTPUT, "x"))
        assert seen == []

    def test_unsubscribe_twice_is_harmless(self):
        """Calling the unsubscribe function again is a no-op."""
        view = SessionView()
        unsubscribe = view.subscribe(lambda field, value: None)
        unsubscribe()
        unsubscribe()
        view.apply(StateUpdate(SessionField.OUTPUT, "x"))
        assert view.output == "x"

    def test_failing_listener_does_not_block_others(self):
        """One broken listener does not stop the update or later listeners."""
        view = SessionView()
        seen = []

        def broken(field, value):
            raise RuntimeError("listener bug")

        view.subscribe(broken)
        view.subscribe(lambda field, value: seen.append(value))
        view.apply(StateUpdate(SessionField.OUTPUT, "ok"))
        assert view.output == "ok"
        assert seen == ["ok"]

    def test_rejects_mutation_from_other_thread(self):
        """Only the owning thread may apply updates."""
        view = SessionView()
        view.apply(StateUpdate(SessionField.OUTPUT, "owner"))
        errors = []

        def other():
            try:
                view.apply(StateUpdate(SessionField.OUTPUT, "intruder"))
            except RuntimeError as e:
                errors.append(e)

        t = threading.Thread(target=other)
        t.start()
        t.join()

        assert len(errors) == 1
        assert view.output == "owner"


class TestStateChannel:
    """Tests for thread-safe publishing."""

    def test_publish_off_loop_before_bind_raises(self):
        channel = StateChannel()
        with pytest.raises(RuntimeError, match="not bound"):
            channel.publish(StateUpdate(SessionField.OUTPUT, "x"))

    @pytest.mark.asyncio
    async def test_publish_on_loop_binds_and_enqueues(self):
        """Publishing on the loop thread enqueues immediately."""
        channel = StateChannel()
        channel.publish(StateUpdate(SessionField.OUTPUT, "x"))
        assert channel.loop is asyncio.get_running_loop()
        assert drain_updates(channel) == [StateUpdate(SessionField.OUTPUT, "x")]

    @pytest.mark.asyncio
    async def test_publish_from_worker_thread(self):
        """Worker-thread updates arrive on the loop in publish order."""
        channel = StateChannel()
        channel.bind()

        def produce():
            for i in range(5):
                channel.publish(StateUpdate(SessionField.OUTPUT, str(i)))

        await asyncio.to_thread(produce)

        assert [u.value for u in drain_updates(channel)] == ["0", "1", "2", "3", "4"]


class TestStateDispatcher:
    """Tests for the single consumer."""

    @pytest.mark.asyncio
    async def test_run_applies_until_closed(self):
        """run() applies queued updates then exits on close."""
        channel = StateChannel()
        view = SessionView()
        dispatcher = StateDispatcher(channel, view)
        task = asyncio.create_task(dispatcher.run())

        channel.publish(StateUpdate(SessionField.RUNNING, True))
        channel.publish(StateUpdate(SessionField.OUTPUT, "partial"))
        channel.close()
        await asyncio.wait_for(task, timeout=1.0)

        assert view.running is True
        assert view.output == "partial"

    @pytest.mark.asyncio
    async def test_view_mutated_on_loop_thread(self):
        """Updates published from a worker are applied on the loop thread."""
        channel = StateChannel()
        view = SessionView()
        dispatcher = StateDispatcher(channel, view)
        task = asyncio.create_task(dispatcher.run())
        await asyncio.sleep(0)

        loop_thread = threading.get_ident()
        applied_on = []
        view.subscribe(lambda field, value: applied_on.append(threading.get_ident()))

        await asyncio.to_thread(channel.publish, StateUpdate(SessionField.STATUS, "done"))
        channel.close()
        await asyncio.wait_for(task, timeout=1.0)

        assert view.status == "done"
        assert applied_on == [loop_thread]

    @pytest.mark.asyncio
    async def test_drain_applies_queued(self):
        channel = StateChannel()
        view = SessionView()
        dispatcher = StateDispatcher(channel, view)
        channel.publish(StateUpdate(SessionField.OUTPUT, "a"))
        channel.publish(StateUpdate(SessionField.OUTPUT, "ab"))

        assert dispatcher.drain() == 2
        assert view.output == "ab"
        assert channel.empty()
