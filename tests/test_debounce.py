"""Tests for the keystroke debouncer."""

import asyncio

import pytest

from sheet_catalog.application.debounce import DEFAULT_DEBOUNCE_SECONDS, Debouncer


class TestDebouncer:
    """Test debounced delivery."""

    def test_default_delay(self):
        assert Debouncer(lambda v: None).delay == DEFAULT_DEBOUNCE_SECONDS == 0.3

    def test_negative_delay_rejected(self):
        with pytest.raises(ValueError):
            Debouncer(lambda v: None, delay=-1)

    @pytest.mark.asyncio
    async def test_only_settled_value_is_delivered(self):
        delivered = []
        debouncer = Debouncer(delivered.append, delay=0.02)

        debouncer.push("a")
        debouncer.push("am")
        debouncer.push("ama")
        assert delivered == []

        await debouncer.wait()
        assert delivered == ["ama"]
        assert not debouncer.pending

    @pytest.mark.asyncio
    async def test_value_not_delivered_before_delay(self):
        delivered = []
        debouncer = Debouncer(delivered.append, delay=0.2)

        debouncer.push("grace")
        await asyncio.sleep(0.01)
        assert delivered == []
        assert debouncer.pending
        debouncer.close()

    @pytest.mark.asyncio
    async def test_close_cancels_pending(self):
        delivered = []
        debouncer = Debouncer(delivered.append, delay=0.01)

        debouncer.push("night")
        debouncer.close()
        await asyncio.sleep(0.05)

        assert delivered == []
        assert debouncer.closed
        with pytest.raises(RuntimeError):
            debouncer.push("again")

    @pytest.mark.asyncio
    async def test_cancel_drops_pending_value(self):
        delivered = []
        debouncer = Debouncer(delivered.append, delay=0.01)

        debouncer.push("x")
        debouncer.cancel()
        await asyncio.sleep(0.05)
        assert delivered == []

    @pytest.mark.asyncio
    async def test_flush_delivers_immediately(self):
        delivered = []
        debouncer = Debouncer(delivered.append, delay=10)

        debouncer.push("glorious")
        await debouncer.flush()

        assert delivered == ["glorious"]
        assert not debouncer.pending

    @pytest.mark.asyncio
    async def test_async_callback(self):
        delivered = []

        async def recompute(value):
            await asyncio.sleep(0)
            delivered.append(value.upper())

        debouncer = Debouncer(recompute, delay=0.01)
        debouncer.push("day")
        await debouncer.wait()
        assert delivered == ["DAY"]

    @pytest.mark.asyncio
    async def test_failing_callback_does_not_break_debouncer(self):
        calls = []

        def flaky(value):
            calls.append(value)
            if value == "bad":
                raise RuntimeError("boom")

        debouncer = Debouncer(flaky, delay=0.01)
        debouncer.push("bad")
        await debouncer.wait()
        debouncer.push("good")
        await debouncer.wait()
        assert calls == ["bad", "good"]
