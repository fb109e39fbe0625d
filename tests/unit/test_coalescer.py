"""Unit tests for turn coalescing and the turn queue."""
import asyncio

import pytest

from app.services.call_session.coalescer import PendingTurn, TurnCoalescer, TurnQueue


class FakeClock:
    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def turn(text: str) -> PendingTurn:
    return PendingTurn(text=text, finalized_at=0.0)


class TestTurnQueue:
    """Test the bounded pending-turn queue."""

    def test_drops_oldest_on_overflow(self):
        queue = TurnQueue(maxsize=3)
        for text in ["eins", "zwei", "drei", "vier"]:
            queue.put(turn(text))

        assert len(queue) == 3

    @pytest.mark.asyncio
    async def test_fifo_after_overflow(self):
        queue = TurnQueue(maxsize=2)
        for text in ["eins", "zwei", "drei"]:
            queue.put(turn(text))

        assert (await queue.get()).text == "zwei"
        assert (await queue.get()).text == "drei"

    def test_clear(self):
        queue = TurnQueue(maxsize=3)
        queue.put(turn("eins"))
        queue.put(turn("zwei"))

        assert queue.clear() == 2
        assert len(queue) == 0


class TestTurnCoalescer:
    """Test first-turn coalescing."""

    @pytest.mark.asyncio
    async def test_three_fragments_become_one_turn(self):
        queue = TurnQueue(maxsize=3)
        coalescer = TurnCoalescer(queue, first_chunk_wait=0.2, coalesce_wait=0.1, max_wait=1.0)

        coalescer.add_final("Hallo")
        coalescer.add_final("  ich möchte ")
        coalescer.add_final("einen Tisch reservieren")
        assert len(queue) == 0
        assert coalescer.is_buffering

        await asyncio.sleep(0.3)

        assert len(queue) == 1
        first = await queue.get()
        assert first.text == "Hallo ich möchte einen Tisch reservieren"
        assert first.is_first_turn

    @pytest.mark.asyncio
    async def test_later_turns_are_not_coalesced(self):
        queue = TurnQueue(maxsize=3)
        coalescer = TurnCoalescer(queue, first_chunk_wait=0.05, coalesce_wait=0.05, max_wait=0.5)
        coalescer.add_final("Hallo")
        await asyncio.sleep(0.1)
        await queue.get()

        coalescer.add_final("Freitag")
        coalescer.add_final("um acht")

        assert len(queue) == 2
        second = await queue.get()
        assert second.text == "Freitag"
        assert not second.is_first_turn

    @pytest.mark.asyncio
    async def test_absolute_maximum_wait(self):
        """A fragment near the deadline only waits out the remaining budget."""
        clock = FakeClock()
        queue = TurnQueue(maxsize=3)
        coalescer = TurnCoalescer(queue, first_chunk_wait=5.0, coalesce_wait=5.0, max_wait=1.0, clock=clock)

        coalescer.add_final("Hallo")
        clock.now += 0.95
        coalescer.add_final("guten Tag")

        await asyncio.sleep(0.2)

        assert len(queue) == 1
        assert (await queue.get()).text == "Hallo guten Tag"

    @pytest.mark.asyncio
    async def test_cancel_discards_buffer(self):
        queue = TurnQueue(maxsize=3)
        coalescer = TurnCoalescer(queue, first_chunk_wait=0.05, coalesce_wait=0.05, max_wait=0.5)
        coalescer.add_final("Hallo")

        coalescer.cancel()
        await asyncio.sleep(0.1)

        assert len(queue) == 0
        assert not coalescer.is_buffering

    @pytest.mark.asyncio
    async def test_blank_fragments_ignored(self):
        queue = TurnQueue(maxsize=3)
        coalescer = TurnCoalescer(queue, first_chunk_wait=0.05, coalesce_wait=0.05, max_wait=0.5)

        coalescer.add_final("   ")

        assert not coalescer.is_buffering
