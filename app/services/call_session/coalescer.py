"""Turn coalescing and the per-call turn queue."""
import asyncio
import logging
import time
from typing import Callable, List, Optional

from pydantic import BaseModel

logger = logging.getLogger(__name__)


def normalize_whitespace(text: str) -> str:
    return " ".join(text.split())


class PendingTurn(BaseModel):
    """A finalized user utterance waiting for the dialogue loop."""

    text: str
    finalized_at: float
    is_first_turn: bool = False


class TurnQueue:
    """Bounded queue of pending turns; the oldest turn is dropped on overflow."""

    def __init__(self, maxsize: int = 3, label: str = ""):
        self.label = label
        self._queue: "asyncio.Queue[PendingTurn]" = asyncio.Queue(maxsize=max(1, maxsize))

    def put(self, turn: PendingTurn) -> None:
        if self._queue.full():
            dropped = self._queue.get_nowait()
            logger.warning(f"[TURN QUEUE] {self.label} full, dropping oldest turn: {dropped.text!r}")
        self._queue.put_nowait(turn)

    async def get(self) -> PendingTurn:
        return await self._queue.get()

    def clear(self) -> int:
        cleared = 0
        while not self._queue.empty():
            self._queue.get_nowait()
            cleared += 1
        return cleared

    def __len__(self) -> int:
        return self._queue.qsize()


class TurnCoalescer:
    """Merges the rapid fragments of the caller's first utterance into one turn.

    The first fragment starts a `first_chunk_wait` timer; every further
    fragment restarts it with the shorter `coalesce_wait`, never past
    `max_wait` after the first fragment. After the first turn has been
    emitted, fragments become turns immediately.
    """

    def __init__(
        self,
        queue: TurnQueue,
        first_chunk_wait: float,
        coalesce_wait: float,
        max_wait: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.queue = queue
        self.first_chunk_wait = first_chunk_wait
        self.coalesce_wait = coalesce_wait
        self.max_wait = max_wait
        self._clock = clock
        self._fragments: List[str] = []
        self._first_fragment_at: Optional[float] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._first_turn_done = False

    @property
    def is_buffering(self) -> bool:
        return bool(self._fragments)

    def add_final(self, text: str) -> None:
        text = normalize_whitespace(text)
        if not text:
            return
        now = self._clock()

        if self._first_turn_done:
            self.queue.put(PendingTurn(text=text, finalized_at=now, is_first_turn=False))
            return

        if not self._fragments:
            self._first_fragment_at = now
            wait = self.first_chunk_wait
        else:
            wait = self.coalesce_wait
        self._fragments.append(text)

        remaining = self._first_fragment_at + self.max_wait - now
        delay = max(0.0, min(wait, remaining))
        if self._timer is not None:
            self._timer.cancel()
        self._timer = asyncio.get_running_loop().call_later(delay, self.flush)

    def flush(self) -> None:
        """Emit the buffered fragments as the first turn."""
        self._timer = None
        if not self._fragments:
            return
        text = normalize_whitespace(" ".join(self._fragments))
        count = len(self._fragments)
        self._fragments = []
        self._first_fragment_at = None
        self._first_turn_done = True
        logger.info(f"[COALESCER] First turn from {count} fragment(s): {text!r}")
        self.queue.put(PendingTurn(text=text, finalized_at=self._clock(), is_first_turn=True))

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._fragments = []
        self._first_fragment_at = None
