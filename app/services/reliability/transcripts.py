"""Best-effort transcript logging."""
import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional

from pydantic import BaseModel

from app.services.persistence.datastore import Datastore

logger = logging.getLogger(__name__)


class TranscriptEntry(BaseModel):
    call_log_id: int
    role: str
    content: str


class TranscriptWriter:
    """Writes transcript lines either inline or through a background queue.

    Queued entries are drained by one worker with a fixed list of retry
    delays. A line that still fails is logged and dropped; the call never waits
    on or fails because of it. Entries carry only ids, so they outlive the call.
    """

    def __init__(
        self,
        datastore: Datastore,
        retry_delays: Optional[List[float]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.datastore = datastore
        self.retry_delays = list(retry_delays or [])
        self._sleep = sleep
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None

    async def write(self, call_log_id: Optional[int], role: str, content: Optional[str], queued: bool = False) -> None:
        if not call_log_id or not content:
            return
        entry = TranscriptEntry(call_log_id=call_log_id, role=role, content=content)
        if queued:
            self._ensure_worker()
            self._queue.put_nowait(entry)
            return
        if not await self._attempt(entry):
            logger.warning(f"[TRANSCRIPT] Dropped {role} line for call log {call_log_id}")

    async def _attempt(self, entry: TranscriptEntry) -> bool:
        try:
            result = await self.datastore.add_transcript_entry(entry.call_log_id, entry.role, entry.content)
        except Exception as e:
            logger.warning(f"[TRANSCRIPT] Write raised {type(e).__name__}: {e}")
            return False
        return result.ok

    def _ensure_worker(self) -> None:
        if self._queue is None:
            self._queue = asyncio.Queue()
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run())

    async def _run(self) -> None:
        while True:
            entry = await self._queue.get()
            try:
                await self._write_with_retries(entry)
            finally:
                self._queue.task_done()

    async def _write_with_retries(self, entry: TranscriptEntry) -> None:
        if await self._attempt(entry):
            return
        for delay in self.retry_delays:
            await self._sleep(delay)
            if await self._attempt(entry):
                return
        logger.warning(
            f"[TRANSCRIPT] Dropped {entry.role} line for call log {entry.call_log_id} "
            f"after {len(self.retry_delays) + 1} attempts"
        )

    async def drain(self) -> None:
        """Wait until every queued entry has been written or dropped."""
        if self._queue is not None:
            await self._queue.join()

    async def stop(self) -> None:
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
