"""Fire-and-forget notification of new reservations to an external system."""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Set

import httpx

logger = logging.getLogger(__name__)


class ReservationNotifier:
    """Posts reservation payloads to a webhook with exponential backoff.

    Server errors and transport failures are retried; client errors are not.
    The reservation itself is already committed, so nothing here reports back
    to the caller.
    """

    def __init__(
        self,
        url: str,
        client: httpx.AsyncClient,
        max_attempts: int = 4,
        base_delay: float = 0.5,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.url = url
        self.client = client
        self.max_attempts = max(1, max_attempts)
        self.base_delay = base_delay
        self._sleep = sleep
        self._tasks: Set[asyncio.Task] = set()

    def schedule(self, payload: Dict[str, Any]) -> Optional[asyncio.Task]:
        """Start delivery in the background and return immediately."""
        if not self.url:
            return None
        task = asyncio.create_task(self.deliver(payload))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def deliver(self, payload: Dict[str, Any]) -> bool:
        reservation_id = payload.get("reservation_id")
        for attempt in range(1, self.max_attempts + 1):
            try:
                response = await self.client.post(self.url, json=payload, timeout=10.0)
            except httpx.HTTPError as e:
                logger.warning(
                    f"[NOTIFY] Reservation {reservation_id} attempt {attempt}/{self.max_attempts} "
                    f"failed: {type(e).__name__}: {e}"
                )
            else:
                if response.status_code < 400:
                    logger.info(f"[NOTIFY] Reservation {reservation_id} delivered")
                    return True
                if response.status_code < 500:
                    logger.error(
                        f"[NOTIFY] Reservation {reservation_id} rejected with {response.status_code}, not retrying"
                    )
                    return False
                logger.warning(
                    f"[NOTIFY] Reservation {reservation_id} attempt {attempt}/{self.max_attempts} "
                    f"got {response.status_code}"
                )

            if attempt < self.max_attempts:
                await self._sleep(self.base_delay * 2 ** (attempt - 1))

        logger.error(f"[NOTIFY] Reservation {reservation_id} dropped after {self.max_attempts} attempts")
        return False

    async def wait_idle(self) -> None:
        """Wait for in-flight deliveries, used on shutdown."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
