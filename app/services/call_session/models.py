"""Call session models."""
import time
from typing import Optional


class CallSession:
    """One connected media stream. Created on stream start, dropped on stop."""

    def __init__(
        self,
        stream_sid: str,
        call_sid: Optional[str],
        tenant_id: str,
        caller_phone: Optional[str] = None,
        bot_phone: Optional[str] = None,
        forwarded_from: Optional[str] = None,
    ):
        self.stream_sid = stream_sid
        self.call_sid = call_sid
        self.tenant_id = tenant_id
        self.caller_phone = caller_phone
        self.bot_phone = bot_phone
        self.forwarded_from = forwarded_from
        self.active = True
        self.created_at = time.time()
        self.call_log_id: Optional[int] = None  # Database ID
        self.low_latency = False

    @property
    def duration_seconds(self) -> int:
        return max(0, round(time.time() - self.created_at))

    def __repr__(self) -> str:
        return f"CallSession(stream_sid={self.stream_sid!r}, call_sid={self.call_sid!r}, tenant_id={self.tenant_id!r})"
