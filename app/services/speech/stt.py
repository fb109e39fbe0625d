"""Streaming speech-to-text bridge to Deepgram live transcription."""
import asyncio
import json
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional
from urllib.parse import urlencode

from pydantic import BaseModel
from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from app.core.config import settings

logger = logging.getLogger(__name__)


class RecognitionState(str, Enum):
    """Lifecycle of the recognition connection of one call."""

    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value


class TranscriptEvent(BaseModel):
    text: str
    is_final: bool


def primary_options() -> Dict[str, Any]:
    return {
        "model": settings.deepgram_model,
        "language": settings.deepgram_language,
        "encoding": "mulaw",
        "sample_rate": 8000,
        "channels": 1,
        "smart_format": "true",
        "interim_results": "true",
        "endpointing": settings.deepgram_endpointing_ms,
        "utterance_end_ms": settings.deepgram_utterance_end_ms,
        "vad_events": "true",
    }


def fallback_options() -> Dict[str, Any]:
    """Conservative configuration for the single reconnect attempt."""
    return {
        "model": settings.deepgram_fallback_model,
        "language": settings.deepgram_language,
        "encoding": "mulaw",
        "sample_rate": 8000,
        "channels": 1,
        "smart_format": "true",
        "interim_results": "true",
        "endpointing": settings.deepgram_fallback_endpointing_ms,
    }


class SpeechRecognitionBridge:
    """One streaming transcription connection per call.

    Transcripts are pushed onto `events` for the call's worker loop. Audio is
    forwarded only while the connection is open; earlier frames are dropped.
    A failed connect or an unexpected disconnect gets exactly one retry with
    the fallback options, after which the bridge is FAILED and `on_failed` runs.
    """

    def __init__(
        self,
        events: "asyncio.Queue[TranscriptEvent]",
        on_failed: Optional[Callable[[], Awaitable[None]]] = None,
        api_key: Optional[str] = None,
        url: Optional[str] = None,
        options: Optional[Dict[str, Any]] = None,
        retry_options: Optional[Dict[str, Any]] = None,
        connect: Callable[..., Awaitable[Any]] = ws_connect,
        label: str = "",
    ):
        self.events = events
        self.on_failed = on_failed
        self.api_key = api_key or settings.deepgram_api_key
        self.url = url or settings.deepgram_url
        self.options = options or primary_options()
        self.retry_options = retry_options or fallback_options()
        self._connect = connect
        self.label = label
        self.state = RecognitionState.CLOSED
        self.dropped_frames = 0
        self._ws = None
        self._receiver: Optional[asyncio.Task] = None
        self._retry_available = True
        self._closing = False

    @property
    def is_ready(self) -> bool:
        return self.state == RecognitionState.OPEN and self._ws is not None

    async def start(self) -> bool:
        """Connect, retrying once with the fallback options."""
        self._closing = False
        if await self._open(self.options):
            return True
        return await self._retry_or_fail()

    async def _open(self, options: Dict[str, Any]) -> bool:
        self.state = RecognitionState.CONNECTING
        url = f"{self.url}?{urlencode(options)}"
        try:
            self._ws = await self._connect(url, additional_headers={"Authorization": f"Token {self.api_key}"})
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            logger.error(f"[STT] {self.label} connect failed ({options.get('model')}): {type(e).__name__}: {e}")
            self._ws = None
            return False
        self.state = RecognitionState.OPEN
        self._receiver = asyncio.create_task(self._receive(self._ws))
        logger.info(f"[STT] {self.label} listening ({options.get('model')})")
        return True

    async def _retry_or_fail(self) -> bool:
        if self._retry_available and not self._closing:
            self._retry_available = False
            logger.warning(f"[STT] {self.label} retrying with fallback configuration")
            if await self._open(self.retry_options):
                return True
        if self._closing:
            return False
        self.state = RecognitionState.FAILED
        logger.error(f"[STT] {self.label} recognition unavailable")
        if self.on_failed is not None:
            await self.on_failed()
        return False

    async def _receive(self, ws) -> None:
        try:
            async for raw in ws:
                if isinstance(raw, bytes):
                    continue
                event = self._parse(raw)
                if event is not None:
                    self.events.put_nowait(event)
        except ConnectionClosed as e:
            logger.warning(f"[STT] {self.label} connection closed: {e}")
        if self._closing or ws is not self._ws:
            return
        self._ws = None
        await self._retry_or_fail()

    def _parse(self, raw: str) -> Optional[TranscriptEvent]:
        try:
            data = json.loads(raw)
        except ValueError:
            return None
        if data.get("type") != "Results":
            return None
        alternatives = (data.get("channel") or {}).get("alternatives") or []
        if not alternatives:
            return None
        text = (alternatives[0].get("transcript") or "").strip()
        if not text:
            return None
        return TranscriptEvent(text=text, is_final=bool(data.get("is_final")))

    async def send_audio(self, frame: bytes) -> None:
        if not self.is_ready:
            self.dropped_frames += 1
            return
        try:
            await self._ws.send(frame)
        except ConnectionClosed:
            # The receiver notices the close and handles reconnect
            self.dropped_frames += 1

    async def close(self) -> None:
        self._closing = True
        ws, self._ws = self._ws, None
        if self.state != RecognitionState.FAILED:
            self.state = RecognitionState.CLOSED
        if ws is not None:
            try:
                await ws.send(json.dumps({"type": "CloseStream"}))
                await ws.close()
            except (ConnectionClosed, OSError) as e:
                logger.debug(f"[STT] {self.label} close: {type(e).__name__}: {e}")
        receiver = self._receiver
        if receiver is not None and not receiver.done() and receiver is not asyncio.current_task():
            receiver.cancel()
            try:
                await receiver
            except asyncio.CancelledError:
                pass
        logger.info(f"[STT] {self.label} closed (dropped {self.dropped_frames} early frames)")
