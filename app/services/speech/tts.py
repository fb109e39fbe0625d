"""Text-to-speech service."""
import asyncio
import logging
from typing import Iterable, Optional

import httpx

from app.core.cache import KeyValueCache
from app.core.config import settings

logger = logging.getLogger(__name__)

ELEVENLABS_TTS_URL = "https://api.elevenlabs.io/v1/text-to-speech/{voice_id}"


class TextToSpeechService:
    """Service for converting text to speech."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: Optional[str] = None,
        voice_id: Optional[str] = None,
        model: Optional[str] = None,
        output_format: Optional[str] = None,
    ):
        self.client = client
        self.api_key = api_key or settings.elevenlabs_api_key
        self.voice_id = voice_id or settings.elevenlabs_voice_id
        self.model = model or settings.elevenlabs_model
        self.output_format = output_format or settings.elevenlabs_output_format

    async def synthesize_speech(self, text: str) -> bytes:
        """
        Synthesize speech from text using ElevenLabs.

        Args:
            text: Text to convert to speech

        Returns:
            Audio bytes in the call's encoding (8 kHz mu-law by default)
        """
        response = await self.client.post(
            ELEVENLABS_TTS_URL.format(voice_id=self.voice_id),
            params={"output_format": self.output_format},
            headers={"xi-api-key": self.api_key, "Content-Type": "application/json"},
            json={
                "text": text,
                "model_id": self.model,
                "voice_settings": {"stability": 0.5, "similarity_boost": 0.75},
            },
            timeout=30.0,
        )
        response.raise_for_status()
        return response.content


class SpeechSynthesisCache:
    """Synthesized audio keyed by the exact spoken text, shared by all calls."""

    def __init__(self, tts_service: TextToSpeechService, cache: KeyValueCache):
        self.tts_service = tts_service
        self.cache = cache

    async def get_audio(self, text: str) -> bytes:
        """Cached audio for a phrase, synthesizing on a miss. Synthesis errors propagate."""
        audio = self.cache.get(text)
        if audio is not None:
            return audio
        audio = await self.tts_service.synthesize_speech(text)
        self.cache.set(text, audio)
        return audio

    async def prewarm(self, phrases: Iterable[str]) -> None:
        for phrase in phrases:
            if phrase in self.cache:
                continue
            try:
                await self.get_audio(phrase)
            except Exception as e:
                logger.warning(f"[TTS] Prewarm failed for {phrase!r}: {type(e).__name__}: {e}")

    def prewarm_in_background(self, phrases: Iterable[str]) -> asyncio.Task:
        return asyncio.create_task(self.prewarm(list(phrases)))
