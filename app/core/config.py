"""Application configuration."""
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # OpenAI
    openai_api_key: str
    openai_model: str = "gpt-4o-mini"

    # Twilio
    twilio_account_sid: str
    twilio_auth_token: str
    twilio_api_base_url: str = "https://api.twilio.com/2010-04-01"

    # Deepgram (speech recognition)
    deepgram_api_key: str
    deepgram_url: str = "wss://api.deepgram.com/v1/listen"
    deepgram_model: str = "nova-3"
    deepgram_language: str = "de"
    deepgram_endpointing_ms: int = 950
    deepgram_utterance_end_ms: int = 1000
    # Used for the single reconnect attempt after a failed connect
    deepgram_fallback_model: str = "nova-2"
    deepgram_fallback_endpointing_ms: int = 500

    # ElevenLabs (speech synthesis)
    elevenlabs_api_key: str
    elevenlabs_voice_id: str
    elevenlabs_model: str = "eleven_multilingual_v2"
    elevenlabs_output_format: str = "ulaw_8000"
    # Synthesized phrases kept in memory across calls
    tts_cache_max_entries: int = 500

    # Database
    database_url: str

    # Logging
    log_level: str = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 5050
    base_url: str = ""
    timezone: str = "Europe/Berlin"

    # Conversation
    greeting_delay_seconds: float = 0.5
    max_dialogue_messages: int = 12
    max_tool_messages: int = 6
    max_tool_rounds: int = 5
    reservation_duration_minutes: int = 60
    # always | low_latency | legacy | off
    forced_availability_mode: str = "always"

    # Turn coalescing (first user turn only)
    first_chunk_wait_seconds: float = 1.2
    coalesce_wait_seconds: float = 0.6
    coalesce_max_wait_seconds: float = 3.0
    turn_queue_size: int = 3

    # Handoff policy
    handoff_misunderstanding_threshold: int = 3
    handoff_tool_error_threshold: int = 3

    # Auto hangup after a successful reservation
    hangup_words_per_second: float = 2.5
    hangup_padding_seconds: float = 1.0
    hangup_min_delay_seconds: float = 3.0
    hangup_max_delay_seconds: float = 15.0

    # Reliability
    low_latency_rollout_percent: int = 0
    transcript_retry_delays: List[float] = [0.25, 1.0, 2.0]
    reservation_webhook_url: str = ""
    notification_max_attempts: int = 4
    notification_base_delay_seconds: float = 0.5

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


settings = Settings()
