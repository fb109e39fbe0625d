"""FastAPI dependencies and process-wide collaborators."""
from typing import Optional

import httpx

from app.core.cache import KeyValueCache
from app.core.config import settings
from app.db.database import AsyncSessionLocal
from app.services.agent.agent import AgentService
from app.services.call_session.manager import CallServices
from app.services.persistence.datastore import Datastore
from app.services.reliability.notifications import ReservationNotifier
from app.services.reliability.transcripts import TranscriptWriter
from app.services.speech.tts import SpeechSynthesisCache, TextToSpeechService
from app.services.telephony.twilio import TelephonyClient

# Shared across all concurrent calls
tenant_cache: KeyValueCache = KeyValueCache(name="tenant_settings")
tts_cache: KeyValueCache = KeyValueCache(name="tts_audio", max_entries=settings.tts_cache_max_entries)

_http_client: Optional[httpx.AsyncClient] = None
_call_services: Optional[CallServices] = None


def get_http_client() -> httpx.AsyncClient:
    global _http_client
    if _http_client is None or _http_client.is_closed:
        _http_client = httpx.AsyncClient()
    return _http_client


def get_datastore() -> Datastore:
    """Get the datastore facade."""
    return Datastore(AsyncSessionLocal, tenant_cache)


def get_call_services() -> CallServices:
    """Get the collaborators shared by media stream sessions."""
    global _call_services
    if _call_services is None:
        client = get_http_client()
        datastore = get_datastore()
        _call_services = CallServices(
            datastore=datastore,
            agent=AgentService(),
            telephony=TelephonyClient(client),
            synthesis=SpeechSynthesisCache(TextToSpeechService(client), tts_cache),
            transcripts=TranscriptWriter(datastore, retry_delays=settings.transcript_retry_delays),
            notifier=ReservationNotifier(
                settings.reservation_webhook_url,
                client,
                max_attempts=settings.notification_max_attempts,
                base_delay=settings.notification_base_delay_seconds,
            ),
        )
    return _call_services


async def shutdown_services() -> None:
    """Stop background workers and close the shared HTTP client."""
    global _http_client, _call_services
    if _call_services is not None:
        await _call_services.transcripts.drain()
        await _call_services.transcripts.stop()
        await _call_services.notifier.wait_idle()
        _call_services = None
    if _http_client is not None:
        await _http_client.aclose()
        _http_client = None
