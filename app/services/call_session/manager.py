"""Per-call media stream sessions."""
import asyncio
import base64
import binascii
import json
import logging
from datetime import date, datetime
from typing import Any, Awaitable, Callable, Dict, Optional, Set
from zoneinfo import ZoneInfo

from fastapi import WebSocketDisconnect
from websockets.asyncio.client import connect as ws_connect

from app.core.config import settings
from app.services.agent.agent import AgentService
from app.services.agent.constants import FILLER_PHRASES
from app.services.agent.handoff import HandoffReason, HandoffStateMachine
from app.services.agent.orchestrator import DialogueOrchestrator, forced_check_enabled
from app.services.agent.prompt import get_greeting, get_system_prompt
from app.services.agent.state import ConversationState, Message
from app.services.agent.tools import ToolExecutor
from app.services.call_session.coalescer import PendingTurn, TurnCoalescer, TurnQueue
from app.services.call_session.models import CallSession
from app.services.persistence.datastore import Datastore
from app.services.persistence.models import TenantSettings
from app.services.reliability.notifications import ReservationNotifier
from app.services.reliability.rollout import is_enrolled
from app.services.reliability.transcripts import TranscriptWriter
from app.services.speech.stt import SpeechRecognitionBridge, TranscriptEvent
from app.services.speech.tts import SpeechSynthesisCache
from app.services.telephony.twilio import TelephonyClient, select_transfer_target

logger = logging.getLogger(__name__)

# Module-level session storage, keyed by stream sid
_sessions: Dict[str, "MediaStreamSession"] = {}


def get_session(stream_sid: Optional[str]) -> Optional["MediaStreamSession"]:
    if not stream_sid:
        return None
    return _sessions.get(stream_sid)


def active_session_count() -> int:
    return len(_sessions)


def estimate_speech_seconds(
    text: Optional[str],
    words_per_second: float,
    padding: float,
    min_delay: float,
    max_delay: float,
) -> float:
    """Rough time needed to play back `text`, clamped to [min_delay, max_delay]."""
    words = len((text or "").split())
    estimate = words / max(words_per_second, 0.1) + padding
    return max(min_delay, min(max_delay, estimate))


def local_today() -> date:
    return datetime.now(ZoneInfo(settings.timezone)).date()


class CallServices:
    """Process-wide collaborators a media stream session works with."""

    def __init__(
        self,
        datastore: Datastore,
        agent: AgentService,
        telephony: TelephonyClient,
        synthesis: SpeechSynthesisCache,
        transcripts: TranscriptWriter,
        notifier: ReservationNotifier,
        stt_connect: Callable[..., Awaitable[Any]] = ws_connect,
    ):
        self.datastore = datastore
        self.agent = agent
        self.telephony = telephony
        self.synthesis = synthesis
        self.transcripts = transcripts
        self.notifier = notifier
        self.stt_connect = stt_connect


class MediaStreamSession:
    """Drives one bidirectional media stream from `start` to `stop`.

    Inbound events arrive through `handle_event`. Transcripts from the
    recognition bridge feed a single worker loop; finalized turns are drained
    one at a time by the dialogue consumer, so a call never has two dialogue
    round-trips in flight.
    """

    def __init__(
        self,
        send: Callable[[str], Awaitable[None]],
        services: CallServices,
        today: Callable[[], date] = local_today,
    ):
        self._send = send
        self.services = services
        self.today = today

        self.session: Optional[CallSession] = None
        self.tenant: Optional[TenantSettings] = None
        self.state: Optional[ConversationState] = None
        self.handoff: Optional[HandoffStateMachine] = None
        self.orchestrator: Optional[DialogueOrchestrator] = None
        self.bridge: Optional[SpeechRecognitionBridge] = None
        self.queue: Optional[TurnQueue] = None
        self.coalescer: Optional[TurnCoalescer] = None

        self._events: "asyncio.Queue[TranscriptEvent]" = asyncio.Queue()
        self._turn_lock = asyncio.Lock()
        self._greeting_task: Optional[asyncio.Task] = None
        self._greeting_started = False
        self._hangup_handle: Optional[asyncio.TimerHandle] = None
        self._bridge_task: Optional[asyncio.Task] = None
        self._pump_task: Optional[asyncio.Task] = None
        self._consumer_task: Optional[asyncio.Task] = None
        self._background: Set[asyncio.Task] = set()
        self._in_turn = False
        self.closed = False

    @property
    def stream_sid(self) -> Optional[str]:
        return self.session.stream_sid if self.session else None

    @property
    def active(self) -> bool:
        return self.session is not None and self.session.active

    # Inbound events

    async def handle_event(self, message: Dict[str, Any]) -> None:
        event = message.get("event")
        if event == "start":
            await self.start(message)
        elif event == "media":
            await self._on_media(message)
        elif event == "stop":
            logger.info(f"[MEDIA STREAM] {self.stream_sid} stop event")
            await self.stop()
        elif event not in ("connected", "mark"):
            logger.debug(f"[MEDIA STREAM] Ignoring event {event!r}")

    async def start(self, message: Dict[str, Any]) -> bool:
        """Set up the call for a `start` event. False if the call was rejected."""
        start = message.get("start") or {}
        stream_sid = start.get("streamSid") or message.get("streamSid")
        params = start.get("customParameters") or {}

        if not stream_sid:
            logger.error("[MEDIA STREAM] start event without stream sid")
            return False
        if self.session is not None or stream_sid in _sessions:
            logger.warning(f"[MEDIA STREAM] Duplicate start for {stream_sid}, ignoring")
            return False

        tenant_id = params.get("tenant_id") or ""
        if not tenant_id:
            logger.error(f"[MEDIA STREAM] {stream_sid} missing tenant id, ending call")
            await self.services.telephony.hangup_call(start.get("callSid"))
            self.closed = True
            return False

        self.session = CallSession(
            stream_sid=stream_sid,
            call_sid=start.get("callSid"),
            tenant_id=tenant_id,
            caller_phone=params.get("caller_phone"),
            bot_phone=params.get("bot_phone"),
            forwarded_from=params.get("forwarded_from"),
        )
        _sessions[stream_sid] = self
        logger.info(f"[MEDIA STREAM] Started {self.session!r}")

        decision = await self.services.datastore.check_access(self.session.tenant_id)
        if not decision.allowed:
            await self._reject(decision.reason, decision.settings)
            return False

        self.tenant = decision.settings
        self.session.low_latency = is_enrolled(self.session.tenant_id, settings.low_latency_rollout_percent)

        call_log = await self.services.datastore.create_call_log(
            self.session.tenant_id, stream_sid, self.session.call_sid, self.session.caller_phone
        )
        if call_log.ok:
            self.session.call_log_id = call_log.data
        else:
            logger.warning(f"[MEDIA STREAM] {stream_sid} call log not created: {call_log.error}")

        if self.session.low_latency:
            logger.info(f"[MEDIA STREAM] {stream_sid} low-latency mode, prewarming fillers")
            self._track(self.services.synthesis.prewarm_in_background(FILLER_PHRASES))

        self._build_dialogue()

        self.bridge = SpeechRecognitionBridge(
            self._events,
            on_failed=self._on_recognition_failed,
            connect=self.services.stt_connect,
            label=stream_sid,
        )
        self._bridge_task = asyncio.create_task(self.bridge.start())
        self._pump_task = asyncio.create_task(self._pump_transcripts())
        self._consumer_task = asyncio.create_task(self._consume_turns())
        self._greeting_task = asyncio.create_task(self._greet())
        return True

    async def _reject(self, reason: Optional[str], tenant: Optional[TenantSettings]) -> None:
        logger.warning(f"[MEDIA STREAM] {self.stream_sid} access denied: {reason}")
        target = None
        if tenant is not None:
            target = select_transfer_target(
                tenant.handoff_numbers,
                bot_number=self.session.bot_phone,
                forwarded_from=self.session.forwarded_from,
            )
        if target:
            await self.services.telephony.transfer_call(self.session.call_sid, target)
        else:
            await self.services.telephony.hangup_call(self.session.call_sid)
        await self.stop()

    def _build_dialogue(self) -> None:
        session = self.session
        self.state = ConversationState.start(get_system_prompt(self.tenant, self.today()))
        self.handoff = HandoffStateMachine(
            session,
            self.services.telephony,
            say=self.say,
            end_call=self.end_call,
            handoff_numbers=self.tenant.handoff_numbers,
            misunderstanding_threshold=settings.handoff_misunderstanding_threshold,
            tool_error_threshold=settings.handoff_tool_error_threshold,
        )
        tools = ToolExecutor(
            self.services.datastore,
            self.tenant,
            caller_phone=session.caller_phone,
            slot_duration_minutes=settings.reservation_duration_minutes,
            notifier=self.services.notifier,
        )
        self.orchestrator = DialogueOrchestrator(
            session,
            self.state,
            self.services.agent,
            tools,
            self.handoff,
            speak=self._speak_and_record,
            say=self.say,
            record_user=self._record_user,
            today=self.today,
            max_tool_rounds=settings.max_tool_rounds,
            max_dialogue_messages=settings.max_dialogue_messages,
            max_tool_messages=settings.max_tool_messages,
            force_availability_check=forced_check_enabled(settings.forced_availability_mode, session.low_latency),
        )
        self.queue = TurnQueue(settings.turn_queue_size, label=session.stream_sid)
        self.coalescer = TurnCoalescer(
            self.queue,
            first_chunk_wait=settings.first_chunk_wait_seconds,
            coalesce_wait=settings.coalesce_wait_seconds,
            max_wait=settings.coalesce_max_wait_seconds,
        )

    async def _on_media(self, message: Dict[str, Any]) -> None:
        if self.bridge is None or not self.active:
            return
        payload = (message.get("media") or {}).get("payload")
        if not payload:
            return
        try:
            frame = base64.b64decode(payload)
        except (binascii.Error, ValueError):
            logger.debug(f"[MEDIA STREAM] {self.stream_sid} undecodable media frame")
            return
        await self.bridge.send_audio(frame)

    # Worker loops

    async def _greet(self) -> None:
        await asyncio.sleep(settings.greeting_delay_seconds)
        if not self.active or self.handoff.in_progress:
            return
        self._greeting_started = True
        await self.say(get_greeting(self.tenant))

    def _cancel_greeting(self) -> None:
        task = self._greeting_task
        if task is not None and not task.done() and not self._greeting_started:
            logger.info(f"[MEDIA STREAM] {self.stream_sid} caller spoke first, greeting cancelled")
            task.cancel()

    async def _pump_transcripts(self) -> None:
        while True:
            event = await self._events.get()
            if not self.active:
                continue
            self._cancel_greeting()
            if event.is_final:
                self.coalescer.add_final(event.text)

    async def _consume_turns(self) -> None:
        while self.active:
            turn = await self.queue.get()
            self._in_turn = True
            try:
                async with self._turn_lock:
                    await self._process_turn(turn)
            finally:
                self._in_turn = False

    async def _process_turn(self, turn: PendingTurn) -> None:
        try:
            outcome = await self.orchestrator.handle_turn(turn)
        except Exception as e:
            logger.error(
                f"[MEDIA STREAM] {self.stream_sid} turn failed: {type(e).__name__}: {e}",
                exc_info=True,
            )
            return
        if outcome.confirmation_text and self.active and not self.handoff.in_progress:
            self.schedule_hangup(outcome.confirmation_text)

    async def _on_recognition_failed(self) -> None:
        if not self.active or self.handoff is None:
            return
        # Runs in the bridge's task; the transfer waits for any in-flight turn
        self._track(asyncio.create_task(self._escalate_recognition_failure()))

    async def _escalate_recognition_failure(self) -> None:
        async with self._turn_lock:
            await self.handoff.initiate(HandoffReason.RECOGNITION_UNAVAILABLE)

    # Output

    async def speak(self, text: str) -> None:
        """Synthesize `text` and send it to the caller. Failures are logged only."""
        if not self.active or not text:
            return
        try:
            audio = await self.services.synthesis.get_audio(text)
        except Exception as e:
            logger.error(f"[MEDIA STREAM] {self.stream_sid} synthesis failed: {type(e).__name__}: {e}")
            return
        if not self.active:
            return
        message = {
            "event": "media",
            "streamSid": self.stream_sid,
            "media": {"payload": base64.b64encode(audio).decode("ascii")},
        }
        try:
            await self._send(json.dumps(message))
        except (WebSocketDisconnect, RuntimeError) as e:
            logger.warning(f"[MEDIA STREAM] {self.stream_sid} send failed: {type(e).__name__}: {e}")

    async def _speak_and_record(self, text: str) -> None:
        await self.speak(text)
        await self.services.transcripts.write(
            self.session.call_log_id, "assistant", text, queued=self.session.low_latency
        )

    async def say(self, text: str) -> None:
        """Append a fixed assistant phrase to the conversation and speak it."""
        self.state.append(Message(role="assistant", content=text))
        await self._speak_and_record(text)

    async def _record_user(self, text: str) -> None:
        await self.services.transcripts.write(
            self.session.call_log_id, "user", text, queued=self.session.low_latency
        )

    # Call termination

    def schedule_hangup(self, spoken_text: str) -> float:
        delay = estimate_speech_seconds(
            spoken_text,
            settings.hangup_words_per_second,
            settings.hangup_padding_seconds,
            settings.hangup_min_delay_seconds,
            settings.hangup_max_delay_seconds,
        )
        self._cancel_hangup()
        logger.info(f"[MEDIA STREAM] {self.stream_sid} hanging up in {delay:.1f}s")
        loop = asyncio.get_running_loop()
        self._hangup_handle = loop.call_later(delay, self._fire_hangup)
        return delay

    def _fire_hangup(self) -> None:
        self._hangup_handle = None
        self._track(asyncio.create_task(self._hangup()))

    async def _hangup(self) -> None:
        if not self.active or self.handoff.in_progress:
            return
        result = await self.services.telephony.hangup_call(self.session.call_sid)
        if not result.ok:
            logger.error(f"[MEDIA STREAM] {self.stream_sid} hangup failed: {result.error}")

    def _cancel_hangup(self) -> None:
        if self._hangup_handle is not None:
            self._hangup_handle.cancel()
            self._hangup_handle = None

    def _clear_pending(self) -> None:
        self._cancel_hangup()
        if self._greeting_task is not None and not self._greeting_task.done():
            self._greeting_task.cancel()
        if self.coalescer is not None:
            self.coalescer.cancel()
        if self.queue is not None:
            cleared = self.queue.clear()
            if cleared:
                logger.info(f"[MEDIA STREAM] {self.stream_sid} dropped {cleared} pending turn(s)")

    async def end_call(self) -> None:
        """Mark the call finished for the dialogue loop after a handoff."""
        if self.session is None:
            return
        self.session.active = False
        self._clear_pending()

    async def stop(self) -> None:
        """Tear the session down. Safe to call more than once."""
        if self.closed:
            return
        self.closed = True
        session = self.session
        if session is None:
            return
        session.active = False
        self._clear_pending()

        for task in (self._bridge_task, self._pump_task):
            if task is not None and not task.done():
                task.cancel()
        # An in-flight turn finishes on its own and its result is discarded
        if self._consumer_task is not None and not self._in_turn:
            self._consumer_task.cancel()

        if self.bridge is not None:
            await self.bridge.close()

        if session.call_log_id is not None:
            result = await self.services.datastore.finalize_call_log(session.call_log_id, session.duration_seconds)
            if not result.ok:
                logger.warning(f"[MEDIA STREAM] {session.stream_sid} call log not finalized: {result.error}")

        if _sessions.get(session.stream_sid) is self:
            del _sessions[session.stream_sid]
        logger.info(f"[MEDIA STREAM] Stopped {session!r} after {session.duration_seconds}s")

    def _track(self, task: asyncio.Task) -> asyncio.Task:
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task
