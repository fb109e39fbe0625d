"""Escalation to a human: confirmation prompt and call transfer."""
import logging
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from pydantic import BaseModel

from app.services.agent.constants import (
    HANDOFF_CONFIRM_MESSAGE,
    HANDOFF_DECLINED_MESSAGE,
    HANDOFF_FAILED_MESSAGE,
    HANDOFF_MESSAGE,
    HANDOFF_REPROMPT_MESSAGE,
)
from app.services.agent.signals import is_affirmative, is_negative, signals_misunderstanding
from app.services.call_session.models import CallSession
from app.services.telephony.twilio import TelephonyClient, select_transfer_target

logger = logging.getLogger(__name__)


class HandoffPhase(str, Enum):
    NORMAL = "normal"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    TRANSFERRING = "transferring"
    ENDED = "ended"

    def __str__(self) -> str:
        return self.value


class HandoffReason(str, Enum):
    USER_REQUEST = "user_request"
    USER_CONFIRMED = "user_confirmed"
    RECOGNITION_UNAVAILABLE = "recognition_unavailable"
    TOOL_ERRORS = "tool_errors"


class HandoffState(BaseModel):
    phase: HandoffPhase = HandoffPhase.NORMAL
    consecutive_misunderstandings: int = 0
    tool_errors: int = 0

    @property
    def in_progress(self) -> bool:
        return self.phase in (HandoffPhase.TRANSFERRING, HandoffPhase.ENDED)

    @property
    def awaiting_confirmation(self) -> bool:
        return self.phase == HandoffPhase.AWAITING_CONFIRMATION


class HandoffStateMachine:
    """Owns the handoff state of one call.

    Once a transfer starts the call is finished for the dialogue loop, whether
    or not the transfer itself works.
    """

    def __init__(
        self,
        session: CallSession,
        telephony: TelephonyClient,
        say: Callable[[str], Awaitable[None]],
        end_call: Callable[[], Awaitable[None]],
        handoff_numbers: List[str],
        misunderstanding_threshold: int = 3,
        tool_error_threshold: int = 3,
    ):
        self.session = session
        self.telephony = telephony
        self.say = say
        self.end_call = end_call
        self.handoff_numbers = handoff_numbers
        self.misunderstanding_threshold = misunderstanding_threshold
        self.tool_error_threshold = tool_error_threshold
        self.state = HandoffState()

    @property
    def in_progress(self) -> bool:
        return self.state.in_progress

    @property
    def awaiting_confirmation(self) -> bool:
        return self.state.awaiting_confirmation

    def observe_assistant_reply(self, text: Optional[str]) -> bool:
        """Count "not understood" replies; True when a confirmation prompt is due."""
        if not text:
            return False
        if signals_misunderstanding(text):
            self.state.consecutive_misunderstandings += 1
        else:
            self.state.consecutive_misunderstandings = 0
        if self.state.phase != HandoffPhase.NORMAL:
            return False
        return self.state.consecutive_misunderstandings >= self.misunderstanding_threshold

    async def prompt_confirmation(self) -> None:
        if self.state.phase != HandoffPhase.NORMAL or not self.session.active:
            return
        logger.info(f"[HANDOFF] {self.session.stream_sid} asking caller to confirm transfer")
        self.state.phase = HandoffPhase.AWAITING_CONFIRMATION
        self.state.consecutive_misunderstandings = 0
        await self.say(HANDOFF_CONFIRM_MESSAGE)

    async def handle_confirmation(self, text: str) -> bool:
        """Consume a user turn while a yes/no answer is pending."""
        if not self.awaiting_confirmation:
            return False
        if is_negative(text):
            logger.info(f"[HANDOFF] {self.session.stream_sid} caller declined transfer")
            self.state.phase = HandoffPhase.NORMAL
            self.state.consecutive_misunderstandings = 0
            self.state.tool_errors = 0
            await self.say(HANDOFF_DECLINED_MESSAGE)
            return True
        if is_affirmative(text):
            await self.initiate(HandoffReason.USER_CONFIRMED)
            return True
        await self.say(HANDOFF_REPROMPT_MESSAGE)
        return True

    async def record_tool_error(self) -> bool:
        """Count a failed tool call; True if this started a transfer."""
        self.state.tool_errors += 1
        if self.state.tool_errors >= self.tool_error_threshold:
            await self.initiate(HandoffReason.TOOL_ERRORS)
            return True
        return False

    def record_tool_success(self) -> None:
        self.state.tool_errors = 0

    def transfer_target(self) -> Optional[str]:
        return select_transfer_target(
            self.handoff_numbers,
            bot_number=self.session.bot_phone,
            forwarded_from=self.session.forwarded_from,
        )

    async def initiate(self, reason: HandoffReason) -> None:
        if self.in_progress or not self.session.active:
            return
        self.state.phase = HandoffPhase.TRANSFERRING
        logger.info(f"[HANDOFF] {self.session.stream_sid} transfer triggered: {reason.value}")

        await self.say(HANDOFF_MESSAGE)

        target = self.transfer_target()
        if target is None:
            logger.error(f"[HANDOFF] {self.session.stream_sid} no valid transfer target")
            await self.say(HANDOFF_FAILED_MESSAGE)
        else:
            result = await self.telephony.transfer_call(self.session.call_sid, target)
            if not result.ok:
                logger.error(f"[HANDOFF] {self.session.stream_sid} transfer failed: {result.error}")
                await self.say(HANDOFF_FAILED_MESSAGE)

        self.state.phase = HandoffPhase.ENDED
        await self.end_call()
