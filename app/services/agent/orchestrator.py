"""Dialogue orchestration: one user turn through the tool-calling loop."""
import logging
from datetime import date
from typing import Awaitable, Callable, Optional

from pydantic import BaseModel

from app.services.agent.agent import (
    CHECK_AVAILABILITY_TOOL,
    FORCED_AVAILABILITY_CHOICE,
    RESERVATION_TOOLS,
    AgentService,
)
from app.services.agent.constants import LLM_ERROR_MESSAGE, TOOL_ERROR_MESSAGE
from app.services.agent.handoff import HandoffReason, HandoffStateMachine
from app.services.agent.signals import (
    announces_availability_check,
    conversation_signals,
    is_explicit_handoff_request,
)
from app.services.agent.state import ConversationState, Message
from app.services.agent.tools import ToolExecutor
from app.services.call_session.coalescer import PendingTurn
from app.services.call_session.models import CallSession

logger = logging.getLogger(__name__)

FORCED_CHECK_MODES = ("always", "low_latency", "legacy", "off")


def forced_check_enabled(mode: str, low_latency: bool) -> bool:
    """Whether the forced check_availability fallback applies to a call."""
    mode = (mode or "").strip().lower()
    if mode == "always":
        return True
    if mode == "low_latency":
        return low_latency
    if mode == "legacy":
        return not low_latency
    return False


class TurnOutcome(BaseModel):
    """What a processed turn did, for the session to act on."""

    rounds: int = 0
    reservation_created: bool = False
    # Assistant text spoken after the reservation was stored
    confirmation_text: Optional[str] = None
    handed_off: bool = False


class DialogueOrchestrator:
    """Runs the model/tool loop for the turns of one call.

    The loop is bounded by `max_tool_rounds` model requests per turn. Results
    arriving after the session went inactive are discarded.
    """

    def __init__(
        self,
        session: CallSession,
        state: ConversationState,
        agent: AgentService,
        tools: ToolExecutor,
        handoff: HandoffStateMachine,
        speak: Callable[[str], Awaitable[None]],
        say: Callable[[str], Awaitable[None]],
        record_user: Callable[[str], Awaitable[None]],
        today: Callable[[], date],
        max_tool_rounds: int = 5,
        max_dialogue_messages: int = 12,
        max_tool_messages: int = 6,
        force_availability_check: bool = True,
    ):
        self.session = session
        self.state = state
        self.agent = agent
        self.tools = tools
        self.handoff = handoff
        self.speak = speak
        self.say = say
        self.record_user = record_user
        self.today = today
        self.max_tool_rounds = max_tool_rounds
        self.max_dialogue_messages = max_dialogue_messages
        self.max_tool_messages = max_tool_messages
        self.force_availability_check = force_availability_check

    def _live(self) -> bool:
        return self.session.active and not self.handoff.in_progress

    async def handle_turn(self, turn: PendingTurn) -> TurnOutcome:
        """Process one pending turn to completion."""
        if not self._live():
            return TurnOutcome()

        logger.info(f"[ORCHESTRATOR] {self.session.stream_sid} user: {turn.text!r}")
        self.state.append(Message(role="user", content=turn.text))
        await self.record_user(turn.text)

        if self.handoff.awaiting_confirmation:
            await self.handoff.handle_confirmation(turn.text)
            return TurnOutcome(handed_off=self.handoff.in_progress)

        if is_explicit_handoff_request(turn.text):
            await self.handoff.initiate(HandoffReason.USER_REQUEST)
            return TurnOutcome(handed_off=True)

        return await self.resolve()

    def _should_force_availability(self, reply_text: Optional[str]) -> bool:
        if not self.force_availability_check:
            return False
        if announces_availability_check(reply_text):
            return True
        signals = conversation_signals(self.state.user_texts_since(self.state.last_availability_check_index))
        return signals.has_availability_inputs

    async def resolve(self) -> TurnOutcome:
        outcome = TurnOutcome()
        tools = RESERVATION_TOOLS
        tool_choice = "auto"
        forced = False

        while outcome.rounds < self.max_tool_rounds:
            outcome.rounds += 1
            window = self.state.window_for_model(self.max_dialogue_messages, self.max_tool_messages)
            try:
                reply = await self.agent.complete(window, tools, tool_choice)
            except Exception as e:
                logger.error(
                    f"[ORCHESTRATOR] {self.session.stream_sid} LLM error: {type(e).__name__}: {e}",
                    exc_info=True,
                )
                if self._live():
                    await self.say(LLM_ERROR_MESSAGE)
                return outcome

            if not self._live():
                logger.info(f"[ORCHESTRATOR] {self.session.stream_sid} session ended, discarding reply")
                return outcome

            self.state.append(reply)

            if reply.content:
                await self.speak(reply.content)
                if outcome.reservation_created:
                    outcome.confirmation_text = reply.content
                if self.handoff.observe_assistant_reply(reply.content):
                    await self.handoff.prompt_confirmation()
                    return outcome

            if reply.tool_calls:
                if not await self._run_tools(reply, outcome):
                    return outcome
                tools, tool_choice = RESERVATION_TOOLS, "auto"
                continue

            if not forced and self._should_force_availability(reply.content):
                logger.info(f"[ORCHESTRATOR] {self.session.stream_sid} forcing check_availability")
                forced = True
                tools, tool_choice = [CHECK_AVAILABILITY_TOOL], FORCED_AVAILABILITY_CHOICE
                continue

            return outcome

        logger.warning(
            f"[ORCHESTRATOR] {self.session.stream_sid} stopped after {self.max_tool_rounds} model requests"
        )
        return outcome

    async def _run_tools(self, reply: Message, outcome: TurnOutcome) -> bool:
        """Execute the reply's tool calls in order. False ends the turn."""
        failed = False
        for tool_call in reply.tool_calls or []:
            if failed:
                self.state.append(
                    Message(role="tool", tool_call_id=tool_call.get("id"), content='{"error": "Skipped"}')
                )
                continue
            result = await self.tools.execute(tool_call, self.state.last_user_text(), self.today())
            self.state.append(Message(role="tool", tool_call_id=result.tool_call_id, content=result.content))
            if result.name == "check_availability" and not result.system_error:
                self.state.mark_availability_checked()
            if result.reservation_id is not None:
                # Booking re-checks capacity
                self.state.mark_availability_checked()
                outcome.reservation_created = True
            failed = failed or result.system_error

        if not self._live():
            return False
        if failed:
            await self.say(TOOL_ERROR_MESSAGE)
            outcome.handed_off = await self.handoff.record_tool_error()
            return False
        self.handoff.record_tool_success()
        return True
