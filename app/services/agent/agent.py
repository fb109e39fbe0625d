"""LLM agent service."""
import logging
from typing import Any, Dict, List, Optional, Union

from openai import AsyncOpenAI

from app.core.config import settings
from app.services.agent.state import Message

logger = logging.getLogger(__name__)

CHECK_AVAILABILITY_TOOL = {
    "type": "function",
    "function": {
        "name": "check_availability",
        "description": "Prüft, ob ein Tisch frei ist.",
        "parameters": {
            "type": "object",
            "properties": {
                "date": {"type": "string", "description": "Format YYYY-MM-DD"},
                "time": {"type": "string", "description": "Format HH:MM"},
                "party_size": {"type": "number"},
            },
            "required": ["date", "time", "party_size"],
        },
    },
}

CREATE_RESERVATION_TOOL = {
    "type": "function",
    "function": {
        "name": "create_reservation",
        "description": "Legt eine Reservierung an.",
        "parameters": {
            "type": "object",
            "properties": {
                "date": {"type": "string", "description": "Format YYYY-MM-DD"},
                "time": {"type": "string", "description": "Format HH:MM"},
                "party_size": {"type": "number"},
                "name": {"type": "string"},
            },
            "required": ["date", "time", "party_size", "name"],
        },
    },
}

RESERVATION_TOOLS = [CHECK_AVAILABILITY_TOOL, CREATE_RESERVATION_TOOL]
FORCED_AVAILABILITY_CHOICE = {"type": "function", "function": {"name": "check_availability"}}


class AgentService:
    """Service for the tool-calling language model."""

    def __init__(self, client: Optional[AsyncOpenAI] = None, model: Optional[str] = None):
        self.client = client or AsyncOpenAI(api_key=settings.openai_api_key)
        self.model = model or settings.openai_model

    async def complete(
        self,
        messages: List[Message],
        tools: List[Dict[str, Any]],
        tool_choice: Union[str, Dict[str, Any]] = "auto",
    ) -> Message:
        """Request one completion and return the assistant message.

        Exceptions from the API propagate; the caller decides how to apologise.
        """
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[m.to_openai() for m in messages],
            tools=tools,
            tool_choice=tool_choice,
            temperature=0.7,
        )
        reply = response.choices[0].message

        tool_calls = None
        if reply.tool_calls:
            tool_calls = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.function.name, "arguments": call.function.arguments},
                }
                for call in reply.tool_calls
            ]
        message = Message(role="assistant", content=reply.content or None, tool_calls=tool_calls)
        logger.info(
            f"[AGENT LLM OUTPUT] content={message.content!r} "
            f"tools={[c['function']['name'] for c in tool_calls or []]}"
        )
        return message
