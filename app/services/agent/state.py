"""Conversation state management."""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class Message(BaseModel):
    """One entry of the dialogue history."""

    role: str  # system, user, assistant, tool
    content: Optional[str] = None
    tool_calls: Optional[List[Dict[str, Any]]] = None
    tool_call_id: Optional[str] = None

    def to_openai(self) -> Dict[str, Any]:
        """Chat-completions message dict."""
        payload: Dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            payload["tool_calls"] = self.tool_calls
        if self.tool_call_id:
            payload["tool_call_id"] = self.tool_call_id
        return payload


class ConversationState(BaseModel):
    """Ordered dialogue history of one call.

    The system message is always first and there is exactly one. The history
    only grows; windowing for model requests never mutates it.
    """

    messages: List[Message]
    # Index just past the most recent availability tool result
    last_availability_check_index: int = 0

    @classmethod
    def start(cls, system_prompt: str) -> "ConversationState":
        return cls(messages=[Message(role="system", content=system_prompt)])

    def append(self, message: Message) -> None:
        if message.role == "system":
            raise ValueError("Conversation already has a system message")
        self.messages.append(message)

    def system_message(self) -> Message:
        return self.messages[0]

    def last_user_text(self) -> str:
        for message in reversed(self.messages):
            if message.role == "user":
                return message.content or ""
        return ""

    def user_texts_since(self, index: int) -> List[str]:
        return [m.content or "" for m in self.messages[index:] if m.role == "user"]

    def mark_availability_checked(self) -> None:
        self.last_availability_check_index = len(self.messages)

    def window_for_model(self, max_dialogue_messages: int, max_tool_messages: int) -> List[Message]:
        """System message, the last N dialogue messages and the last M tool results.

        Relative order is preserved. Tool results whose requesting assistant
        message fell out of the window are dropped, and an assistant message
        keeps its tool calls only while all of their results are in the window;
        the model API rejects either kind of orphan.
        """
        body = list(enumerate(self.messages))[1:]
        dialogue = [i for i, m in body if m.role != "tool"]
        tools = [i for i, m in body if m.role == "tool"]
        keep = set(dialogue[-max_dialogue_messages:] if max_dialogue_messages > 0 else [])
        keep |= set(tools[-max_tool_messages:] if max_tool_messages > 0 else [])

        results_in_window = {self.messages[i].tool_call_id for i in keep if self.messages[i].role == "tool"}
        # Only assistant messages with every result present keep their calls
        complete_call_ids = set()
        for i in keep:
            calls = self.messages[i].tool_calls or []
            if calls and all(call.get("id") in results_in_window for call in calls):
                complete_call_ids.update(call.get("id") for call in calls)

        window = [self.system_message()]
        for i in sorted(keep):
            message = self.messages[i]
            if message.role == "tool":
                if message.tool_call_id in complete_call_ids:
                    window.append(message)
                continue
            if message.tool_calls:
                if all(call.get("id") in complete_call_ids for call in message.tool_calls):
                    window.append(message)
                elif message.content:
                    window.append(Message(role=message.role, content=message.content))
                continue
            window.append(message)
        return window

    def get_transcript_text(self) -> str:
        """Spoken lines of the call as plain text."""
        lines = []
        for message in self.messages[1:]:
            if message.role in ("user", "assistant") and message.content:
                lines.append(f"{message.role}: {message.content}")
        return "\n".join(lines)
