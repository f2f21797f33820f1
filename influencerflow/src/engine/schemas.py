"""Chat message model shared by the conversation store and both model passes."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


Role = Literal["system", "user", "assistant", "tool"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ToolCallFunction(_CamelModel):
    name: str
    arguments: str = "{}"


class ToolCall(_CamelModel):
    id: str
    type: Literal["function"] = "function"
    function: ToolCallFunction


class _MessageBase(_CamelModel):
    content: str = ""
    timestamp: datetime = Field(default_factory=utcnow)


class SystemMessage(_MessageBase):
    role: Literal["system"] = "system"


class UserMessage(_MessageBase):
    role: Literal["user"] = "user"


class AssistantMessage(_MessageBase):
    role: Literal["assistant"] = "assistant"
    tool_calls: Optional[list[ToolCall]] = None


class ToolMessage(_MessageBase):
    role: Literal["tool"] = "tool"
    tool_call_id: str


ChatMessage = Annotated[
    Union[SystemMessage, UserMessage, AssistantMessage, ToolMessage],
    Field(discriminator="role"),
]


def build_message(
    role: Role,
    content: str,
    tool_calls: Optional[list[ToolCall | dict[str, Any]]] = None,
    tool_call_id: Optional[str] = None,
) -> ChatMessage:
    content = content or ""
    if role == "system":
        return SystemMessage(content=content)
    if role == "user":
        return UserMessage(content=content)
    if role == "assistant":
        calls = [ToolCall.model_validate(c) for c in tool_calls] if tool_calls else None
        return AssistantMessage(content=content, tool_calls=calls)
    if role == "tool":
        if not tool_call_id:
            raise ValueError("tool messages require a tool_call_id")
        return ToolMessage(content=content, tool_call_id=tool_call_id)
    raise ValueError(f"Unknown message role: {role}")


def to_model_message(message: ChatMessage) -> dict[str, Any]:
    """Project a stored message into the chat-completions wire shape."""
    if isinstance(message, AssistantMessage):
        out: dict[str, Any] = {"role": "assistant", "content": message.content}
        if message.tool_calls:
            out["tool_calls"] = [c.model_dump(mode="json") for c in message.tool_calls]
        return out
    if isinstance(message, ToolMessage):
        return {"role": "tool", "content": message.content, "tool_call_id": message.tool_call_id}
    return {"role": message.role, "content": message.content}


def to_model_messages(messages: list[ChatMessage]) -> list[dict[str, Any]]:
    return [to_model_message(m) for m in messages]
