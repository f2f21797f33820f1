from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ...config import MAX_CHAT_MESSAGE_CHARS


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChatRequest(_CamelModel):
    """A user message for the chat agent."""

    message: str = Field(min_length=1, max_length=MAX_CHAT_MESSAGE_CHARS)
    conversation_id: Optional[str] = Field(default=None, max_length=128, pattern=r"^[A-Za-z0-9_-]+$")


class ToolResult(_CamelModel):
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None


class ToolCallResult(_CamelModel):
    tool_call_id: str
    function_name: str
    result: ToolResult


class ChatResponse(_CamelModel):
    message: str
    tool_calls: List[ToolCallResult] = Field(default_factory=list)
    conversation_id: str
    is_error: bool = False
    retryable: Optional[bool] = None
    error_type: Optional[str] = None


class ConversationMessages(_CamelModel):
    conversation_id: str
    messages: List[dict[str, Any]]


class DeleteConversationResponse(_CamelModel):
    conversation_id: str
    deleted: bool


class ConversationStat(_CamelModel):
    id: str
    owner_id: str
    message_count: int
    last_updated: str


class ChatStats(_CamelModel):
    total_conversations: int
    conversations: List[ConversationStat]
