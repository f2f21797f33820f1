"""Two-pass tool-calling chat turn.

Pass 1 sends the conversation plus the tool definitions to the tool model.
If it asks for tools, they run concurrently and their results are stored as
tool messages; pass 2 then asks the summary model to present the results.
Every failure ends up in a ChatResponse; `handle_message` never raises.
"""

from __future__ import annotations

import asyncio
import enum
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from .. import config
from ..app.schemas.chat import ChatResponse, ToolCallResult
from ..app.tools_runtime import call_tool_with_guards
from ..engine.llm import LLMResult, chat_completion
from ..engine.prompts import SUMMARY_SYSTEM_PROMPT, TOOL_SYSTEM_PROMPT
from ..engine.schemas import AssistantMessage, ChatMessage, ToolMessage, to_model_messages
from ..tools.handlers import ToolContext
from ..tools.registry import TOOL_DEFINITIONS
from .conversation_store import Conversation, ConversationStore
from .discovery import DiscoveryClient
from .email import EmailSender, generate_outreach_email

logger = logging.getLogger(__name__)


GENERIC_ERROR_MESSAGE = "Something went wrong while processing your message. Please try again."
SUMMARY_FALLBACK_MESSAGE = (
    "I completed the requested actions, but couldn't put together a summary right now. "
    "The results are shown below."
)


class TurnState(str, enum.Enum):
    RECEIVED = "received"
    MODEL_CALL_1 = "model_call_1"
    TOOLS_EXECUTING = "tools_executing"
    MODEL_CALL_2 = "model_call_2"
    PERSISTED = "persisted"
    RESPONDED = "responded"


@dataclass(frozen=True)
class LLMFailure:
    kind: str
    message: str
    retryable: bool


def classify_llm_failure(result: LLMResult) -> LLMFailure:
    status = result.status_code
    if status == 429:
        return LLMFailure(
            "rate_limited",
            "I've hit my request limit for the moment. Please try again in a few minutes.",
            True,
        )
    if status in (401, 403):
        return LLMFailure(
            "unauthorized",
            "The assistant is not configured correctly right now. Please contact support.",
            False,
        )
    if status in (400, 413, 422):
        return LLMFailure("bad_request", "I couldn't process that request. Please try rephrasing it.", True)
    if result.timed_out:
        return LLMFailure("timeout", "The assistant took too long to respond. Please try again.", True)
    return LLMFailure(
        "upstream_error",
        "I'm experiencing some technical difficulties. Please try again in a moment.",
        True,
    )


def model_context(messages: list[ChatMessage]) -> list[ChatMessage]:
    """Drop tool messages whose originating assistant message is no longer in `messages`."""
    seen_call_ids: set[str] = set()
    kept: list[ChatMessage] = []
    for message in messages:
        if isinstance(message, AssistantMessage):
            seen_call_ids.update(c.id for c in message.tool_calls or [])
        elif isinstance(message, ToolMessage) and message.tool_call_id not in seen_call_ids:
            continue
        kept.append(message)
    return kept


def summary_window(messages: list[ChatMessage], size: int) -> list[ChatMessage]:
    """The last `size` messages, widened so no tool message loses its assistant message."""
    start = max(0, len(messages) - max(1, size))
    while start > 0 and isinstance(messages[start], ToolMessage):
        start -= 1
    return messages[start:]


class ChatRunner:
    def __init__(
        self,
        store: ConversationStore,
        *,
        discovery: DiscoveryClient,
        email_sender: EmailSender,
        write_outreach_email: Optional[Callable[[dict[str, Any]], Awaitable[dict[str, str]]]] = None,
        session_factory: Optional[Callable[[], Any]] = None,
    ):
        self._store = store
        self._discovery = discovery
        self._email_sender = email_sender
        self._write_outreach_email = write_outreach_email or generate_outreach_email
        self._session_factory = session_factory

    async def handle_message(
        self,
        owner_id: str,
        message: str,
        conversation_id: Optional[str] = None,
    ) -> ChatResponse:
        resolved_id = conversation_id
        try:
            conversation = self._resolve_conversation(owner_id, conversation_id)
            resolved_id = conversation.id
            return await self._run_turn(conversation, message)
        except Exception:
            logger.exception("chat_turn_failed owner=%s conversation=%s", owner_id, resolved_id)
            return ChatResponse(
                message=GENERIC_ERROR_MESSAGE,
                tool_calls=[],
                conversation_id=resolved_id or self._store.generate_conversation_id(),
                is_error=True,
                retryable=True,
                error_type="internal_error",
            )

    def _resolve_conversation(self, owner_id: str, conversation_id: Optional[str]) -> Conversation:
        if conversation_id:
            existing = self._store.get_conversation(conversation_id)
            if existing is None:
                return self._store.create_conversation(conversation_id, owner_id, TOOL_SYSTEM_PROMPT)
            if existing.owner_id == owner_id:
                return existing
            logger.warning(
                "conversation_owner_mismatch owner=%s conversation=%s", owner_id, conversation_id
            )
        return self._store.get_or_create_for_owner(owner_id, TOOL_SYSTEM_PROMPT)

    def _tool_context(self, owner_id: str, conversation_id: str) -> ToolContext:
        ctx = ToolContext(
            owner_id=owner_id,
            conversation_id=conversation_id,
            store=self._store,
            discovery=self._discovery,
            email_sender=self._email_sender,
            write_outreach_email=self._write_outreach_email,
        )
        if self._session_factory is not None:
            ctx.session_factory = self._session_factory
        return ctx

    async def _run_turn(self, conversation: Conversation, message: str) -> ChatResponse:
        cid = conversation.id
        owner_id = conversation.owner_id
        self._store.add_message(cid, "user", message)

        state = TurnState.MODEL_CALL_1
        first = await chat_completion(
            config.TOOL_MODEL,
            to_model_messages(model_context(self._store.get_messages(cid))),
            tools=TOOL_DEFINITIONS,
            tool_choice="auto",
            temperature=config.TOOL_TEMPERATURE,
            max_tokens=config.TOOL_MAX_TOKENS,
        )
        if not first.ok:
            failure = classify_llm_failure(first)
            logger.warning(
                "chat_model_failed owner=%s conversation=%s state=%s kind=%s status=%s",
                owner_id,
                cid,
                state.value,
                failure.kind,
                first.status_code,
            )
            return ChatResponse(
                message=failure.message,
                tool_calls=[],
                conversation_id=cid,
                is_error=True,
                retryable=failure.retryable,
                error_type=failure.kind,
            )

        if not first.tool_calls:
            content = first.content or ""
            self._store.add_message(cid, "assistant", content)
            logger.info("chat_turn_done owner=%s conversation=%s tools=0", owner_id, cid)
            return ChatResponse(message=content, tool_calls=[], conversation_id=cid)

        self._store.add_message(cid, "assistant", first.content or "", tool_calls=first.tool_calls)

        state = TurnState.TOOLS_EXECUTING
        ctx = self._tool_context(owner_id, cid)
        tool_results = await asyncio.gather(
            *(self._execute_and_record(ctx, call) for call in first.tool_calls)
        )

        state = TurnState.MODEL_CALL_2
        window = summary_window(model_context(self._store.get_messages(cid)[1:]), config.SUMMARY_CONTEXT_MESSAGES)
        second = await chat_completion(
            config.SUMMARY_MODEL,
            [{"role": "system", "content": SUMMARY_SYSTEM_PROMPT}, *to_model_messages(window)],
            temperature=config.SUMMARY_TEMPERATURE,
            max_tokens=config.SUMMARY_MAX_TOKENS,
        )

        if second.ok:
            text = second.content or first.content or SUMMARY_FALLBACK_MESSAGE
            response = ChatResponse(message=text, tool_calls=tool_results, conversation_id=cid)
        else:
            failure = classify_llm_failure(second)
            logger.warning(
                "chat_summary_failed owner=%s conversation=%s kind=%s status=%s",
                owner_id,
                cid,
                failure.kind,
                second.status_code,
            )
            text = SUMMARY_FALLBACK_MESSAGE
            # Tool side effects already happened; resending the message would repeat them.
            response = ChatResponse(
                message=text,
                tool_calls=tool_results,
                conversation_id=cid,
                is_error=True,
                retryable=False,
                error_type=failure.kind,
            )

        self._store.add_message(cid, "assistant", text)
        state = TurnState.PERSISTED
        logger.info(
            "chat_turn_done owner=%s conversation=%s tools=%s state=%s",
            owner_id,
            cid,
            len(tool_results),
            state.value,
        )
        return response

    async def _execute_and_record(self, ctx: ToolContext, tool_call: dict[str, Any]) -> ToolCallResult:
        outcome = await call_tool_with_guards(ctx, tool_call)
        # Tool messages are appended as each call finishes.
        self._store.add_message(
            ctx.conversation_id,
            "tool",
            json.dumps(outcome["result"], ensure_ascii=False, default=str),
            tool_call_id=outcome["tool_call_id"],
        )
        return ToolCallResult.model_validate(outcome)
