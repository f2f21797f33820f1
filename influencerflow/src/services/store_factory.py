from __future__ import annotations

from fastapi import Depends, Request

from .chat_runner import ChatRunner
from .conversation_store import ConversationStore


def get_conversation_store(request: Request) -> ConversationStore:
    return request.app.state.conversation_store


def get_chat_runner(
    request: Request,
    store: ConversationStore = Depends(get_conversation_store),
) -> ChatRunner:
    state = request.app.state
    return ChatRunner(store, discovery=state.discovery, email_sender=state.email_sender)
