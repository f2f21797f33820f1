from fastapi import APIRouter, Depends

from ..schemas.chat import (
    ChatRequest,
    ChatStats,
    ConversationMessages,
    DeleteConversationResponse,
)
from ...services.auth import CurrentUser, get_current_user
from ...services.chat_runner import ChatRunner
from ...services.conversation_store import ConversationStore
from ...services.store_factory import get_chat_runner, get_conversation_store


router = APIRouter(prefix="/chat", tags=["chat"])


def _dump(model) -> dict:
    return model.model_dump(mode="json", by_alias=True, exclude_none=True)


@router.post("/message")
async def send_message(
    request: ChatRequest,
    user: CurrentUser = Depends(get_current_user),
    runner: ChatRunner = Depends(get_chat_runner),
):
    """Run one chat turn. Upstream failures come back as 200 with isError set."""
    response = await runner.handle_message(user.id, request.message, request.conversation_id)
    return _dump(response)


@router.get("/conversation/{conversation_id}")
async def get_conversation(
    conversation_id: str,
    user: CurrentUser = Depends(get_current_user),
    store: ConversationStore = Depends(get_conversation_store),
):
    """Stored messages of one of the caller's conversations (empty if unknown)."""
    conversation = store.get_conversation(conversation_id)
    messages = conversation.messages if conversation and conversation.owner_id == user.id else []
    return _dump(ConversationMessages(conversation_id=conversation_id, messages=[_dump(m) for m in messages]))


@router.delete("/conversation/{conversation_id}")
async def delete_conversation(
    conversation_id: str,
    user: CurrentUser = Depends(get_current_user),
    store: ConversationStore = Depends(get_conversation_store),
):
    conversation = store.get_conversation(conversation_id)
    deleted = False
    if conversation is not None and conversation.owner_id == user.id:
        deleted = store.delete_conversation(conversation_id)
    return _dump(DeleteConversationResponse(conversation_id=conversation_id, deleted=deleted))


@router.get("/stats")
async def conversation_stats(
    user: CurrentUser = Depends(get_current_user),
    store: ConversationStore = Depends(get_conversation_store),
):
    return _dump(ChatStats.model_validate(store.stats()))
