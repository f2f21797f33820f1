"""File-backed, owner-scoped chat conversation store.

Conversations live in memory and are mirrored to disk as one JSON file per
conversation plus one owner -> conversation mapping file. Mutations mark the
conversation dirty and schedule a debounced background flush; callers that
need the write on disk (shutdown, tests) await `flush()`. File writes run in a
worker thread. `load()` is synchronous and meant for startup.

On load the conversation files are authoritative: the owner map is read and
compared against them, and rewritten when it disagrees.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import uuid
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from .. import config
from ..engine.schemas import ChatMessage, Role, SystemMessage, ToolCall, build_message, utcnow

logger = logging.getLogger(__name__)


class ConversationNotFound(LookupError):
    def __init__(self, conversation_id: str):
        super().__init__(f"Conversation {conversation_id} not found")
        self.conversation_id = conversation_id


class Conversation(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    owner_id: str
    messages: list[ChatMessage] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ConversationStore:
    def __init__(
        self,
        data_dir: str | os.PathLike[str] | None = None,
        *,
        ttl_seconds: int | None = None,
        max_messages: int | None = None,
        max_conversations: int | None = None,
        save_debounce_seconds: float | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        root = Path(data_dir if data_dir is not None else config.CHAT_DATA_DIR)
        self._conversations_dir = root / "conversations"
        self._owner_map_path = root / "owner-conversations.json"
        self._ttl = timedelta(seconds=ttl_seconds if ttl_seconds is not None else config.CONVERSATION_TTL_SECONDS)
        self._max_messages = max(2, max_messages if max_messages is not None else config.MAX_MESSAGES_PER_CONVERSATION)
        self._max_conversations = max(
            1, max_conversations if max_conversations is not None else config.MAX_CONVERSATIONS
        )
        self._debounce = (
            save_debounce_seconds if save_debounce_seconds is not None else config.CONVERSATION_SAVE_DEBOUNCE_SECONDS
        )
        self._clock = clock

        self._conversations: dict[str, Conversation] = {}
        self._owners: dict[str, str] = {}
        self._dirty: set[str] = set()
        self._owners_dirty = False
        self._flush_task: asyncio.Task[None] | None = None
        self._flush_lock = asyncio.Lock()

    # -------------------------
    # Identity / paths
    # -------------------------

    @staticmethod
    def generate_conversation_id() -> str:
        return f"chat_{uuid.uuid4().hex}"

    def ensure_data_dir(self) -> None:
        self._conversations_dir.mkdir(parents=True, exist_ok=True)

    def get_conversation_path(self, conversation_id: str) -> Path:
        # Ids come from clients; keep them from escaping the data directory.
        safe = "".join(ch for ch in conversation_id if ch.isalnum() or ch in "-_")
        return self._conversations_dir / f"{safe}.json"

    # -------------------------
    # Public API
    # -------------------------

    def create_conversation(self, conversation_id: str, owner_id: str, system_prompt: str) -> Conversation:
        now = self._clock()
        previous_id = self._owners.get(owner_id)
        if previous_id and previous_id != conversation_id:
            logger.info("conversation_superseded owner=%s old=%s new=%s", owner_id, previous_id, conversation_id)
            self._remove(previous_id)

        conversation = Conversation(
            id=conversation_id,
            owner_id=owner_id,
            messages=[SystemMessage(content=system_prompt, timestamp=now)],
            created_at=now,
            updated_at=now,
        )
        self._conversations[conversation_id] = conversation
        self._owners[owner_id] = conversation_id
        self._owners_dirty = True
        self._mark_dirty(conversation_id)
        self._enforce_global_cap()
        return conversation

    def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            return None
        if self._is_expired(conversation):
            logger.info("conversation_expired id=%s owner=%s", conversation_id, conversation.owner_id)
            self._remove(conversation_id)
            return None
        return conversation

    def get_owner_conversation(self, owner_id: str) -> Optional[Conversation]:
        conversation_id = self._owners.get(owner_id)
        if not conversation_id:
            return None
        return self.get_conversation(conversation_id)

    def get_or_create_for_owner(self, owner_id: str, system_prompt: str) -> Conversation:
        conversation = self.get_owner_conversation(owner_id)
        if conversation is not None:
            return conversation
        return self.create_conversation(self.generate_conversation_id(), owner_id, system_prompt)

    def add_message(
        self,
        conversation_id: str,
        role: Role,
        content: str,
        tool_calls: Optional[list[ToolCall | dict[str, Any]]] = None,
        tool_call_id: Optional[str] = None,
    ) -> ChatMessage:
        conversation = self.get_conversation(conversation_id)
        if conversation is None:
            raise ConversationNotFound(conversation_id)

        message = build_message(role, content, tool_calls=tool_calls, tool_call_id=tool_call_id)
        message.timestamp = self._clock()
        conversation.messages.append(message)
        conversation.updated_at = message.timestamp

        if len(conversation.messages) > self._max_messages:
            # Index 0 is always the system message.
            conversation.messages = [conversation.messages[0], *conversation.messages[-(self._max_messages - 1) :]]

        self._mark_dirty(conversation_id)
        return message

    def get_messages(self, conversation_id: str) -> list[ChatMessage]:
        conversation = self.get_conversation(conversation_id)
        return list(conversation.messages) if conversation else []

    def delete_conversation(self, conversation_id: str) -> bool:
        if conversation_id not in self._conversations:
            return False
        self._remove(conversation_id)
        self._schedule_flush()
        return True

    def stats(self) -> dict[str, Any]:
        for conversation_id in list(self._conversations):
            self.get_conversation(conversation_id)
        items = sorted(self._conversations.values(), key=lambda c: c.updated_at, reverse=True)
        return {
            "total_conversations": len(items),
            "conversations": [
                {
                    "id": c.id,
                    "owner_id": c.owner_id,
                    "message_count": len(c.messages),
                    "last_updated": c.updated_at.isoformat(),
                }
                for c in items
            ],
        }

    @property
    def pending_writes(self) -> int:
        return len(self._dirty) + (1 if self._owners_dirty else 0)

    # -------------------------
    # Persistence
    # -------------------------

    def load(self) -> int:
        """Rebuild in-memory state from disk. Returns the number of live conversations."""
        self.ensure_data_dir()
        self._conversations.clear()
        self._owners.clear()
        recorded = self._read_owner_map()

        for path in sorted(self._conversations_dir.glob("*.json")):
            try:
                conversation = Conversation.model_validate_json(path.read_text(encoding="utf-8"))
            except (OSError, ValidationError, ValueError):
                logger.exception("conversation_load_failed path=%s", path)
                continue

            if self._is_expired(conversation):
                self._unlink(path)
                continue
            if not conversation.messages or conversation.messages[0].role != "system":
                logger.warning("conversation_load_skipped_no_system id=%s", conversation.id)
                continue

            existing_id = self._owners.get(conversation.owner_id)
            existing = self._conversations.get(existing_id) if existing_id else None
            if existing is not None:
                # One live conversation per owner: keep the most recently updated.
                older, newer = (
                    (existing, conversation) if conversation.updated_at > existing.updated_at else (conversation, existing)
                )
                logger.info("conversation_duplicate_owner owner=%s dropped=%s", conversation.owner_id, older.id)
                self._conversations.pop(older.id, None)
                self._unlink(self.get_conversation_path(older.id))
                conversation = newer

            self._conversations[conversation.id] = conversation
            self._owners[conversation.owner_id] = conversation.id

        self._enforce_global_cap()
        stale = sorted(o for o, c in recorded.items() if self._owners.get(o) != c)
        missing = sorted(o for o in self._owners if o not in recorded)
        if stale or missing:
            logger.warning("owner_map_mismatch stale=%s missing=%s", len(stale), len(missing))
        self._owners_dirty = recorded != self._owners
        logger.info("Loaded %s conversations from storage", len(self._conversations))
        return len(self._conversations)

    async def flush(self) -> None:
        async with self._flush_lock:
            if not self._dirty and not self._owners_dirty:
                return
            self.ensure_data_dir()
            dirty, self._dirty = self._dirty, set()
            for conversation_id in sorted(dirty):
                conversation = self._conversations.get(conversation_id)
                if conversation is None:
                    continue
                payload = conversation.model_dump(mode="json", by_alias=True, exclude_none=True)
                path = self.get_conversation_path(conversation_id)
                try:
                    await asyncio.to_thread(self._write_json, path, payload)
                except OSError:
                    logger.exception("conversation_save_failed id=%s", conversation_id)
                    self._dirty.add(conversation_id)
                    continue
                # Deleted while the write was in flight.
                if conversation_id not in self._conversations:
                    self._unlink(path)

            if self._owners_dirty:
                self._owners_dirty = False
                owners = dict(sorted(self._owners.items()))
                try:
                    await asyncio.to_thread(self._write_json, self._owner_map_path, owners)
                except OSError:
                    logger.exception("owner_map_save_failed path=%s", self._owner_map_path)
                    self._owners_dirty = True

    async def close(self) -> None:
        task = self._flush_task
        self._flush_task = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self.flush()

    # -------------------------
    # Internals
    # -------------------------

    def _is_expired(self, conversation: Conversation) -> bool:
        return self._clock() - conversation.updated_at > self._ttl

    def _mark_dirty(self, conversation_id: str) -> None:
        self._dirty.add(conversation_id)
        self._schedule_flush()

    def _schedule_flush(self) -> None:
        if self._flush_task is not None and not self._flush_task.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No event loop (sync callers); writes wait for an explicit flush().
            return
        self._flush_task = loop.create_task(self._debounced_flush())

    async def _debounced_flush(self) -> None:
        await asyncio.sleep(self._debounce)
        try:
            await self.flush()
        except Exception:
            logger.exception("conversation_background_flush_failed")

    def _remove(self, conversation_id: str) -> None:
        conversation = self._conversations.pop(conversation_id, None)
        self._dirty.discard(conversation_id)
        if conversation is not None and self._owners.get(conversation.owner_id) == conversation_id:
            self._owners.pop(conversation.owner_id, None)
            self._owners_dirty = True
        self._unlink(self.get_conversation_path(conversation_id))

    def _enforce_global_cap(self) -> None:
        overflow = len(self._conversations) - self._max_conversations
        if overflow <= 0:
            return
        oldest = sorted(self._conversations.values(), key=lambda c: c.updated_at)[:overflow]
        for conversation in oldest:
            logger.info("conversation_evicted id=%s owner=%s", conversation.id, conversation.owner_id)
            self._remove(conversation.id)

    @staticmethod
    def _unlink(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError:
            logger.exception("conversation_file_delete_failed path=%s", path)

    def _read_owner_map(self) -> dict[str, str]:
        try:
            raw = json.loads(self._owner_map_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError):
            logger.exception("owner_map_load_failed path=%s", self._owner_map_path)
            return {}
        if not isinstance(raw, dict):
            logger.warning("owner_map_invalid path=%s", self._owner_map_path)
            return {}
        return {str(k): v for k, v in raw.items() if isinstance(v, str)}

    @staticmethod
    def _write_json(path: Path, payload: Any) -> None:
        tmp = path.with_suffix(path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)
        os.replace(tmp, path)
