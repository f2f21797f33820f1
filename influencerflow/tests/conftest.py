import os

# Ensure config reads these during import in tests.
os.environ.setdefault("ALLOW_NO_AUTH", "true")
os.environ.setdefault("JWT_SECRET", "")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("DISCOVERY_MOCKED", "true")
os.environ.setdefault("LLM_API_KEY", "test-key")
os.environ.setdefault("LLM_RETRY_BASE_SECONDS", "0")

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from influencerflow.src.db.models import Company
from influencerflow.src.engine import llm
from influencerflow.src.services.conversation_store import ConversationStore
from influencerflow.src.services.discovery import DiscoveryClient
from influencerflow.src.tools.handlers import ToolContext


OWNER_ID = "user-1"


@pytest_asyncio.fixture
async def engine(tmp_path):
    # A file database: tool calls open their own sessions, which need separate connections.
    test_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")

    import influencerflow.src.db.session as session_module

    session_module._ENGINE = test_engine

    async with test_engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    try:
        yield test_engine
    finally:
        await test_engine.dispose()
        session_module._ENGINE = None


@pytest_asyncio.fixture
async def session(engine):
    async with AsyncSession(engine, expire_on_commit=False) as s:
        yield s


@pytest_asyncio.fixture
async def company(session):
    c = Company(owner_user_id=OWNER_ID, name="Acme Apparel")
    session.add(c)
    await session.commit()
    return c


@pytest.fixture
def store(tmp_path):
    return ConversationStore(tmp_path / "chat", save_debounce_seconds=0.01)


class FakeEmailSender:
    def __init__(self, fail_for: set[str] | None = None):
        self.sent: list[dict] = []
        self.fail_for = fail_for or set()

    async def send(self, *, to, subject, text, html=None, from_address=None):
        from influencerflow.src.services.email import EmailSendError

        if to in self.fail_for:
            raise EmailSendError("mailbox unavailable")
        self.sent.append({"to": to, "subject": subject, "text": text, "html": html})
        return f"email_{len(self.sent)}"


class FakeOutreachWriter:
    def __init__(self):
        self.calls: list[dict] = []

    async def __call__(self, email_data):
        self.calls.append(email_data)
        name = email_data["recipient"]["name"]
        return {
            "subject": f"Let's work together, {name}",
            "body": f"Hi {name},\n\nJoin us: {email_data['negotiationLink']}\n\nBest regards",
        }


@pytest.fixture
def email_sender():
    return FakeEmailSender()


@pytest.fixture
def outreach_writer():
    return FakeOutreachWriter()


@pytest.fixture
def tool_ctx(store, email_sender, outreach_writer):
    conversation = store.create_conversation("chat_test", OWNER_ID, "system prompt")
    return ToolContext(
        owner_id=OWNER_ID,
        conversation_id=conversation.id,
        store=store,
        discovery=DiscoveryClient(mocked=True),
        email_sender=email_sender,  # type: ignore[arg-type]
        write_outreach_email=outreach_writer,
    )


@pytest.fixture(autouse=True)
def _reset_llm_state():
    llm._AUTH_INVALID_UNTIL = 0.0
    yield
    llm.set_client(None)
    llm._AUTH_INVALID_UNTIL = 0.0
