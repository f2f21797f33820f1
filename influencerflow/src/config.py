"""Configuration for the InfluencerFlow chat backend."""

import os
from dotenv import load_dotenv

# Load local env files if present (never commit these).
# - `.env.local` is convenient for local dev.
# - `.env` is the default for docker-compose variable substitution.
load_dotenv(dotenv_path=".env.local", override=False)
load_dotenv(dotenv_path=".env", override=False)

# Environment name (used for warnings/behavior toggles)
ENV = os.getenv("ENV", "development")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Database URL (async driver recommended: postgresql+asyncpg://...)
DATABASE_URL = os.getenv("DATABASE_URL")

# Auth: tokens are verified with JWT_SECRET. ALLOW_NO_AUTH is for local dev only
# and accepts unverified tokens or an X-User-Id header.
ALLOW_NO_AUTH = os.getenv("ALLOW_NO_AUTH", "false").lower() == "true"
JWT_SECRET = os.getenv("JWT_SECRET", "")


def _parse_csv_list(value: str | None) -> list[str] | None:
    if not value:
        return None
    items = [v.strip() for v in value.split(",")]
    items = [v for v in items if v]
    return items or None


JWT_ALGORITHMS = _parse_csv_list(os.getenv("JWT_ALGORITHMS")) or ["HS256"]

# OpenAI-compatible chat completions endpoint (Groq by default)
LLM_API_KEY = os.getenv("LLM_API_KEY") or os.getenv("GROQ_API_KEY")
LLM_API_URL = os.getenv("LLM_API_URL", "https://api.groq.com/openai/v1/chat/completions")

# Pass 1 routes requests to tools (cheap, deterministic); pass 2 summarizes
# tool results for the user (fluent prose). They may use different models.
TOOL_MODEL = os.getenv("TOOL_MODEL", "llama-3.3-70b-versatile")
SUMMARY_MODEL = os.getenv("SUMMARY_MODEL", TOOL_MODEL)
OUTREACH_MODEL = os.getenv("OUTREACH_MODEL", TOOL_MODEL)

TOOL_TEMPERATURE = float(os.getenv("TOOL_TEMPERATURE", "0.1"))
TOOL_MAX_TOKENS = int(os.getenv("TOOL_MAX_TOKENS", "512"))
SUMMARY_TEMPERATURE = float(os.getenv("SUMMARY_TEMPERATURE", "0.3"))
SUMMARY_MAX_TOKENS = int(os.getenv("SUMMARY_MAX_TOKENS", "1024"))
SUMMARY_CONTEXT_MESSAGES = int(os.getenv("SUMMARY_CONTEXT_MESSAGES", "6"))
OUTREACH_TEMPERATURE = float(os.getenv("OUTREACH_TEMPERATURE", "0.7"))

# LLM client hardening knobs
LLM_MAX_CONCURRENCY = int(os.getenv("LLM_MAX_CONCURRENCY", "6"))
LLM_MAX_RETRIES = int(os.getenv("LLM_MAX_RETRIES", "2"))
LLM_RETRY_BASE_SECONDS = float(os.getenv("LLM_RETRY_BASE_SECONDS", "0.5"))
LLM_TIMEOUT_SECONDS = float(os.getenv("LLM_TIMEOUT_SECONDS", "60.0"))
LLM_AUTH_COOLDOWN_SECONDS = int(os.getenv("LLM_AUTH_COOLDOWN_SECONDS", "60"))

# Tool execution limits
TOOL_TIMEOUT_SECONDS = float(os.getenv("TOOL_TIMEOUT_SECONDS", "120"))
MAX_CONCURRENT_TOOL_CALLS = int(os.getenv("MAX_CONCURRENT_TOOL_CALLS", "8"))

# Conversation store
CHAT_DATA_DIR = os.getenv("CHAT_DATA_DIR", "data")
CONVERSATION_TTL_SECONDS = int(os.getenv("CONVERSATION_TTL_SECONDS", str(7 * 24 * 60 * 60)))
MAX_MESSAGES_PER_CONVERSATION = int(os.getenv("MAX_MESSAGES_PER_CONVERSATION", "50"))
MAX_CONVERSATIONS = int(os.getenv("MAX_CONVERSATIONS", "1000"))
CONVERSATION_SAVE_DEBOUNCE_SECONDS = float(os.getenv("CONVERSATION_SAVE_DEBOUNCE_SECONDS", "1.0"))
MAX_CHAT_MESSAGE_CHARS = int(os.getenv("MAX_CHAT_MESSAGE_CHARS", "2000"))

# Creator discovery search API
DISCOVERY_API_URL = os.getenv("DISCOVERY_API_URL", "https://dashboard.ylytic.com/ylytic/admin/api/v1/search")
DISCOVERY_API_KEY = os.getenv("DISCOVERY_API_KEY") or os.getenv("YLYTIC_API_KEY", "")
DISCOVERY_MOCKED = os.getenv("DISCOVERY_MOCKED", "false").lower() == "true"
DISCOVERY_TIMEOUT_SECONDS = float(os.getenv("DISCOVERY_TIMEOUT_SECONDS", "30"))

# Outbound email (Resend HTTP API)
RESEND_API_KEY = os.getenv("RESEND_API_KEY", "")
RESEND_API_URL = os.getenv("RESEND_API_URL", "https://api.resend.com/emails")
EMAIL_FROM = os.getenv("EMAIL_FROM", "outreach@influencerflow.local")
EMAIL_TIMEOUT_SECONDS = float(os.getenv("EMAIL_TIMEOUT_SECONDS", "30"))
# Recipient for creators the search API returned without an address (empty: skip them)
OUTREACH_FALLBACK_EMAIL = os.getenv("OUTREACH_FALLBACK_EMAIL", "").strip()

# Used for negotiation links in outreach emails
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

# Defaults for records created from chat
DEFAULT_CAMPAIGN_BUDGET = float(os.getenv("DEFAULT_CAMPAIGN_BUDGET", "10000"))
DEFAULT_CREATOR_BUDGET = float(os.getenv("DEFAULT_CREATOR_BUDGET", "1000"))


def cors_allow_origins() -> list[str]:
    return _parse_csv_list(os.getenv("CORS_ALLOW_ORIGINS")) or ["http://localhost:3000"]
