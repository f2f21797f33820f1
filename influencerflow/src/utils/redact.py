from __future__ import annotations

import re


_RE_BEARER = re.compile(r"(?i)\bBearer\s+([A-Za-z0-9._\-+/=]{8,})")
_RE_OPENAI_SK = re.compile(r"\bsk-[A-Za-z0-9_\-]{10,}\b")
_RE_GROQ_KEY = re.compile(r"\bgsk_[A-Za-z0-9]{16,}\b")
_RE_RESEND_KEY = re.compile(r"\bre_[A-Za-z0-9_]{16,}\b")
_RE_JWT = re.compile(r"\beyJ[A-Za-z0-9_\-]{8,}\.[A-Za-z0-9_\-]{8,}\.[A-Za-z0-9_\-]{8,}\b")


def redact_secrets(text: str) -> str:
    """
    Best-effort secret redaction for logs and error text surfaced to clients.

    NOTE: Do not rely on this as the only control; also avoid logging secrets in the first place.
    """
    if not text:
        return text

    out = text
    out = _RE_BEARER.sub("Bearer [REDACTED]", out)
    out = _RE_JWT.sub("[REDACTED]", out)
    out = _RE_GROQ_KEY.sub("[REDACTED]", out)
    out = _RE_RESEND_KEY.sub("[REDACTED]", out)
    out = _RE_OPENAI_SK.sub("[REDACTED]", out)
    return out
