"""Outreach email generation (LLM) and delivery (Resend HTTP API)."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

import httpx

from .. import config
from ..engine import llm
from ..engine.prompts import OUTREACH_SYSTEM_PROMPT, outreach_user_prompt
from ..utils.redact import redact_secrets

logger = logging.getLogger(__name__)


class EmailSendError(RuntimeError):
    pass


class OutreachGenerationError(RuntimeError):
    pass


def text_to_html(text: str) -> str:
    return text.replace("\n", "<br>")


class EmailSender:
    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        api_key: str | None = None,
        api_url: str | None = None,
        default_from: str | None = None,
        timeout_seconds: float | None = None,
    ):
        self._client = client
        self._api_key = api_key if api_key is not None else config.RESEND_API_KEY
        self._api_url = api_url or config.RESEND_API_URL
        self._default_from = default_from or config.EMAIL_FROM
        self._timeout = timeout_seconds if timeout_seconds is not None else config.EMAIL_TIMEOUT_SECONDS

    async def send(
        self,
        *,
        to: str,
        subject: str,
        text: str,
        html: Optional[str] = None,
        from_address: Optional[str] = None,
    ) -> Optional[str]:
        """Send one email. Returns the provider's email id; raises EmailSendError."""
        if not self._api_key:
            raise EmailSendError("Email delivery is not configured (RESEND_API_KEY missing)")
        if not to:
            raise EmailSendError("Recipient address is required")
        if not text and not html:
            raise EmailSendError("Email must have either HTML or text content")

        payload: dict[str, Any] = {
            "from": from_address or self._default_from,
            "to": [to],
            "subject": subject,
            "text": text,
            "html": html or text_to_html(text),
        }
        client = self._client or httpx.AsyncClient(timeout=self._timeout)
        try:
            resp = await client.post(
                self._api_url,
                json=payload,
                headers={"Authorization": f"Bearer {self._api_key}"},
                timeout=self._timeout,
            )
        except httpx.HTTPError as e:
            raise EmailSendError(redact_secrets(f"Email request failed: {e!r}")) from e
        finally:
            if self._client is None:
                await client.aclose()

        if resp.status_code >= 400:
            detail = redact_secrets(resp.text[:300])
            logger.warning("email_send_failed to=%s status=%s detail=%s", to, resp.status_code, detail)
            raise EmailSendError(f"Failed to send email ({resp.status_code})")

        try:
            email_id = (resp.json() or {}).get("id")
        except ValueError:
            email_id = None
        logger.info("email_sent to=%s id=%s", to, email_id)
        return email_id


async def generate_outreach_email(email_data: dict[str, Any]) -> dict[str, str]:
    """Ask the model for a personalized `{subject, body}` email."""
    messages = [
        {"role": "system", "content": OUTREACH_SYSTEM_PROMPT},
        {"role": "user", "content": outreach_user_prompt(email_data)},
    ]
    result = await llm.chat_completion(
        config.OUTREACH_MODEL,
        messages,
        temperature=config.OUTREACH_TEMPERATURE,
        response_format={"type": "json_object"},
    )
    if not result.ok or not result.content:
        raise OutreachGenerationError(result.error_text or "Failed to generate email content")

    try:
        parsed = json.loads(result.content)
    except json.JSONDecodeError as e:
        raise OutreachGenerationError("Failed to parse email response as JSON") from e

    subject = parsed.get("subject") if isinstance(parsed, dict) else None
    body = parsed.get("body") if isinstance(parsed, dict) else None
    if not isinstance(subject, str) or not isinstance(body, str) or not subject or not body:
        raise OutreachGenerationError("Invalid email format: missing subject or body")
    return {"subject": subject, "body": body}
