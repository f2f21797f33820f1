"""OpenAI-compatible chat completions client (hardened, tool-calling aware)."""

from __future__ import annotations

import asyncio
import logging
import random
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from ..config import (
    LLM_API_KEY,
    LLM_API_URL,
    LLM_AUTH_COOLDOWN_SECONDS,
    LLM_MAX_CONCURRENCY,
    LLM_MAX_RETRIES,
    LLM_RETRY_BASE_SECONDS,
    LLM_TIMEOUT_SECONDS,
)
from ..utils.redact import redact_secrets

logger = logging.getLogger(__name__)


@dataclass
class LLMResult:
    ok: bool
    model: str
    call_id: uuid.UUID
    content: Optional[str] = None
    tool_calls: List[Dict[str, Any]] = field(default_factory=list)
    finish_reason: Optional[str] = None
    usage: Optional[dict[str, Any]] = None
    latency_ms: Optional[int] = None
    status_code: Optional[int] = None
    timed_out: bool = False
    error_text: Optional[str] = None


_SEMAPHORE = asyncio.Semaphore(max(1, LLM_MAX_CONCURRENCY))
_CLIENT: httpx.AsyncClient | None = None
_AUTH_INVALID_UNTIL: float = 0.0


def set_client(client: httpx.AsyncClient | None) -> None:
    global _CLIENT
    _CLIENT = client


def _get_client(timeout_seconds: float) -> httpx.AsyncClient:
    global _CLIENT
    if _CLIENT is not None:
        return _CLIENT
    logger.warning("LLM httpx client not set via lifespan; creating a fallback client.")
    _CLIENT = httpx.AsyncClient(timeout=timeout_seconds)
    return _CLIENT


def _should_retry(status_code: Optional[int]) -> bool:
    if status_code is None:
        return True
    if status_code == 429:
        return True
    if 500 <= status_code <= 599:
        return True
    return False


async def _backoff(http_attempt: int) -> None:
    base = LLM_RETRY_BASE_SECONDS * (2**http_attempt)
    await asyncio.sleep(base + random.random() * base)


def _normalize_tool_calls(raw: Any) -> List[Dict[str, Any]]:
    if not isinstance(raw, list):
        return []
    calls: list[dict[str, Any]] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        fn = item.get("function") or {}
        calls.append(
            {
                "id": str(item.get("id") or f"call_{uuid.uuid4().hex[:12]}"),
                "type": "function",
                "function": {
                    "name": str(fn.get("name") or ""),
                    "arguments": fn.get("arguments") if isinstance(fn.get("arguments"), str) else "{}",
                },
            }
        )
    return calls


async def chat_completion(
    model: str,
    messages: List[Dict[str, Any]],
    *,
    tools: Optional[List[Dict[str, Any]]] = None,
    tool_choice: Optional[str] = None,
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
    response_format: Optional[Dict[str, Any]] = None,
    timeout_seconds: Optional[float] = None,
    call_id: uuid.UUID | None = None,
) -> LLMResult:
    global _AUTH_INVALID_UNTIL
    call_id = call_id or uuid.uuid4()
    if time.time() < _AUTH_INVALID_UNTIL:
        return LLMResult(
            ok=False,
            model=model,
            call_id=call_id,
            latency_ms=0,
            status_code=401,
            error_text="LLM credentials invalid (cooldown)",
        )
    headers = {
        "Authorization": f"Bearer {LLM_API_KEY}",
        "Content-Type": "application/json",
    }

    payload: dict[str, Any] = {"model": model, "messages": messages}
    if tools:
        payload["tools"] = tools
        payload["tool_choice"] = tool_choice or "auto"
    if temperature is not None:
        payload["temperature"] = temperature
    if max_tokens is not None:
        payload["max_tokens"] = max_tokens
    if response_format is not None:
        payload["response_format"] = response_format

    timeout = timeout_seconds if timeout_seconds is not None else LLM_TIMEOUT_SECONDS
    client = _get_client(timeout)

    async with _SEMAPHORE:
        last_error: Optional[str] = None
        last_status: Optional[int] = None
        timed_out = False
        for http_attempt in range(LLM_MAX_RETRIES + 1):
            start = time.monotonic()
            try:
                resp = await client.post(LLM_API_URL, headers=headers, json=payload, timeout=timeout)
                latency_ms = int((time.monotonic() - start) * 1000)

                status_code = resp.status_code
                if status_code in (401, 403):
                    _AUTH_INVALID_UNTIL = time.time() + max(1, int(LLM_AUTH_COOLDOWN_SECONDS))
                    logger.error("llm_auth_error model=%s status=%s", model, status_code)
                    return LLMResult(
                        ok=False,
                        model=model,
                        call_id=call_id,
                        latency_ms=latency_ms,
                        status_code=status_code,
                        error_text=f"LLM auth error ({status_code})",
                    )

                if status_code >= 400:
                    last_status = status_code
                    last_error = redact_secrets(f"LLM HTTP {status_code}: {resp.text[:500]}")
                    if http_attempt < LLM_MAX_RETRIES and _should_retry(status_code):
                        logger.info("llm_retry model=%s status=%s attempt=%s", model, status_code, http_attempt)
                        await _backoff(http_attempt)
                        continue
                    logger.warning("llm_http_error model=%s error=%s", model, last_error)
                    return LLMResult(
                        ok=False,
                        model=model,
                        call_id=call_id,
                        latency_ms=latency_ms,
                        status_code=status_code,
                        error_text=last_error,
                    )

                data = resp.json()
                choice = (data.get("choices") or [{}])[0]
                message = choice.get("message") or {}
                usage = data.get("usage") if isinstance(data.get("usage"), dict) else None

                return LLMResult(
                    ok=True,
                    model=model,
                    call_id=call_id,
                    content=message.get("content"),
                    tool_calls=_normalize_tool_calls(message.get("tool_calls")),
                    finish_reason=choice.get("finish_reason"),
                    usage=usage,
                    latency_ms=latency_ms,
                    status_code=status_code,
                )

            except httpx.TimeoutException as e:
                timed_out = True
                last_status = None
                last_error = f"Timed out querying model {model}: {e!r}"
            except Exception as e:
                timed_out = False
                last_status = None
                last_error = redact_secrets(f"Error querying model {model}: {e}")

            if http_attempt < LLM_MAX_RETRIES:
                await _backoff(http_attempt)
                continue
            logger.warning("llm_request_failed model=%s error=%s", model, last_error)
            return LLMResult(
                ok=False,
                model=model,
                call_id=call_id,
                latency_ms=int((time.monotonic() - start) * 1000),
                status_code=None,
                timed_out=timed_out,
                error_text=last_error,
            )

        return LLMResult(
            ok=False,
            model=model,
            call_id=call_id,
            status_code=last_status,
            timed_out=timed_out,
            error_text=last_error or "Unknown LLM error",
        )
