from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any

from .. import config
from ..tools.handlers import ToolArgumentError, ToolContext, execute_tool, fail, parse_arguments

logger = logging.getLogger(__name__)

_TOOLS_SEMAPHORE: asyncio.Semaphore | None = None
_TOOLS_LIMIT: int | None = None


def _get_semaphore() -> asyncio.Semaphore:
    global _TOOLS_SEMAPHORE, _TOOLS_LIMIT
    limit = max(1, int(config.MAX_CONCURRENT_TOOL_CALLS))
    if _TOOLS_SEMAPHORE is None or _TOOLS_LIMIT != limit:
        _TOOLS_SEMAPHORE = asyncio.Semaphore(limit)
        _TOOLS_LIMIT = limit
    return _TOOLS_SEMAPHORE


def _args_for_log(args: dict[str, Any]) -> str:
    text = json.dumps(args, ensure_ascii=False, default=str)
    return text if len(text) <= 500 else text[:500] + "..."


async def call_tool_with_guards(ctx: ToolContext, tool_call: dict[str, Any]) -> dict[str, Any]:
    """Run one model-requested tool call. Never raises; failures become `{success: False}` results."""
    tool_call_id = str(tool_call.get("id") or "")
    function = tool_call.get("function") or {}
    name = str(function.get("name") or "")
    timeout = float(config.TOOL_TIMEOUT_SECONDS)
    started = time.monotonic()

    try:
        args = parse_arguments(function.get("arguments"))
    except ToolArgumentError as e:
        logger.warning("tool_bad_arguments tool=%s tool_call_id=%s error=%s", name, tool_call_id, e)
        result = fail(f"Invalid arguments for {name}: {e}")
    else:
        logger.info("tool_call tool=%s tool_call_id=%s args=%s", name, tool_call_id, _args_for_log(args))
        async with _get_semaphore():
            try:
                result = await asyncio.wait_for(execute_tool(ctx, name, args), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning("tool_timeout tool=%s tool_call_id=%s", name, tool_call_id)
                result = fail(f"{name} timed out after {timeout:g} seconds")
            except Exception:
                logger.exception("tool_error tool=%s tool_call_id=%s", name, tool_call_id)
                result = fail(f"{name} failed unexpectedly. Please try again.")

    logger.info(
        "tool_call_done tool=%s tool_call_id=%s success=%s latency_ms=%s",
        name,
        tool_call_id,
        bool(result.get("success")),
        int((time.monotonic() - started) * 1000),
    )
    return {"tool_call_id": tool_call_id, "function_name": name, "result": result}
