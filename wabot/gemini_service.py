"""
Google Gemini text completion via REST API.
Prompt in, text out. Includes global rate limiter, retry with backoff
on 429, and raises CollaboratorError on anything the bot can't use.
"""
import time
import logging
import asyncio
import httpx
from collections import deque
from wabot import config
from wabot.bot_config import (
    AI_GLOBAL_MAX_CALLS,
    AI_GLOBAL_WINDOW_SECONDS,
    AI_MAX_REPLY_CHARS,
    AI_MAX_RETRIES,
    AI_RETRY_DELAYS,
    AI_TIMEOUT_SECONDS,
)
from wabot.errors import CollaboratorError

logger = logging.getLogger("gemini_service")

API_BASE = "https://generativelanguage.googleapis.com/v1beta/models"

# ── Global rate limiter across all senders ──
_call_timestamps: deque = deque()


def _check_global_limit() -> bool:
    now = time.time()
    while _call_timestamps and _call_timestamps[0] < now - AI_GLOBAL_WINDOW_SECONDS:
        _call_timestamps.popleft()
    return len(_call_timestamps) < AI_GLOBAL_MAX_CALLS


def _record_call():
    _call_timestamps.append(time.time())


def _extract_text(data: dict) -> str:
    try:
        parts = data["candidates"][0]["content"]["parts"]
        text = "".join(p.get("text", "") for p in parts).strip()
    except (KeyError, IndexError, TypeError, AttributeError) as e:
        raise CollaboratorError(f"Malformed Gemini response: {e}") from e
    if not text:
        raise CollaboratorError("Gemini returned an empty reply")
    return text


async def generate_gemini_response(
    prompt: str,
    transport: httpx.AsyncBaseTransport | None = None,
) -> str:
    """
    Send prompt to Gemini and return the reply text.
    Reads API key at call time.
    """
    api_key = config.GEMINI_API_KEY
    if not api_key:
        raise CollaboratorError("GEMINI_API_KEY is not set")

    if not _check_global_limit():
        raise CollaboratorError("Gemini global rate limit reached")

    url = f"{API_BASE}/{config.GEMINI_MODEL}:generateContent"
    payload = {"contents": [{"parts": [{"text": prompt}]}]}

    logger.info(f"Sending prompt to Gemini ({len(prompt)} chars)")

    for attempt in range(AI_MAX_RETRIES + 1):
        try:
            async with httpx.AsyncClient(timeout=AI_TIMEOUT_SECONDS, transport=transport) as client:
                resp = await client.post(
                    url,
                    params={"key": api_key},
                    json=payload,
                    headers={"Content-Type": "application/json"},
                )

            if resp.status_code == 429:
                if attempt < AI_MAX_RETRIES:
                    delay = AI_RETRY_DELAYS[attempt]
                    logger.warning(f"Gemini 429 — retrying in {delay}s (attempt {attempt + 1})")
                    await asyncio.sleep(delay)
                    continue
                raise CollaboratorError("Gemini rate limited")

            resp.raise_for_status()
            reply = _extract_text(resp.json())
            _record_call()

            if len(reply) > AI_MAX_REPLY_CHARS:
                reply = reply[: AI_MAX_REPLY_CHARS - 3] + "..."
            logger.info(f"Gemini replied ({len(reply)} chars)")
            return reply

        except httpx.HTTPStatusError as e:
            logger.error(f"Gemini HTTP error: {e.response.status_code} — {e.response.text[:200]}")
            raise CollaboratorError(f"Gemini HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"Gemini transport error: {e}")
            raise CollaboratorError(f"Gemini unreachable: {e}") from e
        except ValueError as e:
            raise CollaboratorError(f"Gemini returned invalid JSON: {e}") from e

    raise CollaboratorError("Gemini unavailable")
