"""
Applicant directory lookup for the "list applicants" command.
"""
import logging
import httpx
from wabot import config
from wabot.bot_config import EMPTY_DIRECTORY_REPLY
from wabot.errors import CollaboratorError

logger = logging.getLogger("directory_service")


def capitalize(text: str) -> str:
    """Upper-case the first letter of every word, leave the rest alone."""
    return " ".join(w[:1].upper() + w[1:] for w in text.split(" "))


def is_configured() -> bool:
    return bool(config.DIRECTORY_URL)


async def fetch_applicants(transport: httpx.AsyncBaseTransport | None = None) -> list[str]:
    """
    GET the directory and return applicant names in directory order.
    Accepts a bare JSON list or {"applicants": [...]}; entries may be
    strings or objects with a "name" field.
    """
    if not config.DIRECTORY_URL:
        raise CollaboratorError("DIRECTORY_URL is not set")

    try:
        async with httpx.AsyncClient(timeout=15, transport=transport) as client:
            resp = await client.get(config.DIRECTORY_URL)
            resp.raise_for_status()
            data = resp.json()
    except httpx.HTTPStatusError as e:
        logger.error(f"Directory HTTP error: {e.response.status_code} — {e.response.text[:200]}")
        raise CollaboratorError(f"Directory HTTP {e.response.status_code}") from e
    except (httpx.HTTPError, ValueError) as e:
        logger.error(f"Directory lookup failed: {e}")
        raise CollaboratorError(f"Directory unavailable: {e}") from e

    if isinstance(data, dict):
        data = data.get("applicants")
    if not isinstance(data, list):
        raise CollaboratorError("Directory response is not a list")

    names = []
    for entry in data:
        name = entry.get("name") if isinstance(entry, dict) else entry
        if isinstance(name, str) and name.strip():
            names.append(name.strip())
    return names


def format_applicants(names: list[str]) -> str:
    if not names:
        return EMPTY_DIRECTORY_REPLY

    lines = ["Applicants\n"]
    for i, name in enumerate(names, 1):
        lines.append(f"{i}. {capitalize(name)}")
    return "\n".join(lines)
