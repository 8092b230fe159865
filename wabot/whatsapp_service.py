"""
WhatsApp Web integration through a Baileys bridge sidecar.

The bridge owns the WhatsApp protocol (pairing, encryption, auth files).
We drive it over HTTP and it pushes its events back to
POST /api/webhook/whatsapp.
"""
import logging
import httpx
from wabot import config
from wabot.errors import TransportError

logger = logging.getLogger("whatsapp_service")

USER_SUFFIX = "@s.whatsapp.net"
BROADCAST_SUFFIX = "@broadcast"


# ── Payload builders ─────────────────────────────────────────────────

def text_payload(text: str) -> dict:
    return {"text": text}


def image_payload(path: str, caption: str = "") -> dict:
    return {"image": {"url": path}, "caption": caption}


def audio_payload(path: str, mimetype: str) -> dict:
    return {"audio": {"url": path}, "mimetype": mimetype, "ptt": True}


def document_payload(path: str, mimetype: str, file_name: str, caption: str = "") -> dict:
    return {
        "document": {"url": path},
        "mimetype": mimetype,
        "fileName": file_name,
        "caption": caption,
    }


# ── JID helpers ──────────────────────────────────────────────────────

def number_to_jid(number: str) -> str:
    """'+62 812-345' → '62812345@s.whatsapp.net'. Full JIDs pass through."""
    number = str(number).strip()
    if "@" in number:
        return number
    digits = "".join(ch for ch in number if ch.isdigit())
    return f"{digits}{USER_SUFFIX}" if digits else ""


def is_broadcast_jid(jid: str) -> bool:
    return jid.endswith(BROADCAST_SUFFIX)


def extract_text(message: dict | None) -> str:
    """Plain text of a Baileys message body, or '' for media/other types."""
    if not message:
        return ""
    if message.get("conversation"):
        return message["conversation"]
    extended = message.get("extendedTextMessage") or {}
    return extended.get("text") or ""


# ── Bridge client ────────────────────────────────────────────────────

class BaileysBridgeClient:
    """
    HTTP client for the Baileys bridge.

    Example:
        client = BaileysBridgeClient("http://localhost:3000")
        await client.connect("baileys_auth_info", None, {"printQRInTerminal": True})
        jid = await client.on_whatsapp("6281234@s.whatsapp.net")
        if jid:
            await client.send_message(jid, text_payload("Hello!"))
    """

    def __init__(
        self,
        base_url: str = config.BRIDGE_URL,
        api_key: str = config.BRIDGE_API_KEY,
        timeout: float = 15,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def _request(self, method: str, path: str, payload: dict | None = None) -> dict:
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.request(method, url, headers=self._headers(), json=payload)
                resp.raise_for_status()
                return resp.json() if resp.content else {}
        except httpx.HTTPStatusError as e:
            logger.error(
                f"Bridge {method} {path} error: {e.response.status_code} "
                f"— {e.response.text[:200]}"
            )
            raise TransportError(f"Bridge returned {e.response.status_code} for {path}") from e
        except httpx.HTTPError as e:
            logger.error(f"Bridge {method} {path} failed: {e}")
            raise TransportError(f"Bridge unreachable: {e}") from e

    async def connect(self, auth_dir: str, version: list[int] | None, options: dict) -> dict:
        """Ask the bridge to open (or resume) the WhatsApp Web socket."""
        return await self._request(
            "POST",
            "/session/connect",
            {"authDir": auth_dir, "version": version, "options": options},
        )

    async def send_message(self, jid: str, payload: dict) -> dict:
        result = await self._request("POST", "/messages/send", {"jid": jid, "content": payload})
        logger.info(f"Message sent → {jid}")
        return result

    async def on_whatsapp(self, jid: str) -> str | None:
        """Resolve a candidate JID to its registered JID, or None if unregistered."""
        data = await self._request("POST", "/contacts/on-whatsapp", {"jids": [jid]})
        results = data.get("results") or []
        if not results:
            return None
        first = results[0]
        if not first.get("exists", True):
            return None
        return first.get("jid")

    async def save_creds(self, creds: dict | None = None) -> dict:
        return await self._request("POST", "/session/creds", {"creds": creds})

    async def logout(self) -> dict:
        return await self._request("POST", "/session/logout")

    async def end(self) -> dict:
        return await self._request("POST", "/session/end")

    async def reset_auth(self) -> dict:
        """Delete the bridge's auth folder so the next connect shows a fresh QR."""
        return await self._request("DELETE", "/session/auth")
