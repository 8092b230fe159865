import os
from dotenv import load_dotenv

load_dotenv()

PORT: int = int(os.getenv("PORT", "8000"))
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./wabot.db")

# ── WhatsApp ──
OWNER_JID: str = os.getenv("OWNER_JID", "")
BRIDGE_URL: str = os.getenv("BRIDGE_URL", "http://localhost:3000")
BRIDGE_API_KEY: str = os.getenv("BRIDGE_API_KEY", "")
BRIDGE_WEBHOOK_TOKEN: str = os.getenv("BRIDGE_WEBHOOK_TOKEN", "")
AUTH_DIR: str = os.getenv("AUTH_DIR", "baileys_auth_info")
WA_VERSION: str = os.getenv("WA_VERSION", "")  # e.g. "2,3000,1015901307"; empty = latest

# ── Collaborators ──
GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")
GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-1.5-flash")
DIRECTORY_URL: str = os.getenv("DIRECTORY_URL", "")

# ── HTTP ──
UPLOAD_DIR: str = os.getenv("UPLOAD_DIR", "uploads")
ALLOWED_ORIGINS: list[str] = [
    o.strip()
    for o in os.getenv(
        "ALLOWED_ORIGINS",
        "https://barland.vercel.app,http://localhost:3000,http://localhost:5000",
    ).split(",")
    if o.strip()
]

SESSION_IDLE_TTL: int = int(os.getenv("SESSION_IDLE_TTL", "86400"))
CLIENT_DIR: str = os.getenv(
    "CLIENT_DIR", os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "client")
)


def wa_version() -> list[int] | None:
    """Parse WA_VERSION into the [major, minor, patch] list Baileys expects."""
    if not WA_VERSION:
        return None
    return [int(part) for part in WA_VERSION.split(",")]