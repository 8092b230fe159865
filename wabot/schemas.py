from __future__ import annotations
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field


# ── Bridge webhook events ────────────────────────────────────────────
class BridgeEvent(BaseModel):
    event: str
    data: dict[str, Any] = Field(default_factory=dict)


class LastDisconnect(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    error: Optional[dict[str, Any]] = None
    status_code: Optional[int] = Field(default=None, alias="statusCode")

    def code(self) -> Optional[int]:
        """Status code the way Boom exposes it (error.output.statusCode)."""
        if self.status_code is not None:
            return self.status_code
        output = (self.error or {}).get("output") or {}
        code = output.get("statusCode")
        return int(code) if code is not None else None


class ConnectionUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    connection: Optional[str] = None          # "connecting" | "open" | "close"
    qr: Optional[str] = None
    last_disconnect: Optional[LastDisconnect] = Field(default=None, alias="lastDisconnect")
    is_new_login: Optional[bool] = Field(default=None, alias="isNewLogin")

    def disconnect_code(self) -> Optional[int]:
        return self.last_disconnect.code() if self.last_disconnect else None


class MessagesUpsert(BaseModel):
    model_config = ConfigDict(extra="allow")

    messages: list[dict[str, Any]] = Field(default_factory=list)
    type: str = "notify"


# ── Broadcast ────────────────────────────────────────────────────────
class DeliveryResult(BaseModel):
    number: str
    status: str                               # sent | unreachable | failed
    detail: Optional[str] = None


class SendMessageResponse(BaseModel):
    status: bool
    response: str
    results: list[DeliveryResult] = Field(default_factory=list)


# ── Status ───────────────────────────────────────────────────────────
class ConnectionStatusOut(BaseModel):
    phase: str
    state: str
    has_qr: bool
    reconnect_attempts: int
