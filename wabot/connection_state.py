"""
Process-wide WhatsApp connection state.
Written only by the ConnectionSupervisor; everyone else reads it.
"""
from dataclasses import dataclass
from enum import Enum


class ConnectionPhase(str, Enum):
    DISCONNECTED = "disconnected"
    AWAITING_SCAN = "awaiting_scan"
    CONNECTED = "connected"


@dataclass
class ConnectionState:
    phase: ConnectionPhase = ConnectionPhase.DISCONNECTED
    qr: str | None = None                   # only set while AWAITING_SCAN

    @property
    def is_connected(self) -> bool:
        return self.phase == ConnectionPhase.CONNECTED
