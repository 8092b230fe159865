"""
Live pairing-page updates over Socket.IO.

Events sent to the browser:
- qr        → PNG data URL of the pairing QR
- qrstatus  → path of a status icon under /assets
- log       → human-readable status line

A new subscriber immediately gets the current connection state replayed.
"""
import io
import base64
import asyncio
import logging
import qrcode
import socketio
from wabot.connection_state import ConnectionPhase, ConnectionState

logger = logging.getLogger("qr_notifier")

CHECK_ICON = "/assets/check.svg"
LOADER_ICON = "/assets/loader.svg"


def qr_data_url(payload: str) -> str:
    """Render a pairing token as a PNG data URL."""
    img = qrcode.make(payload)
    buf = io.BytesIO()
    img.save(buf)
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")


class QrNotifier:
    def __init__(self, sio: socketio.AsyncServer, state: ConnectionState):
        self.sio = sio
        self.state = state
        sio.on("connect", self._on_connect)
        sio.on("disconnect", self._on_disconnect)

    async def _on_connect(self, sid, environ, auth=None):
        logger.info(f"Pairing page connected: {sid}")
        await self.replay(sid)

    async def _on_disconnect(self, sid, *args):
        logger.info(f"Pairing page disconnected: {sid}")

    async def replay(self, sid: str | None = None):
        if self.state.phase == ConnectionPhase.CONNECTED:
            await self.publish("connected", to=sid)
        elif self.state.phase == ConnectionPhase.AWAITING_SCAN and self.state.qr:
            await self.publish("qr", to=sid)

    async def publish(self, status: str, message: str | None = None, to: str | None = None):
        """Emit one status to a single subscriber (to=sid) or to everyone."""
        if status == "qr":
            if not self.state.qr:
                return
            try:
                url = await asyncio.to_thread(qr_data_url, self.state.qr)
            except Exception as e:
                logger.error(f"Error generating QR code: {e}")
                return
            await self.sio.emit("qr", url, to=to)
            await self.sio.emit("log", message or "QR Code received, please scan!", to=to)
        elif status == "connected":
            await self.sio.emit("qrstatus", CHECK_ICON, to=to)
            await self.sio.emit("log", message or "WhatsApp connected!", to=to)
        elif status == "qrscanned":
            await self.sio.emit("qrstatus", CHECK_ICON, to=to)
            await self.sio.emit("log", message or "QR Code has been scanned!", to=to)
        elif status == "loading":
            await self.sio.emit("qrstatus", LOADER_ICON, to=to)
            await self.sio.emit("log", message or "Registering QR Code, please wait!", to=to)
        elif status == "closed":
            await self.sio.emit("log", message or "WhatsApp disconnected.", to=to)
        else:
            logger.debug(f"Ignoring unknown status {status!r}")
