"""
WhatsApp connection lifecycle.

IDLE → CONNECTING → AWAITING_SCAN → CONNECTED → CLOSED(action)

- Pairing tokens are relayed to the QR notifier.
- Close events go through the disconnect classifier:
  terminal causes log out, unknown causes end the socket, retryable
  causes reconnect (first retry immediately, then exponential backoff,
  bounded by RECONNECT_MAX_ATTEMPTS).
- Every inbound message is dispatched in its own task.

The supervisor is the only owner of the bridge client; other components
reach it through require_client(), which fails with NotConnected.
"""
import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable
from wabot import config
from wabot.bot_config import RECONNECT_BASE_DELAY, RECONNECT_MAX_ATTEMPTS, RECONNECT_MAX_DELAY
from wabot.connection_state import ConnectionPhase, ConnectionState
from wabot.disconnect import DisconnectAction, classify, describe
from wabot.dispatcher import ConversationDispatcher, InboundMessage
from wabot.errors import NotConnected, TransportError
from wabot.qr_notifier import QrNotifier
from wabot.schemas import ConnectionUpdate, MessagesUpsert
from wabot.whatsapp_service import BaileysBridgeClient, extract_text, is_broadcast_jid

logger = logging.getLogger("supervisor")


class SupervisorState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    AWAITING_SCAN = "awaiting_scan"
    CONNECTED = "connected"
    CLOSED = "closed"


class ConnectionSupervisor:
    def __init__(
        self,
        client: BaileysBridgeClient,
        dispatcher: ConversationDispatcher,
        notifier: QrNotifier | None = None,
        connection: ConnectionState | None = None,
        owner_jid: str = config.OWNER_JID,
        auth_dir: str = config.AUTH_DIR,
        version: list[int] | None = None,
        max_attempts: int = RECONNECT_MAX_ATTEMPTS,
        base_delay: float = RECONNECT_BASE_DELAY,
        max_delay: float = RECONNECT_MAX_DELAY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._client = client
        self._dispatcher = dispatcher
        self._notifier = notifier
        self.connection = connection or ConnectionState()
        self._owner_jid = owner_jid
        self._auth_dir = auth_dir
        self._version = version
        self._max_attempts = max_attempts
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._sleep = sleep

        self.state = SupervisorState.IDLE
        self.last_action: DisconnectAction | None = None
        self.reconnect_attempts = 0
        self._lock = asyncio.Lock()
        self._reconnect_task: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()

    # ── Accessors ────────────────────────────────────────────────────

    @property
    def phase(self) -> ConnectionPhase:
        return self.connection.phase

    @property
    def is_connected(self) -> bool:
        return self.connection.is_connected

    def require_client(self) -> BaileysBridgeClient:
        if not self.is_connected:
            raise NotConnected("WhatsApp is not connected yet.")
        return self._client

    # ── Lifecycle ────────────────────────────────────────────────────

    async def start(self):
        async with self._lock:
            await self._connect()

    async def stop(self):
        """Cancel pending reconnects and in-flight message tasks."""
        pending = [t for t in (self._reconnect_task, *self._tasks) if t and not t.done()]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        self._reconnect_task = None
        self.state = SupervisorState.IDLE

    async def drain(self):
        """Wait for the pending reconnect and every in-flight message task."""
        while True:
            pending = [t for t in (self._reconnect_task, *self._tasks) if t and not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def reset_session(self):
        """Forget the paired device and start over with a fresh QR."""
        async with self._lock:
            if self._reconnect_task and not self._reconnect_task.done():
                self._reconnect_task.cancel()
            await self._client.reset_auth()
            logger.info("Session auth deleted, re-pairing")
            self.reconnect_attempts = 0
            self._mark_disconnected()
            await self._connect()

    async def _connect(self):
        self.state = SupervisorState.CONNECTING
        await self._notify("loading")
        options = {"printQRInTerminal": True, "ignoreBroadcast": True}
        try:
            await self._client.connect(self._auth_dir, self._version, options)
            logger.info("Connecting to WhatsApp...")
        except TransportError as e:
            logger.error(f"Bridge connect failed: {e}")
            await self._schedule_reconnect()

    def _mark_disconnected(self):
        self.connection.phase = ConnectionPhase.DISCONNECTED
        self.connection.qr = None

    # ── Bridge events ────────────────────────────────────────────────

    async def on_connection_update(self, update: ConnectionUpdate):
        async with self._lock:
            if update.qr:
                self.connection.qr = update.qr
                self.connection.phase = ConnectionPhase.AWAITING_SCAN
                self.state = SupervisorState.AWAITING_SCAN
                logger.info("QR code received, waiting for scan")
                await self._notify("qr")

            if update.is_new_login:
                await self._notify("qrscanned")

            if update.connection == "open":
                self.connection.phase = ConnectionPhase.CONNECTED
                self.connection.qr = None
                self.state = SupervisorState.CONNECTED
                self.reconnect_attempts = 0
                self.last_action = None
                logger.info("WhatsApp connected")
                await self._notify("connected")
            elif update.connection == "close":
                await self._handle_close(update.disconnect_code())

    async def on_creds_update(self, creds: dict):
        try:
            await self._client.save_creds(creds)
        except TransportError as e:
            logger.error(f"Failed to save credentials: {e}")

    async def on_messages_upsert(self, upsert: MessagesUpsert) -> list[asyncio.Task]:
        """Spawn one dispatch task per inbound message."""
        if not self.is_connected:
            logger.warning(f"Dropping {len(upsert.messages)} message(s) received while not connected")
            return []
        if upsert.type != "notify":
            return []

        tasks = []
        for raw in upsert.messages:
            msg = self._parse(raw)
            if msg is None:
                continue
            logger.info(f"Incoming message from {msg.sender}: {msg.text[:80]!r}")
            task = asyncio.create_task(self._dispatcher.process(msg, self._send))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            tasks.append(task)
        return tasks

    def _parse(self, raw: dict) -> InboundMessage | None:
        key = raw.get("key") or {}
        jid = key.get("remoteJid") or ""
        if not jid or key.get("fromMe") or is_broadcast_jid(jid):
            return None
        return InboundMessage(
            sender=jid,
            text=extract_text(raw.get("message")),
            from_owner=bool(self._owner_jid) and jid == self._owner_jid,
            push_name=raw.get("pushName") or "",
        )

    async def _send(self, jid: str, payload: dict):
        return await self.require_client().send_message(jid, payload)

    # ── Close handling ───────────────────────────────────────────────

    async def _handle_close(self, code: int | None):
        action = classify(code)
        self.last_action = action
        self._mark_disconnected()
        self.state = SupervisorState.CLOSED
        logger.warning(f"{describe(code)} (code={code}, action={action.value})")

        if action == DisconnectAction.RECONNECT_RETRYABLE:
            await self._schedule_reconnect()
            return

        try:
            if action == DisconnectAction.LOGOUT_TERMINAL:
                await self._client.logout()
            else:
                await self._client.end()
        except TransportError as e:
            logger.error(f"Teardown after close failed: {e}")
        await self._notify("closed", describe(code))

    def backoff_delay(self, attempt: int) -> float:
        """0 for the first retry, then base * 2^(n-1), capped."""
        if attempt <= 0:
            return 0.0
        return min(self._base_delay * (2 ** (attempt - 1)), self._max_delay)

    async def _schedule_reconnect(self):
        if self.reconnect_attempts >= self._max_attempts:
            logger.error(f"Giving up after {self.reconnect_attempts} reconnect attempts")
            self.state = SupervisorState.CLOSED
            await self._notify("closed", "WhatsApp could not reconnect.")
            return

        delay = self.backoff_delay(self.reconnect_attempts)
        self.reconnect_attempts += 1
        logger.info(f"Reconnect attempt {self.reconnect_attempts} in {delay:.0f}s")
        self._reconnect_task = asyncio.create_task(self._reconnect_after(delay))

    async def _reconnect_after(self, delay: float):
        if delay:
            await self._sleep(delay)
        async with self._lock:
            await self._connect()

    async def _notify(self, status: str, message: str | None = None):
        if self._notifier is None:
            return
        try:
            await self._notifier.publish(status, message)
        except Exception as e:
            logger.error(f"Notifier failed on {status!r}: {e}")
