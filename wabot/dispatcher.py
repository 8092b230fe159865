"""
Conversation dispatcher: decides the reply to one inbound WhatsApp message.

Routing, strict priority:
Owner → Empty → Muted → First message → Directory command → Consent reply → AI

Every message that passes the gate gets exactly one reply. The sender's
state is written to the session store before the reply is handed to the
transport, and any failure past the gate is answered with APOLOGY_REPLY.
"""
import asyncio
import time
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable
from wabot.bot_config import (
    AI_TIMEOUT_SECONDS,
    APOLOGY_REPLY,
    CONSENT_NO,
    CONSENT_PROMPT,
    CONSENT_YES,
    DIRECTORY_COMMAND,
    GOODBYE_REPLY,
    HISTORY_LIMIT,
    MUTE_DURATION_SECONDS,
    WELCOME_REPLY,
)
from wabot.directory_service import format_applicants
from wabot.errors import CollaboratorError
from wabot.session_store import OptInStatus, SenderState, SessionStore
from wabot.whatsapp_service import text_payload

logger = logging.getLogger("dispatcher")

CompleteFn = Callable[[str], Awaitable[str]]
DirectoryFn = Callable[[], Awaitable[list[str]]]
SendFn = Callable[[str, dict], Awaitable[object]]


@dataclass
class InboundMessage:
    sender: str
    text: str
    from_owner: bool = False
    push_name: str = ""


@dataclass
class _Decision:
    kind: str = "drop"              # drop | reply | directory | ai
    reply: str = ""
    prompt: str = ""


def build_prompt(history: list[str], text: str) -> str:
    """Recent messages as context, then the new message."""
    if not history:
        return text
    context = "\n".join(f"- {h}" for h in history[-HISTORY_LIMIT:])
    return (
        "Previous messages from this user:\n"
        f"{context}\n\n"
        "New message:\n"
        f"{text}"
    )


class ConversationDispatcher:
    def __init__(
        self,
        store: SessionStore,
        complete: CompleteFn,
        directory: DirectoryFn | None = None,
        clock: Callable[[], float] = time.time,
        ai_timeout: float = AI_TIMEOUT_SECONDS,
    ):
        self._store = store
        self._complete = complete
        self._directory = directory
        self._clock = clock
        self._ai_timeout = ai_timeout

    async def handle(self, msg: InboundMessage) -> str | None:
        """Return the reply text, or None when the message gets no reply."""
        if msg.from_owner:
            logger.info(f"Message from owner {msg.sender}, not answering")
            return None

        text = (msg.text or "").strip()
        if not msg.sender or not text:
            return None

        cmd = text.lower()
        now = self._clock()
        decision = _Decision()

        def route(state: SenderState):
            # ── 1. Muted → drop, history untouched ──
            if state.is_muted(now):
                decision.kind = "drop"
                return

            # ── 2. Expired mute → back to the consent question ──
            if state.opt_in_status == OptInStatus.MUTED:
                state.opt_in_status = OptInStatus.AWAITING_CONSENT
                state.mute_until = None

            # ── 3. First message ever → ask for consent ──
            if state.opt_in_status == OptInStatus.UNSET:
                state.opt_in_status = OptInStatus.AWAITING_CONSENT
                state.append_history(text)
                decision.kind, decision.reply = "reply", CONSENT_PROMPT
                return

            # ── 4. Directory command ──
            if self._directory is not None and cmd == DIRECTORY_COMMAND:
                state.append_history(text)
                decision.kind = "directory"
                return

            # ── 5. Answer to the consent question ──
            if state.opt_in_status == OptInStatus.AWAITING_CONSENT:
                state.append_history(text)
                if cmd in CONSENT_YES:
                    state.opt_in_status = OptInStatus.ENABLED
                    decision.kind, decision.reply = "reply", WELCOME_REPLY
                elif cmd in CONSENT_NO:
                    state.opt_in_status = OptInStatus.MUTED
                    state.mute_until = now + MUTE_DURATION_SECONDS
                    decision.kind, decision.reply = "reply", GOODBYE_REPLY
                else:
                    decision.kind, decision.reply = "reply", CONSENT_PROMPT
                return

            # ── 6. Opted in → AI with recent history ──
            decision.prompt = build_prompt(state.history, text)
            state.append_history(text)
            decision.kind = "ai"

        state = await self._store.upsert(msg.sender, route)
        logger.info(f"{msg.sender} [{state.opt_in_status.value}] → {decision.kind}")

        if decision.kind == "drop":
            return None
        if decision.kind == "reply":
            return decision.reply
        if decision.kind == "directory":
            return await self._directory_reply()
        return await self._ai_reply(decision.prompt)

    async def _ai_reply(self, prompt: str) -> str:
        try:
            reply = await asyncio.wait_for(self._complete(prompt), timeout=self._ai_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"AI call timed out after {self._ai_timeout}s")
            return APOLOGY_REPLY
        except CollaboratorError as e:
            logger.warning(f"AI call failed: {e}")
            return APOLOGY_REPLY

        if not reply or not reply.strip():
            logger.warning("AI returned an empty reply")
            return APOLOGY_REPLY
        return reply

    async def _directory_reply(self) -> str:
        try:
            names = await asyncio.wait_for(self._directory(), timeout=self._ai_timeout)
        except asyncio.TimeoutError:
            logger.warning("Directory lookup timed out")
            return APOLOGY_REPLY
        except CollaboratorError as e:
            logger.warning(f"Directory lookup failed: {e}")
            return APOLOGY_REPLY
        return format_applicants(names)

    async def process(self, msg: InboundMessage, send: SendFn) -> str | None:
        """
        Handle one message end to end and send the reply.
        Never raises. Runs as a background task per message.
        """
        try:
            reply = await self.handle(msg)
        except Exception as e:
            logger.exception(f"Message processing error for {msg.sender}: {e}")
            reply = APOLOGY_REPLY

        if reply is None:
            return None

        try:
            await send(msg.sender, text_payload(reply))
        except Exception as e:
            logger.error(f"Failed to send reply to {msg.sender}: {e}")
        return reply
