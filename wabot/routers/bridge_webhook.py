"""
Baileys bridge event receiver.
- POST /api/webhook/whatsapp → connection.update | creds.update | messages.upsert

The bridge posts {"event": <name>, "data": <Baileys payload>} in the order
Baileys emitted them.
"""
import logging
from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import ValidationError
from wabot import config
from wabot.dependencies import get_supervisor
from wabot.schemas import BridgeEvent, ConnectionUpdate, MessagesUpsert
from wabot.supervisor import ConnectionSupervisor

logger = logging.getLogger("bridge_webhook")

router = APIRouter(prefix="/api/webhook", tags=["WhatsApp Webhook"])


@router.post("/whatsapp")
async def receive_bridge_event(
    event: BridgeEvent,
    x_bridge_token: str | None = Header(default=None),
    supervisor: ConnectionSupervisor = Depends(get_supervisor),
):
    if config.BRIDGE_WEBHOOK_TOKEN and x_bridge_token != config.BRIDGE_WEBHOOK_TOKEN:
        raise HTTPException(status_code=403, detail="Invalid bridge token")

    try:
        if event.event == "connection.update":
            await supervisor.on_connection_update(ConnectionUpdate.model_validate(event.data))
        elif event.event == "creds.update":
            await supervisor.on_creds_update(event.data)
        elif event.event == "messages.upsert":
            tasks = await supervisor.on_messages_upsert(MessagesUpsert.model_validate(event.data))
            return {"status": "ok", "dispatched": len(tasks)}
        else:
            logger.debug(f"Ignoring bridge event {event.event}")
    except ValidationError as e:
        logger.error(f"Malformed {event.event} payload: {e}")
        raise HTTPException(status_code=422, detail=f"Malformed {event.event} payload")

    return {"status": "ok"}
