"""
Outbound broadcast: one message (text or file) to a list of numbers.

Destinations are handled one at a time. An unregistered number or a failed
send is recorded and the loop moves on; the caller gets per-number results.
"""
import json
import time
import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from fastapi import UploadFile
from wabot.errors import DestinationUnreachable, InvalidArgument
from wabot.schemas import DeliveryResult, SendMessageResponse
from wabot.supervisor import ConnectionSupervisor
from wabot.whatsapp_service import (
    BaileysBridgeClient,
    audio_payload,
    document_payload,
    image_payload,
    number_to_jid,
    text_payload,
)

logger = logging.getLogger("broadcast")

IMAGE_EXTENSIONS = {".jpeg", ".jpg", ".png", ".gif"}
AUDIO_EXTENSIONS = {".mp3", ".ogg"}


@dataclass
class StoredUpload:
    path: Path
    filename: str
    mimetype: str


def parse_numbers(raw) -> list[str]:
    """Accept a list, or a JSON-encoded list as sent by form posts."""
    if isinstance(raw, list) and len(raw) == 1 and isinstance(raw[0], str) and raw[0].strip().startswith("["):
        raw = raw[0]
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            raise InvalidArgument("Invalid WhatsApp number list format!")

    if not raw or not isinstance(raw, list):
        raise InvalidArgument("WhatsApp number list is missing!")

    numbers = [str(n).strip() for n in raw if n is not None and str(n).strip()]
    if not numbers:
        raise InvalidArgument("WhatsApp number list is missing!")
    return numbers


async def save_upload(file: UploadFile, upload_dir: str) -> StoredUpload:
    directory = Path(upload_dir)
    directory.mkdir(parents=True, exist_ok=True)

    filename = Path(file.filename or "upload").name
    path = (directory / f"{int(time.time() * 1000)}_{filename}").resolve()
    content = await file.read()
    await asyncio.to_thread(path.write_bytes, content)

    logger.info(f"Upload stored: {path.name} ({len(content)} bytes)")
    return StoredUpload(
        path=path,
        filename=filename,
        mimetype=file.content_type or "application/octet-stream",
    )


def remove_upload(upload: StoredUpload | None):
    if upload is None:
        return
    try:
        upload.path.unlink(missing_ok=True)
    except OSError as e:
        logger.error(f"Error deleting upload {upload.path}: {e}")


def build_payload(message: str, upload: StoredUpload | None = None) -> dict:
    """Pick the WhatsApp content type from the uploaded file's extension."""
    if upload is None:
        return text_payload(message)

    ext = upload.path.suffix.lower()
    if ext in IMAGE_EXTENSIONS:
        return image_payload(str(upload.path), message)
    if ext in AUDIO_EXTENSIONS:
        return audio_payload(str(upload.path), upload.mimetype)
    return document_payload(str(upload.path), upload.mimetype, upload.filename, message)


class BroadcastService:
    def __init__(self, supervisor: ConnectionSupervisor):
        self._supervisor = supervisor

    async def broadcast(self, numbers: list[str], payload: dict) -> list[DeliveryResult]:
        """Send payload to every number. Raises NotConnected before the first send."""
        client = self._supervisor.require_client()

        results = []
        for number in numbers:
            try:
                await self._deliver(client, number, payload)
                results.append(DeliveryResult(number=number, status="sent"))
            except DestinationUnreachable as e:
                logger.warning(f"Number {number} is not registered on WhatsApp")
                results.append(DeliveryResult(number=number, status="unreachable", detail=str(e)))
            except Exception as e:
                logger.error(f"Send to {number} failed: {e}")
                results.append(DeliveryResult(number=number, status="failed", detail=str(e)))
        return results

    async def _deliver(self, client: BaileysBridgeClient, number: str, payload: dict):
        candidate = number_to_jid(number)
        if not candidate:
            raise DestinationUnreachable(number)
        jid = await client.on_whatsapp(candidate)
        if not jid:
            raise DestinationUnreachable(number)
        await client.send_message(jid, payload)


def summarize(results: list[DeliveryResult]) -> tuple[int, SendMessageResponse]:
    """HTTP status + body: 200 when at least one number got the message."""
    sent = [r.number for r in results if r.status == "sent"]
    failed = [r.number for r in results if r.status != "sent"]

    if not failed:
        return 200, SendMessageResponse(
            status=True, response="Message sent to all numbers.", results=results
        )
    if sent:
        return 200, SendMessageResponse(
            status=True,
            response=(
                f"Message sent to {len(sent)} of {len(results)} numbers. "
                f"Failed: {', '.join(failed)}"
            ),
            results=results,
        )
    return 500, SendMessageResponse(
        status=False,
        response=f"Failed to send message to any number. Failed: {', '.join(failed)}",
        results=results,
    )
