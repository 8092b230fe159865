"""
Broadcast endpoint.
- POST /send-message → text or file to a list of numbers

Body may be JSON, urlencoded or multipart:
    numbers      list of numbers, or a JSON-encoded list
    message      text / caption
    file_dikirim optional file (image, audio or document)
"""
import logging
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.datastructures import UploadFile
from wabot import config
from wabot.broadcast import (
    BroadcastService,
    build_payload,
    parse_numbers,
    remove_upload,
    save_upload,
    summarize,
)
from wabot.dependencies import get_broadcast_service
from wabot.errors import InvalidArgument, WabotError
from wabot.schemas import SendMessageResponse

logger = logging.getLogger("messages")

router = APIRouter(tags=["Messages"])


async def _read_body(request: Request) -> tuple[object, str, UploadFile | None]:
    content_type = request.headers.get("content-type", "")

    if content_type.startswith("application/json"):
        try:
            body = await request.json()
        except ValueError:
            raise InvalidArgument("Request body is not valid JSON")
        if not isinstance(body, dict):
            raise InvalidArgument("Request body must be a JSON object")
        return body.get("numbers"), body.get("message") or "", None

    form = await request.form()
    numbers = [v for v in form.getlist("numbers") if isinstance(v, str)] or None
    message = form.get("message")
    upload = form.get("file_dikirim")
    if not isinstance(upload, UploadFile) or not upload.filename:
        upload = None
    return numbers, message if isinstance(message, str) else "", upload


@router.post("/send-message", response_model=SendMessageResponse)
async def send_message(
    request: Request,
    broadcaster: BroadcastService = Depends(get_broadcast_service),
):
    raw_numbers, message, file = await _read_body(request)
    numbers = parse_numbers(raw_numbers)

    stored = None
    try:
        if file is not None:
            stored = await save_upload(file, config.UPLOAD_DIR)
        payload = build_payload(str(message), stored)
        results = await broadcaster.broadcast(numbers, payload)
    except WabotError:
        raise
    except Exception as e:
        logger.error(f"Broadcast failed: {e}")
        return JSONResponse(
            status_code=500,
            content={"status": False, "response": f"Failed to send message: {e}"},
        )
    finally:
        remove_upload(stored)

    status_code, body = summarize(results)
    logger.info(f"Broadcast to {len(numbers)} number(s): {body.response}")
    return JSONResponse(status_code=status_code, content=body.model_dump())
