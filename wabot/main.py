import asyncio
import logging
import os
from contextlib import asynccontextmanager
import socketio
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from wabot import config, directory_service
from wabot.bot_config import SESSION_PRUNE_INTERVAL
from wabot.connection_state import ConnectionState
from wabot.database import Base, engine
from wabot.dispatcher import ConversationDispatcher
from wabot.errors import InvalidArgument, NotConnected, TransportError
from wabot.gemini_service import generate_gemini_response
from wabot.history_repository import SenderStateRepository
from wabot.qr_notifier import QrNotifier
from wabot.routers import bridge_webhook, messages, pages
from wabot.session_store import SessionStore
from wabot.supervisor import ConnectionSupervisor
from wabot.whatsapp_service import BaileysBridgeClient

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("main")

sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins=config.ALLOWED_ORIGINS)


def build_services(application: FastAPI):
    """Wire store → dispatcher → supervisor once per process."""
    connection = ConnectionState()
    store = SessionStore(
        repository=SenderStateRepository(),
        idle_ttl=config.SESSION_IDLE_TTL,
    )
    dispatcher = ConversationDispatcher(
        store,
        complete=generate_gemini_response,
        directory=directory_service.fetch_applicants if directory_service.is_configured() else None,
    )
    supervisor = ConnectionSupervisor(
        BaileysBridgeClient(),
        dispatcher,
        QrNotifier(sio, connection),
        connection,
        version=config.wa_version(),
    )
    application.state.store = store
    application.state.supervisor = supervisor


async def _prune_sessions(store: SessionStore):
    while True:
        await asyncio.sleep(SESSION_PRUNE_INTERVAL)
        store.prune()


@asynccontextmanager
async def lifespan(application: FastAPI):
    Base.metadata.create_all(bind=engine)
    if not hasattr(application.state, "supervisor"):
        build_services(application)

    supervisor: ConnectionSupervisor = application.state.supervisor
    background = [
        asyncio.create_task(supervisor.start()),
        asyncio.create_task(_prune_sessions(application.state.store)),
    ]
    logger.info(f"Server running on {config.PORT}")
    yield

    for task in background:
        task.cancel()
    await asyncio.gather(*background, return_exceptions=True)
    await supervisor.stop()


def create_app() -> FastAPI:
    application = FastAPI(
        title="WhatsApp AI Gateway",
        description="WhatsApp ↔ Gemini bot with QR pairing and broadcast API",
        version="1.0.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=config.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @application.exception_handler(InvalidArgument)
    async def invalid_argument_handler(request: Request, exc: InvalidArgument):
        return JSONResponse(status_code=400, content={"status": False, "response": str(exc)})

    @application.exception_handler(NotConnected)
    async def not_connected_handler(request: Request, exc: NotConnected):
        return JSONResponse(status_code=500, content={"status": False, "response": str(exc)})

    @application.exception_handler(TransportError)
    async def transport_error_handler(request: Request, exc: TransportError):
        return JSONResponse(status_code=502, content={"status": False, "response": str(exc)})

    # Register routers
    application.include_router(pages.router)
    application.include_router(messages.router)
    application.include_router(bridge_webhook.router)

    application.mount(
        "/assets",
        StaticFiles(directory=os.path.join(config.CLIENT_DIR, "assets"), check_dir=False),
        name="assets",
    )
    return application


app = create_app()
asgi_app = socketio.ASGIApp(sio, other_asgi_app=app)


def run():
    uvicorn.run("wabot.main:asgi_app", host="0.0.0.0", port=config.PORT)


if __name__ == "__main__":
    run()
