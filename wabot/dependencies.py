from fastapi import Request
from wabot.broadcast import BroadcastService
from wabot.supervisor import ConnectionSupervisor


def get_supervisor(request: Request) -> ConnectionSupervisor:
    return request.app.state.supervisor


def get_broadcast_service(request: Request) -> BroadcastService:
    return BroadcastService(request.app.state.supervisor)
