"""
Connection-close classification.
Maps a Baileys disconnect status code to what the supervisor must do next.
"""
from enum import Enum, IntEnum


class DisconnectReason(IntEnum):
    """Baileys DisconnectReason status codes."""
    LOGGED_OUT = 401
    CONNECTION_LOST = 408
    TIMED_OUT = 408                 # alias of CONNECTION_LOST on the wire
    CONNECTION_CLOSED = 428
    CONNECTION_REPLACED = 440
    BAD_SESSION = 500
    RESTART_REQUIRED = 515


class DisconnectAction(str, Enum):
    LOGOUT_TERMINAL = "logout_terminal"
    RECONNECT_RETRYABLE = "reconnect_retryable"
    FATAL_UNKNOWN = "fatal_unknown"


_POLICY: dict[int, DisconnectAction] = {
    DisconnectReason.BAD_SESSION: DisconnectAction.LOGOUT_TERMINAL,
    DisconnectReason.CONNECTION_CLOSED: DisconnectAction.RECONNECT_RETRYABLE,
    DisconnectReason.CONNECTION_LOST: DisconnectAction.RECONNECT_RETRYABLE,
    DisconnectReason.CONNECTION_REPLACED: DisconnectAction.LOGOUT_TERMINAL,
    DisconnectReason.LOGGED_OUT: DisconnectAction.LOGOUT_TERMINAL,
    DisconnectReason.RESTART_REQUIRED: DisconnectAction.RECONNECT_RETRYABLE,
    DisconnectReason.TIMED_OUT: DisconnectAction.RECONNECT_RETRYABLE,
}

_DESCRIPTIONS: dict[int, str] = {
    DisconnectReason.BAD_SESSION: "Bad session file, delete the session and scan again",
    DisconnectReason.CONNECTION_CLOSED: "Connection closed, reconnecting...",
    DisconnectReason.CONNECTION_LOST: "Connection lost from server, reconnecting...",
    DisconnectReason.CONNECTION_REPLACED: (
        "Connection replaced, another session was opened. Close the current session first"
    ),
    DisconnectReason.LOGGED_OUT: "Device logged out, delete the session and scan again",
    DisconnectReason.RESTART_REQUIRED: "Restart required, restarting...",
}


def classify(code: int | None) -> DisconnectAction:
    """Pure, total: unknown or missing codes are FATAL_UNKNOWN."""
    if code is None:
        return DisconnectAction.FATAL_UNKNOWN
    return _POLICY.get(code, DisconnectAction.FATAL_UNKNOWN)


def describe(code: int | None) -> str:
    """Operator-facing log line for a close cause."""
    return _DESCRIPTIONS.get(code, f"Unknown disconnect reason: {code}")
