"""
Error taxonomy shared by the dispatcher, supervisor and HTTP layer.
"""


class WabotError(Exception):
    """Base class for every error raised by this package."""


class InvalidArgument(WabotError):
    """Malformed input, surfaced to HTTP callers as 400."""


class NotConnected(WabotError):
    """WhatsApp session is not open, surfaced to HTTP callers as 500."""


class CollaboratorError(WabotError):
    """AI or directory lookup failed. Always recovered with the apology text."""


class DestinationUnreachable(WabotError):
    """A broadcast target has no WhatsApp account."""

    def __init__(self, number: str):
        super().__init__(f"{number} is not registered on WhatsApp")
        self.number = number


class TransportError(WabotError):
    """The Baileys bridge rejected or failed a command."""
