"""
Typed errors raised at the protocol and player boundaries.

Unknown rooms are deliberately not represented here: events that name a
room nobody has joined are ignored, not reported.
"""


class WatchSyncError(Exception):
    """Base class for all watchsync errors"""
    pass


class MalformedPayload(WatchSyncError):
    """An inbound event payload failed validation"""
    def __init__(self, event: str, detail: str):
        self.event = event
        self.detail = detail
        super().__init__(f"Malformed '{event}' payload: {detail}")


class PlayerCommandFailed(WatchSyncError):
    """The host media player rejected a command (e.g. autoplay policy)"""
    def __init__(self, command: str, cause: Exception):
        self.command = command
        self.cause = cause
        super().__init__(f"Player command '{command}' failed: {cause}")
