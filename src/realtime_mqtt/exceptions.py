"""Exception hierarchy for the realtime client.

Connectivity failures (TransportError) are recovered by the lifecycle manager,
codec failures (ParserError, HandlerError) are recovered per envelope or per
message, and NotConnectedError is a caller contract violation.
"""

from __future__ import annotations


class RealtimeError(Exception):
    """Base exception for all realtime client errors."""


class TransportError(RealtimeError):
    """The MQTT transport failed to connect, publish or disconnect.

    Attributes:
        reason: Specific failure reason

    """

    def __init__(self, reason: str) -> None:
        self.reason: str = reason
        super().__init__(f"Transport error: {reason}")


class NotConnectedError(RealtimeError, RuntimeError):
    """A command was sent while the client was offline.

    Commands are never queued; callers must check connectivity first.

    Attributes:
        state: Connection state when the send was attempted

    """

    def __init__(self, message: str = "Tried to send the command while offline.", state: str = "unknown") -> None:
        self.state: str = state
        super().__init__(message)


class ParserError(RealtimeError):
    """A parser could not decode an inbound payload.

    Attributes:
        reason: Specific failure reason
        topic: Topic name of the payload

    """

    def __init__(self, reason: str, topic: str = "") -> None:
        self.reason: str = reason
        self.topic: str = topic
        super().__init__(f"Failed to parse payload from {topic or 'unknown topic'}: {reason}")


class HandlerError(RealtimeError):
    """Expected, recoverable failure raised by a message handler.

    The dispatch pipeline logs these and moves on. Anything else raised by a
    handler is escalated to the client's ``warning`` event.

    Attributes:
        reason: Specific failure reason
        module: Module of the message being handled

    """

    def __init__(self, reason: str, module: str = "") -> None:
        self.reason: str = reason
        self.module: str = module
        super().__init__(reason)
