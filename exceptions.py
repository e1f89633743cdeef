"""
Signaling error taxonomy.

ValidationError and ProtocolError are reported back to the sender as an
``error`` envelope. DeliveryFailure is never surfaced to the sender.
TransportFault always ends in the connection teardown path.
"""


class SignalingError(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SignalingError):
    """Missing or malformed envelope fields."""


class ProtocolError(SignalingError):
    """Message type needs a joined connection but the connection is not in a room."""


class DeliveryFailure(SignalingError):
    """Recipient transport is unusable at send time."""


class TransportFault(SignalingError):
    """Underlying WebSocket error."""
