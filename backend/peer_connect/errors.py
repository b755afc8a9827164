"""Engine error taxonomy.

Every error carries the HTTP status the API layer answers with, so routes never
translate exceptions by hand.
"""


class PeerConnectError(Exception):
    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class Unauthenticated(PeerConnectError):
    """No caller identity."""
    status_code = 401


class InvalidOperation(PeerConnectError):
    """Malformed input or an operation the current state does not allow."""
    status_code = 400


class NotFound(PeerConnectError):
    status_code = 404


class StaleSubmission(PeerConnectError):
    """Answer submitted for a card that is not the session's current card."""
    status_code = 409


class Conflict(PeerConnectError):
    """Lost a conditional-update race. Re-read state and retry."""
    status_code = 409
