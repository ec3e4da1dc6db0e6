"""Error taxonomy for appliance sessions and lease operations.

Errors are raised inside step sequences and converted to
OperationOutcome values by the session gate.
"""
from typing import Optional


class LeaseError(Exception):
    """Base class for all lease engine errors."""
    pass


class TransportFailure(LeaseError):
    """Navigation, element or timeout failure. Not recoverable here."""
    pass


class LoginFailed(TransportFailure):
    """The appliance login flow did not reach the landing page."""
    pass


class StepFailed(TransportFailure):
    """A step inside a sequence failed."""

    def __init__(self, step: str, cause: Optional[BaseException] = None):
        self.step = step
        self.cause = cause
        message = f"step '{step}' failed"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class AlertAborted(LeaseError):
    """An unsolicited native dialog fired during the operation."""

    def __init__(self, message: str):
        self.alert_message = message
        super().__init__(f"router alert detected: {message}")


class ApplianceRejected(LeaseError):
    """The appliance reported an error marker in its response overlay."""

    def __init__(self, overlay_text: str):
        self.overlay_text = overlay_text
        super().__init__(f"router rejected configuration: {overlay_text}")


class LeaseNotFound(LeaseError):
    """No row for the requested hardware address."""

    def __init__(self, mac_address: str):
        self.mac_address = mac_address
        super().__init__(f"lease not found: {mac_address}")
