"""Error taxonomy shared by the portal core.

Nothing raised here is fatal to the process. Callers either recover with
user-visible feedback (a notification) or absorb the condition, e.g. a comment
thread that cannot be reached is treated as empty.
"""


class PortalError(Exception):
    """Base class for all portal core errors."""


class TransportError(PortalError):
    """The remote service could not be reached (network failure, timeout)."""


class RemoteError(PortalError):
    """The remote service answered with a non-success status."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class PermissionDeniedError(PortalError):
    """The caller's role does not allow the action (checked locally or by the server)."""


class UnauthenticatedError(PortalError):
    """No current user id could be resolved from the session."""


class InputValidationError(PortalError):
    """A required field was empty or malformed; detected before any network call."""
