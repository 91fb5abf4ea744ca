# errors.py
# Failure taxonomy for the scene agent client.
#
# Transport and parser layers raise these. The client boundary catches
# AgentError and turns it into a failed OperationResult, so nothing here is
# ever raised past a public client operation.


class AgentError(Exception):
    """Base class for every failure the client reports."""


class TransportUnreachableError(AgentError):
    """The agent service could not be reached (connection failed, timed out)."""


class HttpStatusError(AgentError):
    """The agent service answered with a non-2xx status."""

    def __init__(self, message: str, status_code: int, server_error: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.server_error = server_error


class MalformedResponseError(AgentError):
    """The response body is not a JSON object."""


class ServerRejectedError(AgentError):
    """The body parsed but reported `ok: false`."""


class UnknownCommandError(AgentError):
    """An action descriptor names a command outside the command table."""


class ActionValidationError(AgentError):
    """An action descriptor failed its kind's validation. Dropped, never reported."""


class ActionIndexError(AgentError, IndexError):
    """A queue or session index is out of range."""


class SessionNotFoundError(AgentError):
    """The agent service has no session with the requested id."""


class SessionBusyError(AgentError):
    """A session request is already in flight."""


class NoActiveSessionError(AgentError):
    """A session step was requested while no session is open."""
