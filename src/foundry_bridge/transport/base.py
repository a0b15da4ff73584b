"""Transport error types shared by the HTTP and websocket layers."""


class TransportError(Exception):
    """Base exception for transport errors."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause


class ConnectionError(TransportError):
    """Failed to reach the server or open the websocket."""

    pass


class TimeoutError(TransportError):
    """Connection establishment timed out."""

    pass


class SessionError(TransportError):
    """Socket not open, or session cookie rejected."""

    pass


class AuthenticationError(TransportError):
    """
    Server refused the credential during connect.

    The negotiator itself reports rejection as ``False``; this is raised
    one level up, where a rejected credential ends a connect attempt.
    """

    def __init__(self, hostname: str):
        super().__init__(f"Authentication failed for {hostname}")
        self.hostname = hostname
