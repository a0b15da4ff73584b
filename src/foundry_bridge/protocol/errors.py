"""Errors raised by correlated requests."""


class RequestError(Exception):
    """Base class for request/response failures over the websocket."""

    def __init__(self, message: str, operation: str | None = None):
        super().__init__(message)
        self.message = message
        self.operation = operation


class NotConnectedError(RequestError):
    """No live socket to send on."""

    def __init__(self, message: str = "Not connected to Foundry server"):
        super().__init__(message)


class RequestTimeoutError(RequestError):
    """No matching response arrived in time."""

    pass


class OperationFailedError(RequestError):
    """The server answered with an error for this request."""

    pass


class FrameDecodeError(RequestError):
    """A frame addressed to this request could not be decoded."""

    pass


class ConnectionLostError(RequestError):
    """The socket carrying this request closed before the reply arrived."""

    pass
