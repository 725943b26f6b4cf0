"""Exceptions raised by the SSE client"""

from typing import Any, Optional

from mcp.types import ErrorData, INTERNAL_ERROR
from pydantic import ValidationError


class MCPClientError(Exception):
    """Base class for all client errors"""
    pass


class ConnectionTimeoutError(MCPClientError):
    """No endpoint event arrived before the connect deadline"""
    pass


class StreamError(MCPClientError):
    """The SSE stream failed or was closed by the server"""
    pass


class NotConnectedError(MCPClientError):
    """A request was issued without an active session"""
    pass


class SendFailureError(MCPClientError):
    """The POST carrying a request was rejected or could not be delivered"""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class RequestTimeoutError(MCPClientError):
    """No reply arrived for a request before its deadline"""

    def __init__(self, method: str):
        super().__init__(f"Request timeout: {method}")
        self.method = method


class ConnectionClosedError(MCPClientError):
    """The connection was torn down while an operation was outstanding"""
    pass


class RemoteError(MCPClientError):
    """The server answered a request with a JSON-RPC error object"""

    def __init__(self, error: ErrorData):
        super().__init__(error.message)
        self.error = error

    @property
    def code(self) -> int:
        return self.error.code

    @property
    def message(self) -> str:
        return self.error.message

    @property
    def data(self) -> Any:
        return self.error.data

    @classmethod
    def from_error_object(cls, error: Any) -> "RemoteError":
        """
        Build from the "error" member of a response envelope.

        Servers do not always send a well-formed error object, so anything
        that does not validate is wrapped as an internal error carrying the
        original value.
        """
        try:
            return cls(ErrorData.model_validate(error))
        except ValidationError:
            message = error.get("message") if isinstance(error, dict) else None
            return cls(ErrorData(
                code=INTERNAL_ERROR,
                message=str(message or error),
                data=error,
            ))
