"""Custom exceptions for tenx."""


class TenxError(Exception):
    """Base exception for tenx."""

    pass


class ConfigurationError(TenxError):
    """Configuration-related errors."""

    pass


class TransportError(TenxError):
    """Chat transport failure (HTTP status, network, malformed stream)."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        retryable: bool | None = None,
        retry_after_ms: float | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        if retryable is None:
            retryable = status_code is not None and (status_code == 429 or status_code >= 500)
        self.retryable = retryable
        self.retry_after_ms = retry_after_ms


class AbortedError(TenxError):
    """Cooperative cancellation was requested."""

    def __init__(self, message: str = "Aborted"):
        super().__init__(message)


class ToolError(TenxError):
    """Tool execution errors."""

    pass


class ToolExecutionError(ToolError):
    """Tool execution failed."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(f"Tool '{tool_name}' failed: {message}")
        self.tool_name = tool_name


class ToolNotFoundError(ToolError):
    """Tool not found in registry."""

    def __init__(self, tool_name: str):
        super().__init__(f"Unknown tool: {tool_name}")
        self.tool_name = tool_name


class ToolTimeoutError(ToolError):
    """Tool did not finish within its time budget."""

    def __init__(self, tool_name: str, timeout_seconds: float):
        label = int(timeout_seconds) if float(timeout_seconds).is_integer() else timeout_seconds
        super().__init__(f"Tool '{tool_name}' timed out after {label}s")
        self.tool_name = tool_name
        self.timeout_seconds = timeout_seconds


class SessionError(TenxError):
    """Session-related errors."""

    pass


class SessionNotFoundError(SessionError):
    """Session not found."""

    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class SessionStateError(SessionError):
    """Illegal session state transition."""

    def __init__(self, current: str, requested: str):
        super().__init__(f"Cannot move session from '{current}' to '{requested}'")
        self.current = current
        self.requested = requested


class AuthError(TenxError):
    """Authentication errors."""

    pass
