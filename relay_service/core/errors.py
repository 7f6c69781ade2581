class RelayError(Exception):
    """Base class for relay_service errors."""


class TransportError(RelayError):
    """Upstream request failed (connect, non-2xx, silent stream). Fatal for the turn.

    The message is short and safe to show to an end user.
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ToolNotFound(RelayError):
    def __init__(self, name: str):
        super().__init__(f"Tool '{name}' not found")
        self.name = name


class ToolTimeout(RelayError):
    def __init__(self, name: str, timeout: float):
        super().__init__(f"Tool {name} timed out after {timeout:g}s")
        self.name = name
        self.timeout = timeout


class ToolExecutionError(RelayError):
    """A tool run ended without a usable result."""


class RelayStreamError(RelayError):
    """The engine reported an error event to a client-side consumer."""
