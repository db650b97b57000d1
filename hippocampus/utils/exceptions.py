from typing import Any


class HippocampusException(Exception):
    """Base exception for the Hippocampus memory integration."""
    pass


class ConfigurationError(HippocampusException, ValueError):
    """Plugin configuration could not be parsed."""
    pass


class HippocampusHttpError(HippocampusException):
    """Non-2xx response from the Hippocampus API."""

    def __init__(self, message: str, status: int, method: str, path: str, body: Any = None):
        super().__init__(message)
        self.status = status
        self.method = method
        self.path = path
        self.body = body

    @property
    def retryable(self) -> bool:
        return self.status == 408 or self.status == 429 or self.status >= 500


class BankNotFoundError(HippocampusHttpError):
    """The addressed bank (or memory) does not exist remotely; cached bank ids are stale."""
    pass
