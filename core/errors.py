"""Error taxonomy shared by the docker client, router and shadow sync."""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, Optional, Tuple

if TYPE_CHECKING:
    from core.process_runner import CommandResult


class DockerManagerError(Exception):
    """Base error. ``status`` is the HTTP status the router answers with."""

    status = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = str(message or self.__class__.__name__)


class InvalidInputError(DockerManagerError):
    status = 400


class InvalidNameError(InvalidInputError):
    pass


class PermissionDeniedError(DockerManagerError):
    status = 403

    def __init__(self, command_key: str):
        super().__init__(f"command is blocked by policy: {command_key}")
        self.command_key = command_key


class NotFoundError(DockerManagerError):
    status = 404


class MethodNotAllowedError(DockerManagerError):
    status = 405

    def __init__(self, method: str, allowed: Iterable[str]):
        self.method = str(method)
        self.allowed: Tuple[str, ...] = tuple(allowed)
        super().__init__(f"method not allowed: {self.method}\nallowed: {', '.join(self.allowed)}")


class PayloadTooLargeError(DockerManagerError):
    status = 413


class CommandFailureError(DockerManagerError):
    """The process ran and exited non-zero; ``result`` holds its output."""

    def __init__(self, message: str, result: Optional["CommandResult"] = None):
        super().__init__(message)
        self.result = result


class CommandTimeoutError(DockerManagerError, TimeoutError):
    def __init__(self, message: str, timeout_seconds: float = 0.0):
        super().__init__(message)
        self.timeout_seconds = float(timeout_seconds)


class ProcessSpawnError(DockerManagerError):
    pass


class ShadowSyncError(DockerManagerError):
    pass
