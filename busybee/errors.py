"""
Typed error taxonomy for the busybee trust boundary.

Every rejection produced by the safety layer, the stores or the upload
pipeline is one of these exceptions. The HTTP layer maps each kind to a
status code and a short wire message (see busybee.api.errors); the raw
user input that caused the failure is never part of the message.
"""

from uuid import UUID


class BusybeeError(Exception):
    """Base class for all busybee domain errors."""


class ValidationError(BusybeeError, ValueError):
    """
    A boundary value failed validation.

    Subclasses ValueError so pydantic turns it into a regular validation
    error while parsing request bodies and keeps the instance in the error
    context.
    """

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(self.code)

    @property
    def code(self) -> str:
        return f"{self.field}: {self.reason}"


class Unauthorized(BusybeeError):
    """No valid session accompanies a request to a protected path."""


class Forbidden(BusybeeError):
    """The authenticated user fails the authorization predicate."""


class TaskNotFound(BusybeeError):
    def __init__(self, taskid: UUID):
        self.taskid = taskid
        super().__init__("task: not found")


class ResourceNotFound(BusybeeError):
    """A stored file referenced by a request does not exist."""


class TaskNameConflict(BusybeeError):
    def __init__(self):
        super().__init__("name: task name already exists")


class TaskAlreadyDone(BusybeeError):
    def __init__(self, taskid: UUID):
        self.taskid = taskid
        super().__init__("task: already done")


class UploadRejected(BusybeeError):
    """
    The upload admission pipeline refused a file.

    ``status_code`` selects the HTTP status (400, 413, 415 or 429); the
    ``reason`` is for the server log only, clients always see
    ``upload: rejected``.
    """

    WIRE_MESSAGE = "upload: rejected"

    def __init__(self, status_code: int, reason: str):
        self.status_code = status_code
        self.reason = reason
        super().__init__(reason)


class SandboxEscape(BusybeeError):
    """A path resolved outside of the pinned sandbox root."""


class PersistenceError(BusybeeError, OSError):
    """Saving or loading the task snapshot failed."""
