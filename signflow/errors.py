"""
Signflow Exceptions

Fatal compositing failures and workflow rule violations.
Per-field rendering problems are not exceptions here: the renderer
absorbs them and skips the field.
"""


class SignflowError(Exception):
    """Base exception for all signflow errors."""
    pass


class CompositeError(SignflowError):
    """Raised when a signed PDF cannot be produced at all."""
    pass


class SourceFetchError(CompositeError):
    """
    Raised when the original PDF bytes cannot be retrieved.

    Covers transport errors, non-2xx responses and missing blobs.
    """
    def __init__(self, message: str, location: str = None, status_code: int = None):
        self.location = location
        self.status_code = status_code
        super().__init__(message)


class SourceDecodeError(CompositeError):
    """Raised when the source bytes are not a readable PDF."""
    pass


class WorkflowError(SignflowError):
    """Raised when an envelope action breaks a workflow rule."""
    status_code = 400

    def __init__(self, message: str, status_code: int = None):
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)


class NotFound(WorkflowError):
    status_code = 404


class InvalidState(WorkflowError):
    status_code = 400


class NotYourTurn(WorkflowError):
    """Sequential routing: the recipient's order group is not current yet."""
    status_code = 409
