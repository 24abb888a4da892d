"""Exception hierarchy for s3find."""


class S3FindError(Exception):
    """Base exception for all s3find errors."""

    pass


class ValidationError(S3FindError):
    """Raised when arguments or configuration are invalid."""

    pass


class ParseError(ValidationError):
    """Raised when a filter literal (glob, regex, size, time, tag) is malformed."""

    pass


class TraversalError(S3FindError):
    """Raised when a listing call fails."""

    pass


class CommandExecutionError(S3FindError):
    """Raised when command execution fails."""

    pass


class ObjectOperationError(CommandExecutionError):
    """Raised when a single remote operation on one object fails."""

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.code = code
