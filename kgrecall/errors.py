"""Error taxonomy for recall and ingestion."""


class RecallError(Exception):
    """Base class for all kgrecall errors."""


class UserInputError(RecallError):
    """Caller supplied an unusable query or option. Never retried."""


class ConfigurationError(RecallError):
    """Missing credentials or a store that cannot be reached at startup."""


class TransientIOError(RecallError):
    """Timeout or malformed provider payload; safe to retry."""


class ValidationError(RecallError):
    """Out-of-range values or schema-mismatched output from a collaborator.

    Retried like a transient failure; when it persists, the affected unit of
    work degrades to an empty contribution instead of failing the query.
    """


class StoreError(RecallError):
    """Graph store call failed or returned an inconsistent payload."""


class CallFailedError(RecallError):
    """An outbound call kept failing after every retry attempt."""

    def __init__(self, operation: str, attempts: int, last_error: BaseException):
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"{operation} failed after {attempts} attempts: "
            f"{type(last_error).__name__}: {last_error}"
        )
