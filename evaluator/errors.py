"""Exception types shared by the stores, services and API."""
from __future__ import annotations


class EvaluatorError(Exception):
    """Base class for evaluator errors."""


class AuthenticationError(EvaluatorError):
    """An operation that needs a reviewer identity was called without one."""


class ValidationError(EvaluatorError):
    """A submitted value is outside its allowed range. Nothing was written."""


class UpstreamFetchError(EvaluatorError):
    """The external catalog could not be fetched or parsed."""
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
