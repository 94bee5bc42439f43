"""
Error taxonomy for the scheduling engine.

Stores raise the StoreError family. The engine never lets those cross its
boundary: every store call runs inside ``store_operation`` which converts the
failure into an EngineError that names the operation and keeps the original
exception as its cause.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from enum import Enum

from loguru import logger


class ErrorKind(str, Enum):
    """Stable failure categories shared by stores and the engine."""

    NOT_FOUND = "not_found"
    CONSTRAINT_VIOLATION = "constraint_violation"
    STORE_UNAVAILABLE = "store_unavailable"
    CONFLICT = "conflict"
    INVALID_INPUT = "invalid_input"


# =============================================================================
# Store-side errors
# =============================================================================


class StoreError(Exception):
    """Base class for failures raised by a store implementation."""

    kind: ErrorKind = ErrorKind.STORE_UNAVAILABLE

    def __init__(self, message: str, *, cause: BaseException | None = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class NotFoundError(StoreError):
    """The targeted record does not exist."""

    kind = ErrorKind.NOT_FOUND


class ConstraintViolationError(StoreError):
    """A uniqueness or referential constraint rejected the write."""

    kind = ErrorKind.CONSTRAINT_VIOLATION


class DuplicateKeyError(ConstraintViolationError):
    """A uniqueness constraint rejected a create; the record already exists."""


class StoreUnavailableError(StoreError):
    """Transient failure reaching the store. Callers own the retry policy."""

    kind = ErrorKind.STORE_UNAVAILABLE


class StaleWriteError(StoreError):
    """A compare-and-swap update found a newer version than expected."""

    kind = ErrorKind.CONFLICT


# =============================================================================
# Engine-side errors
# =============================================================================


class EngineError(Exception):
    """
    Failure surfaced by an engine operation.

    Attributes:
        operation: Human-readable name of the failed operation
        kind: ErrorKind of the underlying failure
        cause: The original exception, if any
    """

    def __init__(
        self,
        operation: str,
        kind: ErrorKind,
        cause: BaseException | None = None,
        detail: str | None = None,
    ):
        self.operation = operation
        self.kind = kind
        self.cause = cause
        reason = detail or (str(cause) if cause is not None else kind.value)
        super().__init__(f"Failed to {operation}: {reason}")

    @property
    def is_transient(self) -> bool:
        return self.kind == ErrorKind.STORE_UNAVAILABLE


class InvalidInputError(EngineError):
    """Caller-supplied data failed validation."""

    def __init__(self, operation: str, detail: str, cause: BaseException | None = None):
        super().__init__(operation, ErrorKind.INVALID_INPUT, cause=cause, detail=detail)


@contextmanager
def store_operation(operation: str) -> Iterator[None]:
    """
    Wrap store failures raised inside the block as EngineError.

    Usage:
        with store_operation("get next questions"):
            rows = await store.list_all()
    """
    try:
        yield
    except StoreError as exc:
        # Write races are resolved by the callers' retry loops
        level = "DEBUG" if isinstance(exc, (StaleWriteError, DuplicateKeyError)) else "WARNING"
        logger.log(level, f"Store failure during '{operation}' ({exc.kind.value}): {exc.message}")
        raise EngineError(operation, exc.kind, cause=exc) from exc
