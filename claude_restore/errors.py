"""Error types and Result values for claude-restore.

Operations that can fail for expected reasons (bad input, unsafe paths,
missing files) return a Result instead of raising:

    result = validate_target(path, roots)
    if result.is_err():
        return result
    target = result.unwrap()

Each RestoreError carries a stable code from the taxonomy below. The HTTP
layer maps the code to a status; the CLI prints format_error().
"""

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E")

# Error taxonomy
MISSING_PARAMETER = "MISSING_PARAMETER"
INVALID_FORMAT = "INVALID_FORMAT"
TYPE_MISMATCH = "TYPE_MISMATCH"
PATH_TRAVERSAL = "PATH_TRAVERSAL"
UNSAFE_TARGET = "UNSAFE_TARGET"
REQUIRED_FIELD_MISSING = "REQUIRED_FIELD_MISSING"
NOT_FOUND = "NOT_FOUND"
NO_TARGET_DIRECTORY = "NO_TARGET_DIRECTORY"
INTERNAL_ERROR = "INTERNAL_ERROR"

HTTP_STATUS = {
    MISSING_PARAMETER: 400,
    INVALID_FORMAT: 400,
    TYPE_MISMATCH: 400,
    PATH_TRAVERSAL: 400,
    UNSAFE_TARGET: 400,
    REQUIRED_FIELD_MISSING: 400,
    NOT_FOUND: 404,
    NO_TARGET_DIRECTORY: 400,
    INTERNAL_ERROR: 500,
}


@dataclass(frozen=True)
class RestoreError:
    """A typed, user-facing error."""

    code: str
    message: str
    context: dict[str, Any] = field(default_factory=dict)

    @property
    def status(self) -> int:
        """HTTP status for this error's code."""
        return HTTP_STATUS.get(self.code, 500)

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful result."""

    value: T

    @property
    def ok(self) -> bool:
        return True

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def err(self) -> None:
        return None


@dataclass(frozen=True)
class Err(Generic[E]):
    """Failed result."""

    error: E

    @property
    def ok(self) -> bool:
        return False

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self):
        raise ValueError(f"Called unwrap() on an Err: {self.error}")

    def err(self) -> E:
        return self.error


Result = Union[Ok[T], Err[E]]


def ok(value: T) -> Ok[T]:
    return Ok(value)


def fail(code: str, message: str, **context: Any) -> Err[RestoreError]:
    """Shorthand for Err(RestoreError(...))."""
    return Err(RestoreError(code=code, message=message, context=context))


def format_error(error: RestoreError) -> str:
    """Render an error for terminal output."""
    if error.context:
        details = ", ".join(f"{k}={v}" for k, v in error.context.items())
        return f"{error.message} ({details})"
    return error.message
