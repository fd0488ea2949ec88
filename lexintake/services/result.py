from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar, Union

T = TypeVar("T")


class ErrorCode(str, Enum):
    NO_CREDENTIALS = "no_credentials"
    PROVIDER_ERROR = "provider_error"
    EMPTY_REPLY = "empty_reply"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a collaborator call that is allowed to fail."""

    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str, code: Union[ErrorCode, str] = ErrorCode.UNKNOWN) -> "Result[T]":
        if isinstance(code, ErrorCode):
            code = code.value
        return cls(ok=False, error=error, error_code=code)

    def unwrap_or(self, default: T) -> T:
        return self.value if self.ok else default
