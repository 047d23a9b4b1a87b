"""Common Pydantic schemas and base classes."""

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict

from wagerbook.errors import WagerError


class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class ErrorDetail(BaseSchema):
    """Distinguishable error code plus a human-readable message."""

    code: str
    message: str
    retryable: bool = False

    @classmethod
    def from_exception(cls, exc: WagerError) -> "ErrorDetail":
        return cls(code=exc.code, message=exc.message, retryable=exc.retryable)


T = TypeVar("T")


class OperationResult(BaseModel, Generic[T]):
    """Success-or-error outcome of one lifecycle operation."""

    ok: bool
    value: Optional[T] = None
    error: Optional[ErrorDetail] = None

    @classmethod
    def success(cls, value: T) -> "OperationResult[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: ErrorDetail) -> "OperationResult[T]":
        return cls(ok=False, error=error)

    def unwrap(self) -> T:
        """Return the value, raising if the operation failed."""
        if not self.ok:
            raise RuntimeError(f"{self.error.code}: {self.error.message}")
        return self.value
