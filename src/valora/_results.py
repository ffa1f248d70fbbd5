"""Validation result and error value types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# Error codes produced by the engine itself
OPERATION_ERROR = "async.error"
TIMEOUT_ERROR = "async.timeout"
CANCELLED_ERROR = "async.cancelled"
INVALID_ERROR = "async.invalid"


class ValoraValidationError(ValueError):
    """Raised by ValidationResult.raise_if_invalid() for a failed result."""

    def __init__(self, message: str, errors: list[ValidationError] | None = None):
        super().__init__(message)
        self.errors = list(errors or [])


@dataclass
class ValidationError:
    """
    A single validation failure.

    Attributes:
        code: Error code identifier (e.g. "async.timeout")
        message: Human-readable message
        path: Path to the failing field
        field: Field name; defaults to the last path segment
        metadata: Optional extra details about the failure
    """

    code: str
    message: str
    path: list[str | int] = field(default_factory=list)
    field: str | None = None
    metadata: dict[str, Any] | None = None

    def __post_init__(self) -> None:
        self.path = list(self.path)
        if self.field is None:
            self.field = str(self.path[-1]) if self.path else ""


@dataclass
class ValidationContext:
    """
    Where and how a value is being validated.

    Produced by the surrounding schema layer; the async engine only reads
    path and field to place the errors it creates.
    """

    path: list[str | int] = field(default_factory=list)
    field: str = ""
    locale: str = "en"
    data: Any = None

    @classmethod
    def for_value(cls, value: Any) -> ValidationContext:
        """Default context used when the caller does not supply one."""
        return cls(path=[], field="", locale="en", data={"value": value})


@dataclass
class ValidationResult:
    """
    Result of validation with error details.

    Attributes:
        success: Whether validation passed
        data: The (possibly transformed) value when successful
        errors: Errors describing the failure; empty on success
    """

    success: bool
    data: Any = None
    errors: list[ValidationError] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.success != (len(self.errors) == 0):
            raise ValueError("success must be True exactly when errors is empty")

    @classmethod
    def ok(cls, data: Any = None) -> ValidationResult:
        return cls(success=True, data=data, errors=[])

    @classmethod
    def fail(cls, *errors: ValidationError) -> ValidationResult:
        return cls(success=False, data=None, errors=list(errors))

    @property
    def messages(self) -> list[str]:
        return [e.message for e in self.errors]

    @property
    def is_operation_error(self) -> bool:
        """True when the failure came from the operation raising, not rejecting."""
        return bool(self.errors) and all(e.code == OPERATION_ERROR for e in self.errors)

    def __bool__(self) -> bool:
        return self.success

    def raise_if_invalid(
        self, exception_class: type[Exception] = ValoraValidationError
    ) -> None:
        """Raise an exception if validation failed."""
        if self.success:
            return
        message = "; ".join(self.messages)
        if issubclass(exception_class, ValoraValidationError):
            raise exception_class(message, self.errors)
        raise exception_class(message)


def create_error(
    code: str,
    message: str,
    context: ValidationContext | None = None,
    metadata: dict[str, Any] | None = None,
) -> ValidationError:
    """Build an error placed at the context's path and field."""
    path = list(getattr(context, "path", None) or [])
    field_name = getattr(context, "field", None) or None
    return ValidationError(
        code=code, message=message, path=path, field=field_name, metadata=metadata
    )


def failure(
    code: str,
    message: str,
    context: ValidationContext | None = None,
    metadata: dict[str, Any] | None = None,
) -> ValidationResult:
    """Failed result holding a single error."""
    return ValidationResult.fail(create_error(code, message, context, metadata))


def operation_failure(
    error: BaseException,
    context: ValidationContext | None = None,
    **metadata: Any,
) -> ValidationResult:
    """Failed result describing an exception raised by an operation."""
    return failure(
        OPERATION_ERROR,
        str(error) or "Async validation failed",
        context,
        {"exception": type(error).__name__, **metadata},
    )


def cancelled_failure(context: ValidationContext | None = None) -> ValidationResult:
    return failure(CANCELLED_ERROR, "Validation cancelled", context)
