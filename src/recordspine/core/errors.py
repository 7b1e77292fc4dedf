"""
Structured error types for record-spine.

Every failure this layer raises on its own carries an ``ErrorCategory`` and
an ``ErrorContext`` naming the entity type (and, where relevant, the table
and provider) so that callers can diagnose it without parsing messages.
Errors raised by the record store or the database driver are never caught
or translated here; they reach the caller unchanged.

Manifesto:
    - **Typed hierarchy:** one class per failure in the taxonomy
    - **Rich context:** the entity type travels with every error
    - **Chaining:** ``cause=`` preserves the underlying exception
    - **No retries:** every error is fatal to the current call

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                     RecordSpineError                          │
        │             (category, context, cause)                        │
        ├──────────────────────────────────────────────────────────────┤
        │  ConfigError              ValidationError    DatabaseError    │
        │  (CONFIG)                 (VALIDATION)       (DATABASE)       │
        │     │                        │                  │             │
        │  MappingNotRegistered     NoKeyDefined       TransactionError │
        │  RegistryFrozen           NullArgument          │             │
        │  MissingConfig            InvalidBatchSize   NoActiveTx       │
        │  UnsupportedProvider      EntityDefinition   TxAlreadyActive  │
        └──────────────────────────────────────────────────────────────┘

Examples:
    >>> error = MappingNotRegisteredError("Widget")
    >>> error.context.entity
    'Widget'
    >>> error.to_dict()["category"]
    'CONFIG'

Tags:
    error-handling, exception-hierarchy, error-context, record-spine

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    DATABASE = "DATABASE"         # Transactions, driver failures
    VALIDATION = "VALIDATION"     # Bad arguments, undeclared keys
    CONFIG = "CONFIG"             # Missing mappings, settings, providers
    INTERNAL = "INTERNAL"         # Bugs, unexpected state
    UNKNOWN = "UNKNOWN"           # Uncategorized errors


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Attributes:
        entity: Name of the entity type involved
        table: Table the operation targeted
        provider: Database provider tag (``sqlserver``, ``postgresql``)
        operation: Repository/unit-of-work operation name
        metadata: Additional key-value pairs
    """

    entity: str | None = None
    table: str | None = None
    provider: str | None = None
    operation: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["entity", "table", "provider", "operation"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class RecordSpineError(Exception):
    """
    Base exception for all record-spine errors.

    Subclasses set ``default_category`` so that callers can route errors
    without inspecting their type.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> RecordSpineError:
        """
        Add context to this error (fluent API).

        Usage:
            raise NoKeyDefinedError("Widget").with_context(operation="upsert")
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Serialize for structured logging."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
        }
        context = self.context.to_dict()
        if context:
            result["context"] = context
        if self.cause is not None:
            result["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# Configuration errors
# =============================================================================


class ConfigError(RecordSpineError):
    """Configuration is missing or unusable."""

    default_category = ErrorCategory.CONFIG


class MappingNotRegisteredError(ConfigError):
    """No entity mapping has been registered for a type."""

    def __init__(self, entity: str):
        super().__init__(
            f"No mapping registered for {entity}",
            context=ErrorContext(entity=entity),
        )


class RegistryFrozenError(ConfigError):
    """Registration attempted after the registry was frozen."""

    def __init__(self, entity: str):
        super().__init__(
            f"Cannot register mapping for {entity}: registry is frozen",
            context=ErrorContext(entity=entity),
        )


class MissingConfigError(ConfigError):
    """Required configuration key is missing."""

    def __init__(self, key: str, message: str | None = None):
        self.key = key
        super().__init__(message or f"Missing required configuration: {key}")


class UnsupportedProviderError(ConfigError):
    """The database provider has no dialect for the requested operation."""

    def __init__(self, provider: Any, *, entity: str | None = None, operation: str | None = None):
        self.provider = provider
        what = operation or "this operation"
        super().__init__(
            f"Database provider {provider!r} is not supported for {what}; "
            "supported providers are 'sqlserver' and 'postgresql'",
            context=ErrorContext(
                entity=entity,
                provider=str(provider) if provider is not None else None,
                operation=operation,
            ),
        )


# =============================================================================
# Validation errors
# =============================================================================


class ValidationError(RecordSpineError):
    """Arguments or entity definitions are invalid."""

    default_category = ErrorCategory.VALIDATION


class NoKeyDefinedError(ValidationError):
    """Upsert was invoked for a type without key columns."""

    def __init__(self, entity: str):
        super().__init__(
            f"No key field declared on type {entity}",
            context=ErrorContext(entity=entity, operation="upsert"),
        )


class NullArgumentError(ValidationError):
    """A required argument was ``None``."""

    def __init__(self, argument: str, *, entity: str | None = None):
        self.argument = argument
        super().__init__(
            f"Argument {argument!r} must not be None",
            context=ErrorContext(entity=entity, metadata={"argument": argument}),
        )


class InvalidBatchSizeError(ValidationError):
    """Bulk upsert batch size is not a positive integer."""

    def __init__(self, batch_size: Any, *, entity: str | None = None):
        self.batch_size = batch_size
        super().__init__(
            f"Batch size must be a positive integer, got {batch_size!r}",
            context=ErrorContext(entity=entity, metadata={"batch_size": batch_size}),
        )


class EntityDefinitionError(ValidationError):
    """Entity type cannot be described (not a dataclass, unknown key field)."""

    def __init__(self, entity: str, message: str):
        super().__init__(message, context=ErrorContext(entity=entity))


# =============================================================================
# Database / transaction errors
# =============================================================================


class DatabaseError(RecordSpineError):
    """Database-level failure raised by this layer."""

    default_category = ErrorCategory.DATABASE


class TransactionError(DatabaseError):
    """Transaction lifecycle misuse."""


class NoActiveTransactionError(TransactionError):
    """Commit or rollback without an active transaction."""

    def __init__(self, operation: str):
        verb = "roll back" if operation == "rollback" else operation
        super().__init__(
            f"No active transaction to {verb}.",
            context=ErrorContext(operation=operation),
        )


class TransactionAlreadyActiveError(TransactionError):
    """``begin_transaction`` while another transaction is still active."""

    def __init__(self) -> None:
        super().__init__(
            "A transaction is already active; commit or roll it back first.",
            context=ErrorContext(operation="begin_transaction"),
        )


def categorize_error(error: Exception) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, RecordSpineError):
        return error.category
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "RecordSpineError",
    # Config
    "ConfigError",
    "MappingNotRegisteredError",
    "RegistryFrozenError",
    "MissingConfigError",
    "UnsupportedProviderError",
    # Validation
    "ValidationError",
    "NoKeyDefinedError",
    "NullArgumentError",
    "InvalidBatchSizeError",
    "EntityDefinitionError",
    # Database
    "DatabaseError",
    "TransactionError",
    "NoActiveTransactionError",
    "TransactionAlreadyActiveError",
    # Utilities
    "categorize_error",
]
