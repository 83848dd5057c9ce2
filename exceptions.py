"""
Unified exception hierarchy for the budget ledger project.

This module defines the exception hierarchy with BudgetAppError as the base
exception, allowing consistent error handling across the ledger, persistence,
AI and presentation modules.

Note that the ledger store itself raises nothing for unknown ids or dangling
category references; those are silent no-ops reported through return values.
"""

from typing import Optional


class BudgetAppError(Exception):
    """
    Base exception class for all budget ledger errors.

    All custom exceptions in the application should inherit from this class
    to enable unified error handling and consistent error messages.

    Attributes:
        message: Human-readable error message
        details: Optional dictionary with additional error context
        original_error: Optional original exception that caused this error
    """

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None,
        original_error: Optional[Exception] = None
    ) -> None:
        """
        Initialize BudgetAppError.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional error context
            original_error: Optional original exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.original_error = original_error

    def __str__(self) -> str:
        """Return string representation of the error."""
        msg = self.message
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            msg = f"{msg} ({detail_str})"
        return msg


class ConfigError(BudgetAppError):
    """Raised when configuration loading or validation fails."""
    pass


class LedgerError(BudgetAppError):
    """Raised when a ledger command cannot be applied."""
    pass


class LedgerValidationError(LedgerError):
    """Raised when input is rejected by validation (form input or strict ledger mode)."""
    pass


class PersistenceError(BudgetAppError):
    """Raised when the ledger blob cannot be read from or written to storage."""
    pass


class SnapshotFormatError(PersistenceError):
    """Raised when a persisted ledger snapshot cannot be decoded."""
    pass


class EncryptionError(BudgetAppError):
    """Base error for encryption failures."""
    pass


class EncryptionKeyError(EncryptionError):
    """Raised when encryption key loading or validation fails."""
    pass


class DecryptionError(EncryptionError):
    """Raised when decryption fails."""
    pass


class AIServiceError(BudgetAppError):
    """Raised when the AI text-generation backend fails or is not configured."""
    pass


class AnalyticsError(BudgetAppError):
    """Raised when analytics queries receive invalid parameters."""
    pass


class SearchError(BudgetAppError):
    """Raised when search indexing or querying fails."""
    pass


class ReportError(BudgetAppError):
    """Raised when report generation fails."""
    pass


class BackupError(BudgetAppError):
    """Raised when backup or restore operations fail."""
    pass
