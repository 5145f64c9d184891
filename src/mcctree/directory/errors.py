"""Exception classes raised by account directories and the traversal engine."""

from typing import Any, Dict, Optional


class DirectoryError(Exception):
    """Base exception for account directory operations."""

    def __init__(
        self,
        message: str,
        account_id: Optional[str] = None,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        """Initialize directory error.

        Args:
            message: Error message
            account_id: Account the failing call was about, if any
            operation: Directory operation that failed
            context: Additional context information
        """
        super().__init__(message)
        self.account_id = account_id
        self.operation = operation
        self.context = context or {}


class SetupFailure(DirectoryError):
    """Raised when a traversal cannot start, e.g. the credential is malformed."""

    def __init__(self, message: str, missing_fields: Optional[list] = None):
        super().__init__(message, context={"missing_fields": missing_fields or []})
        self.missing_fields = missing_fields or []


class DirectoryUnavailable(DirectoryError):
    """A single directory call failed (transport, auth, quota or timeout)."""

    def __init__(
        self,
        message: str,
        account_id: Optional[str] = None,
        operation: Optional[str] = None,
        retryable: bool = True,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, account_id=account_id, operation=operation, context=context)
        self.retryable = retryable


class NotFound(DirectoryError):
    """The account does not exist or is not visible under the acting-as identity."""

    def __init__(
        self,
        account_id: str,
        operation: Optional[str] = None,
        acting_as_id: Optional[str] = None,
    ):
        message = f"Account {account_id} not found"
        if acting_as_id:
            message += f" when acting as {acting_as_id}"
        super().__init__(
            message,
            account_id=account_id,
            operation=operation,
            context={"acting_as_id": acting_as_id},
        )
        self.acting_as_id = acting_as_id
