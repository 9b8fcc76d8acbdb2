"""
Error Taxonomy Module

Every failure the core surfaces to a caller is one of these types. Each carries
a stable machine-checkable ``kind`` plus a human readable message; the API layer
maps kinds to HTTP status codes.
"""

from enum import Enum
from typing import Dict, Optional


class BankingError(Exception):
    """Base class for all core banking errors"""

    kind = "banking_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, str]:
        return {"kind": self.kind, "detail": self.message}


class ValidationError(BankingError, ValueError):
    """Malformed or out-of-range input (amounts, instruments, date of birth)"""

    kind = "validation_error"

    def __init__(self, message: str, reason: Optional[Enum] = None):
        super().__init__(message)
        self.reason = reason


class ConflictError(BankingError):
    """Duplicate account type, duplicate email, or a taken storage key"""

    kind = "conflict"


class NotFoundError(BankingError):
    """Record missing or not owned by the caller"""

    kind = "not_found"


class InvalidStateError(BankingError):
    """Operation not allowed in the record's current state"""

    kind = "invalid_state"


class AuthenticationFailure(BankingError):
    """Bad session token or tampered encryption envelope"""

    kind = "authentication_failure"


class UnconfiguredError(BankingError):
    """A required secret is missing at startup. Fatal."""

    kind = "unconfigured"


class AccountNumberExhaustedError(BankingError):
    """No unique account number found within the retry cap. Fatal."""

    kind = "account_number_exhausted"
