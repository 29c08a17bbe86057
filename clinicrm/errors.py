"""
Exception hierarchy for clinicrm.

Every error raised by the data layer carries a typed ErrorKind so callers
branch on the kind instead of matching on message text.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional

import httpx
from postgrest.exceptions import APIError


class ErrorKind(str, Enum):
    """Classification of data-layer failures."""

    CONNECTIVITY = "connectivity"
    TRANSIENT = "transient"
    PERMISSION_DENIED = "permission_denied"
    NOT_FOUND = "not_found"
    INVALID_REQUEST = "invalid_request"
    VALIDATION = "validation"
    UNKNOWN = "unknown"


# SQLSTATE codes for contention / consistency-check failures worth retrying
TRANSIENT_CODES = frozenset({"40001", "40P01", "55P03"})

# Row-level security denials and rejected / expired JWTs
PERMISSION_CODES = frozenset({"42501", "PGRST301", "PGRST302", "401", "403"})

NOT_FOUND_CODES = frozenset({"PGRST116", "404"})


class CRMError(Exception):
    """
    Base exception for all clinicrm errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "DATA_001")
        details: Additional context as a dictionary
        recoverable: Whether the caller can carry on after this error
    """

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or "CRM_000"
        self.details = details or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        base = f"[{self.code}] {self.message}"
        if self.details:
            base += f" | Details: {self.details}"
        return base

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization"""
        return {
            "error_type": self.__class__.__name__,
            "kind": self.kind.value,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# =============================================================================
# DATA LAYER EXCEPTIONS
# =============================================================================

class DataAccessError(CRMError):
    """Raised when a remote store operation fails"""

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.UNKNOWN,
        table: Optional[str] = None,
        operation: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if table:
            details["table"] = table
        if operation:
            details["operation"] = operation

        super().__init__(
            message=message,
            code=kwargs.pop("code", "DATA_001"),
            details=details,
            **kwargs,
        )
        self.kind = kind
        self.table = table
        self.operation = operation

    @property
    def is_transient(self) -> bool:
        return self.kind == ErrorKind.TRANSIENT

    @property
    def is_permission_denied(self) -> bool:
        return self.kind == ErrorKind.PERMISSION_DENIED


class ValidationError(CRMError):
    """Raised when a required argument is missing or malformed"""

    kind = ErrorKind.VALIDATION

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if field:
            details["field"] = field

        super().__init__(
            message=message,
            code="VALID_001",
            details=details,
            **kwargs,
        )
        self.field = field


# =============================================================================
# AUTH EXCEPTIONS
# =============================================================================

class AuthenticationError(CRMError):
    """Raised when sign-in with the identity provider fails"""

    kind = ErrorKind.PERMISSION_DENIED

    def __init__(self, message: str, email: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if email:
            details["email"] = email

        super().__init__(
            message=message,
            code="AUTH_001",
            details=details,
            **kwargs,
        )


class AuthorizationError(CRMError):
    """Raised when the current identity lacks the role for an operation"""

    kind = ErrorKind.PERMISSION_DENIED

    def __init__(self, message: str, role: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if role:
            details["role"] = role

        super().__init__(
            message=message,
            code="AUTH_002",
            details=details,
            **kwargs,
        )


# =============================================================================
# CONFIGURATION EXCEPTIONS
# =============================================================================

class ConfigurationError(CRMError):
    """Raised when configuration is invalid or missing"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key

        super().__init__(
            message=message,
            code="CONFIG_001",
            details=details,
            recoverable=False,
            **kwargs,
        )


# =============================================================================
# CLASSIFICATION
# =============================================================================

def _kind_for_code(code: Optional[str]) -> ErrorKind:
    if not code:
        return ErrorKind.UNKNOWN
    if code in TRANSIENT_CODES:
        return ErrorKind.TRANSIENT
    if code in PERMISSION_CODES:
        return ErrorKind.PERMISSION_DENIED
    if code in NOT_FOUND_CODES:
        return ErrorKind.NOT_FOUND
    # SQLSTATE class 22 (data exception) and 23 (integrity violation)
    if len(code) == 5 and code[:2] in ("22", "23"):
        return ErrorKind.INVALID_REQUEST
    return ErrorKind.UNKNOWN


def classify_error(error: BaseException) -> ErrorKind:
    """
    Map an exception raised by the Supabase client onto an ErrorKind.

    PostgREST errors are classified by their SQLSTATE / PGRST code,
    transport failures are connectivity errors.
    """
    if isinstance(error, CRMError):
        return error.kind
    if isinstance(error, APIError):
        return _kind_for_code(str(error.code) if error.code is not None else None)
    if isinstance(error, (httpx.TransportError, OSError)):
        return ErrorKind.CONNECTIVITY
    return ErrorKind.UNKNOWN


def to_data_access_error(
    error: BaseException,
    table: Optional[str] = None,
    operation: Optional[str] = None,
) -> DataAccessError:
    """Wrap any exception into a DataAccessError, keeping existing ones as-is."""
    if isinstance(error, DataAccessError):
        return error

    kind = classify_error(error)
    details: Dict[str, Any] = {}
    if isinstance(error, APIError):
        message = error.message or str(error)
        if error.code is not None:
            details["remote_code"] = str(error.code)
        if error.hint:
            details["hint"] = error.hint
    else:
        message = str(error) or error.__class__.__name__

    return DataAccessError(
        message,
        kind=kind,
        table=table,
        operation=operation,
        details=details,
        recoverable=kind != ErrorKind.UNKNOWN,
    )
