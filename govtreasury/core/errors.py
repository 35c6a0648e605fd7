"""
Error taxonomy for governance and treasury operations.

Every rejected operation raises one of these errors. Nothing is retried
automatically and no partial state survives a raised error, because every
operation builds a new immutable state and only returns it on success.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar


class ErrorCategory(Enum):
    """Broad classes of rejection."""

    AUTHORIZATION = "authorization"
    STATE_PRECONDITION = "state_precondition"
    RESOURCE_LIMIT = "resource_limit"
    INPUT_VALIDATION = "input_validation"


@dataclass
class GovernanceError(Exception):
    """Base class for all rejected governance and treasury operations."""

    reason: str = "Unknown / Unset Error Condition"
    category: ClassVar[ErrorCategory | None] = None

    def __str__(self) -> str:
        return self.reason


@dataclass
class AuthorizationError(GovernanceError):
    """Caller lacks the required role or voting weight."""

    category: ClassVar[ErrorCategory] = ErrorCategory.AUTHORIZATION


@dataclass
class StateError(GovernanceError):
    """Operation invoked in the wrong lifecycle state."""

    category: ClassVar[ErrorCategory] = ErrorCategory.STATE_PRECONDITION


@dataclass
class ResourceLimitError(GovernanceError):
    """Insufficient balance or daily withdrawal cap exceeded."""

    category: ClassVar[ErrorCategory] = ErrorCategory.RESOURCE_LIMIT


@dataclass
class InputValidationError(GovernanceError, ValueError):
    """Malformed input: mismatched arrays, zero addresses, empty strings, duplicates."""

    category: ClassVar[ErrorCategory] = ErrorCategory.INPUT_VALIDATION


def unauthorized_account(account: str, role: str) -> AuthorizationError:
    """Build the standard missing-role error."""
    return AuthorizationError(
        f"AccessControlUnauthorizedAccount: account {account} is missing role {role}"
    )
