"""
govtreasury core module.

Error taxonomy and logging shared by every component. The composed
``GovernanceSystem`` lives in ``govtreasury.core.system``.
"""

from .errors import (
    AuthorizationError,
    ErrorCategory,
    GovernanceError,
    InputValidationError,
    ResourceLimitError,
    StateError,
)
from .logging import component_logger, configure_logging

__all__ = [
    "AuthorizationError",
    "ErrorCategory",
    "GovernanceError",
    "InputValidationError",
    "ResourceLimitError",
    "StateError",
    "component_logger",
    "configure_logging",
]
