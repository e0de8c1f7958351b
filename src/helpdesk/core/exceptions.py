"""
Core Exceptions
================

Custom exceptions for the application following clean architecture principles.

These exceptions define domain-specific errors that can be caught and handled
appropriately at the application boundaries.
"""

from typing import Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class ValidationException(ApplicationException):
    """Exception for validation errors."""


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[object] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id is not None:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class ForbiddenException(DomainException):
    """Actor lacks the role required for the operation."""

    def __init__(
        self,
        actor_role: str,
        required_role: str,
        details: Optional[dict] = None
    ):
        self.actor_role = actor_role
        self.required_role = required_role
        super().__init__(
            f"Role '{actor_role}' cannot act on a stage requiring '{required_role}'",
            details or {"actor_role": actor_role, "required_role": required_role}
        )


class InvalidTransitionException(DomainException):
    """State machine precondition violated."""

    def __init__(
        self,
        current_state: str,
        action: str,
        reason: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.current_state = current_state
        self.action = action
        message = f"Cannot {action} from state '{current_state}'"
        if reason:
            message += f": {reason}"
        super().__init__(
            message,
            details or {"current_state": current_state, "action": action}
        )


class ConflictException(RepositoryException):
    """Concurrent modification detected by an optimistic check."""


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""


class ExternalServiceException(ApplicationException):
    """Base exception for external service failures."""

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)
