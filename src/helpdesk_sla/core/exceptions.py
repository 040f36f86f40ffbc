"""
Core Exceptions
================

Custom exceptions for the helpdesk SLA service.

The escalation engine itself answers "no rule" or "unknown level" with safe
defaults; these exceptions cover the edges where a caller asked for something
that cannot be done (unknown ticket, illegal status change, unreadable rules).
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
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


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


class InvalidStatusTransitionException(DomainException):
    """Raised when a ticket status change skips or reverses the workflow."""

    def __init__(self, ticket_id: str, from_status: str, to_status: str):
        self.ticket_id = ticket_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Ticket {ticket_id} cannot move from {from_status} to {to_status}",
            {"ticket_id": ticket_id, "from_status": from_status, "to_status": to_status}
        )


class InvalidTicketTimestampException(ValidationException):
    """Raised when a ticket carries a missing or unparseable creation time."""

    def __init__(self, ticket_id: str, value: object):
        self.ticket_id = ticket_id
        super().__init__(
            f"Ticket {ticket_id} has an invalid created_at: {value!r}",
            {"ticket_id": ticket_id}
        )
