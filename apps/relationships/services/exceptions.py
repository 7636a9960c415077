"""
Domain-specific exceptions for relationships app.

These exceptions represent business rule violations and should be
caught in views and converted to appropriate HTTP responses.
"""


class RelationshipsServiceError(Exception):
    """Base exception for all relationships service errors."""
    pass


class RelationshipNotFoundError(RelationshipsServiceError):
    """Raised when a relationship card id or token matches nothing."""
    pass


class InsufficientPermissionsError(RelationshipsServiceError):
    """Raised when a user is not a party to the relationship."""
    pass


class ValidationFailedError(RelationshipsServiceError):
    """Raised when labels or the email address are invalid."""
    pass


class InvalidStateTransitionError(RelationshipsServiceError):
    """Raised when a card has already left the pending state or is not active."""
    pass


class DuplicateRelationshipError(RelationshipsServiceError):
    """Raised when an open relationship with the person already exists."""
    pass
