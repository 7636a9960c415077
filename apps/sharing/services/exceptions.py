"""
Domain-specific exceptions for sharing app.

These exceptions represent business rule violations and should be
caught in views and converted to appropriate HTTP responses.
"""


class SharingServiceError(Exception):
    """Base exception for all sharing service errors."""
    pass


class CardNotFoundError(SharingServiceError):
    """Raised when a card does not exist."""
    pass


class PolicyNotFoundError(SharingServiceError):
    """Raised when a sharing policy does not exist."""
    pass


class ResourceNotFoundError(SharingServiceError):
    """Raised when a policy targets a resource that cannot be resolved."""
    pass


class InvalidPolicyError(SharingServiceError):
    """Raised when permissions, conditions or shared components are malformed."""
    pass


class InvalidCardFieldsError(SharingServiceError):
    """Raised when card fields are not a mapping of typed values."""
    pass


class InsufficientPermissionsError(SharingServiceError):
    """Raised when a user lacks required permissions for an action."""
    pass
