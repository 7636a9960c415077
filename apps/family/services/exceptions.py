"""
Domain-specific exceptions for family app.

These exceptions represent business rule violations and should be
caught in views and converted to appropriate HTTP responses.
"""


class FamilyServiceError(Exception):
    """Base exception for all family service errors."""
    pass


# Not found (404)

class FamilyUnitNotFoundError(FamilyServiceError):
    """Raised when a family unit does not exist or is inactive."""
    pass


class InvitationNotFoundError(FamilyServiceError):
    """Raised when an invitation id or token matches nothing."""
    pass


class ConnectionNotFoundError(FamilyServiceError):
    """Raised when a family connection does not exist."""
    pass


class TransferNotFoundError(FamilyServiceError):
    """Raised when an ownership transfer does not exist."""
    pass


class ProfileNotFoundError(FamilyServiceError):
    """Raised when a pending family profile id or token matches nothing."""
    pass


# Permission (403)

class InsufficientPermissionsError(FamilyServiceError):
    """Raised when a user lacks permission for an operation."""
    pass


# Validation (400)

class ValidationFailedError(FamilyServiceError):
    """Raised when input is malformed (bad email, self-connection, ...)."""
    pass


class InvalidStateTransitionError(FamilyServiceError):
    """Raised when a record has already left the pending state."""
    pass


# Conflict (409)

class FamilyConflictError(FamilyServiceError):
    """Base for operations that clash with existing records."""
    pass


class DuplicateInvitationError(FamilyConflictError):
    """Raised when a pending invitation already exists for the email."""
    pass


class DuplicateConnectionError(FamilyConflictError):
    """Raised when a pending connection already links the two units."""
    pass


class DuplicateTransferError(FamilyConflictError):
    """Raised when the unit already has a pending ownership transfer."""
    pass


class AlreadyMemberError(FamilyConflictError):
    """Raised when the user already belongs to the family unit."""
    pass


class DuplicateProfileError(FamilyConflictError):
    """Raised when the unit already has a pending profile for the email."""
    pass


class ExistingAccountError(FamilyConflictError):
    """Raised when a profile is seeded for an email that already has an account."""
    pass


class FamilyCycleError(FamilyConflictError):
    """Raised when a parent link would make a unit its own ancestor."""
    pass
