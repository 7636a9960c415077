"""
Relationships app services layer.
"""

from .exceptions import (
    RelationshipsServiceError,
    RelationshipNotFoundError,
    InsufficientPermissionsError,
    ValidationFailedError,
    InvalidStateTransitionError,
    DuplicateRelationshipError,
)

from .relationship_management import (
    create_relationship_invitation,
    accept_relationship_invitation,
    reject_relationship_invitation,
    cancel_relationship_invitation,
    terminate_relationship,
    get_user_relationships,
)


__all__ = [
    # Exceptions
    'RelationshipsServiceError',
    'RelationshipNotFoundError',
    'InsufficientPermissionsError',
    'ValidationFailedError',
    'InvalidStateTransitionError',
    'DuplicateRelationshipError',

    # Relationship Management
    'create_relationship_invitation',
    'accept_relationship_invitation',
    'reject_relationship_invitation',
    'cancel_relationship_invitation',
    'terminate_relationship',
    'get_user_relationships',
]
