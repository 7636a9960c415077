"""
Sharing app services layer.

Services contain business logic for cards, granular field sharing and
permission evaluation. Views are thin HTTP handlers around them.
"""

from .exceptions import (
    SharingServiceError,
    CardNotFoundError,
    PolicyNotFoundError,
    ResourceNotFoundError,
    InvalidPolicyError,
    InvalidCardFieldsError,
    InsufficientPermissionsError,
)

from .card_management import (
    create_card,
    get_card,
    update_card,
    delete_card,
    get_card_components,
    get_shared_card_view,
)

from .permission_evaluation import (
    PermissionDecision,
    check_permission,
    evaluate_conditions,
    has_access_permission,
    resolve_resource_owner_id,
)

from .policy_management import (
    PERMISSION_TEMPLATES,
    create_policy,
    revoke_policy,
    get_resource_policies,
    get_permission_templates,
)


__all__ = [
    # Exceptions
    'SharingServiceError',
    'CardNotFoundError',
    'PolicyNotFoundError',
    'ResourceNotFoundError',
    'InvalidPolicyError',
    'InvalidCardFieldsError',
    'InsufficientPermissionsError',

    # Card Management
    'create_card',
    'get_card',
    'update_card',
    'delete_card',
    'get_card_components',
    'get_shared_card_view',

    # Permission Evaluation
    'PermissionDecision',
    'check_permission',
    'evaluate_conditions',
    'has_access_permission',
    'resolve_resource_owner_id',

    # Policy Management
    'PERMISSION_TEMPLATES',
    'create_policy',
    'revoke_policy',
    'get_resource_policies',
    'get_permission_templates',
]
