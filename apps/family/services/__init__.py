"""
Family app services layer.

Services contain all business logic for family units, invitations,
connections, ownership transfers and pending profiles. Views are thin
HTTP handlers.
"""

from .exceptions import (
    FamilyServiceError,
    FamilyUnitNotFoundError,
    InvitationNotFoundError,
    ConnectionNotFoundError,
    TransferNotFoundError,
    ProfileNotFoundError,
    InsufficientPermissionsError,
    ValidationFailedError,
    InvalidStateTransitionError,
    FamilyConflictError,
    DuplicateInvitationError,
    DuplicateConnectionError,
    DuplicateTransferError,
    AlreadyMemberError,
    DuplicateProfileError,
    ExistingAccountError,
    FamilyCycleError,
)

from .lifecycle import (
    ensure_pending,
    expire_if_due,
    expire_overdue,
    transition,
)

from .unit_management import (
    get_family_unit,
    get_member_unit,
    create_family_unit,
    update_family_unit,
    deactivate_family_unit,
    get_family_units,
    get_family_members,
    search_family_units,
    reparent_family_unit,
    set_parent_family_unit,
    get_family_tree,
)

from .invitation_management import (
    normalize_email,
    can_invite,
    send_family_invitation,
    cancel_invitation,
    resend_invitation,
    lookup_invitation,
    accept_invitation,
    decline_invitation,
    get_unit_invitations,
)

from .connection_management import (
    send_connection,
    respond_to_connection,
    cancel_connection,
    get_unit_connections,
)

from .ownership_transfer import (
    initiate_transfer,
    respond_to_transfer,
    cancel_transfer,
    get_user_transfers,
)

from .pending_profiles import (
    create_seed_profile,
    send_profile_claim_invitation,
    upgrade_profile_to_adult,
    claim_pending_profile,
    decline_profile_claim,
    delete_pending_profile,
    get_pending_profiles,
    get_claimable_profiles,
)


__all__ = [
    # Exceptions
    'FamilyServiceError',
    'FamilyUnitNotFoundError',
    'InvitationNotFoundError',
    'ConnectionNotFoundError',
    'TransferNotFoundError',
    'ProfileNotFoundError',
    'InsufficientPermissionsError',
    'ValidationFailedError',
    'InvalidStateTransitionError',
    'FamilyConflictError',
    'DuplicateInvitationError',
    'DuplicateConnectionError',
    'DuplicateTransferError',
    'AlreadyMemberError',
    'DuplicateProfileError',
    'ExistingAccountError',
    'FamilyCycleError',

    # Lifecycle
    'ensure_pending',
    'expire_if_due',
    'expire_overdue',
    'transition',

    # Unit Management
    'get_family_unit',
    'get_member_unit',
    'create_family_unit',
    'update_family_unit',
    'deactivate_family_unit',
    'get_family_units',
    'get_family_members',
    'search_family_units',
    'reparent_family_unit',
    'set_parent_family_unit',
    'get_family_tree',

    # Invitation Management
    'normalize_email',
    'can_invite',
    'send_family_invitation',
    'cancel_invitation',
    'resend_invitation',
    'lookup_invitation',
    'accept_invitation',
    'decline_invitation',
    'get_unit_invitations',

    # Connection Management
    'send_connection',
    'respond_to_connection',
    'cancel_connection',
    'get_unit_connections',

    # Ownership Transfer
    'initiate_transfer',
    'respond_to_transfer',
    'cancel_transfer',
    'get_user_transfers',

    # Pending Profiles
    'create_seed_profile',
    'send_profile_claim_invitation',
    'upgrade_profile_to_adult',
    'claim_pending_profile',
    'decline_profile_claim',
    'delete_pending_profile',
    'get_pending_profiles',
    'get_claimable_profiles',
]
