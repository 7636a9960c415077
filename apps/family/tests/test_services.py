"""
Service layer unit tests for family app.

Tests cover:
- Unit tree (generations, cycles, re-parenting)
- Invitation lifecycle (duplicates, reactivation, lazy expiry)
- Connections (bidirectional approval, cycles)
- Ownership transfer
- Email degradation
"""

import pytest
from datetime import timedelta
from smtplib import SMTPException
from unittest.mock import patch
from uuid import uuid4
from django.utils import timezone

from apps.accounts.models import User
from apps.family.realtime import feed
from apps.family.models import (
    FamilyConnection,
    FamilyInvitation,
    FamilyMembership,
    FamilyOwnershipTransfer,
    FamilyUnit,
    PendingFamilyProfile,
)
from apps.family.services import (
    create_family_unit,
    update_family_unit,
    deactivate_family_unit,
    get_family_units,
    get_family_members,
    search_family_units,
    set_parent_family_unit,
    get_family_tree,
    expire_if_due,
    transition,
    send_family_invitation,
    cancel_invitation,
    resend_invitation,
    lookup_invitation,
    accept_invitation,
    decline_invitation,
    send_connection,
    respond_to_connection,
    cancel_connection,
    initiate_transfer,
    respond_to_transfer,
    cancel_transfer,
    get_user_transfers,
    create_seed_profile,
    send_profile_claim_invitation,
    upgrade_profile_to_adult,
    claim_pending_profile,
    decline_profile_claim,
    delete_pending_profile,
    get_pending_profiles,
    get_claimable_profiles,
)
from apps.sharing.services import create_policy
from apps.family.services.exceptions import (
    FamilyUnitNotFoundError,
    InsufficientPermissionsError,
    ValidationFailedError,
    InvalidStateTransitionError,
    DuplicateInvitationError,
    DuplicateConnectionError,
    DuplicateTransferError,
    AlreadyMemberError,
    DuplicateProfileError,
    ExistingAccountError,
    ProfileNotFoundError,
    FamilyCycleError,
)


def _make_overdue(model, pk):
    model.objects.filter(pk=pk).update(expires_at=timezone.now() - timedelta(minutes=1))


# =============================================================================
# Lifecycle Tests
# =============================================================================

@pytest.mark.django_db
class TestLifecycle:

    def test_expiry_set_from_settings(self, family_unit, anchor, settings):
        settings.FAMILY_INVITATION_EXPIRY_DAYS = 3
        invitation = FamilyInvitation.objects.create(
            family_unit=family_unit,
            invited_by=anchor,
            invitee_email='new@example.com',
            relationship_role='Cousin',
        )

        remaining = invitation.expires_at - timezone.now()
        assert timedelta(days=2, hours=23) < remaining <= timedelta(days=3)

    def test_expire_if_due_persists_status(self, family_unit, anchor):
        invitation = FamilyInvitation.objects.create(
            family_unit=family_unit,
            invited_by=anchor,
            invitee_email='new@example.com',
            relationship_role='Cousin',
        )
        _make_overdue(FamilyInvitation, invitation.pk)
        invitation.refresh_from_db()

        assert expire_if_due(invitation) is True
        invitation.refresh_from_db()
        assert invitation.status == 'expired'
        assert expire_if_due(invitation) is False

    def test_transition_out_of_terminal_state_rejected(self, family_unit, anchor):
        invitation = FamilyInvitation.objects.create(
            family_unit=family_unit,
            invited_by=anchor,
            invitee_email='new@example.com',
            relationship_role='Cousin',
            status='accepted',
        )

        with pytest.raises(InvalidStateTransitionError):
            transition(invitation, 'cancelled')


# =============================================================================
# Unit Management Service Tests
# =============================================================================

@pytest.mark.django_db
class TestUnitManagement:
    """Tests for unit_management.py service functions."""

    def test_create_root_unit(self, anchor):
        unit = create_family_unit(user=anchor, family_label='  Smiths ')

        assert unit.family_label == 'Smiths'
        assert unit.trust_anchor == anchor
        assert unit.generation_level == 1
        assert unit.parent_family_unit is None

    def test_child_unit_is_one_generation_below(self, anchor):
        smiths = create_family_unit(user=anchor, family_label='Smiths')
        junior = create_family_unit(
            user=anchor, family_label='Smiths-Jr', parent_family_unit_id=smiths.id
        )

        assert junior.parent_family_unit == smiths
        assert junior.generation_level == 2

    def test_child_under_foreign_parent_rejected(self, other_anchor, family_unit):
        with pytest.raises(InsufficientPermissionsError):
            create_family_unit(
                user=other_anchor, family_label='Joneses', parent_family_unit_id=family_unit.id
            )

    def test_create_with_blank_label(self, anchor):
        with pytest.raises(ValidationFailedError):
            create_family_unit(user=anchor, family_label='   ')

    def test_create_under_missing_parent(self, anchor):
        with pytest.raises(FamilyUnitNotFoundError):
            create_family_unit(user=anchor, family_label='Orphans', parent_family_unit_id=uuid4())

    def test_update_by_anchor(self, family_unit, anchor):
        unit = update_family_unit(
            unit_id=family_unit.id, user=anchor, family_label='Smith Family',
            family_metadata={'motto': 'Together'},
        )

        assert unit.family_label == 'Smith Family'
        assert unit.family_metadata == {'motto': 'Together'}

    def test_update_by_member_rejected(self, family_unit, membership, relative):
        with pytest.raises(InsufficientPermissionsError):
            update_family_unit(unit_id=family_unit.id, user=relative, family_label='Mine')

    def test_deactivate_detaches_children(self, family_unit, anchor):
        child = create_family_unit(
            user=anchor, family_label='Smiths-Jr', parent_family_unit_id=family_unit.id
        )

        deactivate_family_unit(unit_id=family_unit.id, user=anchor)

        family_unit.refresh_from_db()
        child.refresh_from_db()
        assert family_unit.is_active is False
        assert child.parent_family_unit is None
        assert child.generation_level == 1

    def test_get_family_units_for_anchor_and_member(
        self, family_unit, other_unit, membership, anchor, relative
    ):
        assert list(get_family_units(user=anchor)) == [family_unit]
        assert list(get_family_units(user=relative)) == [family_unit]

    def test_get_family_members_requires_membership(self, family_unit, membership, anchor, outsider):
        members = get_family_members(unit_id=family_unit.id, user=anchor)
        assert [m.member for m in members] == [membership.member]

        with pytest.raises(InsufficientPermissionsError):
            get_family_members(unit_id=family_unit.id, user=outsider)

    def test_search_excludes_own_units(self, family_unit, other_unit, anchor):
        FamilyUnit.objects.create(family_label='Smithsonian', trust_anchor=other_unit.trust_anchor)

        labels = [u.family_label for u in search_family_units(user=anchor, term='smith')]

        assert labels == ['Smithsonian']

    def test_search_blank_term(self, family_unit, anchor):
        assert list(search_family_units(user=anchor, term='  ')) == []

    def test_set_parent_rejects_self(self, family_unit, anchor):
        with pytest.raises(FamilyCycleError):
            set_parent_family_unit(
                unit_id=family_unit.id, user=anchor, parent_family_unit_id=family_unit.id
            )

    def test_set_parent_rejects_cycle(self, family_unit, anchor):
        child = create_family_unit(
            user=anchor, family_label='Smiths-Jr', parent_family_unit_id=family_unit.id
        )

        with pytest.raises(FamilyCycleError):
            set_parent_family_unit(
                unit_id=family_unit.id, user=anchor, parent_family_unit_id=child.id
            )

        family_unit.refresh_from_db()
        assert family_unit.parent_family_unit is None

    def test_set_parent_recomputes_subtree(self, family_unit, anchor):
        child = create_family_unit(
            user=anchor, family_label='Smiths-Jr', parent_family_unit_id=family_unit.id
        )
        grandchild = create_family_unit(
            user=anchor, family_label='Smiths-III', parent_family_unit_id=child.id
        )
        elders = create_family_unit(user=anchor, family_label='Elders')
        elders_jr = create_family_unit(
            user=anchor, family_label='Elders-Jr', parent_family_unit_id=elders.id
        )

        set_parent_family_unit(
            unit_id=family_unit.id, user=anchor, parent_family_unit_id=elders_jr.id
        )

        for unit in (family_unit, child, grandchild):
            unit.refresh_from_db()
        assert family_unit.generation_level == 3
        assert child.generation_level == 4
        assert grandchild.generation_level == 5

    def test_set_parent_requires_anchoring_both(self, family_unit, other_unit, anchor):
        with pytest.raises(InsufficientPermissionsError):
            set_parent_family_unit(
                unit_id=family_unit.id, user=anchor, parent_family_unit_id=other_unit.id
            )

    def test_family_tree(self, family_unit, other_unit, anchor, other_anchor):
        child = create_family_unit(
            user=anchor, family_label='Smiths-Jr', parent_family_unit_id=family_unit.id
        )
        pending = send_connection(
            user=other_anchor,
            from_unit_id=other_unit.id,
            target_unit_id=family_unit.id,
            connection_direction='request',
        )

        tree = get_family_tree(unit_id=family_unit.id, user=anchor)

        assert tree['current_unit'] == family_unit
        assert tree['parent_connection'] is None
        assert tree['child_connections'] == []
        assert tree['pending_connections'] == [pending]
        assert tree['child_units'] == [child]

    def test_family_tree_for_outsider(self, family_unit, outsider):
        with pytest.raises(InsufficientPermissionsError):
            get_family_tree(unit_id=family_unit.id, user=outsider)


# =============================================================================
# Invitation Service Tests
# =============================================================================

@pytest.mark.django_db
class TestInvitations:
    """Tests for invitation_management.py service functions."""

    def _invite(self, unit, user, email='relative@example.com'):
        return send_family_invitation(
            unit_id=unit.id,
            invited_by=user,
            invitee_email=email,
            relationship_role='Daughter',
        )

    def test_send_invitation(self, family_unit, anchor, mailoutbox):
        invitation = self._invite(family_unit, anchor, email=' New.Person@Example.com ')

        assert invitation.status == 'pending'
        assert invitation.invitee_email == 'new.person@example.com'
        assert invitation.sent_at is not None
        assert len(mailoutbox) == 1
        assert mailoutbox[0].to == ['new.person@example.com']
        assert invitation.invitation_token in mailoutbox[0].body

    def test_invalid_email(self, family_unit, anchor):
        with pytest.raises(ValidationFailedError):
            self._invite(family_unit, anchor, email='not-an-email')

    def test_duplicate_pending_invitation(self, family_unit, anchor):
        self._invite(family_unit, anchor)

        with pytest.raises(DuplicateInvitationError):
            self._invite(family_unit, anchor)

        assert FamilyInvitation.objects.count() == 1

    def test_existing_member_cannot_be_invited(self, family_unit, membership, anchor):
        with pytest.raises(AlreadyMemberError):
            self._invite(family_unit, anchor, email=membership.member.email)

    def test_member_without_share_permission(self, family_unit, membership, relative):
        with pytest.raises(InsufficientPermissionsError):
            self._invite(family_unit, relative, email='cousin@example.com')

    def test_member_with_share_permission(self, family_unit, membership, relative):
        membership.permissions = {'members': ['view', 'share']}
        membership.save()

        invitation = self._invite(family_unit, relative, email='cousin@example.com')

        assert invitation.invited_by == relative

    def test_sharing_policy_lets_member_invite(self, family_unit, membership, anchor, relative):
        create_policy(
            resource_id=family_unit.id,
            resource_type='family_unit',
            granted_to=relative,
            created_by=anchor,
            permissions=[{'action': 'share', 'resource': 'family_data'}],
        )

        invitation = self._invite(family_unit, relative, email='cousin@example.com')

        assert invitation.invited_by == relative

    def test_sharing_policy_denial_overrides_membership(self, family_unit, membership, anchor, relative):
        membership.permissions = {'members': ['view', 'share']}
        membership.save()
        create_policy(
            resource_id=family_unit.id,
            resource_type='family_unit',
            granted_to=relative,
            created_by=anchor,
            permissions=[{'action': 'share', 'resource': 'family_data', 'granted': False}],
        )

        with pytest.raises(InsufficientPermissionsError):
            self._invite(family_unit, relative, email='cousin@example.com')

    def test_sharing_policy_needs_membership(self, family_unit, anchor, outsider):
        create_policy(
            resource_id=family_unit.id,
            resource_type='family_unit',
            granted_to=outsider,
            created_by=anchor,
            permissions=[{'action': 'share', 'resource': 'family_data'}],
        )

        with pytest.raises(InsufficientPermissionsError):
            self._invite(family_unit, outsider, email='cousin@example.com')

    def test_cancelled_invitation_is_reactivated(self, family_unit, anchor):
        first = self._invite(family_unit, anchor)
        cancel_invitation(invitation_id=first.id, user=anchor)

        second = self._invite(family_unit, anchor)

        assert second.id == first.id
        assert second.status == 'pending'
        assert second.invitation_token != first.invitation_token
        assert FamilyInvitation.objects.count() == 1

    def test_expired_invitation_is_reactivated(self, family_unit, anchor):
        first = self._invite(family_unit, anchor)
        _make_overdue(FamilyInvitation, first.pk)

        second = self._invite(family_unit, anchor)

        assert second.id == first.id
        assert second.status == 'pending'
        assert second.expires_at > timezone.now()

    def test_cancel_by_outsider(self, family_unit, anchor, outsider):
        invitation = self._invite(family_unit, anchor)

        with pytest.raises(InsufficientPermissionsError):
            cancel_invitation(invitation_id=invitation.id, user=outsider)

    def test_resend_refreshes_sent_at(self, family_unit, anchor, mailoutbox):
        invitation = self._invite(family_unit, anchor)
        first_sent = invitation.sent_at

        resent = resend_invitation(invitation_id=invitation.id, user=anchor)

        assert resent.sent_at >= first_sent
        assert len(mailoutbox) == 2

    def test_resend_cancelled_invitation(self, family_unit, anchor):
        invitation = self._invite(family_unit, anchor)
        cancel_invitation(invitation_id=invitation.id, user=anchor)

        with pytest.raises(InvalidStateTransitionError):
            resend_invitation(invitation_id=invitation.id, user=anchor)

    def test_lookup_valid(self, family_unit, anchor):
        invitation = self._invite(family_unit, anchor)

        assert lookup_invitation(token=invitation.invitation_token) == ('valid', invitation)

    def test_lookup_expired(self, family_unit, anchor):
        invitation = self._invite(family_unit, anchor)
        _make_overdue(FamilyInvitation, invitation.pk)

        lookup_status, found = lookup_invitation(token=invitation.invitation_token)

        assert lookup_status == 'expired'
        assert found.id == invitation.id
        invitation.refresh_from_db()
        assert invitation.status == 'expired'

    def test_lookup_unknown_token(self):
        assert lookup_invitation(token='nope') == ('not_found', None)

    def test_accept_creates_membership(self, family_unit, anchor, relative):
        invitation = self._invite(family_unit, anchor)

        membership = accept_invitation(token=invitation.invitation_token, user=relative)

        assert membership.family_unit == family_unit
        assert membership.member == relative
        assert membership.relationship_label == 'Daughter'
        assert membership.permissions == {'cards': ['view'], 'members': ['view']}
        invitation.refresh_from_db()
        assert invitation.status == 'accepted'
        assert invitation.accepted_by == relative
        assert invitation.accepted_at is not None

    def test_accept_twice(self, family_unit, anchor, relative):
        invitation = self._invite(family_unit, anchor)
        accept_invitation(token=invitation.invitation_token, user=relative)

        with pytest.raises(InvalidStateTransitionError):
            accept_invitation(token=invitation.invitation_token, user=relative)

        assert FamilyMembership.objects.filter(member=relative).count() == 1

    def test_accept_expired_invitation(self, family_unit, anchor, relative):
        invitation = self._invite(family_unit, anchor)
        _make_overdue(FamilyInvitation, invitation.pk)

        with pytest.raises(InvalidStateTransitionError):
            accept_invitation(token=invitation.invitation_token, user=relative)

        invitation.refresh_from_db()
        assert invitation.status == 'expired'
        assert not FamilyMembership.objects.filter(member=relative).exists()

    def test_accept_when_already_member(self, family_unit, membership, anchor, relative):
        invitation = self._invite(family_unit, anchor, email='someone@example.com')

        with pytest.raises(AlreadyMemberError):
            accept_invitation(token=invitation.invitation_token, user=relative)

        invitation.refresh_from_db()
        assert invitation.status == 'pending'

    def test_decline_then_accept(self, family_unit, anchor, relative):
        invitation = self._invite(family_unit, anchor)
        declined = decline_invitation(token=invitation.invitation_token, user=relative)
        assert declined.status == 'rejected'

        with pytest.raises(InvalidStateTransitionError):
            accept_invitation(token=invitation.invitation_token, user=relative)

    @patch('apps.family.notifications.logger')
    @patch('apps.family.notifications.send_mail', side_effect=SMTPException('mail server down'))
    def test_email_failure_keeps_invitation(self, mock_send, mock_logger, family_unit, anchor):
        invitation = self._invite(family_unit, anchor)

        assert invitation.status == 'pending'
        assert invitation.sent_at is None
        assert FamilyInvitation.objects.filter(id=invitation.id).exists()
        assert mock_logger.warning.called
        action_url = mock_logger.warning.call_args[0][-1]
        assert invitation.invitation_token in action_url


# =============================================================================
# Connection Service Tests
# =============================================================================

@pytest.mark.django_db
class TestConnections:
    """Tests for connection_management.py service functions."""

    def test_invitation_makes_sender_parent(self, family_unit, other_unit, anchor, mailoutbox):
        connection = send_connection(
            user=anchor,
            from_unit_id=family_unit.id,
            target_unit_id=other_unit.id,
            connection_direction='invitation',
        )

        assert connection.status == 'pending'
        assert connection.parent_family_unit == family_unit
        assert connection.child_family_unit == other_unit
        assert mailoutbox[0].to == ['jones@example.com']

    def test_request_makes_target_parent(self, family_unit, other_unit, anchor):
        connection = send_connection(
            user=anchor,
            from_unit_id=family_unit.id,
            target_unit_id=other_unit.id,
            connection_direction='request',
        )

        assert connection.parent_family_unit == other_unit
        assert connection.child_family_unit == family_unit

    def test_mirror_proposal_approves_existing(
        self, family_unit, other_unit, anchor, other_anchor
    ):
        first = send_connection(
            user=anchor,
            from_unit_id=family_unit.id,
            target_unit_id=other_unit.id,
            connection_direction='invitation',
        )
        second = send_connection(
            user=other_anchor,
            from_unit_id=other_unit.id,
            target_unit_id=family_unit.id,
            connection_direction='request',
        )

        assert second.id == first.id
        assert second.status == 'approved'
        assert second.approved_by == other_anchor
        assert FamilyConnection.objects.count() == 1
        other_unit.refresh_from_db()
        assert other_unit.parent_family_unit == family_unit
        assert other_unit.generation_level == 2

    def test_same_side_duplicate(self, family_unit, other_unit, anchor):
        send_connection(
            user=anchor,
            from_unit_id=family_unit.id,
            target_unit_id=other_unit.id,
            connection_direction='invitation',
        )

        with pytest.raises(DuplicateConnectionError):
            send_connection(
                user=anchor,
                from_unit_id=family_unit.id,
                target_unit_id=other_unit.id,
                connection_direction='request',
            )

    def test_self_connection(self, family_unit, anchor):
        with pytest.raises(ValidationFailedError):
            send_connection(
                user=anchor,
                from_unit_id=family_unit.id,
                target_unit_id=family_unit.id,
                connection_direction='invitation',
            )

    def test_requires_anchor(self, family_unit, other_unit, membership, relative):
        with pytest.raises(InsufficientPermissionsError):
            send_connection(
                user=relative,
                from_unit_id=family_unit.id,
                target_unit_id=other_unit.id,
                connection_direction='invitation',
            )

    def test_invalid_direction(self, family_unit, other_unit, anchor):
        with pytest.raises(ValidationFailedError):
            send_connection(
                user=anchor,
                from_unit_id=family_unit.id,
                target_unit_id=other_unit.id,
                connection_direction='sideways',
            )

    def test_cycle_rejected(self, family_unit, other_unit, anchor):
        FamilyUnit.objects.filter(id=family_unit.id).update(
            parent_family_unit=other_unit, generation_level=2
        )

        with pytest.raises(FamilyCycleError):
            send_connection(
                user=anchor,
                from_unit_id=family_unit.id,
                target_unit_id=other_unit.id,
                connection_direction='invitation',
            )

    def test_approve_reparents_child(self, family_unit, other_unit, anchor, other_anchor):
        connection = send_connection(
            user=anchor,
            from_unit_id=family_unit.id,
            target_unit_id=other_unit.id,
            connection_direction='invitation',
        )

        approved = respond_to_connection(connection_id=connection.id, user=other_anchor, approve=True)

        assert approved.status == 'approved'
        assert approved.approved_at is not None
        other_unit.refresh_from_db()
        assert other_unit.parent_family_unit == family_unit

    def test_sibling_connection_does_not_reparent(
        self, family_unit, other_unit, anchor, other_anchor
    ):
        connection = send_connection(
            user=anchor,
            from_unit_id=family_unit.id,
            target_unit_id=other_unit.id,
            connection_direction='invitation',
            connection_type='sibling',
        )

        respond_to_connection(connection_id=connection.id, user=other_anchor, approve=True)

        other_unit.refresh_from_db()
        assert other_unit.parent_family_unit is None

    def test_initiator_cannot_respond(self, family_unit, other_unit, anchor):
        connection = send_connection(
            user=anchor,
            from_unit_id=family_unit.id,
            target_unit_id=other_unit.id,
            connection_direction='invitation',
        )

        with pytest.raises(InsufficientPermissionsError):
            respond_to_connection(connection_id=connection.id, user=anchor, approve=True)

    def test_reject_is_final(self, family_unit, other_unit, anchor, other_anchor):
        connection = send_connection(
            user=anchor,
            from_unit_id=family_unit.id,
            target_unit_id=other_unit.id,
            connection_direction='invitation',
        )
        rejected = respond_to_connection(connection_id=connection.id, user=other_anchor, approve=False)
        assert rejected.status == 'rejected'

        with pytest.raises(InvalidStateTransitionError):
            respond_to_connection(connection_id=connection.id, user=other_anchor, approve=True)

    def test_respond_to_expired(self, family_unit, other_unit, anchor, other_anchor):
        connection = send_connection(
            user=anchor,
            from_unit_id=family_unit.id,
            target_unit_id=other_unit.id,
            connection_direction='invitation',
        )
        _make_overdue(FamilyConnection, connection.pk)

        with pytest.raises(InvalidStateTransitionError):
            respond_to_connection(connection_id=connection.id, user=other_anchor, approve=True)

        connection.refresh_from_db()
        assert connection.status == 'expired'

    def test_new_proposal_after_expiry(self, family_unit, other_unit, anchor):
        connection = send_connection(
            user=anchor,
            from_unit_id=family_unit.id,
            target_unit_id=other_unit.id,
            connection_direction='invitation',
        )
        _make_overdue(FamilyConnection, connection.pk)

        fresh = send_connection(
            user=anchor,
            from_unit_id=family_unit.id,
            target_unit_id=other_unit.id,
            connection_direction='invitation',
        )

        assert fresh.id != connection.id
        assert fresh.status == 'pending'

    def test_cancel(self, family_unit, other_unit, anchor, other_anchor):
        connection = send_connection(
            user=anchor,
            from_unit_id=family_unit.id,
            target_unit_id=other_unit.id,
            connection_direction='invitation',
        )

        with pytest.raises(InsufficientPermissionsError):
            cancel_connection(connection_id=connection.id, user=other_anchor)

        cancelled = cancel_connection(connection_id=connection.id, user=anchor)
        assert cancelled.status == 'cancelled'


# =============================================================================
# Ownership Transfer Service Tests
# =============================================================================

@pytest.mark.django_db
class TestOwnershipTransfer:
    """Tests for ownership_transfer.py service functions."""

    def test_initiate(self, family_unit, anchor, relative, mailoutbox):
        transfer = initiate_transfer(
            unit_id=family_unit.id, user=anchor, proposed_owner_email='Relative@Example.com'
        )

        assert transfer.status == 'pending'
        assert transfer.proposed_owner == relative
        assert transfer.sent_at is not None
        assert mailoutbox[0].to == ['relative@example.com']

    def test_initiate_by_member(self, family_unit, membership, relative):
        with pytest.raises(InsufficientPermissionsError):
            initiate_transfer(
                unit_id=family_unit.id, user=relative, proposed_owner_email='x@example.com'
            )

    def test_initiate_to_self(self, family_unit, anchor):
        with pytest.raises(ValidationFailedError):
            initiate_transfer(
                unit_id=family_unit.id, user=anchor, proposed_owner_email='anchor@example.com'
            )

    def test_duplicate_pending_transfer(self, family_unit, anchor):
        initiate_transfer(unit_id=family_unit.id, user=anchor, proposed_owner_email='a@example.com')

        with pytest.raises(DuplicateTransferError):
            initiate_transfer(unit_id=family_unit.id, user=anchor, proposed_owner_email='b@example.com')

    def test_accept_moves_trust_anchor(self, family_unit, membership, anchor, relative):
        transfer = initiate_transfer(
            unit_id=family_unit.id, user=anchor, proposed_owner_email=relative.email
        )

        accepted = respond_to_transfer(transfer_id=transfer.id, user=relative, accept=True)

        assert accepted.status == 'accepted'
        assert accepted.responded_at is not None
        family_unit.refresh_from_db()
        assert family_unit.trust_anchor == relative
        assert family_unit.get_membership(relative) is None
        former = family_unit.get_membership(anchor)
        assert former.relationship_label == 'Former Trust Anchor'

    def test_accept_publishes_removed_membership(
        self, family_unit, membership, anchor, relative, django_capture_on_commit_callbacks
    ):
        transfer = initiate_transfer(
            unit_id=family_unit.id, user=anchor, proposed_owner_email=relative.email
        )
        received = []
        unsubscribe = feed.subscribe(received.append, table='family_memberships')
        try:
            with django_capture_on_commit_callbacks(execute=True):
                respond_to_transfer(transfer_id=transfer.id, user=relative, accept=True)
        finally:
            unsubscribe()

        removed = [e for e in received if e.record_id == str(membership.id)]
        assert [e.event for e in removed] == ['UPDATE']
        assert removed[0].record['status'] == 'removed'

    def test_accept_by_email_after_registration(self, family_unit, anchor):
        transfer = initiate_transfer(
            unit_id=family_unit.id, user=anchor, proposed_owner_email='later@example.com'
        )
        assert transfer.proposed_owner is None
        newcomer = User.objects.create_user(email='later@example.com', password='TestPass123!')

        respond_to_transfer(transfer_id=transfer.id, user=newcomer, accept=True)

        family_unit.refresh_from_db()
        assert family_unit.trust_anchor == newcomer

    def test_respond_by_wrong_user(self, family_unit, anchor, relative, outsider):
        transfer = initiate_transfer(
            unit_id=family_unit.id, user=anchor, proposed_owner_email=relative.email
        )

        with pytest.raises(InsufficientPermissionsError):
            respond_to_transfer(transfer_id=transfer.id, user=outsider, accept=True)

    def test_decline(self, family_unit, anchor, relative):
        transfer = initiate_transfer(
            unit_id=family_unit.id, user=anchor, proposed_owner_email=relative.email
        )

        declined = respond_to_transfer(transfer_id=transfer.id, user=relative, accept=False)

        assert declined.status == 'declined'
        family_unit.refresh_from_db()
        assert family_unit.trust_anchor == anchor

    def test_cancelled_transfer_cannot_be_accepted(self, family_unit, anchor, relative):
        transfer = initiate_transfer(
            unit_id=family_unit.id, user=anchor, proposed_owner_email=relative.email
        )
        cancel_transfer(transfer_id=transfer.id, user=anchor)

        with pytest.raises(InvalidStateTransitionError):
            respond_to_transfer(transfer_id=transfer.id, user=relative, accept=True)

    def test_expired_transfer_cannot_be_accepted(self, family_unit, anchor, relative):
        transfer = initiate_transfer(
            unit_id=family_unit.id, user=anchor, proposed_owner_email=relative.email
        )
        _make_overdue(FamilyOwnershipTransfer, transfer.pk)

        with pytest.raises(InvalidStateTransitionError):
            respond_to_transfer(transfer_id=transfer.id, user=relative, accept=True)

        transfer.refresh_from_db()
        assert transfer.status == 'expired'

    def test_get_user_transfers(self, family_unit, anchor, relative, outsider):
        transfer = initiate_transfer(
            unit_id=family_unit.id, user=anchor, proposed_owner_email=relative.email
        )

        assert get_user_transfers(user=anchor) == [transfer]
        assert get_user_transfers(user=relative) == [transfer]
        assert get_user_transfers(user=outsider) == []


# =============================================================================
# Pending Profile Tests
# =============================================================================

@pytest.mark.django_db
class TestPendingProfiles:
    """Tests for pending_profiles.py service functions."""

    def _seed(self, unit, user, **kwargs):
        kwargs.setdefault('first_name', 'Dan')
        kwargs.setdefault('relationship_label', 'Son')
        kwargs.setdefault('email', 'dan@example.com')
        return create_seed_profile(unit_id=unit.id, user=user, **kwargs)

    def test_adult_profile_is_emailed(self, family_unit, anchor, mailoutbox):
        profile = self._seed(family_unit, anchor, last_name='Smith', email=' Dan@Example.com ')

        assert profile.status == 'pending'
        assert profile.email == 'dan@example.com'
        assert profile.full_name == 'Dan Smith'
        assert profile.generation_level == family_unit.generation_level
        assert profile.sent_at is not None
        assert profile.expires_at > timezone.now()
        assert mailoutbox[0].to == ['dan@example.com']
        assert profile.invitation_token in mailoutbox[0].body

    def test_minor_profile_without_email(self, family_unit, anchor, mailoutbox):
        profile = self._seed(family_unit, anchor, email='', member_type='minor', generation_level=2)

        assert profile.member_type == 'minor'
        assert profile.email == ''
        assert profile.generation_level == 2
        assert profile.sent_at is None
        assert mailoutbox == []

    def test_adult_requires_email(self, family_unit, anchor):
        with pytest.raises(ValidationFailedError):
            self._seed(family_unit, anchor, email='')

    def test_registered_email_must_be_invited(self, family_unit, anchor, relative):
        with pytest.raises(ExistingAccountError):
            self._seed(family_unit, anchor, email=relative.email.upper())

    def test_duplicate_pending_profile(self, family_unit, anchor):
        self._seed(family_unit, anchor)

        with pytest.raises(DuplicateProfileError):
            self._seed(family_unit, anchor)

    def test_seed_again_after_expiry(self, family_unit, anchor):
        first = self._seed(family_unit, anchor)
        _make_overdue(PendingFamilyProfile, first.pk)

        second = self._seed(family_unit, anchor)

        first.refresh_from_db()
        assert first.status == 'expired'
        assert second.id != first.id

    def test_member_without_share_permission(self, family_unit, membership, relative):
        with pytest.raises(InsufficientPermissionsError):
            self._seed(family_unit, relative)

    def test_send_invitation_again(self, family_unit, anchor, mailoutbox):
        profile = self._seed(family_unit, anchor)

        send_profile_claim_invitation(profile_id=profile.id, user=anchor)

        assert len(mailoutbox) == 2

    def test_send_invitation_for_minor(self, family_unit, anchor):
        profile = self._seed(family_unit, anchor, member_type='minor')

        with pytest.raises(ValidationFailedError):
            send_profile_claim_invitation(profile_id=profile.id, user=anchor)

    def test_send_invitation_by_outsider(self, family_unit, anchor, outsider):
        profile = self._seed(family_unit, anchor)

        with pytest.raises(InsufficientPermissionsError):
            send_profile_claim_invitation(profile_id=profile.id, user=outsider)

    def test_upgrade_minor_with_email(self, family_unit, anchor):
        profile = self._seed(family_unit, anchor, email='', member_type='minor')

        upgraded = upgrade_profile_to_adult(profile_id=profile.id, user=anchor, email='Dan@Example.com')

        assert upgraded.member_type == 'adult'
        assert upgraded.email == 'dan@example.com'

    def test_upgrade_without_email(self, family_unit, anchor):
        profile = self._seed(family_unit, anchor, email='', member_type='minor')

        with pytest.raises(ValidationFailedError):
            upgrade_profile_to_adult(profile_id=profile.id, user=anchor)

    def test_upgrade_adult(self, family_unit, anchor):
        profile = self._seed(family_unit, anchor)

        with pytest.raises(ValidationFailedError):
            upgrade_profile_to_adult(profile_id=profile.id, user=anchor)

    def test_claim_creates_membership(self, family_unit, anchor):
        profile = self._seed(family_unit, anchor, generation_level=2)
        dan = User.objects.create_user(email='dan@example.com', password='TestPass123!')

        membership = claim_pending_profile(token=profile.invitation_token, user=dan)

        assert membership.family_unit == family_unit
        assert membership.relationship_label == 'Son'
        assert membership.family_generation == 2
        assert membership.permissions == {'cards': ['view'], 'members': ['view']}
        profile.refresh_from_db()
        assert profile.status == 'claimed'
        assert profile.claimed_by == dan
        assert profile.claimed_at is not None

    def test_claim_by_other_account(self, family_unit, anchor, outsider):
        profile = self._seed(family_unit, anchor)

        with pytest.raises(InsufficientPermissionsError):
            claim_pending_profile(token=profile.invitation_token, user=outsider)

        assert not FamilyMembership.objects.filter(member=outsider).exists()

    def test_claim_minor(self, family_unit, anchor):
        profile = self._seed(family_unit, anchor, member_type='minor')
        dan = User.objects.create_user(email='dan@example.com', password='TestPass123!')

        with pytest.raises(InvalidStateTransitionError):
            claim_pending_profile(token=profile.invitation_token, user=dan)

    def test_claim_twice(self, family_unit, anchor):
        profile = self._seed(family_unit, anchor)
        dan = User.objects.create_user(email='dan@example.com', password='TestPass123!')
        claim_pending_profile(token=profile.invitation_token, user=dan)

        with pytest.raises(InvalidStateTransitionError):
            claim_pending_profile(token=profile.invitation_token, user=dan)

        assert FamilyMembership.objects.filter(member=dan).count() == 1

    def test_claim_expired(self, family_unit, anchor):
        profile = self._seed(family_unit, anchor)
        _make_overdue(PendingFamilyProfile, profile.pk)
        dan = User.objects.create_user(email='dan@example.com', password='TestPass123!')

        with pytest.raises(InvalidStateTransitionError):
            claim_pending_profile(token=profile.invitation_token, user=dan)

        profile.refresh_from_db()
        assert profile.status == 'expired'

    def test_claim_unknown_token(self, relative):
        with pytest.raises(ProfileNotFoundError):
            claim_pending_profile(token='missing', user=relative)

    def test_decline_then_claim(self, family_unit, anchor):
        profile = self._seed(family_unit, anchor)
        dan = User.objects.create_user(email='dan@example.com', password='TestPass123!')

        declined = decline_profile_claim(token=profile.invitation_token, user=dan)

        assert declined.status == 'declined'
        with pytest.raises(InvalidStateTransitionError):
            claim_pending_profile(token=profile.invitation_token, user=dan)

    def test_delete(self, family_unit, anchor, outsider):
        profile = self._seed(family_unit, anchor)

        with pytest.raises(InsufficientPermissionsError):
            delete_pending_profile(profile_id=profile.id, user=outsider)

        delete_pending_profile(profile_id=profile.id, user=anchor)
        assert not PendingFamilyProfile.objects.exists()

    def test_get_pending_profiles(self, family_unit, membership, anchor, relative, outsider):
        profile = self._seed(family_unit, anchor)

        assert get_pending_profiles(user=anchor) == [profile]
        assert get_pending_profiles(user=relative) == []
        assert get_pending_profiles(user=relative, unit_id=family_unit.id) == [profile]
        with pytest.raises(InsufficientPermissionsError):
            get_pending_profiles(user=outsider, unit_id=family_unit.id)

    def test_get_claimable_profiles(self, family_unit, anchor):
        profile = self._seed(family_unit, anchor)
        self._seed(family_unit, anchor, first_name='Eve', email='eve@example.com', member_type='minor')
        dan = User.objects.create_user(email='DAN@example.com', password='TestPass123!')

        assert get_claimable_profiles(user=dan) == [profile]

        claim_pending_profile(token=profile.invitation_token, user=dan)
        assert get_claimable_profiles(user=dan) == []
