"""
API tests for family app endpoints.
"""

import pytest
from datetime import timedelta
from django.urls import reverse
from django.utils import timezone
from django.utils.dateparse import parse_datetime
from rest_framework import status
from rest_framework.test import APIClient

from apps.accounts.models import User
from apps.family.realtime import RecordCache, feed
from apps.family.models import (
    FamilyConnection,
    FamilyInvitation,
    FamilyMembership,
    FamilyOwnershipTransfer,
    FamilyUnit,
    PendingFamilyProfile,
)


@pytest.mark.django_db
class TestFamilyUnitAPI:

    def test_list_requires_authentication(self, api_client):
        response = api_client.get(reverse('family:unit-list'))
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_create_and_list(self, anchor_client):
        response = anchor_client.post(
            reverse('family:unit-list'), {'family_label': 'Smiths'}, format='json'
        )
        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['generation_level'] == 1
        assert response.data['is_trust_anchor'] is True

        child = anchor_client.post(
            reverse('family:unit-list'),
            {'family_label': 'Smiths-Jr', 'parent_family_unit_id': response.data['id']},
            format='json',
        )
        assert child.data['generation_level'] == 2

        listing = anchor_client.get(reverse('family:unit-list'))
        assert listing.data['count'] == 2
        assert [u['family_label'] for u in listing.data['results']] == ['Smiths', 'Smiths-Jr']

    def test_retrieve_other_family(self, other_client, family_unit):
        response = other_client.get(reverse('family:unit-detail', args=[family_unit.id]))
        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_update_by_member_forbidden(self, relative_client, family_unit, membership):
        response = relative_client.patch(
            reverse('family:unit-detail', args=[family_unit.id]),
            {'family_label': 'Mine'},
            format='json',
        )
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_destroy_deactivates(self, anchor_client, family_unit):
        response = anchor_client.delete(reverse('family:unit-detail', args=[family_unit.id]))

        assert response.status_code == status.HTTP_204_NO_CONTENT
        family_unit.refresh_from_db()
        assert family_unit.is_active is False

    def test_members(self, anchor_client, family_unit, membership):
        response = anchor_client.get(reverse('family:unit-members', args=[family_unit.id]))

        assert response.status_code == status.HTTP_200_OK
        assert response.data[0]['member']['email'] == 'relative@example.com'
        assert response.data[0]['relationship_label'] == 'Daughter'

    def test_members_for_outsider(self, outsider_client, family_unit):
        response = outsider_client.get(reverse('family:unit-members', args=[family_unit.id]))
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_tree(self, anchor_client, family_unit):
        response = anchor_client.get(reverse('family:unit-tree', args=[family_unit.id]))

        assert response.status_code == status.HTTP_200_OK
        assert response.data['current_unit']['family_label'] == 'Smiths'
        assert response.data['parent_connection'] is None
        assert response.data['pending_connections'] == []

    def test_set_parent_cycle_is_conflict(self, anchor_client, anchor, family_unit):
        child = FamilyUnit.objects.create(
            family_label='Smiths-Jr', trust_anchor=anchor,
            parent_family_unit=family_unit, generation_level=2,
        )

        response = anchor_client.post(
            reverse('family:unit-set-parent', args=[family_unit.id]),
            {'parent_family_unit_id': str(child.id)},
            format='json',
        )

        assert response.status_code == status.HTTP_409_CONFLICT

    def test_search(self, anchor_client, family_unit, other_unit):
        response = anchor_client.get(reverse('family:unit-search'), {'q': 'jon'})

        assert response.status_code == status.HTTP_200_OK
        assert [u['family_label'] for u in response.data] == ['Joneses']

    def test_changes_since(self, anchor_client, family_unit, anchor):
        since = timezone.now()
        FamilyInvitation.objects.create(
            family_unit=family_unit,
            invited_by=anchor,
            invitee_email='new@example.com',
            relationship_role='Cousin',
        )

        response = anchor_client.get(
            reverse('family:unit-changes', args=[family_unit.id]),
            {'since': (since - timedelta(seconds=1)).isoformat()},
        )

        assert response.status_code == status.HTTP_200_OK
        assert [i['invitee_email'] for i in response.data['invitations']] == ['new@example.com']
        assert response.data['connections'] == []
        assert 'server_time' in response.data

    def test_changes_server_time_overlaps(self, anchor_client, family_unit, settings):
        settings.CHANGE_FEED_POLL_OVERLAP_SECONDS = 60
        before = timezone.now()

        response = anchor_client.get(reverse('family:unit-changes', args=[family_unit.id]))

        server_time = parse_datetime(response.json()['server_time'])
        assert server_time <= before - timedelta(seconds=59)

    def test_polled_changes_merge_into_cache(
        self, anchor_client, family_unit, django_capture_on_commit_callbacks
    ):
        cache = RecordCache()
        unsubscribe = feed.subscribe(cache.apply_event, table='family_invitations')
        try:
            with django_capture_on_commit_callbacks(execute=True):
                created = anchor_client.post(
                    reverse('family:invitation-list'),
                    {
                        'family_unit_id': str(family_unit.id),
                        'invitee_email': 'new@example.com',
                        'relationship_role': 'Cousin',
                    },
                    format='json',
                )
        finally:
            unsubscribe()

        invitation_id = created.data['id']
        anchor_client.post(reverse('family:invitation-cancel', args=[invitation_id]))
        polled = anchor_client.get(reverse('family:unit-changes', args=[family_unit.id])).json()

        changed = cache.merge_polled(polled['invitations'])
        again = cache.merge_polled(polled['invitations'])

        assert changed == 1
        assert again == 0
        assert cache.get(invitation_id)['status'] == 'cancelled'

    def test_changes_with_bad_timestamp(self, anchor_client, family_unit):
        response = anchor_client.get(
            reverse('family:unit-changes', args=[family_unit.id]), {'since': 'yesterday'}
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST


@pytest.mark.django_db
class TestFamilyInvitationAPI:

    def _invite(self, client, unit, email='relative@example.com'):
        return client.post(
            reverse('family:invitation-list'),
            {
                'family_unit_id': str(unit.id),
                'invitee_email': email,
                'relationship_role': 'Daughter',
            },
            format='json',
        )

    def test_create(self, anchor_client, family_unit, mailoutbox):
        response = self._invite(anchor_client, family_unit)

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['status'] == 'pending'
        assert 'invitation_token' not in response.data
        assert len(mailoutbox) == 1

    def test_duplicate_is_conflict(self, anchor_client, family_unit):
        self._invite(anchor_client, family_unit)
        response = self._invite(anchor_client, family_unit)
        assert response.status_code == status.HTTP_409_CONFLICT

    def test_invalid_email(self, anchor_client, family_unit):
        response = self._invite(anchor_client, family_unit, email='nobody')
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_outsider_cannot_invite(self, outsider_client, family_unit):
        response = self._invite(outsider_client, family_unit)
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_list_requires_family_unit(self, anchor_client):
        response = anchor_client.get(reverse('family:invitation-list'))
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_list(self, anchor_client, family_unit):
        self._invite(anchor_client, family_unit)

        response = anchor_client.get(
            reverse('family:invitation-list'), {'family_unit': str(family_unit.id)}
        )

        assert response.status_code == status.HTTP_200_OK
        assert len(response.data) == 1

    def test_lookup_without_authentication(self, api_client, anchor_client, family_unit):
        self._invite(anchor_client, family_unit)
        invitation = FamilyInvitation.objects.get()

        response = api_client.get(
            reverse('family:invitation-lookup'), {'token': invitation.invitation_token}
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data['status'] == 'valid'
        assert response.data['invitation']['family_unit']['family_label'] == 'Smiths'

    def test_lookup_expired_token(self, api_client, anchor_client, family_unit):
        self._invite(anchor_client, family_unit)
        invitation = FamilyInvitation.objects.get()
        FamilyInvitation.objects.filter(id=invitation.id).update(
            expires_at=timezone.now() - timedelta(days=1)
        )

        response = api_client.get(
            reverse('family:invitation-lookup'), {'token': invitation.invitation_token}
        )

        assert response.data['status'] == 'expired'

    def test_lookup_unknown_token(self, api_client):
        response = api_client.get(reverse('family:invitation-lookup'), {'token': 'missing'})

        assert response.data == {'status': 'not_found', 'invitation': None}

    def test_accept(self, anchor_client, relative_client, family_unit, relative):
        self._invite(anchor_client, family_unit)
        invitation = FamilyInvitation.objects.get()

        response = relative_client.post(
            reverse('family:invitation-accept'),
            {'token': invitation.invitation_token},
            format='json',
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['family_unit']['id'] == str(family_unit.id)
        assert FamilyMembership.objects.filter(family_unit=family_unit, member=relative).exists()

    def test_accept_unknown_token(self, relative_client):
        response = relative_client.post(
            reverse('family:invitation-accept'), {'token': 'missing'}, format='json'
        )
        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_decline_then_accept(self, anchor_client, relative_client, family_unit):
        self._invite(anchor_client, family_unit)
        token = FamilyInvitation.objects.get().invitation_token

        declined = relative_client.post(
            reverse('family:invitation-decline'), {'token': token}, format='json'
        )
        accepted = relative_client.post(
            reverse('family:invitation-accept'), {'token': token}, format='json'
        )

        assert declined.data['status'] == 'rejected'
        assert accepted.status_code == status.HTTP_400_BAD_REQUEST

    def test_cancel_and_resend(self, anchor_client, family_unit):
        invitation_id = self._invite(anchor_client, family_unit).data['id']

        cancelled = anchor_client.post(reverse('family:invitation-cancel', args=[invitation_id]))
        resent = anchor_client.post(reverse('family:invitation-resend', args=[invitation_id]))

        assert cancelled.data['status'] == 'cancelled'
        assert resent.status_code == status.HTTP_400_BAD_REQUEST


@pytest.mark.django_db
class TestFamilyConnectionAPI:

    def _connect(self, client, from_unit, target_unit, direction='invitation'):
        return client.post(
            reverse('family:connection-list'),
            {
                'from_family_unit_id': str(from_unit.id),
                'target_family_unit_id': str(target_unit.id),
                'connection_direction': direction,
            },
            format='json',
        )

    def test_create(self, anchor_client, family_unit, other_unit):
        response = self._connect(anchor_client, family_unit, other_unit)

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['status'] == 'pending'
        assert response.data['parent_family_unit']['id'] == str(family_unit.id)

    def test_mirror_returns_approved(self, anchor_client, other_client, family_unit, other_unit):
        self._connect(anchor_client, family_unit, other_unit, 'invitation')

        response = self._connect(other_client, other_unit, family_unit, 'request')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['status'] == 'approved'
        assert FamilyConnection.objects.count() == 1

    def test_duplicate_is_conflict(self, anchor_client, family_unit, other_unit):
        self._connect(anchor_client, family_unit, other_unit)
        response = self._connect(anchor_client, family_unit, other_unit, 'request')
        assert response.status_code == status.HTTP_409_CONFLICT

    def test_self_connection(self, anchor_client, family_unit):
        response = self._connect(anchor_client, family_unit, family_unit)
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_respond(self, anchor_client, other_client, family_unit, other_unit):
        connection_id = self._connect(anchor_client, family_unit, other_unit).data['id']

        forbidden = anchor_client.post(
            reverse('family:connection-respond', args=[connection_id]),
            {'accept': True}, format='json',
        )
        approved = other_client.post(
            reverse('family:connection-respond', args=[connection_id]),
            {'accept': True}, format='json',
        )

        assert forbidden.status_code == status.HTTP_403_FORBIDDEN
        assert approved.data['status'] == 'approved'
        other_unit.refresh_from_db()
        assert other_unit.parent_family_unit_id == family_unit.id

    def test_cancel(self, anchor_client, family_unit, other_unit):
        connection_id = self._connect(anchor_client, family_unit, other_unit).data['id']

        response = anchor_client.post(reverse('family:connection-cancel', args=[connection_id]))

        assert response.data['status'] == 'cancelled'

    def test_list(self, anchor_client, other_client, family_unit, other_unit):
        self._connect(anchor_client, family_unit, other_unit)

        response = other_client.get(
            reverse('family:connection-list'), {'family_unit': str(other_unit.id)}
        )

        assert len(response.data) == 1

    def test_list_with_malformed_unit(self, anchor_client):
        response = anchor_client.get(reverse('family:connection-list'), {'family_unit': 'abc'})
        assert response.status_code == status.HTTP_400_BAD_REQUEST


@pytest.mark.django_db
class TestFamilyOwnershipTransferAPI:

    def _offer(self, client, unit, email='relative@example.com'):
        return client.post(
            reverse('family:transfer-list'),
            {'family_unit_id': str(unit.id), 'proposed_owner_email': email},
            format='json',
        )

    def test_offer_and_accept(self, anchor_client, relative_client, family_unit, relative):
        transfer_id = self._offer(anchor_client, family_unit).data['id']

        response = relative_client.post(
            reverse('family:transfer-respond', args=[transfer_id]),
            {'accept': True}, format='json',
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data['status'] == 'accepted'
        family_unit.refresh_from_db()
        assert family_unit.trust_anchor == relative

    def test_offer_by_non_anchor(self, outsider_client, family_unit):
        response = self._offer(outsider_client, family_unit)
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_duplicate_is_conflict(self, anchor_client, family_unit):
        self._offer(anchor_client, family_unit)
        response = self._offer(anchor_client, family_unit, email='other@example.com')
        assert response.status_code == status.HTTP_409_CONFLICT

    def test_list_and_cancel(self, anchor_client, relative_client, family_unit):
        transfer_id = self._offer(anchor_client, family_unit).data['id']

        listing = relative_client.get(reverse('family:transfer-list'))
        cancelled = anchor_client.post(reverse('family:transfer-cancel', args=[transfer_id]))

        assert [t['id'] for t in listing.data] == [transfer_id]
        assert cancelled.data['status'] == 'cancelled'
        assert FamilyOwnershipTransfer.objects.get().status == 'cancelled'


@pytest.mark.django_db
class TestPendingFamilyProfileAPI:

    def _seed(self, client, unit, **overrides):
        data = {
            'family_unit_id': str(unit.id),
            'first_name': 'Dan',
            'relationship_label': 'Son',
            'email': 'dan@example.com',
        }
        data.update(overrides)
        return client.post(reverse('family:profile-list'), data, format='json')

    def test_create(self, anchor_client, family_unit, mailoutbox):
        response = self._seed(anchor_client, family_unit)

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['member_type'] == 'adult'
        assert response.data['sent_at'] is not None
        assert 'invitation_token' not in response.data
        assert len(mailoutbox) == 1

    def test_create_for_registered_email_is_conflict(self, anchor_client, family_unit, relative):
        response = self._seed(anchor_client, family_unit, email=relative.email)
        assert response.status_code == status.HTTP_409_CONFLICT

    def test_create_by_outsider(self, outsider_client, family_unit):
        response = self._seed(outsider_client, family_unit)
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_list(self, anchor_client, relative_client, family_unit, membership):
        self._seed(anchor_client, family_unit)

        own = anchor_client.get(reverse('family:profile-list'))
        unit = relative_client.get(reverse('family:profile-list'), {'family_unit': str(family_unit.id)})
        malformed = anchor_client.get(reverse('family:profile-list'), {'family_unit': 'nope'})

        assert len(own.data) == 1
        assert unit.data[0]['first_name'] == 'Dan'
        assert malformed.status_code == status.HTTP_400_BAD_REQUEST

    def test_upgrade_and_send(self, anchor_client, family_unit, mailoutbox):
        profile_id = self._seed(
            anchor_client, family_unit, email='', member_type='minor'
        ).data['id']

        too_early = anchor_client.post(reverse('family:profile-send-invitation', args=[profile_id]))
        upgraded = anchor_client.post(
            reverse('family:profile-upgrade', args=[profile_id]),
            {'email': 'dan@example.com'}, format='json',
        )
        sent = anchor_client.post(reverse('family:profile-send-invitation', args=[profile_id]))

        assert too_early.status_code == status.HTTP_400_BAD_REQUEST
        assert upgraded.data['member_type'] == 'adult'
        assert sent.status_code == status.HTTP_200_OK
        assert mailoutbox[0].to == ['dan@example.com']

    def test_claimable_and_claim(self, anchor_client, family_unit):
        self._seed(anchor_client, family_unit)
        dan = User.objects.create_user(email='dan@example.com', password='TestPass123!')
        client = APIClient()
        client.force_authenticate(user=dan)

        claimable = client.get(reverse('family:profile-claimable'))
        response = client.post(
            reverse('family:profile-claim'),
            {'token': PendingFamilyProfile.objects.get().invitation_token},
            format='json',
        )

        assert len(claimable.data) == 1
        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['membership']['relationship_label'] == 'Son'
        assert FamilyMembership.objects.filter(family_unit=family_unit, member=dan).exists()

    def test_claim_by_other_account(self, anchor_client, outsider_client, family_unit):
        self._seed(anchor_client, family_unit)

        response = outsider_client.post(
            reverse('family:profile-claim'),
            {'token': PendingFamilyProfile.objects.get().invitation_token},
            format='json',
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_claim_unknown_token(self, relative_client):
        response = relative_client.post(
            reverse('family:profile-claim'), {'token': 'missing'}, format='json'
        )
        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_destroy(self, anchor_client, family_unit):
        profile_id = self._seed(anchor_client, family_unit).data['id']

        response = anchor_client.delete(reverse('family:profile-detail', args=[profile_id]))

        assert response.status_code == status.HTTP_204_NO_CONTENT
        assert not PendingFamilyProfile.objects.exists()

    def test_profiles_in_changes(self, anchor_client, family_unit):
        self._seed(anchor_client, family_unit)

        response = anchor_client.get(reverse('family:unit-changes', args=[family_unit.id]))

        assert len(response.data['profiles']) == 1
