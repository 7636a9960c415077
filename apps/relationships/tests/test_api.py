"""
API tests for relationships endpoints.
"""

import pytest
from django.urls import reverse
from rest_framework import status

from apps.relationships.models import RelationshipCard


def _invite(client, email='invitee@example.com'):
    return client.post(
        reverse('relationships:relationship-list'),
        {
            'to_user_email': email,
            'relationship_label_from': 'Sister',
            'relationship_label_to': 'Brother',
            'shared_attributes': ['email', 'mobile'],
        },
        format='json',
    )


@pytest.mark.django_db
class TestRelationshipAPI:

    def test_requires_authentication(self, api_client):
        response = api_client.get(reverse('relationships:relationship-list'))
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_create(self, sender_client):
        response = _invite(sender_client)

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['status'] == 'pending'
        assert response.data['shared_attributes'] == ['email', 'mobile']
        assert 'invitation_token' not in response.data

    def test_duplicate_is_conflict(self, sender_client):
        _invite(sender_client)
        response = _invite(sender_client)
        assert response.status_code == status.HTTP_409_CONFLICT

    def test_invite_self(self, sender_client):
        response = _invite(sender_client, email='sender@example.com')
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_accept(self, sender_client, invitee_client):
        _invite(sender_client)
        token = RelationshipCard.objects.get().invitation_token

        response = invitee_client.post(
            reverse('relationships:relationship-accept'),
            {'token': token, 'modified_label_to': 'Cousin'},
            format='json',
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data['status'] == 'accepted'
        assert response.data['relationship_label_to'] == 'Cousin'
        assert response.data['reciprocal_card'] is not None
        assert RelationshipCard.objects.count() == 2

    def test_accept_by_other_account(self, sender_client, invitee, outsider_client):
        _invite(sender_client)
        token = RelationshipCard.objects.get().invitation_token

        response = outsider_client.post(
            reverse('relationships:relationship-accept'), {'token': token}, format='json'
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert RelationshipCard.objects.get().to_user == invitee

    def test_accept_unknown_token(self, invitee_client):
        response = invitee_client.post(
            reverse('relationships:relationship-accept'), {'token': 'missing'}, format='json'
        )
        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_list_for_invitee(self, sender_client, invitee_client):
        _invite(sender_client)

        response = invitee_client.get(reverse('relationships:relationship-list'))

        assert response.status_code == status.HTTP_200_OK
        assert len(response.data) == 1
        assert response.data[0]['from_user']['email'] == 'sender@example.com'

    def test_list_status_filter(self, sender_client):
        _invite(sender_client)

        pending = sender_client.get(reverse('relationships:relationship-list'), {'status': 'pending'})
        accepted = sender_client.get(reverse('relationships:relationship-list'), {'status': 'accepted'})
        invalid = sender_client.get(reverse('relationships:relationship-list'), {'status': 'bogus'})

        assert len(pending.data) == 1
        assert accepted.data == []
        assert invalid.status_code == status.HTTP_400_BAD_REQUEST

    def test_reject_and_cancel(self, sender_client, invitee_client):
        first = _invite(sender_client).data['id']
        second = _invite(sender_client, email='other@example.com').data['id']

        rejected = invitee_client.post(reverse('relationships:relationship-reject', args=[first]))
        cancelled = sender_client.post(reverse('relationships:relationship-cancel', args=[second]))
        forbidden = invitee_client.post(reverse('relationships:relationship-cancel', args=[second]))

        assert rejected.data['status'] == 'rejected'
        assert cancelled.data['status'] == 'cancelled'
        assert forbidden.status_code == status.HTTP_403_FORBIDDEN

    def test_terminate(self, sender_client, invitee_client):
        card_id = _invite(sender_client).data['id']
        token = RelationshipCard.objects.get(id=card_id).invitation_token
        invitee_client.post(
            reverse('relationships:relationship-accept'), {'token': token}, format='json'
        )

        response = sender_client.post(reverse('relationships:relationship-terminate', args=[card_id]))
        again = sender_client.post(reverse('relationships:relationship-terminate', args=[card_id]))

        assert response.status_code == status.HTTP_200_OK
        assert response.data['terminated_at'] is not None
        assert response.data['is_active'] is False
        assert again.status_code == status.HTTP_400_BAD_REQUEST

    def test_changes(self, sender_client):
        _invite(sender_client)

        response = sender_client.get(reverse('relationships:relationship-changes'))

        assert response.status_code == status.HTTP_200_OK
        assert len(response.data['relationships']) == 1

    def test_changes_with_bad_timestamp(self, sender_client):
        response = sender_client.get(
            reverse('relationships:relationship-changes'), {'since': 'soon'}
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST
