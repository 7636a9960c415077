import pytest
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from apps.accounts.models import User


@pytest.fixture
def api_client():
    """Return an unauthenticated API client."""
    return APIClient()


@pytest.fixture
def sender(db):
    """Create and return the user sending relationship invitations."""
    return User.objects.create_user(
        email='sender@example.com',
        password='TestPass123!',
        display_name='Sam Sender',
    )


@pytest.fixture
def invitee(db):
    """Create and return the invited user."""
    return User.objects.create_user(
        email='invitee@example.com',
        password='TestPass123!',
        display_name='Ivy Invitee',
    )


@pytest.fixture
def outsider(db):
    """Create and return a user outside the relationship."""
    return User.objects.create_user(
        email='outsider@example.com',
        password='TestPass123!',
        display_name='Outsider',
    )


def _client_for(user):
    client = APIClient()
    refresh = RefreshToken.for_user(user)
    client.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
    return client


@pytest.fixture
def sender_client(sender):
    """Return API client authenticated as the sender."""
    return _client_for(sender)


@pytest.fixture
def invitee_client(invitee):
    """Return API client authenticated as the invitee."""
    return _client_for(invitee)


@pytest.fixture
def outsider_client(outsider):
    """Return API client authenticated as the outsider."""
    return _client_for(outsider)
