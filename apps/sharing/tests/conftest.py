import pytest
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from apps.accounts.models import User
from apps.sharing.models import UserCard


@pytest.fixture
def api_client():
    """Return an unauthenticated API client."""
    return APIClient()


@pytest.fixture
def card_owner(db):
    """Create and return the owner of the test card."""
    return User.objects.create_user(
        email='owner@example.com',
        password='TestPass123!',
        display_name='Card Owner',
    )


@pytest.fixture
def viewer(db):
    """Create and return a user the card may be shared with."""
    return User.objects.create_user(
        email='viewer@example.com',
        password='TestPass123!',
        display_name='Viewer',
    )


@pytest.fixture
def stranger(db):
    """Create and return a user with no policies."""
    return User.objects.create_user(
        email='stranger@example.com',
        password='TestPass123!',
        display_name='Stranger',
    )


def _client_for(user):
    client = APIClient()
    refresh = RefreshToken.for_user(user)
    client.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
    return client


@pytest.fixture
def owner_client(card_owner):
    """Return API client authenticated as the card owner."""
    return _client_for(card_owner)


@pytest.fixture
def viewer_client(viewer):
    """Return API client authenticated as the viewer."""
    return _client_for(viewer)


@pytest.fixture
def card(db, card_owner):
    """Card with one field of every standard type plus an opaque note."""
    return UserCard.objects.create(
        owner=card_owner,
        title='Personal',
        fields={
            'name': {'field_type': 'name', 'value': 'John Quincy Smith'},
            'home': {'field_type': 'address', 'value': '123 Main St, Springfield, CA 90210'},
            'mobile': {'field_type': 'phone', 'value': '(555) 123-4567'},
            'email': {'field_type': 'email', 'value': 'john@example.com'},
            'note': {'field_type': 'text', 'value': 'Prefers texts'},
        },
    )
