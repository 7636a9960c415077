import pytest
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from apps.accounts.models import User
from apps.family.models import FamilyMembership, FamilyUnit


@pytest.fixture
def api_client():
    """Return an unauthenticated API client."""
    return APIClient()


@pytest.fixture
def anchor(db):
    """Create and return the trust anchor of the Smiths."""
    return User.objects.create_user(
        email='anchor@example.com',
        password='TestPass123!',
        display_name='Alice Smith',
    )


@pytest.fixture
def other_anchor(db):
    """Create and return the trust anchor of the Joneses."""
    return User.objects.create_user(
        email='jones@example.com',
        password='TestPass123!',
        display_name='Bob Jones',
    )


@pytest.fixture
def relative(db):
    """Create and return a user to invite into the family."""
    return User.objects.create_user(
        email='relative@example.com',
        password='TestPass123!',
        display_name='Carol Smith',
    )


@pytest.fixture
def outsider(db):
    """Create and return a user unrelated to any family."""
    return User.objects.create_user(
        email='outsider@example.com',
        password='TestPass123!',
        display_name='Outsider',
    )


@pytest.fixture
def family_unit(db, anchor):
    """Root family unit anchored by ``anchor``."""
    return FamilyUnit.objects.create(family_label='Smiths', trust_anchor=anchor)


@pytest.fixture
def other_unit(db, other_anchor):
    """Root family unit anchored by ``other_anchor``."""
    return FamilyUnit.objects.create(family_label='Joneses', trust_anchor=other_anchor)


@pytest.fixture
def membership(db, family_unit, relative):
    """``relative`` as an active member of the Smiths."""
    return FamilyMembership.objects.create(
        family_unit=family_unit,
        member=relative,
        relationship_label='Daughter',
        permissions={'cards': ['view'], 'members': ['view']},
    )


def _client_for(user):
    client = APIClient()
    refresh = RefreshToken.for_user(user)
    client.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
    return client


@pytest.fixture
def anchor_client(anchor):
    """Return API client authenticated as the Smiths' trust anchor."""
    return _client_for(anchor)


@pytest.fixture
def other_client(other_anchor):
    """Return API client authenticated as the Joneses' trust anchor."""
    return _client_for(other_anchor)


@pytest.fixture
def relative_client(relative):
    """Return API client authenticated as the relative."""
    return _client_for(relative)


@pytest.fixture
def outsider_client(outsider):
    """Return API client authenticated as an outsider."""
    return _client_for(outsider)
