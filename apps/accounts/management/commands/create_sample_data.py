"""
Management command to create sample data for trying out the API.

Usage:
    python manage.py create_sample_data

This creates:
- 4 users (admin, alice, bob, charlie)
- A profile card for alice, shared with bob at city/state granularity
- Family units Smiths (with child unit Smiths-Jr) and Joneses
- Charlie as a member of the Smiths through an accepted invitation
- A minor child profile in the Smiths awaiting an account
- A pending connection request from the Joneses to the Smiths
- An accepted sibling relationship between alice and bob
"""

from django.core.management.base import BaseCommand
from django.db import transaction

from apps.accounts.models import User
from apps.family.models import FamilyUnit
from apps.family.services import (
    accept_invitation,
    create_family_unit,
    create_seed_profile,
    send_connection,
    send_family_invitation,
)
from apps.relationships.models import RelationshipCard
from apps.relationships.services import (
    accept_relationship_invitation,
    create_relationship_invitation,
)
from apps.sharing.models import SharingPolicy, UserCard
from apps.sharing.services import create_card, create_policy

SAMPLE_EMAILS = [
    'admin@example.com',
    'alice@example.com',
    'bob@example.com',
    'charlie@example.com',
]


class Command(BaseCommand):
    help = 'Create sample data for trying out the API'

    def add_arguments(self, parser):
        parser.add_argument(
            '--clear',
            action='store_true',
            help='Clear existing sample data before creating it again',
        )

    @transaction.atomic
    def handle(self, *args, **options):
        if options['clear']:
            self.stdout.write('Clearing existing sample data...')
            self.clear_data()

        if FamilyUnit.objects.filter(trust_anchor__email='alice@example.com').exists():
            self.stdout.write(self.style.WARNING('Sample data already exists, use --clear to recreate it'))
            return

        self.stdout.write('Creating sample data...')

        users = self.create_users()
        self.create_cards(users)
        units = self.create_families(users)
        self.create_connections(users, units)
        self.create_relationships(users)

        self.stdout.write(self.style.SUCCESS('Sample data created successfully!'))
        self.stdout.write('')
        self.stdout.write('Test accounts:')
        self.stdout.write('  admin@example.com / admin123 (superuser)')
        self.stdout.write('  alice@example.com / password123')
        self.stdout.write('  bob@example.com / password123')
        self.stdout.write('  charlie@example.com / password123')

    def clear_data(self):
        """Remove everything owned by the sample users."""
        users = User.objects.filter(email__in=SAMPLE_EMAILS)
        RelationshipCard.objects.filter(from_user__in=users).delete()
        SharingPolicy.objects.filter(created_by__in=users).delete()
        UserCard.objects.filter(owner__in=users).delete()
        FamilyUnit.objects.filter(trust_anchor__in=users).delete()
        users.delete()

    def create_users(self):
        """Create test users."""
        self.stdout.write('  Creating users...')

        admin, _ = User.objects.get_or_create(
            email='admin@example.com',
            defaults={
                'display_name': 'Admin User',
                'is_staff': True,
                'is_superuser': True,
            }
        )
        admin.set_password('admin123')
        admin.save()

        users = {'admin': admin}
        for key, display_name in [
            ('alice', 'Alice Smith'),
            ('bob', 'Bob Jones'),
            ('charlie', 'Charlie Smith'),
        ]:
            user, _ = User.objects.get_or_create(
                email=f'{key}@example.com',
                defaults={'display_name': display_name}
            )
            user.set_password('password123')
            user.save()
            users[key] = user

        return users

    def create_cards(self, users):
        """Create alice's card and share part of it with bob."""
        self.stdout.write('  Creating cards and sharing policies...')

        card = create_card(
            owner=users['alice'],
            title='Personal',
            fields={
                'name': {'field_type': 'name', 'value': 'Alice Marie Smith'},
                'home': {'field_type': 'address', 'value': '42 Oak Ave, Portland, OR 97201'},
                'mobile': {'field_type': 'phone', 'value': '(503) 555-0142'},
                'email': {'field_type': 'email', 'value': 'alice@example.com'},
            },
        )
        create_policy(
            resource_id=card.id,
            resource_type='card',
            granted_to=users['bob'],
            created_by=users['alice'],
            template='family-view-only',
            shared_components={'home': ['city', 'state']},
        )
        return card

    def create_families(self, users):
        """Create family units, bring charlie in and seed a profile for lily."""
        self.stdout.write('  Creating family units...')

        smiths = create_family_unit(user=users['alice'], family_label='Smiths')
        create_family_unit(
            user=users['alice'],
            family_label='Smiths-Jr',
            parent_family_unit_id=smiths.id,
        )
        joneses = create_family_unit(user=users['bob'], family_label='Joneses')

        invitation = send_family_invitation(
            unit_id=smiths.id,
            invited_by=users['alice'],
            invitee_email=users['charlie'].email,
            relationship_role='Brother',
        )
        accept_invitation(token=invitation.invitation_token, user=users['charlie'])
        create_seed_profile(
            unit_id=smiths.id,
            user=users['alice'],
            first_name='Lily',
            last_name='Smith',
            relationship_label='Daughter',
            member_type='minor',
            generation_level=smiths.generation_level + 1,
        )

        return {'smiths': smiths, 'joneses': joneses}

    def create_connections(self, users, units):
        """Bob asks for the Joneses to join under the Smiths."""
        self.stdout.write('  Creating family connections...')

        send_connection(
            user=users['bob'],
            from_unit_id=units['joneses'].id,
            target_unit_id=units['smiths'].id,
            connection_direction='request',
            personal_message='We would love to join the family tree!',
        )

    def create_relationships(self, users):
        """Alice and bob confirm they are siblings."""
        self.stdout.write('  Creating relationships...')

        card = create_relationship_invitation(
            from_user=users['alice'],
            to_user_email=users['bob'].email,
            relationship_label_from='Sister',
            relationship_label_to='Brother',
            shared_attributes=['email', 'mobile'],
        )
        accept_relationship_invitation(token=card.invitation_token, user=users['bob'])
