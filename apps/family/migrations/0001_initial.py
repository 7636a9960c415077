import uuid

import apps.family.models
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='FamilyUnit',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('family_label', models.CharField(max_length=200)),
                ('generation_level', models.PositiveIntegerField(default=1)),
                ('family_metadata', models.JSONField(blank=True, default=dict)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('parent_family_unit', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='child_units', to='family.familyunit')),
                ('trust_anchor', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='anchored_family_units', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'family_units',
                'ordering': ['generation_level', 'family_label'],
                'indexes': [
                    models.Index(fields=['trust_anchor', 'is_active'], name='family_units_anchor_idx'),
                    models.Index(fields=['family_label'], name='family_units_label_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='FamilyMembership',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('relationship_label', models.CharField(blank=True, max_length=100)),
                ('family_generation', models.PositiveIntegerField(default=1)),
                ('permissions', models.JSONField(blank=True, default=dict)),
                ('status', models.CharField(choices=[('active', 'Active'), ('removed', 'Removed')], default='active', max_length=20)),
                ('joined_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('family_unit', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='memberships', to='family.familyunit')),
                ('member', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='family_memberships', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'family_memberships',
                'ordering': ['joined_at'],
                'indexes': [
                    models.Index(fields=['member', 'status'], name='family_members_member_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('status', 'active')), fields=('family_unit', 'member'), name='unique_active_family_membership'),
                ],
            },
        ),
        migrations.CreateModel(
            name='FamilyInvitation',
            fields=[
                ('expires_at', models.DateTimeField()),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('invitee_email', models.EmailField(max_length=254)),
                ('invitee_name', models.CharField(blank=True, max_length=200)),
                ('relationship_role', models.CharField(max_length=100)),
                ('personal_message', models.TextField(blank=True)),
                ('invitation_token', models.CharField(default=apps.family.models.generate_token, max_length=64, unique=True)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('accepted', 'Accepted'), ('rejected', 'Rejected'), ('expired', 'Expired'), ('cancelled', 'Cancelled')], default='pending', max_length=20)),
                ('sent_at', models.DateTimeField(blank=True, null=True)),
                ('accepted_at', models.DateTimeField(blank=True, null=True)),
                ('accepted_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='accepted_family_invitations', to=settings.AUTH_USER_MODEL)),
                ('family_unit', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='invitations', to='family.familyunit')),
                ('invited_by', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='sent_family_invitations', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'family_invitations',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['family_unit', 'invitee_email', 'status'], name='family_inv_unit_email_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='FamilyConnection',
            fields=[
                ('expires_at', models.DateTimeField()),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('connection_type', models.CharField(choices=[('hierarchical', 'Hierarchical'), ('sibling', 'Sibling'), ('extended', 'Extended')], default='hierarchical', max_length=20)),
                ('connection_direction', models.CharField(choices=[('invitation', 'Invitation'), ('request', 'Request')], max_length=20)),
                ('invitation_token', models.CharField(default=apps.family.models.generate_token, max_length=64, unique=True)),
                ('personal_message', models.TextField(blank=True)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('approved', 'Approved'), ('rejected', 'Rejected'), ('expired', 'Expired'), ('cancelled', 'Cancelled')], default='pending', max_length=20)),
                ('approved_at', models.DateTimeField(blank=True, null=True)),
                ('approved_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='approved_family_connections', to=settings.AUTH_USER_MODEL)),
                ('child_family_unit', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='parent_connections', to='family.familyunit')),
                ('initiated_by', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='initiated_family_connections', to=settings.AUTH_USER_MODEL)),
                ('parent_family_unit', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='child_connections', to='family.familyunit')),
            ],
            options={
                'db_table': 'family_connections',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['parent_family_unit', 'status'], name='family_conn_parent_idx'),
                    models.Index(fields=['child_family_unit', 'status'], name='family_conn_child_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='FamilyOwnershipTransfer',
            fields=[
                ('expires_at', models.DateTimeField()),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('proposed_owner_email', models.EmailField(max_length=254)),
                ('transfer_token', models.CharField(default=apps.family.models.generate_token, max_length=64, unique=True)),
                ('message', models.TextField(blank=True)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('accepted', 'Accepted'), ('declined', 'Declined'), ('expired', 'Expired'), ('cancelled', 'Cancelled')], default='pending', max_length=20)),
                ('sent_at', models.DateTimeField(blank=True, null=True)),
                ('responded_at', models.DateTimeField(blank=True, null=True)),
                ('current_owner', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='outgoing_ownership_transfers', to=settings.AUTH_USER_MODEL)),
                ('family_unit', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='ownership_transfers', to='family.familyunit')),
                ('proposed_owner', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='incoming_ownership_transfers', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'family_ownership_transfers',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['family_unit', 'status'], name='family_transfer_unit_idx'),
                ],
            },
        ),
    ]
