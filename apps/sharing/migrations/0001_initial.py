import uuid

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='UserCard',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('title', models.CharField(max_length=200)),
                ('fields', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('owner', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='cards', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'user_cards',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['owner', 'created_at'], name='user_cards_owner_created_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='SharingPolicy',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('resource_id', models.UUIDField(db_index=True)),
                ('resource_type', models.CharField(choices=[('card', 'Card'), ('family_unit', 'Family Unit'), ('organization', 'Organization')], default='card', max_length=20)),
                ('shared_components', models.JSONField(blank=True, default=dict)),
                ('metadata', models.JSONField(blank=True, default=dict)),
                ('is_active', models.BooleanField(default=True)),
                ('expires_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('created_by', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='created_policies', to=settings.AUTH_USER_MODEL)),
                ('granted_to', models.ForeignKey(blank=True, help_text='NULL grants the policy to everyone', null=True, on_delete=django.db.models.deletion.CASCADE, related_name='received_policies', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'sharing_policies',
                'ordering': ['created_at'],
                'verbose_name_plural': 'sharing policies',
                'indexes': [
                    models.Index(fields=['resource_id', 'is_active'], name='policies_resource_active_idx'),
                    models.Index(fields=['granted_to', 'is_active'], name='policies_grantee_active_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='PolicyPermission',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('action', models.CharField(choices=[('view', 'View'), ('edit', 'Edit'), ('share', 'Share'), ('delete', 'Delete'), ('download', 'Download')], default='view', max_length=20)),
                ('resource', models.CharField(choices=[('card', 'Card'), ('field', 'Field'), ('relationship', 'Relationship'), ('family_data', 'Family Data')], default='card', max_length=20)),
                ('granted', models.BooleanField(default=True)),
                ('conditions', models.JSONField(blank=True, default=list)),
                ('expires_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('policy', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='permissions', to='sharing.sharingpolicy')),
            ],
            options={
                'db_table': 'policy_permissions',
                'ordering': ['created_at'],
                'indexes': [
                    models.Index(fields=['policy', 'action'], name='policy_perms_action_idx'),
                ],
            },
        ),
    ]
