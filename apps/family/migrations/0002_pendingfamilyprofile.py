import uuid

import apps.family.models
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('family', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='PendingFamilyProfile',
            fields=[
                ('expires_at', models.DateTimeField()),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('first_name', models.CharField(max_length=100)),
                ('last_name', models.CharField(blank=True, max_length=100)),
                ('email', models.EmailField(blank=True, max_length=254)),
                ('phone', models.CharField(blank=True, max_length=30)),
                ('relationship_label', models.CharField(max_length=100)),
                ('generation_level', models.PositiveIntegerField(default=1)),
                ('member_type', models.CharField(choices=[('minor', 'Minor'), ('adult', 'Adult')], default='adult', max_length=10)),
                ('seed_data', models.JSONField(blank=True, default=dict)),
                ('invitation_token', models.CharField(default=apps.family.models.generate_token, max_length=64, unique=True)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('claimed', 'Claimed'), ('expired', 'Expired'), ('declined', 'Declined')], default='pending', max_length=20)),
                ('claimed_at', models.DateTimeField(blank=True, null=True)),
                ('sent_at', models.DateTimeField(blank=True, null=True)),
                ('claimed_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='claimed_family_profiles', to=settings.AUTH_USER_MODEL)),
                ('created_by', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='created_family_profiles', to=settings.AUTH_USER_MODEL)),
                ('family_unit', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='pending_profiles', to='family.familyunit')),
            ],
            options={
                'db_table': 'pending_family_profiles',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['family_unit', 'status'], name='family_profile_unit_idx'),
                    models.Index(fields=['email', 'status'], name='family_profile_email_idx'),
                ],
            },
        ),
    ]
