import uuid

import apps.family.models
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ('family', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='RelationshipCard',
            fields=[
                ('expires_at', models.DateTimeField()),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('to_user_email', models.EmailField(max_length=254)),
                ('relationship_label_from', models.CharField(max_length=100)),
                ('relationship_label_to', models.CharField(max_length=100)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('accepted', 'Accepted'), ('rejected', 'Rejected'), ('expired', 'Expired'), ('cancelled', 'Cancelled')], default='pending', max_length=20)),
                ('confidence', models.JSONField(blank=True, default=dict)),
                ('network_rules', models.TextField(blank=True)),
                ('shared_attributes', models.JSONField(blank=True, default=list)),
                ('metadata', models.JSONField(blank=True, default=dict)),
                ('invitation_token', models.CharField(default=apps.family.models.generate_token, max_length=64, unique=True)),
                ('accepted_at', models.DateTimeField(blank=True, null=True)),
                ('label_modified', models.BooleanField(default=False)),
                ('terminated_at', models.DateTimeField(blank=True, null=True)),
                ('from_user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='relationship_cards', to=settings.AUTH_USER_MODEL)),
                ('reciprocal_card', models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to='relationships.relationshipcard')),
                ('to_user', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='incoming_relationship_cards', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'relationship_cards',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['from_user', 'status'], name='rel_cards_from_status_idx'),
                    models.Index(fields=['to_user_email', 'status'], name='rel_cards_email_status_idx'),
                ],
            },
        ),
    ]
