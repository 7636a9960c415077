from django.apps import AppConfig


class RelationshipsConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.relationships'
    label = 'relationships'

    def ready(self):
        from apps.family import signals
        from apps.relationships.models import RelationshipCard

        signals.register(RelationshipCard)
