from django.apps import AppConfig


class FamilyConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.family'
    label = 'family'

    def ready(self):
        from apps.family import signals
        from apps.family.models import (
            FamilyConnection,
            FamilyInvitation,
            FamilyMembership,
            FamilyOwnershipTransfer,
            FamilyUnit,
            PendingFamilyProfile,
        )

        for model in (
            FamilyUnit,
            FamilyMembership,
            FamilyInvitation,
            FamilyConnection,
            FamilyOwnershipTransfer,
            PendingFamilyProfile,
        ):
            signals.register(model)
