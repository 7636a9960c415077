from django.core import serializers
from django.db import transaction
from django.db.models.signals import post_delete, post_save

from apps.family.realtime import DELETE, INSERT, UPDATE, ChangeEvent, feed


def _as_record(instance):
    data = serializers.serialize('python', [instance])[0]
    return {'id': str(instance.pk), **data['fields']}


def publish_save(sender, instance, created, **kwargs):
    table = sender._meta.db_table
    if not feed.has_subscribers(table):
        return

    event = ChangeEvent(
        table=table,
        event=INSERT if created else UPDATE,
        record_id=str(instance.pk),
        updated_at=getattr(instance, 'updated_at', None),
        record=_as_record(instance),
    )
    transaction.on_commit(lambda: feed.publish(event))


def publish_delete(sender, instance, **kwargs):
    table = sender._meta.db_table
    if not feed.has_subscribers(table):
        return

    event = ChangeEvent(
        table=table,
        event=DELETE,
        record_id=str(instance.pk),
        updated_at=None,
    )
    transaction.on_commit(lambda: feed.publish(event))


def register(model):
    """Publish saves and deletes of ``model`` to the change feed."""
    uid = f'change-feed-{model._meta.label_lower}'
    post_save.connect(publish_save, sender=model, dispatch_uid=f'{uid}-save')
    post_delete.connect(publish_delete, sender=model, dispatch_uid=f'{uid}-delete')
