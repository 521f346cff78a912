from django.conf import settings
from django.db.models.signals import post_save
from django.dispatch import receiver

from .services.lists import ensure_default_list


@receiver(post_save, sender=settings.AUTH_USER_MODEL)
def create_default_list(sender, instance, created, **kwargs):
    """Chaque nouvel utilisateur reçoit sa liste de favoris"""
    if created and not kwargs.get('raw'):
        ensure_default_list(instance)
