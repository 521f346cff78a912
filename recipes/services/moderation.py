"""
Opérations d'administration : actions groupées sur les recettes,
suppression de comptes et de villes.
"""
import logging

from django.db import transaction

from .. import workflow
from ..models import AnonymousAuthor, City, Recipe, SiteSetting

logger = logging.getLogger(__name__)

BULK_PUBLISH = 'publish'
BULK_UNPUBLISH = 'unpublish'
BULK_CHANGE_STATUS = 'change_status'
BULK_DELETE = 'delete'
BULK_ACTIONS = [BULK_PUBLISH, BULK_UNPUBLISH, BULK_CHANGE_STATUS, BULK_DELETE]


class ModerationError(Exception):
    def __init__(self, message):
        self.message = message
        super().__init__(message)


@transaction.atomic
def bulk_recipe_action(recipe_ids, action, actor, target_status=None):
    """
    Applique une action à plusieurs recettes.
    Les transitions interdites sont ignorées et comptées dans 'skipped'.
    """
    recipes = list(Recipe.objects.filter(id__in=recipe_ids))

    if action == BULK_DELETE:
        if not actor.can_delete_recipes:
            raise ModerationError('غير مصرح. يجب أن تكون مسؤولاً.')
        deleted = len(recipes)
        Recipe.objects.filter(id__in=[recipe.id for recipe in recipes]).delete()
        logger.info("[Moderation] User %s deleted %d recipes", actor.id, deleted)
        return {'processed': deleted, 'skipped': []}

    if action == BULK_PUBLISH:
        target_status = Recipe.STATUS_APPROVED
    elif action == BULK_UNPUBLISH:
        target_status = Recipe.STATUS_UNPUBLISHED
    elif action == BULK_CHANGE_STATUS:
        valid_statuses = [choice[0] for choice in Recipe.STATUS_CHOICES]
        if target_status not in valid_statuses:
            raise ModerationError('حالة غير صالحة')
    else:
        raise ModerationError('إجراء غير معروف')

    processed = 0
    skipped = []
    for recipe in recipes:
        if recipe.status == target_status and not recipe.needs_reapproval:
            skipped.append(recipe.id)
            continue
        try:
            workflow.change_status(recipe, target_status, actor)
        except workflow.InvalidTransition:
            skipped.append(recipe.id)
            continue
        processed += 1

    logger.info(
        "[Moderation] Bulk %s -> %s by user %s: %d processed, %d skipped",
        action, target_status, actor.id, processed, len(skipped)
    )
    return {'processed': processed, 'skipped': skipped}


@transaction.atomic
def delete_user(user, transfer_to_user=None, transfer_to_anonymous=None):
    """
    Supprime un compte. Ses recettes peuvent être transférées à un autre
    utilisateur ou à un auteur anonyme ; sinon elles sont supprimées avec lui.
    """
    recipes = Recipe.objects.filter(user=user)
    transferred = 0
    if transfer_to_user is not None:
        if transfer_to_user.pk == user.pk:
            raise ModerationError('لا يمكن نقل الوصفات إلى نفس المستخدم')
        transferred = recipes.update(user=transfer_to_user)
    elif transfer_to_anonymous:
        author, _ = AnonymousAuthor.objects.get_or_create(name=transfer_to_anonymous.strip())
        transferred = recipes.update(user=None, anonymous_author=author, is_anonymous=True)

    logger.info("[Moderation] Deleting user %s (%d recipes transferred)", user.id, transferred)
    user.delete()
    return transferred


def _default_city_id():
    value = SiteSetting.get_value(SiteSetting.DEFAULT_CITY_ID)
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


@transaction.atomic
def delete_cities(cities):
    """Supprime des villes en rattachant leurs recettes à la ville par défaut"""
    default_city_id = _default_city_id()
    if default_city_id is None or not City.objects.filter(id=default_city_id).exists():
        raise ModerationError('يجب تحديد مدينة افتراضية في الإعدادات قبل حذف المدن')

    city_ids = [city.id for city in cities]
    if default_city_id in city_ids:
        raise ModerationError('لا يمكن حذف المدينة الافتراضية')

    moved = Recipe.objects.filter(city_id__in=city_ids).update(city_id=default_city_id)
    City.objects.filter(id__in=city_ids).delete()
    logger.info("[Moderation] Deleted %d cities, %d recipes moved to city %s", len(city_ids), moved, default_city_id)
    return moved
