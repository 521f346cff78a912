"""
Règles métier des listes de recettes (favoris et collections publiables)
"""
import logging

from django.db import transaction
from django.db.models import Max

from ..models import ListItem, RecipeList

logger = logging.getLogger(__name__)

MIN_ITEMS_TO_PUBLISH = 2


class ListRuleError(Exception):
    """Opération refusée par les règles des listes"""

    def __init__(self, message):
        self.message = message
        super().__init__(message)


def ensure_default_list(user):
    """Crée la liste 'المفضلة' de l'utilisateur si elle n'existe pas"""
    default_list, created = RecipeList.objects.get_or_create(
        user=user,
        is_default=True,
        defaults={
            'name': RecipeList.DEFAULT_NAME,
            'slug': f'favorites-{user.id}',
            'is_public': False,
            'status': RecipeList.STATUS_PRIVATE,
        }
    )
    if created:
        logger.info("[ListService] Created default list for user %s", user.id)
    return default_list


def check_update(recipe_list, data):
    """Vérifie qu'une mise à jour respecte les règles de la liste par défaut"""
    if recipe_list.is_default and data.get('is_public'):
        raise ListRuleError('لا يمكن جعل قائمة المفضلة عامة')


def delete_list(recipe_list):
    if recipe_list.is_default:
        raise ListRuleError('لا يمكن حذف قائمة المفضلة')
    logger.info("[ListService] Deleting list %s", recipe_list.id)
    recipe_list.delete()


def request_publish(recipe_list):
    """Demander la publication : au moins deux recettes, passage en revue"""
    if recipe_list.is_default:
        raise ListRuleError('لا يمكن نشر قائمة المفضلة')
    if recipe_list.items.count() < MIN_ITEMS_TO_PUBLISH:
        raise ListRuleError('يجب أن تحتوي القائمة على وصفتين على الأقل لطلب النشر')
    recipe_list.status = RecipeList.STATUS_REVIEW
    recipe_list.save(update_fields=['status', 'updated_at'])
    logger.info("[ListService] List %s submitted for review", recipe_list.id)
    return recipe_list


def contains(recipe_list, recipe):
    return recipe_list.items.filter(recipe=recipe).exists()


@transaction.atomic
def add_recipe(recipe_list, recipe):
    """Ajoute la recette en fin de liste ; sans effet si elle y est déjà"""
    item = recipe_list.items.filter(recipe=recipe).first()
    if item:
        return item, False
    last_order = recipe_list.items.aggregate(last=Max('order'))['last']
    item = ListItem.objects.create(
        recipe_list=recipe_list,
        recipe=recipe,
        order=0 if last_order is None else last_order + 1,
    )
    recipe_list.save(update_fields=['updated_at'])
    return item, True


def remove_recipe(recipe_list, recipe):
    deleted, _ = recipe_list.items.filter(recipe=recipe).delete()
    if deleted:
        recipe_list.save(update_fields=['updated_at'])
    return bool(deleted)


def toggle_recipe(recipe_list, recipe):
    """Retourne True si la recette a été ajoutée, False si elle a été retirée"""
    if remove_recipe(recipe_list, recipe):
        return False
    add_recipe(recipe_list, recipe)
    return True


@transaction.atomic
def reorder(recipe_list, recipe_ids):
    """Réécrit l'ordre des éléments selon la séquence d'ids de recettes donnée"""
    items = {item.recipe_id: item for item in recipe_list.items.select_for_update()}
    if len(set(recipe_ids)) != len(recipe_ids) or set(recipe_ids) != set(items):
        raise ListRuleError('يجب أن يحتوي الترتيب على جميع وصفات القائمة مرة واحدة')
    for position, recipe_id in enumerate(recipe_ids):
        item = items[recipe_id]
        item.order = position
    ListItem.objects.bulk_update(items.values(), ['order'])
    return recipe_list


def approve_list(recipe_list):
    recipe_list.status = RecipeList.STATUS_APPROVED
    recipe_list.is_public = True
    recipe_list.save(update_fields=['status', 'is_public', 'updated_at'])
    return recipe_list


def reject_list(recipe_list):
    recipe_list.status = RecipeList.STATUS_REJECTED
    recipe_list.is_public = False
    recipe_list.save(update_fields=['status', 'is_public', 'updated_at'])
    return recipe_list


def unpublish_list(recipe_list):
    recipe_list.status = RecipeList.STATUS_PRIVATE
    recipe_list.is_public = False
    recipe_list.save(update_fields=['status', 'is_public', 'updated_at'])
    return recipe_list


def can_view(recipe_list, user):
    if recipe_list.is_listed_publicly:
        return True
    if user is None or not user.is_authenticated:
        return False
    return recipe_list.user_id == user.id or user.is_moderator_role
