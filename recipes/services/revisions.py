"""
Historique des modifications des recettes (instantanés JSON)
"""
import logging

from ..models import RecipeRevision
from .ingredients import group_recipe_ingredients

logger = logging.getLogger(__name__)

SUMMARY_CREATED = 'Initial creation'
SUMMARY_UPDATED = 'Update'


def snapshot(recipe):
    """Contenu éditable d'une recette, sérialisable en JSON"""
    return {
        'name': recipe.name,
        'steps': recipe.steps,
        'time_needed': recipe.time_needed,
        'servings': recipe.servings,
        'difficulty': recipe.difficulty,
        'city': recipe.city.name if recipe.city_id else None,
        'tags': sorted(recipe.tags.values_list('name', flat=True)),
        'ingredients': group_recipe_ingredients(recipe),
        'image_path': recipe.image_path,
        'status': recipe.status,
    }


def record_revision(recipe, user, summary=SUMMARY_UPDATED):
    revision = RecipeRevision.objects.create(
        recipe=recipe,
        user=user if user is not None and user.is_authenticated else None,
        content=snapshot(recipe),
        change_summary=summary,
    )
    logger.debug("[Revisions] Recorded revision %s for recipe %s (%s)", revision.id, recipe.id, summary)
    return revision


def clear_history(recipe):
    deleted, _ = recipe.revisions.all().delete()
    logger.info("[Revisions] Cleared %d revisions for recipe %s", deleted, recipe.id)
    return deleted
