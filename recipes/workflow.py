"""
Workflow de validation des recettes.

    draft -> pending -> approved | rejected
    approved -> unpublished | pending (modification à revalider)
    rejected -> pending | approved
    unpublished -> pending | approved

Toutes les transitions passent par ce module ; une transition non prévue
lève InvalidTransition.
"""
import logging

from django.utils import timezone

from .models import Recipe

logger = logging.getLogger(__name__)

REJECTION_REASON_MAX_LENGTH = 500

ALLOWED_TRANSITIONS = {
    Recipe.STATUS_DRAFT: {Recipe.STATUS_PENDING},
    Recipe.STATUS_PENDING: {Recipe.STATUS_APPROVED, Recipe.STATUS_REJECTED, Recipe.STATUS_DRAFT},
    Recipe.STATUS_APPROVED: {Recipe.STATUS_UNPUBLISHED, Recipe.STATUS_PENDING},
    Recipe.STATUS_REJECTED: {Recipe.STATUS_PENDING, Recipe.STATUS_APPROVED},
    Recipe.STATUS_UNPUBLISHED: {Recipe.STATUS_PENDING, Recipe.STATUS_APPROVED},
}


class InvalidTransition(Exception):
    """Transition de statut non autorisée"""

    def __init__(self, current, target, message=None):
        self.current = current
        self.target = target
        self.message = message or f"لا يمكن تغيير حالة الوصفة من {current} إلى {target}"
        super().__init__(self.message)


def can_transition(current, target):
    return target in ALLOWED_TRANSITIONS.get(current, set())


def _transition(recipe, target, actor, **changes):
    current = recipe.status
    if not can_transition(current, target):
        raise InvalidTransition(current, target)

    recipe.status = target
    for field, value in changes.items():
        setattr(recipe, field, value)
    recipe.save(update_fields=['status', *changes.keys(), 'updated_at'])
    logger.info(
        "[RecipeWorkflow] Recipe %s: %s -> %s (by user %s)",
        recipe.id, current, target, getattr(actor, 'id', None)
    )
    return recipe


def initial_status(user, draft=False):
    """Statut d'une nouvelle recette selon son auteur"""
    if draft:
        return Recipe.STATUS_DRAFT
    if user is not None and user.can_approve_recipes:
        return Recipe.STATUS_APPROVED
    return Recipe.STATUS_PENDING


def submit(recipe, actor):
    """Soumettre une recette (brouillon, refusée ou dépubliée) à la validation"""
    return _transition(recipe, Recipe.STATUS_PENDING, actor)


def approve(recipe, moderator):
    return _transition(
        recipe,
        Recipe.STATUS_APPROVED,
        moderator,
        approved_by=moderator,
        approved_at=timezone.now(),
        rejection_reason=None,
        needs_reapproval=False,
    )


def reject(recipe, moderator, reason):
    reason = (reason or '').strip()
    if not reason:
        raise InvalidTransition(recipe.status, Recipe.STATUS_REJECTED, 'سبب الرفض مطلوب')
    if len(reason) > REJECTION_REASON_MAX_LENGTH:
        raise InvalidTransition(
            recipe.status, Recipe.STATUS_REJECTED,
            f'سبب الرفض يجب ألا يتجاوز {REJECTION_REASON_MAX_LENGTH} حرف'
        )
    return _transition(
        recipe,
        Recipe.STATUS_REJECTED,
        moderator,
        rejection_reason=reason,
        needs_reapproval=False,
    )


def unpublish(recipe, actor):
    return _transition(recipe, Recipe.STATUS_UNPUBLISHED, actor, needs_reapproval=False)


def change_status(recipe, target, actor, reason=None):
    """Point d'entrée générique utilisé par les actions groupées"""
    if target == Recipe.STATUS_APPROVED:
        return approve(recipe, actor)
    if target == Recipe.STATUS_REJECTED:
        return reject(recipe, actor, reason or 'رفض جماعي')
    if target == Recipe.STATUS_UNPUBLISHED:
        return unpublish(recipe, actor)
    if target == Recipe.STATUS_PENDING:
        return submit(recipe, actor)
    if target == Recipe.STATUS_DRAFT:
        return _transition(recipe, Recipe.STATUS_DRAFT, actor)
    raise InvalidTransition(recipe.status, target, 'حالة غير معروفة')


def mark_edited(recipe, editor):
    """
    Appelé après la modification d'une recette.
    Une recette publiée modifiée par son auteur repasse en validation
    (needs_reapproval) ; une recette refusée est resoumise. Les modifications
    des modérateurs ne changent pas le statut.
    """
    if editor is not None and editor.can_approve_recipes:
        return recipe
    if recipe.status == Recipe.STATUS_APPROVED:
        return _transition(recipe, Recipe.STATUS_PENDING, editor, needs_reapproval=True)
    if recipe.status == Recipe.STATUS_REJECTED:
        return _transition(recipe, Recipe.STATUS_PENDING, editor)
    return recipe


def is_visible_to(recipe, user):
    """Les recettes publiées sont publiques ; les autres : auteur ou modérateur"""
    if recipe.status == Recipe.STATUS_APPROVED:
        return True
    if user is None or not user.is_authenticated:
        return False
    return recipe.is_owned_by(user) or user.is_moderator_role
