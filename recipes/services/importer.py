"""
Import en masse de recettes depuis un fichier JSON (recettes historiques
sans compte utilisateur : elles sont publiées et attribuées à un auteur anonyme).
"""
import logging

from django.db import transaction
from django.db.models import Q
from django.utils import timezone
from rest_framework import serializers

from ..models import AnonymousAuthor, City, Recipe, Tag
from ..serializers import ImportRecipeSerializer
from .ingredients import sync_recipe_ingredients, validate_steps

logger = logging.getLogger(__name__)

DEFAULT_AUTHOR_NAME = 'مجهول'
DEFAULT_CITY_SLUG = 'general'

# Libellés de ville rencontrés dans les fichiers -> slug de la ville
CITY_MAP = {
    'شامية': 'damascus',
    'دمشق': 'damascus',
    'مو لمدينة محددة/لأكثر من مدينة': 'general',
    'عام': 'general',
    'درعاوية': 'daraa',
    'حلبية': 'aleppo',
    'حمصية': 'homs',
    'حموية': 'hama',
    'ساحلية': 'latakia',
    'ديرية': 'deir-ez-zor',
    'ادلبية': 'idlib',
}

# Libellés de difficulté (dialectaux ou anglais) -> valeur du modèle
DIFFICULTY_MAP = {
    'سهلة كتير': Recipe.DIFFICULTY_VERY_EASY,
    'سهلة جداً': Recipe.DIFFICULTY_VERY_EASY,
    'سهلة': Recipe.DIFFICULTY_EASY,
    'متوسطة': Recipe.DIFFICULTY_MEDIUM,
    'صعبة': Recipe.DIFFICULTY_HARD,
    'صعبة كتير': Recipe.DIFFICULTY_VERY_HARD,
    'صعبة جداً': Recipe.DIFFICULTY_VERY_HARD,
    'very easy': Recipe.DIFFICULTY_VERY_EASY,
    'easy': Recipe.DIFFICULTY_EASY,
    'medium': Recipe.DIFFICULTY_MEDIUM,
    'hard': Recipe.DIFFICULTY_HARD,
    'very hard': Recipe.DIFFICULTY_VERY_HARD,
}


def resolve_city(label):
    if not label:
        label = ''
    label = label.strip()
    slug = CITY_MAP.get(label, label or DEFAULT_CITY_SLUG)
    city = City.objects.filter(Q(slug=slug) | Q(name=label)).first() if label else None
    return city or City.objects.filter(slug=DEFAULT_CITY_SLUG).first()


def resolve_difficulty(label):
    if not label:
        return Recipe.DIFFICULTY_MEDIUM
    return DIFFICULTY_MAP.get(label.strip().lower(), Recipe.DIFFICULTY_MEDIUM)


@transaction.atomic
def import_recipe(data, imported_by=None):
    """Crée une recette publiée à partir d'une entrée validée par ImportRecipeSerializer"""
    author, _ = AnonymousAuthor.objects.get_or_create(name=(data.get('author') or '').strip() or DEFAULT_AUTHOR_NAME)

    steps = data.get('steps') or []
    if steps:
        steps = validate_steps(steps)

    time_needed = data.get('time_needed')
    if isinstance(time_needed, str):
        time_needed = {'raw': time_needed}

    recipe = Recipe.objects.create(
        name=data['name'].strip(),
        time_needed=time_needed,
        servings=data.get('servings') or '',
        city=resolve_city(data.get('city')),
        anonymous_author=author,
        is_anonymous=True,
        steps=steps,
        difficulty=resolve_difficulty(data.get('difficulty')),
        status=Recipe.STATUS_APPROVED,
        approved_by=imported_by,
        approved_at=timezone.now(),
    )
    if data.get('ingredients'):
        sync_recipe_ingredients(recipe, data['ingredients'])
    if data.get('tags'):
        recipe.tags.set([Tag.objects.get_or_create(name=name.strip())[0] for name in data['tags'] if name.strip()])
    return recipe


def import_recipes(entries, imported_by=None):
    """
    Importe une liste d'entrées. Chaque entrée est traitée indépendamment :
    une entrée invalide est comptée en échec sans interrompre l'import.
    Les images sont téléchargées en tâche de fond.
    """
    from ..tasks import fetch_recipe_image

    results = {'total': len(entries), 'success': 0, 'failed': 0, 'errors': []}
    for index, entry in enumerate(entries):
        name = entry.get('name', 'Unknown') if isinstance(entry, dict) else 'Unknown'
        serializer = ImportRecipeSerializer(data=entry)
        try:
            serializer.is_valid(raise_exception=True)
            recipe = import_recipe(serializer.validated_data, imported_by=imported_by)
        except serializers.ValidationError as exc:
            results['failed'] += 1
            results['errors'].append({'index': index, 'name': name, 'error': exc.detail})
            continue

        results['success'] += 1
        image_link = serializer.validated_data.get('image_link')
        if image_link:
            fetch_recipe_image.delay(recipe.id, image_link)

    logger.info(
        "[RecipeImport] Imported %d/%d recipes (%d failed)",
        results['success'], results['total'], results['failed']
    )
    return results
