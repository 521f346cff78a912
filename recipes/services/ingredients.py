"""
Service de normalisation et de rapprochement des ingrédients.

Les ingrédients sont dédupliqués par leur nom normalisé : "2 بصل (مفروم)" et
"بصل" désignent le même ingrédient canonique.
"""
import logging
from collections import OrderedDict
from typing import List, Optional

from django.db import IntegrityError, transaction
from django.db.models import Q
from rest_framework import serializers

from ..models import Ingredient, RecipeIngredient
from ..utils import normalize_ingredient_name

logger = logging.getLogger(__name__)

ITEM_FIELDS = ('amount', 'unit', 'descriptor')


def _clean(value):
    if value is None:
        return None
    value = str(value).strip()
    return value or None


@transaction.atomic
def get_or_create_ingredient(name: str) -> Optional[Ingredient]:
    """
    Trouve ou crée l'ingrédient canonique correspondant à `name`.
    Le premier libellé rencontré devient le nom canonique.
    """
    name = (name or '').strip()
    normalized = normalize_ingredient_name(name)
    if not normalized:
        return None

    ingredient = Ingredient.objects.filter(normalized_name=normalized).first()
    if ingredient:
        return ingredient

    try:
        with transaction.atomic():
            ingredient = Ingredient.objects.create(name=name)
    except IntegrityError:
        # Créé entre-temps par une autre requête
        ingredient = Ingredient.objects.get(normalized_name=normalized)
    else:
        logger.info("[IngredientMatcher] Created ingredient '%s' (normalized: '%s')", name, normalized)
    return ingredient


def search_similar(query: str, limit: int = 10):
    """Recherche les ingrédients dont le nom (normalisé ou non) contient `query`"""
    query = (query or '').strip()
    if not query:
        return Ingredient.objects.none()
    normalized = normalize_ingredient_name(query)
    condition = Q(name__icontains=query)
    if normalized:
        condition |= Q(normalized_name__icontains=normalized)
    return Ingredient.objects.filter(condition).order_by('name')[:limit]


def _parse_item(item, group, errors, position):
    if isinstance(item, str):
        name = item.strip()
        data = {'name': name, 'amount': None, 'unit': None, 'descriptor': None, 'group': group}
    elif isinstance(item, dict):
        name = (item.get('name') or '').strip() if isinstance(item.get('name'), str) else ''
        data = {
            'name': name,
            'amount': _clean(item.get('amount')),
            'unit': _clean(item.get('unit')),
            'descriptor': _clean(item.get('descriptor')),
            'group': _clean(item.get('group')) or group,
        }
    else:
        errors.append(f"العنصر {position}: صيغة المكون غير صالحة")
        return None

    if not data['name']:
        return None
    data['group'] = data['group'] or ''
    return data


def parse_ingredients(payload) -> List[dict]:
    """
    Convertit les trois formats acceptés en une liste plate d'éléments
    {name, amount, unit, descriptor, group} :

    1. dict {groupe: [éléments]}
    2. liste de groupes [{name, items: [éléments]}]
    3. liste plate d'éléments (chaîne ou dict)

    Lève une ValidationError DRF si la structure est invalide.
    """
    errors = []
    parsed = []

    if isinstance(payload, dict):
        for group_name, items in payload.items():
            if not isinstance(items, list):
                errors.append(f"المجموعة '{group_name}' يجب أن تكون قائمة")
                continue
            for index, item in enumerate(items, start=1):
                data = _parse_item(item, _clean(group_name), errors, index)
                if data:
                    parsed.append(data)
    elif isinstance(payload, list):
        for index, entry in enumerate(payload, start=1):
            if isinstance(entry, dict) and isinstance(entry.get('items'), list):
                group_name = _clean(entry.get('name')) or _clean(entry.get('group'))
                for item in entry['items']:
                    data = _parse_item(item, group_name, errors, index)
                    if data:
                        parsed.append(data)
            else:
                data = _parse_item(entry, None, errors, index)
                if data:
                    parsed.append(data)
    else:
        errors.append('صيغة المكونات غير صالحة')

    if errors:
        raise serializers.ValidationError(errors)
    return parsed


@transaction.atomic
def sync_recipe_ingredients(recipe, payload) -> List[RecipeIngredient]:
    """
    Remplace les ingrédients d'une recette.
    Un même ingrédient dans un même groupe n'apparaît qu'une fois (la dernière occurrence gagne),
    l'ordre de saisie est conservé dans sort_order.
    """
    items = parse_ingredients(payload)

    rows = OrderedDict()
    for item in items:
        ingredient = get_or_create_ingredient(item['name'])
        if ingredient is None:
            continue
        key = (ingredient.id, item['group'])
        if key in rows:
            rows[key].update({field: item[field] for field in ITEM_FIELDS})
        else:
            rows[key] = {
                'ingredient': ingredient,
                'group': item['group'],
                **{field: item[field] for field in ITEM_FIELDS},
            }

    recipe.recipe_ingredients.all().delete()
    created = RecipeIngredient.objects.bulk_create([
        RecipeIngredient(recipe=recipe, sort_order=index, **row)
        for index, row in enumerate(rows.values())
    ])
    logger.info("[IngredientMatcher] Synced %d ingredients for recipe %s", len(created), recipe.id)
    return created


def group_recipe_ingredients(recipe):
    """Ingrédients d'une recette regroupés : [{group, items: [...]}] dans l'ordre de saisie"""
    groups = OrderedDict()
    for row in recipe.recipe_ingredients.all():
        groups.setdefault(row.group, []).append({
            'id': row.ingredient_id,
            'name': row.ingredient.name,
            'amount': row.amount,
            'unit': row.unit,
            'descriptor': row.descriptor,
        })
    return [{'group': group or None, 'items': items} for group, items in groups.items()]


def validate_steps(value):
    """
    Étapes acceptées :
    - liste de chaînes non vides
    - liste de groupes {name, items: [chaînes]}
    - dict {groupe: [chaînes]} (converti en liste de groupes)
    """
    if isinstance(value, dict):
        value = [{'name': name, 'items': items} for name, items in value.items()]

    if not isinstance(value, list) or not value:
        raise serializers.ValidationError('يجب إضافة خطوة واحدة على الأقل')

    grouped = any(isinstance(entry, dict) for entry in value)
    cleaned = []
    if grouped:
        for entry in value:
            if not isinstance(entry, dict) or not isinstance(entry.get('items'), list):
                raise serializers.ValidationError('صيغة مجموعة الخطوات غير صالحة')
            items = [str(step).strip() for step in entry['items'] if isinstance(step, str) and step.strip()]
            if not items:
                continue
            cleaned.append({'name': _clean(entry.get('name')) or '', 'items': items})
    else:
        for step in value:
            if not isinstance(step, str):
                raise serializers.ValidationError('كل خطوة يجب أن تكون نصاً')
            if step.strip():
                cleaned.append(step.strip())

    if not cleaned:
        raise serializers.ValidationError('يجب إضافة خطوة واحدة على الأقل')
    return cleaned
