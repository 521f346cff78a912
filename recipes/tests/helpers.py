from django.contrib.auth import get_user_model

from recipes.models import Recipe
from recipes.services.ingredients import sync_recipe_ingredients


def make_user(name, role='user', **extra):
    return get_user_model().objects.create_user(
        username=name,
        email=f'{name}@example.com',
        password='password123',
        role=role,
        **extra
    )


def make_recipe(user, name='كبة مشوية', status=Recipe.STATUS_APPROVED, ingredients=None, **extra):
    recipe = Recipe.objects.create(
        name=name,
        user=user,
        status=status,
        steps=['نخلط البرغل مع اللحم', 'نشوي الكبة'],
        **extra
    )
    sync_recipe_ingredients(recipe, ingredients if ingredients is not None else ['برغل', 'لحمة مفرومة'])
    return recipe
