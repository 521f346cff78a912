from io import StringIO

from django.core.management import call_command
from django.db import IntegrityError, transaction
from django.test import TestCase
from rest_framework.exceptions import ValidationError

from recipes.models import Ingredient, RecipeIngredient
from recipes.services.ingredients import (
    get_or_create_ingredient, group_recipe_ingredients, parse_ingredients,
    search_similar, sync_recipe_ingredients, validate_steps,
)
from recipes.tests.helpers import make_recipe, make_user
from recipes.utils import normalize_ingredient_name


class NormalizeIngredientNameTestCase(TestCase):
    def test_strips_leading_quantity_and_parentheses(self):
        self.assertEqual(normalize_ingredient_name('2 بصل (مفروم ناعم)'), 'بصل')
        self.assertEqual(normalize_ingredient_name('3, Tomatoes'), 'tomatoes')

    def test_removes_diacritics_and_extra_spaces(self):
        self.assertEqual(normalize_ingredient_name('  لَحْمَة   مفرومة '), 'لحمة مفرومة')

    def test_blank_name(self):
        self.assertEqual(normalize_ingredient_name(''), '')
        self.assertEqual(normalize_ingredient_name(None), '')


class IngredientMatchingTestCase(TestCase):
    def test_same_normalized_name_reuses_ingredient(self):
        first = get_or_create_ingredient('بصل')
        second = get_or_create_ingredient('2 بَصل (أحمر)')

        self.assertEqual(first.id, second.id)
        self.assertEqual(second.name, 'بصل')
        self.assertEqual(Ingredient.objects.count(), 1)

    def test_blank_name_returns_none(self):
        self.assertIsNone(get_or_create_ingredient('  '))
        self.assertEqual(Ingredient.objects.count(), 0)

    def test_normalized_name_is_unique(self):
        Ingredient.objects.create(name='Salt')
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                Ingredient.objects.create(name='salt')

    def test_normalized_name_follows_renames(self):
        ingredient = Ingredient.objects.create(name='Parsley')
        ingredient.name = 'Flat Parsley'
        ingredient.save()
        self.assertEqual(ingredient.normalized_name, 'flat parsley')

    def test_search_similar(self):
        Ingredient.objects.create(name='Pine nuts')
        Ingredient.objects.create(name='Nutmeg')
        Ingredient.objects.create(name='Rice')

        names = [ingredient.name for ingredient in search_similar('nut')]
        self.assertEqual(names, ['Nutmeg', 'Pine nuts'])
        self.assertEqual(list(search_similar('')), [])


class ParseIngredientsTestCase(TestCase):
    def test_mapping_of_groups(self):
        items = parse_ingredients({
            'العجينة': ['طحين', {'name': 'ماء', 'amount': '1', 'unit': 'كوب'}],
            'الحشوة': ['جبنة'],
        })
        self.assertEqual([item['name'] for item in items], ['طحين', 'ماء', 'جبنة'])
        self.assertEqual(items[0]['group'], 'العجينة')
        self.assertEqual(items[1]['unit'], 'كوب')
        self.assertEqual(items[2]['group'], 'الحشوة')

    def test_list_of_groups(self):
        items = parse_ingredients([
            {'name': 'الصلصة', 'items': ['بندورة', 'ثوم']},
            {'name': '', 'items': [{'name': 'ملح', 'descriptor': 'حسب الرغبة'}]},
        ])
        self.assertEqual(items[0]['group'], 'الصلصة')
        self.assertEqual(items[2]['group'], '')
        self.assertEqual(items[2]['descriptor'], 'حسب الرغبة')

    def test_flat_items_with_item_group_override(self):
        items = parse_ingredients(['رز', {'name': 'لوز', 'group': 'للتزيين'}, {'amount': '2'}])
        self.assertEqual(len(items), 2)
        self.assertEqual(items[0]['group'], '')
        self.assertEqual(items[1]['group'], 'للتزيين')

    def test_invalid_payload(self):
        with self.assertRaises(ValidationError):
            parse_ingredients('رز، لحمة')
        with self.assertRaises(ValidationError):
            parse_ingredients([42])


class SyncRecipeIngredientsTestCase(TestCase):
    def setUp(self):
        self.recipe = make_recipe(make_user('cook'), ingredients=[])

    def test_duplicates_in_same_group_collapse_last_wins(self):
        sync_recipe_ingredients(self.recipe, [
            {'name': 'رز', 'amount': '1'},
            {'name': 'بصل'},
            {'name': 'رز', 'amount': '2'},
        ])
        rows = list(RecipeIngredient.objects.filter(recipe=self.recipe))
        self.assertEqual(len(rows), 2)
        self.assertEqual(rows[0].ingredient.name, 'رز')
        self.assertEqual(rows[0].amount, '2')
        self.assertEqual([row.sort_order for row in rows], [0, 1])

    def test_same_ingredient_in_different_groups(self):
        sync_recipe_ingredients(self.recipe, {'العجينة': ['زبدة'], 'الحشوة': ['زبدة']})
        self.assertEqual(RecipeIngredient.objects.filter(recipe=self.recipe).count(), 2)
        self.assertEqual(Ingredient.objects.filter(name='زبدة').count(), 1)

    def test_pivot_is_unique_per_group(self):
        sync_recipe_ingredients(self.recipe, ['ملح'])
        row = RecipeIngredient.objects.get(recipe=self.recipe)
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                RecipeIngredient.objects.create(recipe=self.recipe, ingredient=row.ingredient, group='')

    def test_sync_replaces_previous_rows(self):
        sync_recipe_ingredients(self.recipe, ['ملح', 'فلفل'])
        sync_recipe_ingredients(self.recipe, ['كمون'])
        names = [row.ingredient.name for row in self.recipe.recipe_ingredients.all()]
        self.assertEqual(names, ['كمون'])

    def test_grouped_output_keeps_input_order(self):
        sync_recipe_ingredients(self.recipe, [
            {'name': 'العجينة', 'items': ['طحين', 'خميرة']},
            {'name': 'الحشوة', 'items': ['سبانخ']},
        ])
        grouped = group_recipe_ingredients(self.recipe)
        self.assertEqual([group['group'] for group in grouped], ['العجينة', 'الحشوة'])
        self.assertEqual([item['name'] for item in grouped[0]['items']], ['طحين', 'خميرة'])


class ValidateStepsTestCase(TestCase):
    def test_plain_steps(self):
        self.assertEqual(validate_steps([' نغسل الرز ', '', 'نطبخ']), ['نغسل الرز', 'نطبخ'])

    def test_grouped_steps_and_mapping(self):
        self.assertEqual(
            validate_steps({'الصلصة': ['نقلي الثوم']}),
            [{'name': 'الصلصة', 'items': ['نقلي الثوم']}]
        )
        self.assertEqual(
            validate_steps([{'name': 'العجينة', 'items': ['نعجن']}, {'name': 'فارغ', 'items': []}]),
            [{'name': 'العجينة', 'items': ['نعجن']}]
        )

    def test_invalid_steps(self):
        for value in [[], 'نطبخ', [1, 2], [{'name': 'x'}], ['  ']]:
            with self.assertRaises(ValidationError):
                validate_steps(value)


class RenormalizeIngredientsCommandTestCase(TestCase):
    def setUp(self):
        self.onion = Ingredient.objects.create(name='بصل')
        legacy = Ingredient.objects.create(name='legacy onion')
        # Ligne enregistrée avant l'ajout de la suppression des diacritiques
        Ingredient.objects.filter(pk=legacy.pk).update(name='بَصَل', normalized_name='بَصَل')
        self.legacy = Ingredient.objects.get(pk=legacy.pk)
        self.recipe = make_recipe(make_user('cook'), ingredients=['رز'])
        RecipeIngredient.objects.create(recipe=self.recipe, ingredient=self.legacy, group='', sort_order=1)

    def test_dry_run_changes_nothing(self):
        out = StringIO()
        call_command('renormalize_ingredients', '--dry-run', stdout=out)

        self.assertIn('1 fusionné(s)', out.getvalue())
        self.assertTrue(Ingredient.objects.filter(pk=self.legacy.pk).exists())

    def test_duplicates_are_merged(self):
        call_command('renormalize_ingredients', stdout=StringIO())

        self.assertFalse(Ingredient.objects.filter(pk=self.legacy.pk).exists())
        names = [row.ingredient.name for row in self.recipe.recipe_ingredients.all()]
        self.assertEqual(names, ['رز', 'بصل'])

    def test_numeric_names_do_not_collide_with_ids(self):
        stale = Ingredient.objects.create(name='stale')
        salt = Ingredient.objects.create(name='ملح')
        Ingredient.objects.filter(pk=stale.pk).update(name=f'1 {salt.pk}', normalized_name='stale')

        call_command('renormalize_ingredients', stdout=StringIO())

        stale.refresh_from_db()
        salt.refresh_from_db()
        self.assertEqual(stale.normalized_name, str(salt.pk))
        self.assertEqual(salt.normalized_name, 'ملح')
