from django.core.management.base import BaseCommand
from django.db import transaction
from django.db.models import CharField, Value
from django.db.models.functions import Cast, Concat

from recipes.models import Ingredient, RecipeIngredient
from recipes.utils import normalize_ingredient_name


class Command(BaseCommand):
    help = (
        "Recalcule le nom normalisé de tous les ingrédients et fusionne "
        "ceux qui deviennent identiques"
    )

    def add_arguments(self, parser):
        parser.add_argument('--dry-run', action='store_true', help="Afficher les changements sans les appliquer")

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        canonical = {}
        updated = 0
        merged = 0

        for ingredient in Ingredient.objects.order_by('id'):
            normalized = normalize_ingredient_name(ingredient.name)
            target = canonical.get(normalized)

            if target is None:
                canonical[normalized] = ingredient
                if ingredient.normalized_name != normalized:
                    updated += 1
                    self.stdout.write(f'  {ingredient.name}: "{ingredient.normalized_name}" -> "{normalized}"')
                continue

            merged += 1
            self.stdout.write(f'  Fusion: "{ingredient.name}" -> "{target.name}"')
            if not dry_run:
                self._merge(ingredient, target)

        if not dry_run:
            self._rewrite_normalized_names(canonical.values())

        prefix = '[dry-run] ' if dry_run else ''
        self.stdout.write(self.style.SUCCESS(
            f'✓ {prefix}{updated} ingrédient(s) renormalisé(s), {merged} fusionné(s)'
        ))

    @transaction.atomic
    def _merge(self, duplicate, target):
        for row in RecipeIngredient.objects.filter(ingredient=duplicate):
            exists = RecipeIngredient.objects.filter(
                recipe_id=row.recipe_id, ingredient=target, group=row.group
            ).exists()
            if exists:
                row.delete()
            else:
                row.ingredient = target
                row.save(update_fields=['ingredient'])
        duplicate.delete()

    @transaction.atomic
    def _rewrite_normalized_names(self, ingredients):
        # Valeurs temporaires pour éviter les collisions sur la contrainte d'unicité
        Ingredient.objects.update(
            normalized_name=Concat(Value('__tmp_'), Cast('id', CharField()), output_field=CharField())
        )
        for ingredient in ingredients:
            ingredient.save(update_fields=['normalized_name'])
