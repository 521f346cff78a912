from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from recipes.models import AnonymousAuthor, City, Ingredient, Recipe, RecipeRevision, SiteSetting, Tag
from recipes.tests.helpers import make_recipe, make_user


class RecipeCreateAPITestCase(APITestCase):
    def setUp(self):
        self.user = make_user('cook')
        self.moderator = make_user('moderator', role='moderator')
        self.url = reverse('recipe-list')
        self.payload = {
            'name': 'مقلوبة',
            'steps': ['نقلي الباذنجان', 'نرتب الطبقات', 'نقلب القدر'],
            'ingredients': {
                'الأساس': ['رز', {'name': 'باذنجان', 'amount': '2', 'unit': 'حبة'}],
                'للتزيين': ['لوز'],
            },
            'tags': ['أطباق رئيسية', 'أطباق رئيسية', 'فلسطيني'],
        }

    def test_requires_authentication(self):
        response = self.client.post(self.url, self.payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_user_recipe_goes_to_review(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.post(self.url, self.payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['message'], 'تم إرسال الوصفة للمراجعة')
        recipe = Recipe.objects.get(slug=response.data['recipe']['slug'])
        self.assertEqual(recipe.status, Recipe.STATUS_PENDING)
        self.assertEqual(recipe.user, self.user)
        self.assertEqual(recipe.difficulty, Recipe.DIFFICULTY_MEDIUM)
        self.assertEqual(recipe.recipe_ingredients.count(), 3)
        self.assertEqual(sorted(recipe.tags.values_list('name', flat=True)), ['أطباق رئيسية', 'فلسطيني'])
        self.assertEqual(RecipeRevision.objects.filter(recipe=recipe).count(), 1)

        groups = response.data['recipe']['ingredients']
        self.assertEqual([group['group'] for group in groups], ['الأساس', 'للتزيين'])

    def test_moderator_recipe_is_published(self):
        self.client.force_authenticate(user=self.moderator)
        response = self.client.post(self.url, self.payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['message'], 'تم نشر الوصفة')
        recipe = Recipe.objects.get(slug=response.data['recipe']['slug'])
        self.assertEqual(recipe.status, Recipe.STATUS_APPROVED)
        self.assertEqual(recipe.approved_by, self.moderator)

    def test_draft(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.post(self.url, {**self.payload, 'draft': True}, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['message'], 'تم حفظ المسودة')
        self.assertEqual(response.data['recipe']['status'], Recipe.STATUS_DRAFT)

    def test_validation_errors_return_422(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.post(self.url, {**self.payload, 'steps': [], 'ingredients': []}, format='json')

        self.assertEqual(response.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)
        self.assertIn('steps', response.data['errors'])
        self.assertIn('ingredients', response.data['errors'])
        self.assertTrue(response.data['message'])

    def test_too_many_tags(self):
        self.client.force_authenticate(user=self.user)
        tags = [f'وسم {index}' for index in range(11)]
        response = self.client.post(self.url, {**self.payload, 'tags': tags}, format='json')
        self.assertEqual(response.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)

    def test_manual_author_is_reserved_to_moderators(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.post(self.url, {**self.payload, 'manual_author_name': 'أم خالد'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)

        self.client.force_authenticate(user=self.moderator)
        response = self.client.post(self.url, {**self.payload, 'manual_author_name': 'أم خالد'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['recipe']['author']['name'], 'أم خالد')
        self.assertIsNone(response.data['recipe']['author']['user_id'])

    def test_anonymous_recipe_hides_author(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.post(self.url, {**self.payload, 'is_anonymous': True}, format='json')

        author = response.data['recipe']['author']
        self.assertEqual(author['name'], 'مجهول')
        self.assertIsNone(author['user_id'])
        self.assertTrue(response.data['recipe']['is_owner'])

    def test_banned_user_is_rejected_with_reason(self):
        self.user.ban('محتوى مسيء')
        self.client.force_authenticate(user=self.user)
        response = self.client.post(self.url, self.payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['error'], 'تم حظر حسابك')
        self.assertEqual(response.data['reason'], 'محتوى مسيء')

    def test_ingredients_must_have_a_usable_name(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.post(self.url, {**self.payload, 'ingredients': ['3', '(مفروم)']}, format='json')

        self.assertEqual(response.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)
        self.assertIn('ingredients', response.data['errors'])
        self.assertFalse(Recipe.objects.exists())

    def test_moderator_attributes_recipe_to_user(self):
        self.client.force_authenticate(user=self.moderator)
        response = self.client.post(self.url, {**self.payload, 'user_id': self.user.id}, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        recipe = Recipe.objects.get(slug=response.data['recipe']['slug'])
        self.assertEqual(recipe.user, self.user)
        self.assertFalse(recipe.is_anonymous)
        self.assertEqual(response.data['recipe']['author']['user_id'], self.user.id)

    def test_moderator_attributes_recipe_to_anonymous_author(self):
        author = AnonymousAuthor.objects.create(name='مطبخ جدتي')
        self.client.force_authenticate(user=self.moderator)
        response = self.client.post(self.url, {**self.payload, 'anonymous_author_id': author.id}, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        recipe = Recipe.objects.get(slug=response.data['recipe']['slug'])
        self.assertEqual(recipe.anonymous_author, author)
        self.assertIsNone(recipe.user)
        self.assertEqual(response.data['recipe']['author']['name'], 'مطبخ جدتي')

    def test_manual_author_name_wins_over_user_id(self):
        self.client.force_authenticate(user=self.moderator)
        response = self.client.post(
            self.url, {**self.payload, 'manual_author_name': 'أم خالد', 'user_id': self.user.id}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        recipe = Recipe.objects.get(slug=response.data['recipe']['slug'])
        self.assertIsNone(recipe.user)
        self.assertEqual(recipe.anonymous_author.name, 'أم خالد')
        self.assertTrue(recipe.is_anonymous)

    def test_attribution_is_reserved_to_moderators(self):
        author = AnonymousAuthor.objects.create(name='مطبخ جدتي')
        self.client.force_authenticate(user=self.user)

        response = self.client.post(self.url, {**self.payload, 'user_id': self.moderator.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)
        self.assertIn('user_id', response.data['errors'])

        response = self.client.post(self.url, {**self.payload, 'anonymous_author_id': author.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)
        self.assertFalse(Recipe.objects.exists())


class RecipeBrowseAPITestCase(APITestCase):
    def setUp(self):
        self.author = make_user('author')
        self.other = make_user('other')
        self.moderator = make_user('moderator', role='moderator')
        self.approved = make_recipe(self.author, name='Mansaf')
        self.pending = make_recipe(self.author, name='Maqluba', status=Recipe.STATUS_PENDING)

    def test_list_only_shows_approved(self):
        response = self.client.get(reverse('recipe-list'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        slugs = [recipe['slug'] for recipe in response.data['results']]
        self.assertEqual(slugs, [self.approved.slug])
        self.assertEqual(response.data['pagination']['total'], 1)
        self.assertEqual(response.data['pagination']['per_page'], 12)

    def test_list_filters(self):
        tag = Tag.objects.create(name='Jordanian')
        self.approved.tags.add(tag)
        make_recipe(self.author, name='Kunafa')

        response = self.client.get(reverse('recipe-list'), {'search': 'mans'})
        self.assertEqual([recipe['name'] for recipe in response.data['results']], ['Mansaf'])

        response = self.client.get(reverse('recipe-list'), {'tags': tag.slug})
        self.assertEqual([recipe['name'] for recipe in response.data['results']], ['Mansaf'])

        response = self.client.get(reverse('recipe-list'), {'sort': 'name'})
        self.assertEqual([recipe['name'] for recipe in response.data['results']], ['Kunafa', 'Mansaf'])

    def test_list_filter_by_city_and_difficulty(self):
        amman = City.objects.create(name='Amman')
        self.approved.city = amman
        self.approved.difficulty = Recipe.DIFFICULTY_HARD
        self.approved.save()
        make_recipe(self.author, name='Kunafa', difficulty=Recipe.DIFFICULTY_EASY)

        response = self.client.get(reverse('recipe-list'), {'city': str(amman.id)})
        self.assertEqual([recipe['name'] for recipe in response.data['results']], ['Mansaf'])

        response = self.client.get(reverse('recipe-list'), {'city': amman.slug})
        self.assertEqual([recipe['name'] for recipe in response.data['results']], ['Mansaf'])

        response = self.client.get(reverse('recipe-list'), {'difficulty': Recipe.DIFFICULTY_EASY})
        self.assertEqual([recipe['name'] for recipe in response.data['results']], ['Kunafa'])

    def test_city_with_non_ascii_digits(self):
        response = self.client.get(reverse('recipe-list'), {'city': '²'})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['pagination']['total'], 0)

    def test_tags_filter_matches_any_tag(self):
        savoury = Tag.objects.create(name='Savoury')
        festive = Tag.objects.create(name='Festive')
        self.approved.tags.add(savoury, festive)
        kunafa = make_recipe(self.author, name='Kunafa')
        kunafa.tags.add(festive)
        make_recipe(self.author, name='Fattoush')

        response = self.client.get(reverse('recipe-list'), {'tags': f'{savoury.slug},{festive.slug}', 'sort': 'name'})
        self.assertEqual([recipe['name'] for recipe in response.data['results']], ['Kunafa', 'Mansaf'])
        self.assertEqual(response.data['pagination']['total'], 2)

        response = self.client.get(reverse('recipe-list'), {'tags': f'{savoury.slug},unknown'})
        self.assertEqual([recipe['name'] for recipe in response.data['results']], ['Mansaf'])

    def test_sort_oldest(self):
        make_recipe(self.author, name='Kunafa')

        response = self.client.get(reverse('recipe-list'), {'sort': 'oldest'})
        self.assertEqual([recipe['name'] for recipe in response.data['results']], ['Mansaf', 'Kunafa'])

        response = self.client.get(reverse('recipe-list'))
        self.assertEqual([recipe['name'] for recipe in response.data['results']], ['Kunafa', 'Mansaf'])

    def test_unpublished_recipe_is_hidden_from_others(self):
        url = reverse('recipe-detail', kwargs={'slug': self.pending.slug})

        response = self.client.get(url)
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['error'], 'الوصفة غير موجودة')

        self.client.force_authenticate(user=self.other)
        self.assertEqual(self.client.get(url).status_code, status.HTTP_404_NOT_FOUND)

        self.client.force_authenticate(user=self.author)
        self.assertEqual(self.client.get(url).status_code, status.HTTP_200_OK)

        self.client.force_authenticate(user=self.moderator)
        self.assertEqual(self.client.get(url).status_code, status.HTTP_200_OK)

    def test_unknown_slug(self):
        response = self.client.get(reverse('recipe-detail', kwargs={'slug': 'does-not-exist'}))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_detail_includes_variations_and_similar_recipes(self):
        variation = make_recipe(self.other, name='Mansaf')
        similar = make_recipe(self.other, name='Kibbeh', ingredients=['برغل', 'بصل'])
        make_recipe(self.other, name='Salad', ingredients=['خس'])

        response = self.client.get(reverse('recipe-detail', kwargs={'slug': self.approved.slug}))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['has_variations'])
        self.assertEqual(response.data['variations_count'], 1)
        similar_slugs = [recipe['slug'] for recipe in response.data['similar_recipes']]
        self.assertEqual(similar_slugs[0], variation.slug)
        self.assertIn(similar.slug, similar_slugs)
        self.assertEqual(len(similar_slugs), 2)

    def test_variations(self):
        variation = make_recipe(self.other, name='Mansaf')
        make_recipe(self.other, name='Mansaf', status=Recipe.STATUS_PENDING)

        response = self.client.get(reverse('recipe-variations', kwargs={'slug': self.approved.slug}))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([recipe['slug'] for recipe in response.data['variations']], [variation.slug])

    def test_mine_lists_every_status(self):
        self.client.force_authenticate(user=self.author)
        response = self.client.get(reverse('recipe-mine'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        statuses = sorted(recipe['status'] for recipe in response.data['results'])
        self.assertEqual(statuses, [Recipe.STATUS_APPROVED, Recipe.STATUS_PENDING])

        response = self.client.get(reverse('recipe-mine'), {'status': Recipe.STATUS_PENDING})
        self.assertEqual(len(response.data['results']), 1)

    def test_random_excludes_ingredients(self):
        make_recipe(self.other, name='Fattoush', ingredients=['خس', 'خبز محمص'])
        bulgur = Ingredient.objects.get(name='برغل')

        response = self.client.get(reverse('recipe-random'), {'exclude_ingredients': str(bulgur.id)})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([recipe['name'] for recipe in response.data], ['Fattoush'])

    def test_random_uses_randomizer_tags(self):
        tag = Tag.objects.create(name='Dessert')
        dessert = make_recipe(self.other, name='Kunafa')
        dessert.tags.add(tag)
        SiteSetting.set_value(SiteSetting.RANDOMIZER_TAGS, [tag.id])

        response = self.client.get(reverse('recipe-random'))

        self.assertEqual([recipe['slug'] for recipe in response.data], [dessert.slug])


class RecipeEditAPITestCase(APITestCase):
    def setUp(self):
        self.author = make_user('author')
        self.other = make_user('other')
        self.moderator = make_user('moderator', role='moderator')
        self.admin = make_user('admin', role='admin')
        self.recipe = make_recipe(self.author, name='Mloukhieh')
        self.url = reverse('recipe-detail', kwargs={'slug': self.recipe.slug})

    def test_other_user_cannot_edit(self):
        self.client.force_authenticate(user=self.other)
        response = self.client.patch(self.url, {'name': 'Hijacked'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['error'], 'غير مصرح')

    def test_author_edit_requires_reapproval(self):
        self.client.force_authenticate(user=self.author)
        response = self.client.patch(self.url, {'servings': '6'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['message'], 'تم تحديث الوصفة وإرسالها للمراجعة')
        self.recipe.refresh_from_db()
        self.assertEqual(self.recipe.status, Recipe.STATUS_PENDING)
        self.assertTrue(self.recipe.needs_reapproval)
        self.assertEqual(self.recipe.revisions.count(), 1)

    def test_moderator_edit_keeps_recipe_published(self):
        self.client.force_authenticate(user=self.moderator)
        response = self.client.patch(
            self.url, {'ingredients': ['ملوخية', 'ثوم'], 'name': 'Mloukhieh Beiruti'}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.recipe.refresh_from_db()
        self.assertEqual(self.recipe.status, Recipe.STATUS_APPROVED)
        self.assertEqual(self.recipe.name, 'Mloukhieh Beiruti')
        self.assertEqual(self.url, reverse('recipe-detail', kwargs={'slug': self.recipe.slug}))
        names = [row.ingredient.name for row in self.recipe.recipe_ingredients.all()]
        self.assertEqual(names, ['ملوخية', 'ثوم'])

    def test_moderator_reassigns_author(self):
        self.client.force_authenticate(user=self.moderator)
        response = self.client.patch(self.url, {'user_id': self.other.id}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.recipe.refresh_from_db()
        self.assertEqual(self.recipe.user, self.other)
        self.assertIsNone(self.recipe.anonymous_author)

        response = self.client.patch(self.url, {'manual_author_name': 'أبو سمير'}, format='json')
        self.recipe.refresh_from_db()
        self.assertIsNone(self.recipe.user)
        self.assertEqual(self.recipe.anonymous_author.name, 'أبو سمير')

    def test_author_cannot_reassign_recipe(self):
        self.client.force_authenticate(user=self.author)
        response = self.client.patch(self.url, {'user_id': self.other.id}, format='json')

        self.assertEqual(response.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)
        self.recipe.refresh_from_db()
        self.assertEqual(self.recipe.user, self.author)

    def test_only_admin_can_delete(self):
        self.client.force_authenticate(user=self.author)
        self.assertEqual(self.client.delete(self.url).status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(user=self.moderator)
        self.assertEqual(self.client.delete(self.url).status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(user=self.admin)
        response = self.client.delete(self.url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(Recipe.objects.filter(pk=self.recipe.pk).exists())

    def test_submit_and_unpublish(self):
        draft = make_recipe(self.author, name='Draft', status=Recipe.STATUS_DRAFT)
        self.client.force_authenticate(user=self.author)

        response = self.client.post(reverse('recipe-submit', kwargs={'slug': draft.slug}))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], Recipe.STATUS_PENDING)

        response = self.client.post(reverse('recipe-unpublish', kwargs={'slug': draft.slug}))
        self.assertEqual(response.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)

        response = self.client.post(reverse('recipe-unpublish', kwargs={'slug': self.recipe.slug}))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], Recipe.STATUS_UNPUBLISHED)

    def test_history_access(self):
        self.client.force_authenticate(user=self.author)
        self.client.patch(self.url, {'servings': '4'}, format='json')
        history_url = reverse('recipe-history', kwargs={'slug': self.recipe.slug})

        response = self.client.get(history_url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['content']['servings'], '4')

        self.client.force_authenticate(user=self.other)
        self.assertEqual(self.client.get(history_url).status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(user=self.moderator)
        self.assertEqual(self.client.get(history_url).status_code, status.HTTP_200_OK)
        self.assertEqual(self.client.delete(history_url).status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(user=self.author)
        response = self.client.delete(history_url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(self.recipe.revisions.count(), 0)
