from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone
from rest_framework import serializers

from .models import (
    City, Tag, AnonymousAuthor, Ingredient, Recipe, RecipeRevision,
    RecipeList, Report, SiteSetting,
)
from .services.ingredients import (
    group_recipe_ingredients, parse_ingredients, sync_recipe_ingredients, validate_steps,
)
from .utils import normalize_ingredient_name
from . import workflow

MAX_TAGS = 10
TAG_MAX_LENGTH = 50


class CitySerializer(serializers.ModelSerializer):
    image_url = serializers.CharField(read_only=True)
    recipes_count = serializers.SerializerMethodField()

    class Meta:
        model = City
        fields = ['id', 'name', 'slug', 'description', 'image_path', 'image_url', 'recipes_count']
        read_only_fields = ['id', 'slug', 'image_url', 'recipes_count']

    def get_recipes_count(self, obj):
        return getattr(obj, 'recipes_count', None)


class CityMiniSerializer(serializers.ModelSerializer):
    class Meta:
        model = City
        fields = ['id', 'name', 'slug']


class TagSerializer(serializers.ModelSerializer):
    recipes_count = serializers.SerializerMethodField()

    class Meta:
        model = Tag
        fields = ['id', 'name', 'slug', 'recipes_count']
        read_only_fields = ['id', 'slug', 'recipes_count']

    def get_recipes_count(self, obj):
        return getattr(obj, 'recipes_count', None)


class AnonymousAuthorSerializer(serializers.ModelSerializer):
    recipes_count = serializers.SerializerMethodField()

    class Meta:
        model = AnonymousAuthor
        fields = ['id', 'name', 'bio', 'created_at', 'recipes_count']
        read_only_fields = ['id', 'created_at', 'recipes_count']

    def get_recipes_count(self, obj):
        return getattr(obj, 'recipes_count', None)


class IngredientSerializer(serializers.ModelSerializer):
    usage_count = serializers.SerializerMethodField()

    class Meta:
        model = Ingredient
        fields = ['id', 'name', 'normalized_name', 'usage_count']

    def get_usage_count(self, obj):
        return getattr(obj, 'usage_count', None)


def _author_payload(recipe):
    return {
        'name': recipe.author_name,
        'user_id': None if recipe.is_anonymous or recipe.anonymous_author_id else recipe.user_id,
        'is_anonymous': recipe.is_anonymous,
    }


class RecipeCardSerializer(serializers.ModelSerializer):
    """Serializer léger pour les grilles de recettes"""
    image_url = serializers.CharField(read_only=True)
    city = CityMiniSerializer(read_only=True)
    author = serializers.SerializerMethodField()

    class Meta:
        model = Recipe
        fields = [
            'id', 'name', 'slug', 'image_url', 'difficulty', 'time_needed',
            'servings', 'city', 'author', 'created_at',
        ]

    def get_author(self, obj):
        return _author_payload(obj)


class MyRecipeSerializer(RecipeCardSerializer):
    """Recettes de l'utilisateur connecté, avec leur état de validation"""

    class Meta(RecipeCardSerializer.Meta):
        fields = RecipeCardSerializer.Meta.fields + [
            'status', 'needs_reapproval', 'rejection_reason', 'updated_at',
        ]


class AdminRecipeSerializer(MyRecipeSerializer):
    approved_by = serializers.SerializerMethodField()

    class Meta(MyRecipeSerializer.Meta):
        fields = MyRecipeSerializer.Meta.fields + ['approved_by', 'approved_at', 'user_id']

    def get_approved_by(self, obj):
        if not obj.approved_by_id:
            return None
        return {'id': obj.approved_by_id, 'name': obj.approved_by.public_name}


class RecipeDetailSerializer(serializers.ModelSerializer):
    """Détail complet d'une recette"""
    image_url = serializers.CharField(read_only=True)
    city = CityMiniSerializer(read_only=True)
    tags = TagSerializer(many=True, read_only=True)
    author = serializers.SerializerMethodField()
    ingredients = serializers.SerializerMethodField()
    is_owner = serializers.SerializerMethodField()
    can_edit = serializers.SerializerMethodField()

    class Meta:
        model = Recipe
        fields = [
            'id', 'name', 'slug', 'image_path', 'image_url', 'time_needed', 'servings',
            'steps', 'difficulty', 'city', 'tags', 'author', 'ingredients',
            'status', 'needs_reapproval', 'rejection_reason', 'approved_at',
            'is_owner', 'can_edit', 'created_at', 'updated_at',
        ]

    def _user(self):
        request = self.context.get('request')
        return request.user if request else None

    def get_author(self, obj):
        return _author_payload(obj)

    def get_ingredients(self, obj):
        return group_recipe_ingredients(obj)

    def get_is_owner(self, obj):
        return obj.is_owned_by(self._user())

    def get_can_edit(self, obj):
        user = self._user()
        return obj.is_owned_by(user) or bool(user and user.is_authenticated and user.is_moderator_role)


class RecipeWriteSerializer(serializers.ModelSerializer):
    """
    Création / modification d'une recette avec ses ingrédients et tags

    Attribution (modérateurs uniquement), par ordre de priorité :
    manual_author_name, puis user_id, puis anonymous_author_id
    """
    steps = serializers.JSONField()
    ingredients = serializers.JSONField(write_only=True)
    tags = serializers.ListField(
        child=serializers.CharField(max_length=TAG_MAX_LENGTH),
        write_only=True,
        required=False,
        max_length=MAX_TAGS,
    )
    city = serializers.PrimaryKeyRelatedField(queryset=City.objects.all(), required=False, allow_null=True)
    difficulty = serializers.ChoiceField(choices=Recipe.DIFFICULTY_CHOICES, required=False)
    time_needed = serializers.JSONField(required=False, allow_null=True)
    draft = serializers.BooleanField(write_only=True, required=False, default=False)
    manual_author_name = serializers.CharField(write_only=True, required=False, allow_blank=True, max_length=255)
    user_id = serializers.PrimaryKeyRelatedField(
        queryset=get_user_model().objects.all(), write_only=True, required=False, allow_null=True
    )
    anonymous_author_id = serializers.PrimaryKeyRelatedField(
        queryset=AnonymousAuthor.objects.all(), write_only=True, required=False, allow_null=True
    )

    class Meta:
        model = Recipe
        fields = [
            'name', 'steps', 'ingredients', 'tags', 'city', 'difficulty', 'time_needed',
            'servings', 'image_path', 'is_anonymous', 'draft', 'manual_author_name',
            'user_id', 'anonymous_author_id',
        ]

    def _user(self):
        request = self.context.get('request')
        return request.user if request else None

    def _check_moderator(self):
        user = self._user()
        if user is None or not user.is_moderator_role:
            raise serializers.ValidationError('غير مصرح')

    def validate_steps(self, value):
        return validate_steps(value)

    def validate_ingredients(self, value):
        items = parse_ingredients(value)
        if not any(normalize_ingredient_name(item.get('name')) for item in items):
            raise serializers.ValidationError('يجب إضافة مكون واحد على الأقل')
        return value

    def validate_tags(self, value):
        cleaned = []
        for name in value:
            name = name.strip()
            if name and name not in cleaned:
                cleaned.append(name)
        return cleaned

    def validate_manual_author_name(self, value):
        value = value.strip()
        if value:
            self._check_moderator()
        return value

    def validate_user_id(self, value):
        if value is not None:
            self._check_moderator()
        return value

    def validate_anonymous_author_id(self, value):
        if value is not None:
            self._check_moderator()
        return value

    def _apply_relations(self, recipe, ingredients, tags):
        if ingredients is not None:
            sync_recipe_ingredients(recipe, ingredients)
        if tags is not None:
            recipe.tags.set([Tag.objects.get_or_create(name=name)[0] for name in tags])

    def _apply_author(self, recipe, manual_author_name, author_user, anonymous_author):
        if manual_author_name:
            anonymous_author, _ = AnonymousAuthor.objects.get_or_create(name=manual_author_name)
        elif author_user is not None:
            recipe.user = author_user
            recipe.anonymous_author = None
            recipe.is_anonymous = False
            return
        if anonymous_author is not None:
            recipe.anonymous_author = anonymous_author
            recipe.is_anonymous = True
            recipe.user = None

    def _pop_author(self, validated_data):
        return (
            validated_data.pop('manual_author_name', ''),
            validated_data.pop('user_id', None),
            validated_data.pop('anonymous_author_id', None),
        )

    @transaction.atomic
    def create(self, validated_data):
        user = self._user()
        ingredients = validated_data.pop('ingredients')
        tags = validated_data.pop('tags', None)
        draft = validated_data.pop('draft', False)
        author = self._pop_author(validated_data)

        recipe = Recipe(**validated_data)
        recipe.user = user
        recipe.status = workflow.initial_status(user, draft=draft)
        if recipe.status == Recipe.STATUS_APPROVED:
            recipe.approved_by = user
            recipe.approved_at = timezone.now()
        self._apply_author(recipe, *author)
        recipe.save()

        self._apply_relations(recipe, ingredients, tags)
        return recipe

    @transaction.atomic
    def update(self, instance, validated_data):
        ingredients = validated_data.pop('ingredients', None)
        tags = validated_data.pop('tags', None)
        validated_data.pop('draft', None)
        author = self._pop_author(validated_data)

        for field, value in validated_data.items():
            setattr(instance, field, value)
        self._apply_author(instance, *author)
        instance.save()

        self._apply_relations(instance, ingredients, tags)
        return instance


class RecipeRevisionSerializer(serializers.ModelSerializer):
    user = serializers.SerializerMethodField()

    class Meta:
        model = RecipeRevision
        fields = ['id', 'user', 'content', 'change_summary', 'created_at']

    def get_user(self, obj):
        if not obj.user_id:
            return None
        return {'id': obj.user_id, 'name': obj.user.public_name}


class RecipeListSerializer(serializers.ModelSerializer):
    """Liste de recettes (sans son contenu)"""
    cover_image_url = serializers.CharField(read_only=True)
    items_count = serializers.SerializerMethodField()
    has_recipe = serializers.SerializerMethodField()
    owner = serializers.SerializerMethodField()

    class Meta:
        model = RecipeList
        fields = [
            'id', 'name', 'slug', 'description', 'cover_image', 'cover_image_url',
            'is_default', 'is_public', 'status', 'items_count', 'has_recipe',
            'owner', 'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'slug', 'is_default', 'status', 'created_at', 'updated_at']

    def get_items_count(self, obj):
        count = getattr(obj, 'items_count', None)
        if count is not None:
            return count
        return obj.items.count()

    def get_has_recipe(self, obj):
        return getattr(obj, 'has_recipe', None)

    def get_owner(self, obj):
        return {'id': obj.user_id, 'name': obj.user.public_name}


class RecipeListDetailSerializer(RecipeListSerializer):
    recipes = serializers.SerializerMethodField()

    class Meta(RecipeListSerializer.Meta):
        fields = RecipeListSerializer.Meta.fields + ['recipes']

    def get_recipes(self, obj):
        request = self.context.get('request')
        user = request.user if request else None
        items = obj.items.select_related('recipe__city', 'recipe__user', 'recipe__anonymous_author')
        is_owner = bool(user and user.is_authenticated and user.id == obj.user_id)
        if not is_owner:
            items = items.filter(recipe__status=Recipe.STATUS_APPROVED)
        data = []
        for item in items:
            entry = RecipeCardSerializer(item.recipe, context=self.context).data
            entry['order'] = item.order
            entry['status'] = item.recipe.status
            data.append(entry)
        return data


class RecipeListWriteSerializer(serializers.ModelSerializer):
    class Meta:
        model = RecipeList
        fields = ['name', 'description', 'cover_image', 'is_public']
        extra_kwargs = {
            'description': {'required': False, 'allow_blank': True},
            'cover_image': {'required': False, 'allow_null': True},
            'is_public': {'required': False},
        }


def _reportable_summary(report):
    target = report.reportable
    if target is None:
        return None
    return {'id': target.pk, 'name': target.name, 'slug': target.slug}


class ReportSerializer(serializers.ModelSerializer):
    """Signalement vu par son auteur"""
    reportable_type = serializers.CharField(read_only=True)
    reportable_id = serializers.IntegerField(source='object_id', read_only=True)
    reportable = serializers.SerializerMethodField()

    class Meta:
        model = Report
        fields = [
            'id', 'reportable_type', 'reportable_id', 'reportable', 'type', 'message',
            'status', 'admin_reply', 'created_at', 'updated_at',
        ]

    def get_reportable(self, obj):
        return _reportable_summary(obj)


class AdminReportSerializer(ReportSerializer):
    user = serializers.SerializerMethodField()

    class Meta(ReportSerializer.Meta):
        fields = ReportSerializer.Meta.fields + ['admin_note', 'user']

    def get_user(self, obj):
        return {'id': obj.user_id, 'name': obj.user.public_name, 'email': obj.user.email}


class ReportCreateSerializer(serializers.Serializer):
    reportable_type = serializers.ChoiceField(choices=list(Report.REPORTABLE_MODELS.keys()))
    reportable_id = serializers.IntegerField(min_value=1)
    type = serializers.ChoiceField(choices=Report.TYPE_CHOICES, default=Report.TYPE_CONTENT_ISSUE)
    message = serializers.CharField(max_length=1000)


class ReportUpdateSerializer(serializers.ModelSerializer):
    class Meta:
        model = Report
        fields = ['status', 'admin_note', 'admin_reply']
        extra_kwargs = {
            'status': {'required': False},
            'admin_note': {'required': False, 'allow_blank': True},
            'admin_reply': {'required': False, 'allow_blank': True},
        }


class SiteSettingsSerializer(serializers.Serializer):
    default_city_id = serializers.IntegerField(required=False, allow_null=True)
    randomizer_tags = serializers.ListField(child=serializers.IntegerField(), required=False)

    def validate_default_city_id(self, value):
        if value is not None and not City.objects.filter(id=value).exists():
            raise serializers.ValidationError('المدينة غير موجودة')
        return value

    def validate_randomizer_tags(self, value):
        existing = set(Tag.objects.filter(id__in=value).values_list('id', flat=True))
        missing = [tag_id for tag_id in value if tag_id not in existing]
        if missing:
            raise serializers.ValidationError(f'وسوم غير موجودة: {missing}')
        return list(dict.fromkeys(value))

    def save(self):
        for key, value in self.validated_data.items():
            SiteSetting.set_value(key, value)
        return self.current_values()

    @staticmethod
    def current_values():
        return {
            key: SiteSetting.get_value(key, [] if key == SiteSetting.RANDOMIZER_TAGS else None)
            for key in SiteSetting.KNOWN_KEYS
        }


class ImportRecipeSerializer(serializers.Serializer):
    """Une entrée du fichier JSON d'import"""
    name = serializers.CharField(max_length=255)
    city = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    difficulty = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    time_needed = serializers.JSONField(required=False, allow_null=True)
    servings = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    steps = serializers.JSONField(required=False)
    ingredients = serializers.JSONField(required=False)
    author = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    tags = serializers.ListField(child=serializers.CharField(max_length=TAG_MAX_LENGTH), required=False)
    image_link = serializers.URLField(required=False, allow_blank=True, allow_null=True)
