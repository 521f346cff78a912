from django.conf import settings
from django.contrib.contenttypes.fields import GenericForeignKey, GenericRelation
from django.contrib.contenttypes.models import ContentType
from django.db import models
from django.db.models import Q

from .utils import generate_random_slug, generate_unique_slug, normalize_ingredient_name


class City(models.Model):
    """Ville / région d'origine d'une recette"""
    name = models.CharField(max_length=255, unique=True)
    slug = models.SlugField(max_length=255, unique=True, blank=True)
    description = models.TextField(blank=True, default='')
    image_path = models.CharField(max_length=500, blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']
        verbose_name_plural = 'Cities'

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        if not self.slug:
            self.slug = generate_unique_slug(City, self.name, fallback='city', exclude_pk=self.pk)
        super().save(*args, **kwargs)

    @property
    def image_url(self):
        from sufra_back.settings import build_s3_url
        return build_s3_url(self.image_path)


class Tag(models.Model):
    name = models.CharField(max_length=100, unique=True)
    slug = models.SlugField(max_length=120, unique=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        if not self.slug:
            self.slug = generate_unique_slug(Tag, self.name, fallback='tag', exclude_pk=self.pk)
        super().save(*args, **kwargs)


class AnonymousAuthor(models.Model):
    """Auteur sans compte (recettes importées ou attribuées par un modérateur)"""
    name = models.CharField(max_length=255, unique=True)
    bio = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


class Ingredient(models.Model):
    """Ingrédient canonique, identifié par son nom normalisé"""
    name = models.CharField(max_length=255)
    normalized_name = models.CharField(max_length=255, unique=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        self.normalized_name = normalize_ingredient_name(self.name)
        super().save(*args, **kwargs)


class RecipeQuerySet(models.QuerySet):
    def approved(self):
        return self.filter(status=Recipe.STATUS_APPROVED)

    def awaiting_review(self):
        """En attente de validation, y compris les modifications à revalider"""
        return self.filter(Q(status=Recipe.STATUS_PENDING) | Q(needs_reapproval=True))

    def visible_to(self, user):
        if user is not None and user.is_authenticated:
            if user.is_moderator_role:
                return self
            return self.filter(Q(status=Recipe.STATUS_APPROVED) | Q(user=user))
        return self.approved()


class Recipe(models.Model):
    STATUS_DRAFT = 'draft'
    STATUS_PENDING = 'pending'
    STATUS_APPROVED = 'approved'
    STATUS_REJECTED = 'rejected'
    STATUS_UNPUBLISHED = 'unpublished'
    STATUS_CHOICES = [
        (STATUS_DRAFT, 'مسودة'),
        (STATUS_PENDING, 'قيد المراجعة'),
        (STATUS_APPROVED, 'منشورة'),
        (STATUS_REJECTED, 'مرفوضة'),
        (STATUS_UNPUBLISHED, 'غير منشورة'),
    ]

    DIFFICULTY_VERY_EASY = 'سهلة جداً'
    DIFFICULTY_EASY = 'سهلة'
    DIFFICULTY_MEDIUM = 'متوسطة'
    DIFFICULTY_HARD = 'صعبة'
    DIFFICULTY_VERY_HARD = 'صعبة جداً'
    DIFFICULTY_CHOICES = [
        (DIFFICULTY_VERY_EASY, 'سهلة جداً'),
        (DIFFICULTY_EASY, 'سهلة'),
        (DIFFICULTY_MEDIUM, 'متوسطة'),
        (DIFFICULTY_HARD, 'صعبة'),
        (DIFFICULTY_VERY_HARD, 'صعبة جداً'),
    ]

    name = models.CharField(max_length=255, db_index=True)
    slug = models.SlugField(max_length=255, unique=True, blank=True)
    image_path = models.CharField(max_length=500, blank=True, null=True, help_text="Chemin relatif de l'image dans le stockage")
    time_needed = models.JSONField(blank=True, null=True)
    servings = models.CharField(max_length=100, blank=True, default='')
    steps = models.JSONField(default=list, blank=True, help_text="Liste d'étapes ou de groupes {name, items}")
    difficulty = models.CharField(max_length=20, choices=DIFFICULTY_CHOICES, default=DIFFICULTY_MEDIUM)
    city = models.ForeignKey(City, on_delete=models.SET_NULL, null=True, blank=True, related_name='recipes')
    tags = models.ManyToManyField(Tag, blank=True, related_name='recipes')

    # Auteur : compte utilisateur ou auteur anonyme
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='recipes'
    )
    anonymous_author = models.ForeignKey(
        AnonymousAuthor,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='recipes'
    )
    is_anonymous = models.BooleanField(default=False)

    # Workflow de validation
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_DRAFT, db_index=True)
    needs_reapproval = models.BooleanField(default=False, db_index=True)
    rejection_reason = models.TextField(blank=True, null=True)
    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='approved_recipes'
    )
    approved_at = models.DateTimeField(blank=True, null=True)

    reports = GenericRelation('Report', related_query_name='recipe')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = RecipeQuerySet.as_manager()

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'created_at']),
        ]

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        # Le slug est attribué une seule fois : il reste stable si le nom change
        if not self.slug:
            self.slug = generate_random_slug(Recipe, self.name, fallback='recipe', exclude_pk=self.pk)
        super().save(*args, **kwargs)

    @property
    def author_name(self):
        if self.anonymous_author_id:
            return self.anonymous_author.name
        if self.user_id and not self.is_anonymous:
            return self.user.public_name
        return 'مجهول'

    @property
    def image_url(self):
        from sufra_back.settings import build_s3_url
        return build_s3_url(self.image_path)

    @property
    def is_published(self):
        return self.status == self.STATUS_APPROVED

    def is_owned_by(self, user):
        return bool(user and user.is_authenticated and self.user_id == user.id)


class RecipeIngredient(models.Model):
    """Ingrédient d'une recette, avec quantité et groupe libre ("الصلصة", "العجينة"...)"""
    recipe = models.ForeignKey(Recipe, on_delete=models.CASCADE, related_name='recipe_ingredients')
    ingredient = models.ForeignKey(Ingredient, on_delete=models.CASCADE, related_name='recipe_ingredients')
    amount = models.CharField(max_length=100, blank=True, null=True)
    unit = models.CharField(max_length=100, blank=True, null=True)
    descriptor = models.CharField(max_length=255, blank=True, null=True)
    group = models.CharField(max_length=255, blank=True, default='', help_text="Groupe libre, vide = sans groupe")
    sort_order = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ['sort_order', 'id']
        constraints = [
            models.UniqueConstraint(
                fields=['recipe', 'ingredient', 'group'],
                name='unique_recipe_ingredient_group'
            ),
        ]

    def __str__(self):
        return f"{self.recipe.name} - {self.ingredient.name}"


class RecipeRevision(models.Model):
    """Instantané du contenu d'une recette après chaque modification"""
    recipe = models.ForeignKey(Recipe, on_delete=models.CASCADE, related_name='revisions')
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='recipe_revisions'
    )
    content = models.JSONField()
    change_summary = models.CharField(max_length=255, blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at', '-id']

    def __str__(self):
        return f"{self.recipe.name} @ {self.created_at:%Y-%m-%d %H:%M}"


class RecipeList(models.Model):
    """Liste de recettes d'un utilisateur (favoris, collections publiables)"""
    STATUS_DRAFT = 'draft'
    STATUS_REVIEW = 'review'
    STATUS_APPROVED = 'approved'
    STATUS_REJECTED = 'rejected'
    STATUS_PRIVATE = 'private'
    STATUS_CHOICES = [
        (STATUS_DRAFT, 'مسودة'),
        (STATUS_REVIEW, 'قيد المراجعة'),
        (STATUS_APPROVED, 'منشورة'),
        (STATUS_REJECTED, 'مرفوضة'),
        (STATUS_PRIVATE, 'خاصة'),
    ]

    DEFAULT_NAME = 'المفضلة'

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='recipe_lists')
    name = models.CharField(max_length=255)
    slug = models.SlugField(max_length=255, unique=True, blank=True)
    description = models.TextField(blank=True, default='')
    cover_image = models.CharField(max_length=500, blank=True, null=True)
    is_default = models.BooleanField(default=False)
    is_public = models.BooleanField(default=False)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_DRAFT, db_index=True)
    recipes = models.ManyToManyField(Recipe, through='ListItem', related_name='lists')
    reports = GenericRelation('Report', related_query_name='recipe_list')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-is_default', '-updated_at']
        constraints = [
            models.UniqueConstraint(
                fields=['user'],
                condition=Q(is_default=True),
                name='one_default_list_per_user'
            ),
        ]

    def __str__(self):
        return f"{self.name} ({self.user})"

    def save(self, *args, **kwargs):
        if not self.slug:
            self.slug = generate_random_slug(RecipeList, self.name, fallback='list', exclude_pk=self.pk)
        super().save(*args, **kwargs)

    @property
    def is_listed_publicly(self):
        return self.is_public and self.status == self.STATUS_APPROVED

    @property
    def cover_image_url(self):
        from sufra_back.settings import build_s3_url
        return build_s3_url(self.cover_image)


class ListItem(models.Model):
    recipe_list = models.ForeignKey(RecipeList, on_delete=models.CASCADE, related_name='items')
    recipe = models.ForeignKey(Recipe, on_delete=models.CASCADE, related_name='list_items')
    order = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['order', 'id']
        unique_together = ['recipe_list', 'recipe']

    def __str__(self):
        return f"{self.recipe_list.name} #{self.order}: {self.recipe.name}"


class Report(models.Model):
    """Signalement ou retour utilisateur sur une recette ou une liste"""
    TYPE_CONTENT_ISSUE = 'content_issue'
    TYPE_FEEDBACK = 'feedback'
    TYPE_CHOICES = [
        (TYPE_CONTENT_ISSUE, 'مشكلة في المحتوى'),
        (TYPE_FEEDBACK, 'ملاحظة'),
    ]

    STATUS_PENDING = 'pending'
    STATUS_FIXED = 'fixed'
    STATUS_REJECTED = 'rejected'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'قيد المعالجة'),
        (STATUS_FIXED, 'تم الإصلاح'),
        (STATUS_REJECTED, 'مرفوض'),
    ]

    # reportable_type exposé par l'API -> modèle cible
    REPORTABLE_MODELS = {
        'recipe': Recipe,
        'list': RecipeList,
    }

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='reports')
    content_type = models.ForeignKey(ContentType, on_delete=models.CASCADE)
    object_id = models.PositiveBigIntegerField()
    reportable = GenericForeignKey('content_type', 'object_id')
    type = models.CharField(max_length=20, choices=TYPE_CHOICES, default=TYPE_CONTENT_ISSUE)
    message = models.TextField(max_length=1000)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    admin_note = models.TextField(blank=True, default='')
    admin_reply = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['content_type', 'object_id']),
        ]

    def __str__(self):
        return f"Report #{self.pk} ({self.type}, {self.status})"

    @property
    def reportable_type(self):
        model_class = self.content_type.model_class()
        for key, model in self.REPORTABLE_MODELS.items():
            if model is model_class:
                return key
        return None


class SiteSetting(models.Model):
    """Réglages du site modifiables par les administrateurs (clé / valeur JSON)"""
    DEFAULT_CITY_ID = 'default_city_id'
    RANDOMIZER_TAGS = 'randomizer_tags'
    KNOWN_KEYS = [DEFAULT_CITY_ID, RANDOMIZER_TAGS]

    key = models.CharField(max_length=100, unique=True)
    value = models.JSONField(blank=True, null=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['key']

    def __str__(self):
        return self.key

    @classmethod
    def get_value(cls, key, default=None):
        setting = cls.objects.filter(key=key).first()
        if setting is None or setting.value is None:
            return default
        return setting.value

    @classmethod
    def set_value(cls, key, value):
        setting, _ = cls.objects.update_or_create(key=key, defaults={'value': value})
        return setting
