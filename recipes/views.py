import logging

from django.db.models import Count, Exists, OuterRef, Q
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from accounts.permissions import IsAdmin, IsNotBanned, NOT_AUTHORIZED_MESSAGE
from .models import City, Ingredient, ListItem, Recipe, RecipeList, Report, SiteSetting, Tag
from .pagination import CustomPageNumberPagination, RecipePagination
from .serializers import (
    CitySerializer, IngredientSerializer, MyRecipeSerializer, RecipeCardSerializer,
    RecipeDetailSerializer, RecipeListDetailSerializer, RecipeListSerializer,
    RecipeListWriteSerializer, RecipeRevisionSerializer, RecipeWriteSerializer,
    ReportCreateSerializer, ReportSerializer, TagSerializer,
)
from .services import lists as list_service
from .services.ingredients import search_similar
from .services.revisions import SUMMARY_CREATED, SUMMARY_UPDATED, clear_history, record_revision
from .utils import parse_id_list
from . import workflow

logger = logging.getLogger(__name__)

RECIPE_NOT_FOUND_MESSAGE = 'الوصفة غير موجودة'
SIMILAR_RECIPES_LIMIT = 6
RANDOM_RECIPES_LIMIT = 30
TAG_SEARCH_LIMIT = 50

RECIPE_SORTS = {
    'latest': ['-created_at'],
    'oldest': ['created_at'],
    'name': ['name'],
}


def _unprocessable(message):
    return Response({'error': message}, status=status.HTTP_422_UNPROCESSABLE_ENTITY)


def _forbidden(message=NOT_AUTHORIZED_MESSAGE):
    return Response({'error': message}, status=status.HTTP_403_FORBIDDEN)


def filter_recipes(queryset, params):
    """Filtres communs : search, city (id ou slug), difficulty, tags (slugs séparés par des virgules)"""
    search = params.get('search', '').strip()
    city = params.get('city', '').strip()
    difficulty = params.get('difficulty', '').strip()
    tags = [slug.strip() for slug in params.get('tags', '').split(',') if slug.strip()]

    if search:
        queryset = queryset.filter(Q(name__icontains=search) | Q(city__name__icontains=search))
    if city:
        queryset = queryset.filter(city_id=int(city)) if city.isdecimal() else queryset.filter(city__slug=city)
    if difficulty:
        queryset = queryset.filter(difficulty=difficulty)
    # Au moins un des tags demandés
    if tags:
        queryset = queryset.filter(tags__slug__in=tags).distinct()
    return queryset


class RecipeViewSet(viewsets.ModelViewSet):
    """ViewSet pour les recettes"""
    lookup_field = 'slug'
    lookup_value_regex = '[^/]+'
    pagination_class = RecipePagination
    http_method_names = ['get', 'post', 'put', 'patch', 'delete', 'head', 'options']

    def get_permissions(self):
        if self.action in ['list', 'retrieve', 'variations', 'random']:
            return [AllowAny()]
        if self.action == 'destroy':
            return [IsAuthenticated(), IsNotBanned(), IsAdmin()]
        return [IsAuthenticated(), IsNotBanned()]

    def get_serializer_class(self):
        if self.action in ['create', 'update', 'partial_update']:
            return RecipeWriteSerializer
        if self.action == 'mine':
            return MyRecipeSerializer
        if self.action == 'retrieve':
            return RecipeDetailSerializer
        return RecipeCardSerializer

    def get_queryset(self):
        queryset = Recipe.objects.select_related('city', 'user', 'anonymous_author')
        if self.action == 'list':
            queryset = filter_recipes(queryset.approved(), self.request.query_params)
            sort = self.request.query_params.get('sort', 'latest')
            return queryset.order_by(*RECIPE_SORTS.get(sort, RECIPE_SORTS['latest']))
        if self.action == 'retrieve':
            return queryset.prefetch_related('tags', 'recipe_ingredients__ingredient')
        return queryset

    def _can_edit(self, recipe, user):
        return recipe.is_owned_by(user) or user.is_moderator_role

    def retrieve(self, request, *args, **kwargs):
        """Détail d'une recette : les recettes non publiées ne sont visibles que par leur auteur et les modérateurs"""
        recipe = self.get_object()
        if not workflow.is_visible_to(recipe, request.user):
            return Response({'error': RECIPE_NOT_FOUND_MESSAGE}, status=status.HTTP_404_NOT_FOUND)

        data = self.get_serializer(recipe).data
        variations_count = Recipe.objects.approved().filter(name=recipe.name).exclude(pk=recipe.pk).count()
        data['has_variations'] = variations_count > 0
        data['variations_count'] = variations_count
        data['similar_recipes'] = RecipeCardSerializer(
            self._similar_recipes(recipe), many=True, context={'request': request}
        ).data
        return Response(data)

    def _similar_recipes(self, recipe):
        """Recettes publiées partageant le plus d'ingrédients avec `recipe`"""
        ingredient_ids = list(recipe.recipe_ingredients.values_list('ingredient_id', flat=True))
        if not ingredient_ids:
            return Recipe.objects.none()
        return Recipe.objects.approved().exclude(pk=recipe.pk).filter(
            recipe_ingredients__ingredient_id__in=ingredient_ids
        ).annotate(
            shared_count=Count('recipe_ingredients__ingredient', distinct=True)
        ).select_related('city', 'user', 'anonymous_author').order_by('-shared_count', '-created_at')[:SIMILAR_RECIPES_LIMIT]

    def create(self, request, *args, **kwargs):
        """Créer une recette : publiée directement pour les modérateurs, en attente sinon"""
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        recipe = serializer.save()
        record_revision(recipe, request.user, SUMMARY_CREATED)
        logger.info("[Recipes] Recipe %s created by user %s (%s)", recipe.id, request.user.id, recipe.status)

        if recipe.status == Recipe.STATUS_APPROVED:
            message = 'تم نشر الوصفة'
        elif recipe.status == Recipe.STATUS_DRAFT:
            message = 'تم حفظ المسودة'
        else:
            message = 'تم إرسال الوصفة للمراجعة'
        return Response({
            'message': message,
            'recipe': RecipeDetailSerializer(recipe, context={'request': request}).data,
        }, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        """Modifier une recette (auteur ou modérateur)"""
        partial = kwargs.pop('partial', False)
        recipe = self.get_object()
        if not self._can_edit(recipe, request.user):
            return _forbidden()

        serializer = self.get_serializer(recipe, data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        recipe = serializer.save()
        workflow.mark_edited(recipe, request.user)
        record_revision(recipe, request.user, SUMMARY_UPDATED)

        message = 'تم تحديث الوصفة وإرسالها للمراجعة' if recipe.needs_reapproval else 'تم تحديث الوصفة'
        return Response({
            'message': message,
            'recipe': RecipeDetailSerializer(recipe, context={'request': request}).data,
        }, status=status.HTTP_200_OK)

    def destroy(self, request, *args, **kwargs):
        recipe = self.get_object()
        logger.info("[Recipes] Recipe %s deleted by user %s", recipe.id, request.user.id)
        recipe.delete()
        return Response({'message': 'تم حذف الوصفة'}, status=status.HTTP_200_OK)

    @action(detail=True, methods=['get'])
    def variations(self, request, slug=None):
        """Autres recettes publiées portant le même nom"""
        recipe = self.get_object()
        if not workflow.is_visible_to(recipe, request.user):
            return Response({'error': RECIPE_NOT_FOUND_MESSAGE}, status=status.HTTP_404_NOT_FOUND)
        variations = Recipe.objects.approved().filter(name=recipe.name).exclude(
            pk=recipe.pk
        ).select_related('city', 'user', 'anonymous_author').order_by('-created_at')
        serializer = RecipeCardSerializer(variations, many=True, context={'request': request})
        return Response({
            'recipe': RecipeCardSerializer(recipe, context={'request': request}).data,
            'variations': serializer.data,
        })

    @action(detail=True, methods=['post'])
    def submit(self, request, slug=None):
        """Soumettre un brouillon (ou une recette refusée) à la validation"""
        recipe = self.get_object()
        if not recipe.is_owned_by(request.user):
            return _forbidden()
        try:
            workflow.submit(recipe, request.user)
        except workflow.InvalidTransition as exc:
            return _unprocessable(exc.message)
        return Response({'message': 'تم إرسال الوصفة للمراجعة', 'status': recipe.status})

    @action(detail=True, methods=['post'])
    def unpublish(self, request, slug=None):
        """L'auteur retire sa recette de la publication"""
        recipe = self.get_object()
        if not recipe.is_owned_by(request.user):
            return _forbidden()
        try:
            workflow.unpublish(recipe, request.user)
        except workflow.InvalidTransition as exc:
            return _unprocessable(exc.message)
        return Response({'message': 'تم إلغاء نشر الوصفة', 'status': recipe.status})

    @action(detail=False, methods=['get'])
    def mine(self, request):
        """Recettes de l'utilisateur connecté, tous statuts confondus"""
        recipes = self.get_queryset().filter(user=request.user).order_by('-updated_at')
        status_filter = request.query_params.get('status')
        if status_filter:
            recipes = recipes.filter(status=status_filter)
        page = self.paginate_queryset(recipes)
        serializer = self.get_serializer(page, many=True)
        return self.get_paginated_response(serializer.data)

    @action(detail=True, methods=['get'])
    def history(self, request, slug=None):
        """Historique des révisions (auteur ou modérateur)"""
        recipe = self.get_object()
        if not self._can_edit(recipe, request.user):
            return _forbidden()
        revisions = recipe.revisions.select_related('user')
        return Response(RecipeRevisionSerializer(revisions, many=True).data)

    @history.mapping.delete
    def clear_history(self, request, slug=None):
        """Effacer l'historique (auteur ou administrateur)"""
        recipe = self.get_object()
        if not (recipe.is_owned_by(request.user) or request.user.is_admin_role):
            return _forbidden()
        deleted = clear_history(recipe)
        return Response({'message': 'تم حذف سجل التعديلات', 'deleted': deleted})

    @action(detail=False, methods=['get'])
    def random(self, request):
        """
        Sélection aléatoire de recettes publiées.
        - exclude_ingredients : ids d'ingrédients à éviter (séparés par des virgules)
        - le réglage 'randomizer_tags' restreint la sélection à certains tags
        """
        queryset = Recipe.objects.approved()
        excluded = parse_id_list(request.query_params.get('exclude_ingredients'))
        if excluded:
            queryset = queryset.exclude(recipe_ingredients__ingredient_id__in=excluded)

        tag_ids = parse_id_list(SiteSetting.get_value(SiteSetting.RANDOMIZER_TAGS, []))
        if tag_ids:
            queryset = queryset.filter(
                id__in=Recipe.tags.through.objects.filter(tag_id__in=tag_ids).values('recipe_id')
            )

        recipes = queryset.select_related('city', 'user', 'anonymous_author').order_by('?')[:RANDOM_RECIPES_LIMIT]
        return Response(RecipeCardSerializer(recipes, many=True, context={'request': request}).data)


class CityViewSet(viewsets.ReadOnlyModelViewSet):
    """Villes avec leur nombre de recettes publiées"""
    serializer_class = CitySerializer
    permission_classes = [AllowAny]
    pagination_class = None
    lookup_field = 'slug'
    lookup_value_regex = '[^/]+'

    def get_queryset(self):
        return City.objects.annotate(
            recipes_count=Count('recipes', filter=Q(recipes__status=Recipe.STATUS_APPROVED))
        ).order_by('-recipes_count', 'name')

    @action(detail=True, methods=['get'])
    def recipes(self, request, slug=None):
        city = self.get_object()
        recipes = filter_recipes(
            Recipe.objects.approved().filter(city=city),
            request.query_params
        ).select_related('city', 'user', 'anonymous_author').order_by('-created_at')
        paginator = RecipePagination()
        page = paginator.paginate_queryset(recipes, request, view=self)
        serializer = RecipeCardSerializer(page, many=True, context={'request': request})
        response = paginator.get_paginated_response(serializer.data)
        response.data['city'] = CitySerializer(city).data
        return response


class TagViewSet(viewsets.ReadOnlyModelViewSet):
    """Recherche publique de tags"""
    serializer_class = TagSerializer
    permission_classes = [AllowAny]
    pagination_class = None
    lookup_field = 'slug'
    lookup_value_regex = '[^/]+'

    def get_queryset(self):
        queryset = Tag.objects.all()
        search = self.request.query_params.get('search', '').strip()
        if search:
            queryset = queryset.filter(name__icontains=search)
        if self.action == 'list':
            return queryset.order_by('name')[:TAG_SEARCH_LIMIT]
        return queryset


class IngredientViewSet(viewsets.ReadOnlyModelViewSet):
    """ViewSet pour les ingrédients (lecture seule)"""
    queryset = Ingredient.objects.all()
    serializer_class = IngredientSerializer
    permission_classes = [AllowAny]

    @action(detail=False, methods=['get'])
    def search(self, request):
        """Rechercher des ingrédients (nom ou nom normalisé)"""
        ingredients = search_similar(request.query_params.get('q', ''))
        serializer = self.get_serializer(ingredients, many=True)
        return Response(serializer.data)


class RecipeListViewSet(viewsets.ModelViewSet):
    """ViewSet pour les listes de recettes de l'utilisateur"""
    pagination_class = CustomPageNumberPagination

    def get_permissions(self):
        if self.action in ['retrieve', 'public']:
            return [AllowAny()]
        return [IsAuthenticated(), IsNotBanned()]

    def get_serializer_class(self):
        if self.action in ['create', 'update', 'partial_update']:
            return RecipeListWriteSerializer
        if self.action == 'retrieve':
            return RecipeListDetailSerializer
        return RecipeListSerializer

    def get_queryset(self):
        queryset = RecipeList.objects.select_related('user').annotate(items_count=Count('items'))
        if self.action == 'list':
            queryset = queryset.filter(user=self.request.user)
            recipe_id = self.request.query_params.get('recipe_id')
            if recipe_id and recipe_id.isdigit():
                queryset = queryset.annotate(has_recipe=Exists(
                    ListItem.objects.filter(recipe_list=OuterRef('pk'), recipe_id=int(recipe_id))
                ))
            return queryset.order_by('-is_default', '-updated_at')
        return queryset

    def _get_owned_list(self, request):
        recipe_list = self.get_object()
        if recipe_list.user_id != request.user.id:
            return None
        return recipe_list

    def _get_recipe(self, request):
        recipe_id = request.data.get('recipe_id')
        if not recipe_id:
            return None, _unprocessable('recipe_id مطلوب')
        try:
            recipe = Recipe.objects.get(id=recipe_id)
        except (Recipe.DoesNotExist, ValueError, TypeError):
            return None, Response({'error': RECIPE_NOT_FOUND_MESSAGE}, status=status.HTTP_404_NOT_FOUND)
        if not workflow.is_visible_to(recipe, request.user):
            return None, Response({'error': RECIPE_NOT_FOUND_MESSAGE}, status=status.HTTP_404_NOT_FOUND)
        return recipe, None

    def list(self, request, *args, **kwargs):
        """Toutes les listes de l'utilisateur (non paginées)"""
        serializer = self.get_serializer(self.get_queryset(), many=True)
        return Response(serializer.data)

    def retrieve(self, request, *args, **kwargs):
        recipe_list = self.get_object()
        if not list_service.can_view(recipe_list, request.user):
            return _forbidden()
        return Response(self.get_serializer(recipe_list).data)

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        recipe_list = serializer.save(user=request.user)
        return Response({
            'message': 'تم إنشاء القائمة',
            'list': RecipeListSerializer(recipe_list).data,
        }, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        partial = kwargs.pop('partial', False)
        recipe_list = self._get_owned_list(request)
        if recipe_list is None:
            return _forbidden()
        serializer = self.get_serializer(recipe_list, data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        try:
            list_service.check_update(recipe_list, serializer.validated_data)
        except list_service.ListRuleError as exc:
            return _unprocessable(exc.message)
        recipe_list = serializer.save()
        return Response({'message': 'تم تحديث القائمة', 'list': RecipeListSerializer(recipe_list).data})

    def destroy(self, request, *args, **kwargs):
        recipe_list = self._get_owned_list(request)
        if recipe_list is None:
            return _forbidden()
        try:
            list_service.delete_list(recipe_list)
        except list_service.ListRuleError as exc:
            return _unprocessable(exc.message)
        return Response({'message': 'تم حذف القائمة'}, status=status.HTTP_200_OK)

    @action(detail=True, methods=['post'], url_path='add')
    def add_recipe(self, request, pk=None):
        recipe_list = self._get_owned_list(request)
        if recipe_list is None:
            return _forbidden()
        recipe, error = self._get_recipe(request)
        if error:
            return error
        _, created = list_service.add_recipe(recipe_list, recipe)
        message = 'تمت إضافة الوصفة إلى القائمة' if created else 'الوصفة موجودة في القائمة'
        return Response({'message': message, 'added': created})

    @action(detail=True, methods=['post'], url_path='remove')
    def remove_recipe(self, request, pk=None):
        recipe_list = self._get_owned_list(request)
        if recipe_list is None:
            return _forbidden()
        recipe, error = self._get_recipe(request)
        if error:
            return error
        removed = list_service.remove_recipe(recipe_list, recipe)
        return Response({'message': 'تمت إزالة الوصفة من القائمة', 'removed': removed})

    @action(detail=True, methods=['post'])
    def toggle(self, request, pk=None):
        recipe_list = self._get_owned_list(request)
        if recipe_list is None:
            return _forbidden()
        recipe, error = self._get_recipe(request)
        if error:
            return error
        added = list_service.toggle_recipe(recipe_list, recipe)
        return Response({'added': added})

    @action(detail=True, methods=['post'])
    def reorder(self, request, pk=None):
        recipe_list = self._get_owned_list(request)
        if recipe_list is None:
            return _forbidden()
        recipe_ids = request.data.get('recipe_ids')
        if not isinstance(recipe_ids, list):
            return _unprocessable('recipe_ids يجب أن تكون قائمة')
        try:
            list_service.reorder(recipe_list, parse_id_list(recipe_ids))
        except list_service.ListRuleError as exc:
            return _unprocessable(exc.message)
        return Response(RecipeListDetailSerializer(recipe_list, context={'request': request}).data)

    @action(detail=True, methods=['post'], url_path='request-publish')
    def request_publish(self, request, pk=None):
        recipe_list = self._get_owned_list(request)
        if recipe_list is None:
            return _forbidden()
        try:
            list_service.request_publish(recipe_list)
        except list_service.ListRuleError as exc:
            return _unprocessable(exc.message)
        return Response({'message': 'تم إرسال القائمة للمراجعة', 'status': recipe_list.status})

    @action(detail=False, methods=['get'])
    def public(self, request):
        """Listes publiques validées"""
        lists = RecipeList.objects.filter(
            is_public=True, status=RecipeList.STATUS_APPROVED
        ).select_related('user').annotate(items_count=Count('items')).order_by('-updated_at')
        page = self.paginate_queryset(lists)
        serializer = RecipeListSerializer(page, many=True)
        return self.get_paginated_response(serializer.data)


class ReportViewSet(mixins.CreateModelMixin,
                    mixins.ListModelMixin,
                    mixins.RetrieveModelMixin,
                    viewsets.GenericViewSet):
    """Signalements envoyés par l'utilisateur connecté"""
    permission_classes = [IsAuthenticated, IsNotBanned]
    serializer_class = ReportSerializer

    def get_queryset(self):
        queryset = Report.objects.select_related('content_type', 'user')
        if self.action == 'list':
            return queryset.filter(user=self.request.user)
        return queryset

    def create(self, request, *args, **kwargs):
        serializer = ReportCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        model = Report.REPORTABLE_MODELS[data['reportable_type']]
        target = model.objects.filter(pk=data['reportable_id']).first()
        if target is None:
            return Response({'error': 'العنصر غير موجود'}, status=status.HTTP_404_NOT_FOUND)

        report = Report.objects.create(
            user=request.user,
            reportable=target,
            type=data['type'],
            message=data['message'],
        )
        logger.info("[Reports] Report %s on %s %s by user %s", report.id, data['reportable_type'], target.pk, request.user.id)
        return Response({
            'message': 'تم إرسال البلاغ بنجاح',
            'report': ReportSerializer(report).data,
        }, status=status.HTTP_201_CREATED)

    def retrieve(self, request, *args, **kwargs):
        report = self.get_object()
        if report.user_id != request.user.id and not request.user.is_moderator_role:
            return _forbidden()
        return Response(self.get_serializer(report).data)
