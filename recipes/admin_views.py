"""
API d'administration et de modération (préfixe /api/admin/)
"""
import logging

from django.contrib.auth import get_user_model
from django.db.models import Count, Q
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action, api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from accounts.permissions import IsAdmin, IsModerator, IsNotBanned, ADMIN_REQUIRED_MESSAGE
from accounts.serializers import AdminUserSerializer
from .models import AnonymousAuthor, City, Ingredient, Recipe, RecipeList, Report, Tag
from .pagination import CustomPageNumberPagination
from .serializers import (
    AdminRecipeSerializer, AdminReportSerializer, AnonymousAuthorSerializer, CitySerializer,
    IngredientSerializer, RecipeDetailSerializer, RecipeListSerializer, ReportUpdateSerializer,
    SiteSettingsSerializer, TagSerializer,
)
from .services import lists as list_service
from .services import moderation
from .services.importer import import_recipes
from .utils import parse_id_list
from . import workflow

User = get_user_model()
logger = logging.getLogger(__name__)

MODERATOR_PERMISSIONS = [IsAuthenticated, IsNotBanned, IsModerator]
ADMIN_PERMISSIONS = [IsAuthenticated, IsNotBanned, IsAdmin]

RECIPE_SORT_FIELDS = ['created_at', 'updated_at', 'name', 'status']
USER_SORT_FIELDS = ['created_at', 'email', 'username', 'role']


def _unprocessable(message):
    return Response({'error': message}, status=status.HTTP_422_UNPROCESSABLE_ENTITY)


def _ordering(params, allowed, default='created_at'):
    sort = params.get('sort', default)
    if sort not in allowed:
        sort = default
    direction = params.get('direction', 'desc')
    return sort if direction == 'asc' else f'-{sort}'


def _ids_from(request):
    ids = parse_id_list(request.data.get('ids'))
    if not ids:
        return None
    return ids


class AdminRecipeViewSet(mixins.ListModelMixin,
                         mixins.RetrieveModelMixin,
                         viewsets.GenericViewSet):
    """Validation des recettes par les modérateurs"""
    permission_classes = MODERATOR_PERMISSIONS
    serializer_class = AdminRecipeSerializer
    pagination_class = CustomPageNumberPagination

    def get_queryset(self):
        queryset = Recipe.objects.select_related('city', 'user', 'anonymous_author', 'approved_by')
        if self.action == 'retrieve':
            return queryset.prefetch_related('tags', 'recipe_ingredients__ingredient')
        if self.action != 'list':
            return queryset

        params = self.request.query_params
        status_filter = params.get('status')
        if status_filter == Recipe.STATUS_PENDING:
            queryset = queryset.awaiting_review()
        elif status_filter:
            queryset = queryset.filter(status=status_filter)

        search = params.get('search', '').strip()
        if search:
            queryset = queryset.filter(
                Q(name__icontains=search)
                | Q(user__email__icontains=search)
                | Q(user__display_name__icontains=search)
                | Q(anonymous_author__name__icontains=search)
            )
        return queryset.order_by(_ordering(params, RECIPE_SORT_FIELDS))

    def retrieve(self, request, *args, **kwargs):
        recipe = self.get_object()
        return Response(RecipeDetailSerializer(recipe, context={'request': request}).data)

    @action(detail=False, methods=['get'])
    def pending(self, request):
        """Recettes en attente (nouvelles ou modifications à revalider)"""
        recipes = self.get_queryset().awaiting_review().order_by('created_at')
        page = self.paginate_queryset(recipes)
        serializer = self.get_serializer(page, many=True)
        return self.get_paginated_response(serializer.data)

    def _transition_response(self, recipe, message):
        return Response({'message': message, 'recipe': self.get_serializer(recipe).data})

    @action(detail=True, methods=['post'])
    def approve(self, request, pk=None):
        recipe = self.get_object()
        try:
            workflow.approve(recipe, request.user)
        except workflow.InvalidTransition as exc:
            return _unprocessable(exc.message)
        return self._transition_response(recipe, 'تمت الموافقة على الوصفة')

    @action(detail=True, methods=['post'])
    def reject(self, request, pk=None):
        recipe = self.get_object()
        try:
            workflow.reject(recipe, request.user, request.data.get('reason'))
        except workflow.InvalidTransition as exc:
            return _unprocessable(exc.message)
        return self._transition_response(recipe, 'تم رفض الوصفة')

    @action(detail=True, methods=['post'])
    def unpublish(self, request, pk=None):
        recipe = self.get_object()
        try:
            workflow.unpublish(recipe, request.user)
        except workflow.InvalidTransition as exc:
            return _unprocessable(exc.message)
        return self._transition_response(recipe, 'تم إلغاء نشر الوصفة')

    @action(detail=False, methods=['post'])
    def bulk(self, request):
        """Actions groupées : publish, unpublish, change_status, delete (administrateurs)"""
        ids = _ids_from(request)
        bulk_action = request.data.get('action')
        if not ids or bulk_action not in moderation.BULK_ACTIONS:
            return _unprocessable('يجب تحديد الوصفات والإجراء')
        if bulk_action == moderation.BULK_DELETE and not request.user.is_admin_role:
            return Response({'error': ADMIN_REQUIRED_MESSAGE}, status=status.HTTP_403_FORBIDDEN)
        try:
            result = moderation.bulk_recipe_action(ids, bulk_action, request.user, request.data.get('status'))
        except moderation.ModerationError as exc:
            return _unprocessable(exc.message)
        return Response({'message': 'تم تنفيذ الإجراء', **result})


class AdminUserViewSet(mixins.ListModelMixin,
                       mixins.RetrieveModelMixin,
                       mixins.DestroyModelMixin,
                       viewsets.GenericViewSet):
    """Gestion des comptes (administrateurs)"""
    permission_classes = ADMIN_PERMISSIONS
    serializer_class = AdminUserSerializer
    pagination_class = CustomPageNumberPagination

    def get_queryset(self):
        queryset = User.objects.annotate(recipes_count=Count('recipes'))
        if self.action != 'list':
            return queryset

        params = self.request.query_params
        role = params.get('role')
        if role:
            queryset = queryset.filter(role=role)
        banned = params.get('banned')
        if banned in ['1', 'true']:
            queryset = queryset.filter(is_banned=True)
        elif banned in ['0', 'false']:
            queryset = queryset.filter(is_banned=False)
        if params.get('deletion_requested') in ['1', 'true']:
            queryset = queryset.filter(deletion_requested=True)
        search = params.get('search', '').strip()
        if search:
            queryset = queryset.filter(
                Q(email__icontains=search) | Q(username__icontains=search) | Q(display_name__icontains=search)
            )
        return queryset.order_by(_ordering(params, USER_SORT_FIELDS))

    @action(detail=False, methods=['get'], url_path='deletion-requests')
    def deletion_requests(self, request):
        users = self.get_queryset().filter(deletion_requested=True).order_by('deletion_requested_at')
        return Response(self.get_serializer(users, many=True).data)

    @action(detail=True, methods=['post'])
    def role(self, request, pk=None):
        target = self.get_object()
        role = request.data.get('role')
        if role not in [choice[0] for choice in User.ROLE_CHOICES]:
            return _unprocessable('دور غير صالح')
        if target.pk == request.user.pk and role != User.ROLE_ADMIN:
            return _unprocessable('لا يمكنك تغيير دورك بنفسك')
        target.role = role
        target.save(update_fields=['role', 'updated_at'])
        logger.info("[AdminUsers] User %s role set to %s by %s", target.id, role, request.user.id)
        return Response({'message': 'تم تحديث الدور', 'user': self.get_serializer(target).data})

    @action(detail=True, methods=['post'])
    def ban(self, request, pk=None):
        target = self.get_object()
        reason = (request.data.get('reason') or '').strip()
        if not reason:
            return _unprocessable('سبب الحظر مطلوب')
        if target.pk == request.user.pk:
            return _unprocessable('لا يمكنك حظر نفسك')
        if target.is_admin_role:
            return Response({'error': 'لا يمكن حظر مسؤول'}, status=status.HTTP_403_FORBIDDEN)
        target.ban(reason)
        logger.info("[AdminUsers] User %s banned by %s", target.id, request.user.id)
        return Response({'message': 'تم حظر المستخدم', 'user': self.get_serializer(target).data})

    @action(detail=True, methods=['post'])
    def unban(self, request, pk=None):
        target = self.get_object()
        target.unban()
        logger.info("[AdminUsers] User %s unbanned by %s", target.id, request.user.id)
        return Response({'message': 'تم رفع الحظر', 'user': self.get_serializer(target).data})

    def destroy(self, request, *args, **kwargs):
        """Supprimer un compte, avec transfert optionnel de ses recettes"""
        target = self.get_object()
        if target.pk == request.user.pk:
            return _unprocessable('لا يمكنك حذف حسابك من هنا')
        if target.is_admin_role:
            return Response({'error': 'لا يمكن حذف مسؤول'}, status=status.HTTP_403_FORBIDDEN)

        transfer_to_user = None
        transfer_to_user_id = request.data.get('transfer_to_user_id')
        if transfer_to_user_id:
            transfer_to_user = User.objects.filter(pk=transfer_to_user_id).first()
            if transfer_to_user is None:
                return _unprocessable('المستخدم المستهدف غير موجود')

        try:
            transferred = moderation.delete_user(
                target,
                transfer_to_user=transfer_to_user,
                transfer_to_anonymous=request.data.get('transfer_to_anonymous'),
            )
        except moderation.ModerationError as exc:
            return _unprocessable(exc.message)
        return Response({'message': 'تم حذف المستخدم', 'transferred_recipes': transferred})


class AdminCityViewSet(viewsets.ModelViewSet):
    """Gestion des villes"""
    permission_classes = ADMIN_PERMISSIONS
    serializer_class = CitySerializer
    pagination_class = None

    def get_queryset(self):
        return City.objects.annotate(recipes_count=Count('recipes')).order_by('name')

    def destroy(self, request, *args, **kwargs):
        city = self.get_object()
        try:
            moved = moderation.delete_cities([city])
        except moderation.ModerationError as exc:
            return _unprocessable(exc.message)
        return Response({'message': 'تم حذف المدينة', 'moved_recipes': moved})

    @action(detail=False, methods=['post'], url_path='bulk-delete')
    def bulk_delete(self, request):
        ids = _ids_from(request)
        if not ids:
            return _unprocessable('يجب تحديد المدن')
        try:
            moved = moderation.delete_cities(list(City.objects.filter(id__in=ids)))
        except moderation.ModerationError as exc:
            return _unprocessable(exc.message)
        return Response({'message': 'تم حذف المدن', 'moved_recipes': moved})


class AdminTagViewSet(viewsets.ModelViewSet):
    """Gestion des tags"""
    permission_classes = ADMIN_PERMISSIONS
    serializer_class = TagSerializer
    pagination_class = CustomPageNumberPagination

    def get_queryset(self):
        queryset = Tag.objects.annotate(recipes_count=Count('recipes'))
        search = self.request.query_params.get('search', '').strip()
        if search:
            queryset = queryset.filter(name__icontains=search)
        return queryset.order_by('-recipes_count', 'name')

    @action(detail=False, methods=['post'], url_path='bulk-delete')
    def bulk_delete(self, request):
        ids = _ids_from(request)
        if not ids:
            return _unprocessable('يجب تحديد الوسوم')
        deleted, _ = Tag.objects.filter(id__in=ids).delete()
        return Response({'message': 'تم حذف الوسوم', 'deleted': deleted})


class AdminAnonymousAuthorViewSet(mixins.ListModelMixin,
                                  mixins.CreateModelMixin,
                                  viewsets.GenericViewSet):
    """Auteurs anonymes disponibles pour l'attribution des recettes"""
    permission_classes = MODERATOR_PERMISSIONS
    serializer_class = AnonymousAuthorSerializer
    pagination_class = None

    def get_queryset(self):
        return AnonymousAuthor.objects.annotate(recipes_count=Count('recipes')).order_by('name')


class AdminIngredientViewSet(mixins.ListModelMixin, viewsets.GenericViewSet):
    """Ingrédients avec leur nombre d'utilisations"""
    permission_classes = MODERATOR_PERMISSIONS
    serializer_class = IngredientSerializer
    pagination_class = CustomPageNumberPagination

    def get_queryset(self):
        queryset = Ingredient.objects.annotate(usage_count=Count('recipe_ingredients'))
        search = self.request.query_params.get('search', '').strip()
        if search:
            queryset = queryset.filter(Q(name__icontains=search) | Q(normalized_name__icontains=search))
        return queryset.order_by('-usage_count', 'name')


class AdminListViewSet(mixins.ListModelMixin, viewsets.GenericViewSet):
    """Validation des listes publiques"""
    permission_classes = MODERATOR_PERMISSIONS
    serializer_class = RecipeListSerializer
    pagination_class = CustomPageNumberPagination

    def get_queryset(self):
        queryset = RecipeList.objects.filter(is_default=False).select_related('user').annotate(
            items_count=Count('items')
        )
        status_filter = self.request.query_params.get('status')
        if status_filter:
            queryset = queryset.filter(status=status_filter)
        return queryset.order_by('-updated_at')

    @action(detail=True, methods=['post'])
    def approve(self, request, pk=None):
        recipe_list = list_service.approve_list(self.get_object())
        return Response({'message': 'تمت الموافقة على القائمة', 'list': self.get_serializer(recipe_list).data})

    @action(detail=True, methods=['post'])
    def reject(self, request, pk=None):
        recipe_list = list_service.reject_list(self.get_object())
        return Response({'message': 'تم رفض القائمة', 'list': self.get_serializer(recipe_list).data})

    @action(detail=True, methods=['post'])
    def unpublish(self, request, pk=None):
        recipe_list = list_service.unpublish_list(self.get_object())
        return Response({'message': 'تم إلغاء نشر القائمة', 'list': self.get_serializer(recipe_list).data})

    @action(detail=False, methods=['post'])
    def bulk(self, request):
        ids = _ids_from(request)
        bulk_action = request.data.get('action')
        handlers = {
            'approve': list_service.approve_list,
            'reject': list_service.reject_list,
            'unpublish': list_service.unpublish_list,
        }
        if not ids or (bulk_action not in handlers and bulk_action != 'delete'):
            return _unprocessable('يجب تحديد القوائم والإجراء')

        lists = RecipeList.objects.filter(id__in=ids, is_default=False)
        if bulk_action == 'delete':
            if not request.user.is_admin_role:
                return Response({'error': ADMIN_REQUIRED_MESSAGE}, status=status.HTTP_403_FORBIDDEN)
            processed, _ = lists.delete()
        else:
            processed = 0
            for recipe_list in lists:
                handlers[bulk_action](recipe_list)
                processed += 1
        return Response({'message': 'تم تنفيذ الإجراء', 'processed': processed})


class AdminReportViewSet(mixins.ListModelMixin,
                         mixins.RetrieveModelMixin,
                         mixins.UpdateModelMixin,
                         mixins.DestroyModelMixin,
                         viewsets.GenericViewSet):
    """Traitement des signalements"""
    serializer_class = AdminReportSerializer
    pagination_class = CustomPageNumberPagination
    http_method_names = ['get', 'post', 'patch', 'delete', 'head', 'options']

    def get_permissions(self):
        if self.action == 'destroy':
            return [permission() for permission in ADMIN_PERMISSIONS]
        return [permission() for permission in MODERATOR_PERMISSIONS]

    def get_serializer_class(self):
        if self.action == 'partial_update':
            return ReportUpdateSerializer
        return AdminReportSerializer

    def get_queryset(self):
        queryset = Report.objects.select_related('content_type', 'user')
        params = self.request.query_params
        if params.get('status'):
            queryset = queryset.filter(status=params['status'])
        if params.get('type'):
            queryset = queryset.filter(type=params['type'])
        reportable_type = params.get('reportable_type')
        if reportable_type in Report.REPORTABLE_MODELS:
            model = Report.REPORTABLE_MODELS[reportable_type]
            queryset = queryset.filter(content_type__app_label=model._meta.app_label, content_type__model=model._meta.model_name)
        return queryset.order_by('-created_at')

    def partial_update(self, request, *args, **kwargs):
        report = self.get_object()
        serializer = self.get_serializer(report, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        logger.info("[AdminReports] Report %s updated by %s", report.id, request.user.id)
        return Response({'message': 'تم تحديث البلاغ', 'report': AdminReportSerializer(report).data})

    def destroy(self, request, *args, **kwargs):
        report = self.get_object()
        report.delete()
        return Response({'message': 'تم حذف البلاغ'}, status=status.HTTP_200_OK)

    @action(detail=False, methods=['post'])
    def bulk(self, request):
        """Actions groupées : status_update (modérateurs) ou delete (administrateurs)"""
        ids = _ids_from(request)
        bulk_action = request.data.get('action')
        if not ids or bulk_action not in ['status_update', 'delete']:
            return _unprocessable('يجب تحديد البلاغات والإجراء')

        reports = Report.objects.filter(id__in=ids)
        if bulk_action == 'delete':
            if not request.user.is_admin_role:
                return Response({'error': ADMIN_REQUIRED_MESSAGE}, status=status.HTTP_403_FORBIDDEN)
            processed, _ = reports.delete()
        else:
            new_status = request.data.get('status')
            if new_status not in [choice[0] for choice in Report.STATUS_CHOICES]:
                return _unprocessable('حالة غير صالحة')
            processed = reports.update(status=new_status)
        return Response({'message': 'تم تنفيذ الإجراء', 'processed': processed})


@api_view(['GET', 'PUT', 'PATCH'])
@permission_classes(ADMIN_PERMISSIONS)
def settings_view(request):
    """Lire ou modifier les réglages du site"""
    if request.method == 'GET':
        return Response(SiteSettingsSerializer.current_values())

    serializer = SiteSettingsSerializer(data=request.data, partial=True)
    serializer.is_valid(raise_exception=True)
    values = serializer.save()
    logger.info("[AdminSettings] Settings updated by %s: %s", request.user.id, list(serializer.validated_data))
    return Response({'message': 'تم حفظ الإعدادات', 'settings': values})


@api_view(['POST'])
@permission_classes(ADMIN_PERMISSIONS)
def import_recipes_view(request):
    """Import en masse de recettes au format JSON : {'recipes': [...]}"""
    entries = request.data.get('recipes')
    if not isinstance(entries, list) or not entries:
        return _unprocessable('يجب إرسال قائمة وصفات')
    results = import_recipes(entries, imported_by=request.user)
    return Response({
        'message': f"تم استيراد {results['success']} وصفة من {results['total']}",
        'results': results,
    }, status=status.HTTP_200_OK)
