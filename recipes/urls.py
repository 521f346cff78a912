from django.urls import path, include
from rest_framework.routers import DefaultRouter, SimpleRouter
from .views import CityViewSet, IngredientViewSet, RecipeListViewSet, RecipeViewSet, ReportViewSet, TagViewSet
from .admin_views import (
    AdminAnonymousAuthorViewSet, AdminCityViewSet, AdminIngredientViewSet, AdminListViewSet,
    AdminRecipeViewSet, AdminReportViewSet, AdminTagViewSet, AdminUserViewSet,
    import_recipes_view, settings_view,
)

router = DefaultRouter()
router.register(r'recipes', RecipeViewSet, basename='recipe')
router.register(r'cities', CityViewSet, basename='city')
router.register(r'tags', TagViewSet, basename='tag')
router.register(r'ingredients', IngredientViewSet, basename='ingredient')
router.register(r'lists', RecipeListViewSet, basename='recipelist')
router.register(r'reports', ReportViewSet, basename='report')

admin_router = SimpleRouter()
admin_router.register(r'recipes', AdminRecipeViewSet, basename='admin-recipe')
admin_router.register(r'users', AdminUserViewSet, basename='admin-user')
admin_router.register(r'cities', AdminCityViewSet, basename='admin-city')
admin_router.register(r'tags', AdminTagViewSet, basename='admin-tag')
admin_router.register(r'anonymous-authors', AdminAnonymousAuthorViewSet, basename='admin-anonymous-author')
admin_router.register(r'ingredients', AdminIngredientViewSet, basename='admin-ingredient')
admin_router.register(r'lists', AdminListViewSet, basename='admin-list')
admin_router.register(r'reports', AdminReportViewSet, basename='admin-report')

urlpatterns = [
    path('admin/settings/', settings_view, name='admin-settings'),
    path('admin/import/', import_recipes_view, name='admin-import'),
    path('admin/', include(admin_router.urls)),
    path('', include(router.urls)),
]
