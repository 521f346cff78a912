from django.contrib import admin

from .models import (
    AnonymousAuthor, City, Ingredient, ListItem, Recipe, RecipeIngredient,
    RecipeList, RecipeRevision, Report, SiteSetting, Tag,
)


class RecipeIngredientInline(admin.TabularInline):
    model = RecipeIngredient
    extra = 0
    autocomplete_fields = ['ingredient']


@admin.register(Recipe)
class RecipeAdmin(admin.ModelAdmin):
    list_display = ['name', 'status', 'needs_reapproval', 'city', 'user', 'anonymous_author', 'created_at']
    list_filter = ['status', 'needs_reapproval', 'difficulty', 'city']
    search_fields = ['name', 'slug']
    readonly_fields = ['slug', 'approved_by', 'approved_at', 'created_at', 'updated_at']
    filter_horizontal = ['tags']
    inlines = [RecipeIngredientInline]


@admin.register(Ingredient)
class IngredientAdmin(admin.ModelAdmin):
    list_display = ['name', 'normalized_name', 'created_at']
    search_fields = ['name', 'normalized_name']
    readonly_fields = ['normalized_name']


@admin.register(City)
class CityAdmin(admin.ModelAdmin):
    list_display = ['name', 'slug']
    search_fields = ['name', 'slug']


@admin.register(Tag)
class TagAdmin(admin.ModelAdmin):
    list_display = ['name', 'slug']
    search_fields = ['name']


@admin.register(AnonymousAuthor)
class AnonymousAuthorAdmin(admin.ModelAdmin):
    search_fields = ['name']


@admin.register(RecipeRevision)
class RecipeRevisionAdmin(admin.ModelAdmin):
    list_display = ['recipe', 'user', 'change_summary', 'created_at']
    raw_id_fields = ['recipe', 'user']


class ListItemInline(admin.TabularInline):
    model = ListItem
    extra = 0
    raw_id_fields = ['recipe']


@admin.register(RecipeList)
class RecipeListAdmin(admin.ModelAdmin):
    list_display = ['name', 'user', 'status', 'is_public', 'is_default', 'updated_at']
    list_filter = ['status', 'is_public', 'is_default']
    search_fields = ['name', 'slug']
    inlines = [ListItemInline]


@admin.register(Report)
class ReportAdmin(admin.ModelAdmin):
    list_display = ['id', 'type', 'status', 'content_type', 'object_id', 'user', 'created_at']
    list_filter = ['status', 'type', 'content_type']


@admin.register(SiteSetting)
class SiteSettingAdmin(admin.ModelAdmin):
    list_display = ['key', 'value', 'updated_at']
