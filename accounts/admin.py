from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from .models import User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ['email', 'username', 'role', 'is_banned', 'deletion_requested', 'created_at']
    list_filter = ['role', 'is_banned', 'deletion_requested', 'is_staff', 'is_superuser']
    search_fields = ['email', 'username', 'display_name']
    ordering = ['-created_at']
    fieldsets = BaseUserAdmin.fieldsets + (
        ('Sufra', {'fields': ('display_name', 'avatar_url', 'role')}),
        ('Modération', {'fields': ('is_banned', 'ban_reason', 'banned_at')}),
        ('Suppression', {'fields': ('deletion_requested', 'deletion_requested_at')}),
    )
