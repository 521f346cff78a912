from django.conf import settings
from django.contrib.auth.models import AbstractUser
from django.db import models
from django.utils import timezone


class User(AbstractUser):
    """Custom User model"""
    ROLE_ADMIN = 'admin'
    ROLE_MODERATOR = 'moderator'
    ROLE_USER = 'user'
    ROLE_CHOICES = [
        (ROLE_ADMIN, 'مسؤول'),
        (ROLE_MODERATOR, 'مشرف'),
        (ROLE_USER, 'مستخدم'),
    ]

    email = models.EmailField(unique=True)
    username = models.CharField(max_length=150, unique=True)
    display_name = models.CharField(max_length=255, blank=True, default='')
    avatar_url = models.URLField(blank=True, null=True)
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=ROLE_USER, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    # Modération du compte
    is_banned = models.BooleanField(default=False, db_index=True)
    ban_reason = models.TextField(blank=True, default='')
    banned_at = models.DateTimeField(blank=True, null=True)

    # Demande de suppression du compte (traitée par un administrateur)
    deletion_requested = models.BooleanField(default=False, db_index=True)
    deletion_requested_at = models.DateTimeField(blank=True, null=True)

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = ['username']

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return self.email

    @property
    def is_admin_role(self):
        """Administrateur : rôle admin, superuser ou compte propriétaire"""
        if self.role == self.ROLE_ADMIN or self.is_superuser:
            return True
        superadmin_email = getattr(settings, 'SUPERADMIN_EMAIL', '')
        return bool(superadmin_email) and self.email == superadmin_email

    @property
    def is_moderator_role(self):
        """Les administrateurs ont aussi les droits de modération"""
        return self.is_admin_role or self.role == self.ROLE_MODERATOR

    @property
    def can_approve_recipes(self):
        return self.is_moderator_role

    @property
    def can_delete_recipes(self):
        return self.is_admin_role

    @property
    def public_name(self):
        return self.display_name or self.username

    def ban(self, reason):
        self.is_banned = True
        self.ban_reason = reason
        self.banned_at = timezone.now()
        self.save(update_fields=['is_banned', 'ban_reason', 'banned_at', 'updated_at'])

    def unban(self):
        self.is_banned = False
        self.ban_reason = ''
        self.banned_at = None
        self.save(update_fields=['is_banned', 'ban_reason', 'banned_at', 'updated_at'])

    def request_deletion(self):
        self.deletion_requested = True
        self.deletion_requested_at = timezone.now()
        self.save(update_fields=['deletion_requested', 'deletion_requested_at', 'updated_at'])

    def cancel_deletion(self):
        self.deletion_requested = False
        self.deletion_requested_at = None
        self.save(update_fields=['deletion_requested', 'deletion_requested_at', 'updated_at'])
