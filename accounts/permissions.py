from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import BasePermission

BANNED_MESSAGE = 'تم حظر حسابك'
NOT_AUTHORIZED_MESSAGE = 'غير مصرح'
ADMIN_REQUIRED_MESSAGE = 'غير مصرح. يجب أن تكون مسؤولاً.'
MODERATOR_REQUIRED_MESSAGE = 'غير مصرح. يجب أن تكون مشرفاً أو مسؤولاً.'


class IsNotBanned(BasePermission):
    """Refuse l'accès aux comptes bannis (403 avec le motif du bannissement)"""

    def has_permission(self, request, view):
        user = request.user
        if user and user.is_authenticated and user.is_banned:
            raise PermissionDenied({'error': BANNED_MESSAGE, 'reason': user.ban_reason})
        return True


class IsModerator(BasePermission):
    """Accès réservé aux modérateurs et administrateurs"""
    message = {'error': MODERATOR_REQUIRED_MESSAGE}

    def has_permission(self, request, view):
        user = request.user
        return bool(user and user.is_authenticated and user.is_moderator_role)


class IsAdmin(BasePermission):
    """Accès réservé aux administrateurs"""
    message = {'error': ADMIN_REQUIRED_MESSAGE}

    def has_permission(self, request, view):
        user = request.user
        return bool(user and user.is_authenticated and user.is_admin_role)
