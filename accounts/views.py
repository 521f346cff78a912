import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import RefreshToken
from django.contrib.auth import get_user_model
from django.db.models import Count, Q
from django.shortcuts import get_object_or_404

from .permissions import IsNotBanned
from .serializers import (
    UserRegistrationSerializer, UserSerializer, LoginSerializer,
    ProfileUpdateSerializer, PublicUserSerializer,
)
from recipes.models import Recipe
from recipes.pagination import RecipePagination
from recipes.serializers import RecipeCardSerializer

User = get_user_model()
logger = logging.getLogger(__name__)


def _tokens_for(user):
    refresh = RefreshToken.for_user(user)
    return {
        'refresh': str(refresh),
        'access': str(refresh.access_token),
    }


@api_view(['POST'])
@permission_classes([AllowAny])
def register_view(request):
    """Inscription d'un nouvel utilisateur"""
    serializer = UserRegistrationSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    user = serializer.save()
    logger.info("[Accounts] New user registered: %s", user.email)
    return Response({
        'message': 'تم إنشاء الحساب بنجاح',
        'user': UserSerializer(user).data,
        'tokens': _tokens_for(user),
    }, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([AllowAny])
def login_view(request):
    """Connexion : retourne les jetons JWT"""
    serializer = LoginSerializer(data=request.data, context={'request': request})
    serializer.is_valid(raise_exception=True)
    user = serializer.validated_data['user']
    return Response({
        'message': 'تم تسجيل الدخول بنجاح',
        'user': UserSerializer(user).data,
        'tokens': _tokens_for(user),
    }, status=status.HTTP_200_OK)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def logout_view(request):
    """Déconnexion : invalider le refresh token"""
    refresh = request.data.get('refresh')
    if not refresh:
        return Response({'error': 'refresh مطلوب'}, status=status.HTTP_422_UNPROCESSABLE_ENTITY)
    try:
        RefreshToken(refresh).blacklist()
    except TokenError:
        return Response({'error': 'رمز غير صالح'}, status=status.HTTP_422_UNPROCESSABLE_ENTITY)
    return Response({'message': 'تم تسجيل الخروج'}, status=status.HTTP_200_OK)


@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated, IsNotBanned])
def me_view(request):
    """Récupérer ou mettre à jour le profil de l'utilisateur connecté"""
    if request.method == 'GET':
        return Response(UserSerializer(request.user).data, status=status.HTTP_200_OK)

    serializer = ProfileUpdateSerializer(request.user, data=request.data, partial=True)
    serializer.is_valid(raise_exception=True)
    serializer.save()
    return Response({
        'message': 'تم تحديث الملف الشخصي',
        'user': UserSerializer(request.user).data,
    }, status=status.HTTP_200_OK)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def request_deletion_view(request):
    """Demander la suppression du compte (traitée par un administrateur)"""
    request.user.request_deletion()
    logger.info("[Accounts] Deletion requested by user %s", request.user.id)
    return Response({
        'message': 'تم إرسال طلب حذف الحساب',
        'user': UserSerializer(request.user).data,
    }, status=status.HTTP_200_OK)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def cancel_deletion_view(request):
    """Annuler une demande de suppression du compte"""
    request.user.cancel_deletion()
    return Response({
        'message': 'تم إلغاء طلب حذف الحساب',
        'user': UserSerializer(request.user).data,
    }, status=status.HTTP_200_OK)


@api_view(['GET'])
@permission_classes([AllowAny])
def user_detail_view(request, user_id):
    """Profil public d'un utilisateur"""
    target_user = get_object_or_404(
        User.objects.annotate(
            approved_recipes_count=Count(
                'recipes',
                filter=Q(recipes__status=Recipe.STATUS_APPROVED, recipes__is_anonymous=False)
            )
        ),
        id=user_id
    )
    return Response(PublicUserSerializer(target_user).data, status=status.HTTP_200_OK)


@api_view(['GET'])
@permission_classes([AllowAny])
def user_recipes_view(request, user_id):
    """Recettes publiées (non anonymes) d'un utilisateur"""
    target_user = get_object_or_404(User, id=user_id)
    recipes = Recipe.objects.approved().filter(
        user=target_user, is_anonymous=False
    ).select_related('city', 'user', 'anonymous_author').order_by('-approved_at', '-created_at')

    paginator = RecipePagination()
    page = paginator.paginate_queryset(recipes, request)
    serializer = RecipeCardSerializer(page, many=True, context={'request': request})
    return paginator.get_paginated_response(serializer.data)
