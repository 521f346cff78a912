from rest_framework import serializers
from django.contrib.auth import authenticate
from .models import User


class UserRegistrationSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True, min_length=8)

    class Meta:
        model = User
        fields = ('id', 'username', 'email', 'password', 'display_name')
        extra_kwargs = {
            'password': {'write_only': True},
        }

    def create(self, validated_data):
        password = validated_data.pop('password')
        user = User.objects.create_user(password=password, **validated_data)
        return user


class UserSerializer(serializers.ModelSerializer):
    """Utilisateur connecté (inclut le rôle et l'état du compte)"""
    is_admin = serializers.BooleanField(source='is_admin_role', read_only=True)
    is_moderator = serializers.BooleanField(source='is_moderator_role', read_only=True)

    class Meta:
        model = User
        fields = (
            'id', 'username', 'email', 'display_name', 'avatar_url', 'role',
            'is_admin', 'is_moderator', 'is_banned', 'ban_reason',
            'deletion_requested', 'deletion_requested_at', 'created_at',
        )
        read_only_fields = (
            'id', 'username', 'email', 'role', 'is_banned', 'ban_reason',
            'deletion_requested', 'deletion_requested_at', 'created_at',
        )


class ProfileUpdateSerializer(serializers.ModelSerializer):
    display_name = serializers.CharField(max_length=255, required=False, allow_blank=True)

    class Meta:
        model = User
        fields = ('display_name', 'avatar_url')


class PublicUserSerializer(serializers.ModelSerializer):
    """Profil public : aucune donnée sensible"""
    name = serializers.CharField(source='public_name', read_only=True)
    recipes_count = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ('id', 'name', 'avatar_url', 'created_at', 'recipes_count')

    def get_recipes_count(self, obj):
        count = getattr(obj, 'approved_recipes_count', None)
        if count is not None:
            return count
        from recipes.models import Recipe
        return obj.recipes.filter(status=Recipe.STATUS_APPROVED, is_anonymous=False).count()


class AdminUserSerializer(serializers.ModelSerializer):
    """Vue administrateur d'un compte"""
    recipes_count = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = (
            'id', 'username', 'email', 'display_name', 'avatar_url', 'role',
            'is_banned', 'ban_reason', 'banned_at', 'deletion_requested',
            'deletion_requested_at', 'created_at', 'recipes_count',
        )
        read_only_fields = fields

    def get_recipes_count(self, obj):
        count = getattr(obj, 'recipes_count', None)
        if count is not None:
            return count
        return obj.recipes.count()


class LoginSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True)

    def validate(self, attrs):
        email = attrs.get('email')
        password = attrs.get('password')

        if email and password:
            user = authenticate(request=self.context.get('request'), username=email, password=password)
            if not user:
                raise serializers.ValidationError('بيانات الدخول غير صحيحة.')
            if not user.is_active:
                raise serializers.ValidationError('هذا الحساب معطل.')
            attrs['user'] = user
        else:
            raise serializers.ValidationError('البريد الإلكتروني وكلمة المرور مطلوبان.')

        return attrs
