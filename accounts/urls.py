from django.urls import path
from rest_framework_simplejwt.views import TokenRefreshView
from . import views

urlpatterns = [
    path('register/', views.register_view, name='register'),
    path('login/', views.login_view, name='login'),
    path('logout/', views.logout_view, name='logout'),
    path('me/', views.me_view, name='me'),
    path('me/request-deletion/', views.request_deletion_view, name='request_deletion'),
    path('me/cancel-deletion/', views.cancel_deletion_view, name='cancel_deletion'),
    path('users/<int:user_id>/', views.user_detail_view, name='user_detail'),
    path('users/<int:user_id>/recipes/', views.user_recipes_view, name='user_recipes'),
    path('token/refresh/', TokenRefreshView.as_view(), name='token_refresh'),
]
