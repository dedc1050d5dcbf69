from django.urls import path
from rest_framework_simplejwt.views import TokenRefreshView
from .views import (
    RegisterView,
    MeView,
    StatusView,
    EmailOrUsernameTokenObtainPairView,
    UserSearchView,
    ContactsView,
    ContactDetailView,
)

urlpatterns = [
    path("register/", RegisterView.as_view(), name="register"),
    path("login/", EmailOrUsernameTokenObtainPairView.as_view(), name="token_obtain_pair"),
    path("token/refresh/", TokenRefreshView.as_view(), name="token_refresh"),
    path("me/", MeView.as_view(), name="me"),
    path("me/status/", StatusView.as_view(), name="me-status"),
    path("users/search/", UserSearchView.as_view(), name="users-search"),
    path("contacts/", ContactsView.as_view(), name="contacts"),
    path("contacts/<int:user_id>/", ContactDetailView.as_view(), name="contact-detail"),
]
