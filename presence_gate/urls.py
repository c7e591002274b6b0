"""
Root URL configuration for the Presence Gate service.

The HTTP surface is the versioned REST API plus the Django admin used to
maintain office settings and inspect attendance records.
"""

from django.contrib import admin
from django.urls import include, path

from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView, TokenVerifyView

urlpatterns = [
    path("api/v1/auth/login/", TokenObtainPairView.as_view(), name="token_obtain_pair"),
    path("api/v1/auth/refresh/", TokenRefreshView.as_view(), name="token_refresh"),
    path("api/v1/auth/verify/", TokenVerifyView.as_view(), name="token_verify"),
    path("api/v1/", include("recognition.api.urls")),
    path("api/v1/", include("attendance.api.urls")),
    path("django-admin/", admin.site.urls),
]
