# services/scheduling-service/src/config/urls.py
"""
URL configuration for Scheduling Service
"""

from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    # Admin
    path('admin/', admin.site.urls),

    # API v1
    path('api/v1/', include('apps.api.urls')),
]
