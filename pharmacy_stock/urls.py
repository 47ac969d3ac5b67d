"""
URL configuration for pharmacy_stock project.
"""
from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path('admin/', admin.site.urls),

    # API endpoints (REST API)
    path('api/medicines/', include('apps.medicines.urls')),
    path('api/inventory/', include('apps.inventory.urls')),
    path('api/activity/', include('apps.activity.urls')),
    path('api/dashboard/', include('apps.dashboard.urls')),
]
