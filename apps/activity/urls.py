"""
URL configuration for activity app.
"""
from django.urls import path, include
from rest_framework.routers import SimpleRouter
from .views import ActivityLogViewSet

app_name = 'activity'

router = SimpleRouter()
router.register(r'logs', ActivityLogViewSet, basename='activity-log')

urlpatterns = [
    path('', include(router.urls)),
]
