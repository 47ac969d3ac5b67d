"""
URL configuration for inventory app.
"""
from django.urls import path, include
from rest_framework.routers import SimpleRouter
from .views import BatchViewSet, DiscardViewSet

app_name = 'inventory'

router = SimpleRouter()
router.register(r'batches', BatchViewSet, basename='batch')
router.register(r'discards', DiscardViewSet, basename='discard')

urlpatterns = [
    path('', include(router.urls)),
]
