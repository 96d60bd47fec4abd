from django.urls import include, path
from rest_framework.routers import DefaultRouter

from inventory.views import CategoryViewSet, ItemViewSet

router = DefaultRouter()
router.register(r'items', ItemViewSet, basename='item')
router.register(r'categories', CategoryViewSet, basename='category')

urlpatterns = [
    path('', include(router.urls)),
]
