# views.py - read-only catalog endpoints used while linking inspection items
from rest_framework import viewsets
from rest_framework.permissions import IsAuthenticated

from inventory import services
from inventory.models import Category, Item
from inventory.serializers import CategorySerializer, ItemSerializer


# ==================== CATEGORY VIEWSET ====================
class CategoryViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Category.objects.filter(is_active=True).select_related('parent_category')
    serializer_class = CategorySerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        queryset = super().get_queryset()
        parent = self.request.query_params.get('parent_category')
        level = self.request.query_params.get('level')

        if parent:
            queryset = queryset.filter(parent_category_id=parent)
        if level == 'broader':
            queryset = queryset.filter(parent_category__isnull=True)
        elif level == 'sub':
            queryset = queryset.filter(parent_category__isnull=False)
        return queryset


# ==================== ITEM VIEWSET ====================
class ItemViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Item.objects.select_related('category__parent_category', 'default_location')
    serializer_class = ItemSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        queryset = services.search_items(
            self.request.query_params.get('search'),
            queryset=super().get_queryset()
        )
        category = self.request.query_params.get('category')
        if category:
            queryset = queryset.filter(category_id=category)
        return queryset
