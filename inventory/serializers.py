# serializers.py - catalog and location read representations for the inspection workflow
from rest_framework import serializers

from inventory.models import Category, Item, Location


class CategorySerializer(serializers.ModelSerializer):
    parent_category_name = serializers.CharField(source='parent_category.name', read_only=True, default=None)
    effective_tracking_type = serializers.CharField(read_only=True)
    is_sub_category = serializers.BooleanField(read_only=True)
    items_count = serializers.SerializerMethodField()

    class Meta:
        model = Category
        fields = '__all__'

    def get_items_count(self, obj):
        return obj.items.count()


class ItemMinimalSerializer(serializers.ModelSerializer):
    tracking_type = serializers.CharField(read_only=True)

    class Meta:
        model = Item
        fields = ['id', 'name', 'code', 'category', 'tracking_type']


class ItemSerializer(serializers.ModelSerializer):
    category_name = serializers.CharField(source='category.name', read_only=True)
    parent_category_name = serializers.CharField(
        source='category.parent_category.name', read_only=True, default=None
    )
    tracking_type = serializers.CharField(read_only=True)
    default_location_name = serializers.CharField(source='default_location.name', read_only=True)
    total_instances = serializers.SerializerMethodField()

    class Meta:
        model = Item
        fields = '__all__'

    def get_total_instances(self, obj):
        return obj.instances.count()


class LocationMinimalSerializer(serializers.ModelSerializer):
    is_root_unit = serializers.SerializerMethodField()

    class Meta:
        model = Location
        fields = ['id', 'name', 'code', 'location_type', 'parent_location', 'is_standalone', 'is_root_unit']

    def get_is_root_unit(self, obj):
        return obj.parent_location_id is None
