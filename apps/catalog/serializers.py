# apps/catalog/serializers.py
from decimal import Decimal

from rest_framework import serializers

from .models import Product


class ProductSerializer(serializers.ModelSerializer):
    """
    Read shape used by the storefront, producer display fields joined in.
    """
    producer_id = serializers.IntegerField(read_only=True)
    producer_name = serializers.SerializerMethodField()
    producer_location = serializers.SerializerMethodField()

    class Meta:
        model = Product
        fields = [
            "id",
            "producer_id",
            "producer_name",
            "producer_location",
            "name",
            "description",
            "price",
            "unit",
            "stock",
            "category",
            "image_url",
            "is_active",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_producer_name(self, obj):
        # Annotated by ProductService.list_active, otherwise follow the FK
        return getattr(obj, "producer_name", None) or obj.producer.name

    def get_producer_location(self, obj):
        value = getattr(obj, "producer_location", None)
        return value if value is not None else obj.producer.location


class ProductWriteSerializer(serializers.Serializer):
    """
    Input for POST (create) and PUT (full replacement).
    """
    producer_id = serializers.IntegerField(required=False)
    name = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    price = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal("0.00"))
    unit = serializers.CharField(max_length=50)
    stock = serializers.IntegerField(min_value=0, default=0)
    category = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")
    image_url = serializers.CharField(max_length=500, required=False, allow_blank=True, default="")
    is_active = serializers.BooleanField(required=False)

    def to_internal_value(self, data):
        # Storefront clients send the camelCase flag
        if hasattr(data, "get") and "isActive" in data and "is_active" not in data:
            data = {**data, "is_active": data["isActive"]}
        return super().to_internal_value(data)


class ToggleActiveSerializer(serializers.Serializer):
    is_active = serializers.BooleanField(required=False)
    producer_id = serializers.IntegerField(required=False)


class ProducerProfileSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    name = serializers.CharField()
    email = serializers.EmailField()
    location = serializers.CharField()
    description = serializers.CharField()
    image_url = serializers.CharField()
    products = serializers.SerializerMethodField()

    def get_products(self, obj):
        qs = obj.products.select_related("producer").order_by("-created_at", "-id")
        return ProductSerializer(qs, many=True, context=self.context).data
