from decimal import Decimal

from rest_framework import serializers
from .models import Order, OrderItem


class OrderItemSerializer(serializers.ModelSerializer):
    name = serializers.CharField(source='product_name', read_only=True)
    subtotal = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = OrderItem
        fields = ['id', 'order_id', 'product_id', 'name', 'quantity', 'price', 'subtotal']


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)

    class Meta:
        model = Order
        fields = [
            'id', 'consumer_id', 'total', 'status', 'status_display',
            'created_at', 'items'
        ]


class CartLineSerializer(serializers.Serializer):
    """
    One cart line. Storefront clients post the whole product object, so
    unknown keys are ignored.
    """
    id = serializers.IntegerField()
    quantity = serializers.IntegerField(min_value=1)
    price = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal("0.00"))


class PlaceOrderSerializer(serializers.Serializer):
    consumer_id = serializers.IntegerField()
    items = CartLineSerializer(many=True, allow_empty=False)
    total = serializers.DecimalField(
        max_digits=None, decimal_places=None, min_value=Decimal("0.00"), required=False
    )

    def to_internal_value(self, data):
        # Accept the camelCase key used by the storefront
        if hasattr(data, "get") and "consumerId" in data and "consumer_id" not in data:
            data = {**data, "consumer_id": data["consumerId"]}
        return super().to_internal_value(data)
