from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from .serializers import OrderSerializer, PlaceOrderSerializer
from .services import OrderService


class PlaceOrderView(APIView):
    """
    Checkout endpoint.
    Expects: {"consumer_id": 3, "items": [{"id": 1, "quantity": 2, "price": "3.00"}], "total": "6.00"}

    Failures come back as {"error", "code"} with a single classification
    (see apps.utils.exceptions); the client keeps its cart and may retry.
    """
    permission_classes = [AllowAny]

    def post(self, request):
        serializer = PlaceOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        order_id = OrderService.place_order(
            consumer_id=data["consumer_id"],
            items=[dict(line) for line in data["items"]],
            total=data.get("total"),
        )
        return Response({"id": order_id}, status=status.HTTP_201_CREATED)


class ConsumerOrderListView(APIView):
    permission_classes = [AllowAny]

    def get(self, request, consumer_id):
        orders = OrderService.orders_for_consumer(consumer_id)
        return Response(OrderSerializer(orders, many=True).data)
