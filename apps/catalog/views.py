from rest_framework import viewsets, status
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView
from django_filters.rest_framework import DjangoFilterBackend

from apps.utils.exceptions import InvalidOrder
from .filters import ProductFilter
from .serializers import (
    ProductSerializer,
    ProductWriteSerializer,
    ProducerProfileSerializer,
    ToggleActiveSerializer,
)
from .services import ProductService


class ProductViewSet(viewsets.GenericViewSet):
    """
    Public product list plus producer-scoped writes.
    Every write goes through ProductService; the storefront refetches the
    list after each mutation, so nothing here is cached.
    """
    serializer_class = ProductSerializer
    permission_classes = [AllowAny]
    filter_backends = [DjangoFilterBackend]
    filterset_class = ProductFilter

    def get_queryset(self):
        return ProductService.list_active()

    def list(self, request):
        qs = self.filter_queryset(self.get_queryset())
        return Response(ProductSerializer(qs, many=True).data)

    def retrieve(self, request, pk=None):
        product = ProductService.get_product(pk)
        return Response(ProductSerializer(product).data)

    def create(self, request):
        serializer = ProductWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)

        producer_id = data.pop("producer_id", None)
        if producer_id is None:
            raise InvalidOrder("producer_id is required.")

        product = ProductService.create_product(producer_id, data)
        return Response({"id": product.pk}, status=status.HTTP_201_CREATED)

    def update(self, request, pk=None):
        serializer = ProductWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        producer_id = data.pop("producer_id", None)

        ProductService.update_product(pk, data, producer_id=producer_id)
        return Response({"success": True})

    def destroy(self, request, pk=None):
        producer_id = request.query_params.get("producer_id")
        ProductService.delete_product(pk, producer_id=producer_id)
        return Response({"success": True})

    @action(detail=True, methods=["post"], url_path="toggle-active")
    def toggle_active(self, request, pk=None):
        serializer = ToggleActiveSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        producer_id = serializer.validated_data.get("producer_id")

        product = ProductService.get_product(pk, producer_id=producer_id)
        target = serializer.validated_data.get("is_active", not product.is_active)
        product = ProductService.set_active(product.pk, target, producer_id=producer_id)
        return Response({"id": product.pk, "is_active": product.is_active})


class ProducerProfileView(APIView):
    permission_classes = [AllowAny]

    def get(self, request, producer_id):
        producer = ProductService.get_producer(producer_id)
        return Response(ProducerProfileSerializer(producer).data)
