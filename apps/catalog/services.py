import logging
from typing import Dict, Iterable

from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import F

from apps.utils.exceptions import InsufficientStock, ResourceNotFound

from .models import Product

logger = logging.getLogger(__name__)

# Fields a producer may set on create / replace on update
EDITABLE_FIELDS = (
    "name",
    "description",
    "price",
    "unit",
    "stock",
    "category",
    "image_url",
    "is_active",
)


class ProductService:
    """
    Catalog store.
    ALL stock changes must pass through decrement_stock.
    """

    @staticmethod
    def list_active():
        return (
            Product.objects
            .filter(is_active=True)
            .select_related('producer')
            .annotate(
                producer_name=F('producer__name'),
                producer_location=F('producer__location'),
            )
        )

    @staticmethod
    def get_product(product_id, producer_id=None) -> Product:
        qs = Product.objects.select_related('producer')
        try:
            if producer_id is not None:
                qs = qs.filter(producer_id=producer_id)
            return qs.get(pk=product_id)
        except (Product.DoesNotExist, ValueError, TypeError, OverflowError):
            raise ResourceNotFound(f"Product {product_id} not found.")

    @staticmethod
    def get_producer(producer_id):
        User = get_user_model()
        try:
            return User.objects.producers().get(pk=producer_id)
        except (User.DoesNotExist, ValueError, TypeError, OverflowError):
            raise ResourceNotFound(f"Producer {producer_id} not found.")

    @staticmethod
    def create_product(producer_id, data: dict) -> Product:
        producer = ProductService.get_producer(producer_id)
        fields = {k: data[k] for k in EDITABLE_FIELDS if k in data}
        product = Product.objects.create(producer=producer, **fields)
        logger.info(
            f"Product {product.pk} created by producer {producer.pk}",
            extra={"product_id": product.pk, "user_id": producer.pk},
        )
        return product

    @staticmethod
    @transaction.atomic
    def update_product(product_id, data: dict, producer_id=None) -> Product:
        """
        Full field replacement. Optional fields absent from `data` fall back
        to their model defaults; `is_active` keeps its value.
        """
        product = ProductService.get_product(product_id, producer_id=producer_id)
        product = Product.objects.select_for_update().get(pk=product.pk)

        for name in EDITABLE_FIELDS:
            field = Product._meta.get_field(name)
            if name in data:
                setattr(product, name, data[name])
            elif name != "is_active" and (field.has_default() or field.blank):
                setattr(product, name, field.get_default())

        product.save()
        return product

    @staticmethod
    def delete_product(product_id, producer_id=None) -> None:
        product = ProductService.get_product(product_id, producer_id=producer_id)
        product.delete()
        logger.info(f"Product {product_id} deleted", extra={"product_id": product_id})

    @staticmethod
    def set_active(product_id, is_active: bool, producer_id=None) -> Product:
        product = ProductService.get_product(product_id, producer_id=producer_id)
        Product.objects.filter(pk=product.pk).update(is_active=is_active)
        product.refresh_from_db()
        return product

    @staticmethod
    def lock_for_order(product_ids: Iterable[int]) -> Dict[int, Product]:
        """
        Locks product rows in deterministic order to prevent deadlocks.
        Must be called inside transaction.atomic().
        """
        ordered_ids = sorted(set(product_ids))
        products = (
            Product.objects
            .select_for_update()
            .filter(pk__in=ordered_ids)
            .order_by('pk')
        )
        return {p.pk: p for p in products}

    @staticmethod
    def decrement_stock(product_id: int, quantity: int) -> int:
        """
        Conditional decrement: succeeds only if stock >= quantity.
        Exactly one row must be affected; returns the new stock.
        """
        if quantity <= 0:
            raise ValueError("quantity must be positive")

        updated = (
            Product.objects
            .filter(pk=product_id, stock__gte=quantity)
            .update(stock=F('stock') - quantity)
        )
        if updated == 1:
            return Product.objects.values_list('stock', flat=True).get(pk=product_id)

        current = Product.objects.filter(pk=product_id).values_list('stock', flat=True).first()
        if current is None:
            raise ResourceNotFound(f"Product {product_id} not found.")

        raise InsufficientStock(
            f"Insufficient stock for product {product_id}. "
            f"Required: {quantity}, Available: {current}",
            product_id=product_id,
            requested=quantity,
            available=current,
        )
