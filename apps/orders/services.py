import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from django.contrib.auth import get_user_model
from django.db import transaction, DatabaseError, IntegrityError, InterfaceError

from apps.accounts.models import Role
from apps.catalog.services import ProductService
from apps.utils.exceptions import (
    BusinessLogicException,
    ConflictError,
    InsufficientStock,
    InvalidOrder,
    ResourceNotFound,
    StorageUnavailable,
)
from .models import Order, OrderItem

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

# Largest value a BIGINT primary key can hold
MAX_ID = 2 ** 63 - 1

# PostgreSQL: serialization failure, deadlock, lock not available
CONFLICT_SQLSTATES = {"40001", "40P01", "55P03"}
CONFLICT_MARKERS = (
    "deadlock",
    "could not serialize",
    "could not obtain lock",
    "database is locked",
    "database table is locked",
)


@dataclass(frozen=True)
class CartLine:
    product_id: int
    quantity: int
    price: Decimal


def _sqlstate(exc: Exception):
    cause = getattr(exc, "__cause__", None)
    for source in (exc, cause):
        code = getattr(source, "pgcode", None) or getattr(source, "sqlstate", None)
        if code:
            return code
    return None


def classify_db_error(exc: Exception) -> BusinessLogicException:
    """
    Maps a driver error to the single error kind the engine surfaces.
    """
    if isinstance(exc, IntegrityError):
        return ConflictError("Order conflicted with a concurrent update. Please retry.")

    msg = str(exc).lower()
    if _sqlstate(exc) in CONFLICT_SQLSTATES or any(m in msg for m in CONFLICT_MARKERS):
        return ConflictError("Order conflicted with a concurrent update. Please retry.")

    return StorageUnavailable("Order storage is temporarily unavailable.")


def _parse_money(value, label: str) -> Decimal:
    if isinstance(value, bool):
        raise InvalidOrder(f"Invalid {label}: {value!r}.")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidOrder(f"Invalid {label}: {value!r}.")
    if not amount.is_finite() or amount < 0:
        raise InvalidOrder(f"Invalid {label}: {value!r}.")
    return amount


def normalize_cart(items) -> List[CartLine]:
    """
    Validates raw cart lines ({id|product_id, quantity, price}).
    Raises InvalidOrder on the first malformed line.
    """
    if not isinstance(items, (list, tuple)) or not items:
        raise InvalidOrder("Cart is empty.", code="empty_cart")

    lines = []
    seen = set()
    for raw in items:
        if not isinstance(raw, dict):
            raise InvalidOrder("Malformed cart line.")

        raw_id = raw.get("product_id", raw.get("id"))
        if isinstance(raw_id, bool):
            raise InvalidOrder(f"Invalid product id: {raw_id!r}.")
        try:
            product_id = int(raw_id)
        except (TypeError, ValueError):
            raise InvalidOrder(f"Invalid product id: {raw_id!r}.")
        if not 0 < product_id <= MAX_ID:
            raise ResourceNotFound(f"Product {product_id} not found.")

        quantity = raw.get("quantity")
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise InvalidOrder(f"Quantity for product {product_id} must be an integer.")
        if quantity <= 0:
            raise InvalidOrder(f"Quantity for product {product_id} must be positive.")

        if raw.get("price") is None:
            raise InvalidOrder(f"Price for product {product_id} is required.")
        price = _parse_money(raw["price"], "price")

        if product_id in seen:
            raise InvalidOrder(f"Product {product_id} appears twice in the cart.", code="duplicate_product")
        seen.add(product_id)

        lines.append(CartLine(product_id=product_id, quantity=quantity, price=price))

    return lines


class OrderService:

    @staticmethod
    def place_order(consumer_id, items, total=None) -> int:
        """
        Atomic order placement:
        1. Validate the cart shape (outside the transaction)
        2. Lock referenced products, re-check price, active flag and stock
        3. Decrement stock, create the order and its line items

        Every effect commits together or none do. Returns the new order id.
        No retries here: resubmitting the same cart creates a new order.
        """
        try:
            lines = normalize_cart(items)
            submitted_total = sum((l.price * l.quantity for l in lines), Decimal("0.00"))

            if total is not None:
                expected = _parse_money(total, "total")
                if expected.quantize(CENT) != submitted_total.quantize(CENT):
                    raise InvalidOrder(
                        f"Order total {expected} does not match its items ({submitted_total}).",
                        code="total_mismatch",
                    )

            order = OrderService._commit(consumer_id, lines)

        except BusinessLogicException as exc:
            logger.warning(
                f"Order rejected for consumer {consumer_id}: {exc.message}",
                extra={"user_id": consumer_id, "code": exc.code},
            )
            raise
        except (DatabaseError, InterfaceError) as exc:
            error = classify_db_error(exc)
            level = logging.WARNING if isinstance(error, ConflictError) else logging.ERROR
            logger.log(
                level,
                f"Order failed for consumer {consumer_id}: {exc}",
                extra={"user_id": consumer_id, "code": error.code},
            )
            raise error from exc

        logger.info(
            f"Order {order.pk} placed: {len(lines)} items, total {order.total}",
            extra={"order_id": order.pk, "user_id": order.consumer_id},
        )
        return order.pk

    @staticmethod
    @transaction.atomic
    def _commit(consumer_id, lines: List[CartLine]) -> Order:
        consumer = OrderService.get_consumer(consumer_id)

        # A. Lock rows (deterministic order) and re-read authoritative state
        products = ProductService.lock_for_order(l.product_id for l in lines)

        missing = sorted(l.product_id for l in lines if l.product_id not in products)
        if missing:
            raise ResourceNotFound(f"Product {missing[0]} not found.")

        total = Decimal("0.00")
        for line in lines:
            product = products[line.product_id]

            if not product.is_active:
                raise InvalidOrder(f"{product.name} is currently unavailable.", code="product_unavailable")

            # Never trust the client price
            if line.price != product.price:
                raise ConflictError(
                    f"Price of {product.name} changed to {product.price}.",
                    code="price_changed",
                )

            if product.stock < line.quantity:
                raise InsufficientStock(
                    f"Insufficient stock for {product.name}. "
                    f"Required: {line.quantity}, Available: {product.stock}",
                    product_id=product.pk,
                    requested=line.quantity,
                    available=product.stock,
                )

            total += product.price * line.quantity

        # B. Conditional decrements (stock >= qty enforced by the UPDATE itself)
        for line in lines:
            ProductService.decrement_stock(line.product_id, line.quantity)

        # C. Order + line items
        order = Order.objects.create(
            consumer=consumer,
            total=total,
            status=Order.Status.PENDING,
        )
        OrderItem.objects.bulk_create([
            OrderItem(
                order=order,
                product=products[line.product_id],
                product_name=products[line.product_id].name,
                price=products[line.product_id].price,
                quantity=line.quantity,
            )
            for line in lines
        ])

        return order

    @staticmethod
    def get_consumer(consumer_id):
        User = get_user_model()
        try:
            return User.objects.get(pk=consumer_id, role=Role.CONSUMER, is_active=True)
        except (User.DoesNotExist, ValueError, TypeError, OverflowError):
            raise ResourceNotFound(f"Consumer {consumer_id} not found.")

    @staticmethod
    def orders_for_consumer(consumer_id):
        """
        Orders newest first, line items prefetched.
        """
        consumer = OrderService.get_consumer(consumer_id)
        return (
            Order.objects
            .filter(consumer=consumer)
            .prefetch_related('items')
            .order_by('-created_at', '-id')
        )
