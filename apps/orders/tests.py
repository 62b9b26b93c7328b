# apps/orders/tests.py
import threading
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from unittest import mock

from django.contrib.auth import get_user_model
from django.db import OperationalError, connection
from django.test import SimpleTestCase, TestCase, TransactionTestCase
from django.urls import reverse

from rest_framework import status
from rest_framework.test import APITestCase, APIClient

from apps.accounts.models import Role
from apps.catalog.models import Product
from apps.catalog.services import ProductService
from apps.utils.exceptions import (
    ConflictError,
    InsufficientStock,
    InvalidOrder,
    ResourceNotFound,
    StorageUnavailable,
)
from .cart import ClientCart
from .models import Order, OrderItem
from .services import OrderService, classify_db_error


User = get_user_model()


def make_producer(email="olivo@farm.com", name="Granja El Olivo"):
    return User.objects.create_user(email, name=name, role=Role.PRODUCER, location="Valle Central")


def make_consumer(email="ana@example.com", name="Ana"):
    return User.objects.create_user(email, name=name, role=Role.CONSUMER)


def make_product(producer, **kwargs):
    fields = {
        "name": "Tomates Cherry",
        "price": Decimal("3.00"),
        "unit": "kg",
        "stock": 20,
        "category": "Verduras",
    }
    fields.update(kwargs)
    return Product.objects.create(producer=producer, **fields)


class PlaceOrderServiceTests(TestCase):
    def setUp(self):
        self.producer = make_producer()
        self.consumer = make_consumer()
        self.tomatoes = make_product(self.producer)
        self.oil = make_product(self.producer, name="Aceite de Oliva", price=Decimal("12.50"), stock=50, unit="litro")

    def _line(self, product, quantity, price=None):
        return {"id": product.pk, "quantity": quantity, "price": str(price or product.price)}

    def assertNothingWritten(self):
        self.assertEqual(Order.objects.count(), 0)
        self.assertEqual(OrderItem.objects.count(), 0)
        self.tomatoes.refresh_from_db()
        self.oil.refresh_from_db()
        self.assertEqual(self.tomatoes.stock, 20)
        self.assertEqual(self.oil.stock, 50)

    def test_single_line_order_decrements_stock(self):
        order_id = OrderService.place_order(
            self.consumer.pk, [self._line(self.tomatoes, 2)], total="6.00"
        )

        order = Order.objects.get(pk=order_id)
        self.assertEqual(order.consumer, self.consumer)
        self.assertEqual(order.status, Order.Status.PENDING)
        self.assertEqual(order.total, Decimal("6.00"))

        item = order.items.get()
        self.assertEqual(item.product, self.tomatoes)
        self.assertEqual(item.quantity, 2)
        self.assertEqual(item.price, Decimal("3.00"))
        self.assertEqual(item.product_name, "Tomates Cherry")

        self.tomatoes.refresh_from_db()
        self.assertEqual(self.tomatoes.stock, 18)

    def test_total_matches_line_items(self):
        order_id = OrderService.place_order(
            self.consumer.pk,
            [self._line(self.tomatoes, 3), self._line(self.oil, 2)],
        )
        order = Order.objects.get(pk=order_id)

        self.assertEqual(order.total, Decimal("34.00"))
        self.assertEqual(order.total, sum(i.price * i.quantity for i in order.items.all()))
        self.assertEqual(order.items_total, order.total)

        self.oil.refresh_from_db()
        self.tomatoes.refresh_from_db()
        self.assertEqual(self.oil.stock, 48)
        self.assertEqual(self.tomatoes.stock, 17)

    def test_quantity_above_stock_is_rejected(self):
        with self.assertRaises(InsufficientStock) as ctx:
            OrderService.place_order(self.consumer.pk, [self._line(self.tomatoes, 25)], total="75.00")

        self.assertEqual(ctx.exception.requested, 25)
        self.assertEqual(ctx.exception.available, 20)
        self.assertNothingWritten()

    def test_exact_stock_can_be_sold(self):
        OrderService.place_order(self.consumer.pk, [self._line(self.tomatoes, 20)])
        self.tomatoes.refresh_from_db()
        self.assertEqual(self.tomatoes.stock, 0)

    def test_unknown_product_rolls_back_whole_cart(self):
        cart = [self._line(self.oil, 1), {"id": 999999, "quantity": 1, "price": "1.00"}]

        with self.assertRaises(ResourceNotFound):
            OrderService.place_order(self.consumer.pk, cart)

        self.assertNothingWritten()

    def test_out_of_range_product_id_is_not_found(self):
        for product_id in (2 ** 63, 99999999999999999999, 0, -5):
            with self.subTest(product_id=product_id):
                cart = [self._line(self.oil, 1), {"id": product_id, "quantity": 1, "price": "1.00"}]
                with self.assertRaises(ResourceNotFound):
                    OrderService.place_order(self.consumer.pk, cart)

        self.assertNothingWritten()

    def test_out_of_range_consumer_id_is_not_found(self):
        with self.assertRaises(ResourceNotFound):
            OrderService.place_order(2 ** 64, [self._line(self.tomatoes, 1)])
        self.assertNothingWritten()

    def test_failure_on_second_line_keeps_first_line_stock(self):
        cart = [self._line(self.oil, 5), self._line(self.tomatoes, 21)]

        with self.assertRaises(InsufficientStock):
            OrderService.place_order(self.consumer.pk, cart)

        self.assertNothingWritten()

    def test_non_positive_quantity_is_validation_error(self):
        for quantity in (0, -1):
            with self.subTest(quantity=quantity):
                with self.assertRaises(InvalidOrder) as ctx:
                    OrderService.place_order(self.consumer.pk, [self._line(self.tomatoes, quantity)])
                self.assertNotIsInstance(ctx.exception, ResourceNotFound)
                self.assertEqual(ctx.exception.code, "validation_error")

        self.assertNothingWritten()

    def test_malformed_carts_are_rejected(self):
        bad_carts = [
            [],
            None,
            [{"id": self.tomatoes.pk, "quantity": "2", "price": "3.00"}],
            [{"id": self.tomatoes.pk, "quantity": 1.5, "price": "3.00"}],
            [{"id": self.tomatoes.pk, "quantity": True, "price": "3.00"}],
            [{"id": "abc", "quantity": 1, "price": "3.00"}],
            [{"id": self.tomatoes.pk, "quantity": 1}],
            [{"id": self.tomatoes.pk, "quantity": 1, "price": "-3.00"}],
            [{"id": self.tomatoes.pk, "quantity": 1, "price": "cheap"}],
        ]
        for cart in bad_carts:
            with self.subTest(cart=cart):
                with self.assertRaises(InvalidOrder):
                    OrderService.place_order(self.consumer.pk, cart)

        self.assertNothingWritten()

    def test_empty_cart_code(self):
        with self.assertRaises(InvalidOrder) as ctx:
            OrderService.place_order(self.consumer.pk, [])
        self.assertEqual(ctx.exception.code, "empty_cart")

    def test_duplicate_product_lines_rejected(self):
        with self.assertRaises(InvalidOrder) as ctx:
            OrderService.place_order(
                self.consumer.pk, [self._line(self.tomatoes, 1), self._line(self.tomatoes, 2)]
            )
        self.assertEqual(ctx.exception.code, "duplicate_product")
        self.assertNothingWritten()

    def test_total_mismatch_rejected(self):
        with self.assertRaises(InvalidOrder) as ctx:
            OrderService.place_order(self.consumer.pk, [self._line(self.tomatoes, 2)], total="5.00")
        self.assertEqual(ctx.exception.code, "total_mismatch")
        self.assertNothingWritten()

    def test_float_total_within_a_cent_is_accepted(self):
        order_id = OrderService.place_order(
            self.consumer.pk, [self._line(self.tomatoes, 2)], total=6.0000000001
        )
        self.assertEqual(Order.objects.get(pk=order_id).total, Decimal("6.00"))

    def test_stale_client_price_is_conflict(self):
        with self.assertRaises(ConflictError) as ctx:
            OrderService.place_order(
                self.consumer.pk, [self._line(self.tomatoes, 2, price="2.00")], total="4.00"
            )
        self.assertEqual(ctx.exception.code, "price_changed")
        self.assertNothingWritten()

    def test_inactive_product_rejected(self):
        Product.objects.filter(pk=self.tomatoes.pk).update(is_active=False)

        with self.assertRaises(InvalidOrder) as ctx:
            OrderService.place_order(self.consumer.pk, [self._line(self.tomatoes, 1)])
        self.assertEqual(ctx.exception.code, "product_unavailable")
        self.assertNothingWritten()

    def test_unknown_consumer_not_found(self):
        with self.assertRaises(ResourceNotFound):
            OrderService.place_order(424242, [self._line(self.tomatoes, 1)])
        self.assertNothingWritten()

    def test_producer_account_cannot_place_orders(self):
        with self.assertRaises(ResourceNotFound):
            OrderService.place_order(self.producer.pk, [self._line(self.tomatoes, 1)])
        self.assertNothingWritten()

    def test_line_price_survives_catalog_price_change(self):
        order_id = OrderService.place_order(self.consumer.pk, [self._line(self.tomatoes, 2)])

        Product.objects.filter(pk=self.tomatoes.pk).update(price=Decimal("4.75"))

        item = OrderItem.objects.get(order_id=order_id)
        self.assertEqual(item.price, Decimal("3.00"))
        self.assertEqual(Order.objects.get(pk=order_id).total, Decimal("6.00"))

    def test_resubmitting_same_cart_creates_new_order(self):
        cart = [self._line(self.tomatoes, 2)]
        first = OrderService.place_order(self.consumer.pk, cart)
        second = OrderService.place_order(self.consumer.pk, cart)

        self.assertNotEqual(first, second)
        self.assertEqual(Order.objects.filter(consumer=self.consumer).count(), 2)
        self.tomatoes.refresh_from_db()
        self.assertEqual(self.tomatoes.stock, 16)

    def test_stock_taken_between_lock_and_decrement(self):
        """
        The conditional UPDATE is the final guard: if stock shrinks after the
        pre-check, the whole order is abandoned.
        """
        original = ProductService.lock_for_order

        def lock_then_drain(product_ids):
            locked = original(product_ids)
            Product.objects.filter(pk=self.tomatoes.pk).update(stock=1)
            return locked

        with mock.patch.object(ProductService, "lock_for_order", side_effect=lock_then_drain):
            with self.assertRaises(InsufficientStock):
                OrderService.place_order(
                    self.consumer.pk, [self._line(self.oil, 1), self._line(self.tomatoes, 2)]
                )

        # The drain ran inside the same savepoint, so it is rolled back too
        self.assertNothingWritten()

    def test_lock_failure_surfaces_as_conflict(self):
        with mock.patch.object(
            Order.objects, "create", side_effect=OperationalError("database is locked")
        ):
            with self.assertLogs("apps.orders.services", level="WARNING") as logs:
                with self.assertRaises(ConflictError):
                    OrderService.place_order(self.consumer.pk, [self._line(self.tomatoes, 2)])

        self.assertEqual([r.levelname for r in logs.records], ["WARNING"])
        self.assertNothingWritten()

    def test_connection_failure_surfaces_as_storage_unavailable(self):
        with mock.patch.object(
            Order.objects, "create", side_effect=OperationalError("could not connect to server")
        ):
            with self.assertLogs("apps.orders.services", level="WARNING") as logs:
                with self.assertRaises(StorageUnavailable):
                    OrderService.place_order(self.consumer.pk, [self._line(self.tomatoes, 2)])

        self.assertEqual([r.levelname for r in logs.records], ["ERROR"])
        self.assertNothingWritten()


class ClassifyDbErrorTests(SimpleTestCase):
    def test_sqlstate_codes(self):
        exc = OperationalError("boom")
        exc.pgcode = "40P01"
        self.assertIsInstance(classify_db_error(exc), ConflictError)

    def test_unknown_error_is_storage_unavailable(self):
        self.assertIsInstance(classify_db_error(OperationalError("server closed the connection")), StorageUnavailable)


class ConcurrentOrderTests(TransactionTestCase):
    # Real transactions, one connection per thread

    def setUp(self):
        producer = make_producer()
        self.product = make_product(producer, stock=1)
        self.consumers = [make_consumer(f"buyer{i}@example.com", f"Buyer {i}") for i in range(4)]

    def test_last_unit_is_sold_once(self):
        barrier = threading.Barrier(len(self.consumers))

        def place(consumer_id):
            try:
                barrier.wait(timeout=5)
                OrderService.place_order(
                    consumer_id, [{"id": self.product.pk, "quantity": 1, "price": "3.00"}]
                )
                return "SUCCESS"
            except (InsufficientStock, ConflictError):
                return "REJECTED"
            finally:
                connection.close()

        with ThreadPoolExecutor(max_workers=len(self.consumers)) as executor:
            results = list(executor.map(place, [c.pk for c in self.consumers]))

        self.assertEqual(results.count("SUCCESS"), 1)
        self.assertEqual(results.count("REJECTED"), 3)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 0)
        self.assertEqual(Order.objects.count(), 1)


class OrderAPITests(APITestCase):
    def setUp(self):
        self.client = APIClient()
        self.producer = make_producer()
        self.consumer = make_consumer()
        self.tomatoes = make_product(self.producer)
        self.url = reverse("order-place")

    def test_place_order_returns_id(self):
        resp = self.client.post(self.url, {
            "consumer_id": self.consumer.pk,
            "items": [{"id": self.tomatoes.pk, "quantity": 2, "price": 3.00}],
            "total": 6.00,
        }, format="json")

        self.assertEqual(resp.status_code, status.HTTP_201_CREATED)
        self.assertTrue(Order.objects.filter(pk=resp.data["id"]).exists())
        self.tomatoes.refresh_from_db()
        self.assertEqual(self.tomatoes.stock, 18)

    def test_storefront_payload_with_full_product_objects(self):
        # The SPA posts whole cart items and the camelCase consumer key
        resp = self.client.post(self.url, {
            "consumerId": self.consumer.pk,
            "items": [{
                "id": self.tomatoes.pk,
                "name": "Tomates Cherry",
                "unit": "kg",
                "stock": 20,
                "quantity": 1,
                "price": 3.0,
            }],
            "total": 3.0,
        }, format="json")

        self.assertEqual(resp.status_code, status.HTTP_201_CREATED)

    def test_insufficient_stock_is_409(self):
        resp = self.client.post(self.url, {
            "consumer_id": self.consumer.pk,
            "items": [{"id": self.tomatoes.pk, "quantity": 25, "price": "3.00"}],
            "total": "75.00",
        }, format="json")

        self.assertEqual(resp.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(resp.data["code"], "insufficient_stock")
        self.assertEqual(resp.data["details"]["available"], 20)
        self.assertEqual(Order.objects.count(), 0)

    def test_unknown_product_is_404(self):
        resp = self.client.post(self.url, {
            "consumer_id": self.consumer.pk,
            "items": [{"id": 999999, "quantity": 1, "price": "3.00"}],
        }, format="json")

        self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(resp.data["code"], "not_found")

    def test_oversized_product_id_is_404(self):
        resp = self.client.post(self.url, {
            "consumer_id": self.consumer.pk,
            "items": [{"id": 99999999999999999999, "quantity": 1, "price": "3.00"}],
        }, format="json")

        self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(resp.data["code"], "not_found")
        self.assertEqual(Order.objects.count(), 0)
        self.tomatoes.refresh_from_db()
        self.assertEqual(self.tomatoes.stock, 20)

    def test_zero_quantity_is_400(self):
        resp = self.client.post(self.url, {
            "consumer_id": self.consumer.pk,
            "items": [{"id": self.tomatoes.pk, "quantity": 0, "price": "3.00"}],
        }, format="json")

        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(resp.data["code"], "validation_error")
        self.tomatoes.refresh_from_db()
        self.assertEqual(self.tomatoes.stock, 20)

    def test_empty_cart_is_400(self):
        resp = self.client.post(self.url, {"consumer_id": self.consumer.pk, "items": []}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(resp.data["code"], "validation_error")

    def test_price_changed_is_409(self):
        resp = self.client.post(self.url, {
            "consumer_id": self.consumer.pk,
            "items": [{"id": self.tomatoes.pk, "quantity": 1, "price": "2.50"}],
        }, format="json")

        self.assertEqual(resp.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(resp.data["code"], "price_changed")

    def test_consumer_orders_with_item_names(self):
        oil = make_product(self.producer, name="Aceite de Oliva", price=Decimal("12.50"))
        first = OrderService.place_order(
            self.consumer.pk, [{"id": self.tomatoes.pk, "quantity": 1, "price": "3.00"}]
        )
        second = OrderService.place_order(
            self.consumer.pk, [{"id": oil.pk, "quantity": 2, "price": "12.50"}]
        )

        resp = self.client.get(reverse("consumer-orders", kwargs={"consumer_id": self.consumer.pk}))

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual([o["id"] for o in resp.data], [second, first])
        latest = resp.data[0]
        self.assertEqual(latest["status"], "pending")
        self.assertEqual(latest["total"], "25.00")
        self.assertEqual(latest["items"][0]["name"], "Aceite de Oliva")
        self.assertEqual(latest["items"][0]["quantity"], 2)
        self.assertEqual(latest["items"][0]["price"], "12.50")

    def test_orders_of_other_consumers_are_not_listed(self):
        other = make_consumer("otro@example.com", "Otro")
        OrderService.place_order(other.pk, [{"id": self.tomatoes.pk, "quantity": 1, "price": "3.00"}])

        resp = self.client.get(reverse("consumer-orders", kwargs={"consumer_id": self.consumer.pk}))
        self.assertEqual(resp.data, [])

    def test_unknown_consumer_orders_404(self):
        resp = self.client.get(reverse("consumer-orders", kwargs={"consumer_id": 424242}))
        self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)

    def test_oversized_consumer_id_orders_404(self):
        resp = self.client.get(reverse("consumer-orders", kwargs={"consumer_id": 2 ** 64}))
        self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)


class ClientCartTests(SimpleTestCase):
    def setUp(self):
        self.cart = ClientCart()
        self.tomatoes = {"id": 2, "name": "Tomates Cherry", "price": "3.00", "stock": 20}
        self.honey = {"id": 3, "name": "Miel", "price": 8.0, "stock": 2}

    def test_adding_twice_merges_quantity(self):
        self.cart.add(self.tomatoes)
        self.cart.add(self.tomatoes)
        self.assertEqual(len(self.cart), 1)
        self.assertEqual(self.cart.items[0].quantity, 2)

    def test_quantity_is_clamped_to_stock_and_one(self):
        self.cart.add(self.honey)
        self.cart.update_quantity(3, +5)
        self.assertEqual(self.cart.items[0].quantity, 2)
        self.cart.update_quantity(3, -10)
        self.assertEqual(self.cart.items[0].quantity, 1)

    def test_total_and_count(self):
        self.cart.add(self.tomatoes, quantity=2)
        self.cart.add(self.honey)
        self.assertEqual(self.cart.total, Decimal("14.00"))
        self.assertEqual(self.cart.count, 3)

    def test_remove_and_clear(self):
        self.cart.add(self.tomatoes)
        self.cart.add(self.honey)
        self.cart.remove(2)
        self.assertEqual([i.product_id for i in self.cart.items], [3])
        self.cart.clear()
        self.assertEqual(len(self.cart), 0)

    def test_order_payload(self):
        self.cart.add(self.tomatoes, quantity=2)
        payload = self.cart.as_order_payload(consumer_id=7)
        self.assertEqual(payload, {
            "consumer_id": 7,
            "items": [{"id": 2, "quantity": 2, "price": "3.00"}],
            "total": "6.00",
        })

    def test_non_positive_add_rejected(self):
        with self.assertRaises(ValueError):
            self.cart.add(self.tomatoes, quantity=0)


class CartCheckoutTests(APITestCase):
    """Cart payload goes straight into the order endpoint."""

    def test_cart_payload_is_accepted(self):
        producer = make_producer()
        consumer = make_consumer()
        product = make_product(producer)
        cart = ClientCart()
        cart.add(product, quantity=3)

        resp = self.client.post(reverse("order-place"), cart.as_order_payload(consumer.pk), format="json")

        self.assertEqual(resp.status_code, status.HTTP_201_CREATED)
        product.refresh_from_db()
        self.assertEqual(product.stock, 17)
