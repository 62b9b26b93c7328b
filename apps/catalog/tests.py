# apps/catalog/tests.py
from decimal import Decimal
from io import StringIO

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.test import TestCase
from django.urls import reverse

from rest_framework import status
from rest_framework.test import APITestCase, APIClient

from apps.accounts.models import Role
from apps.orders.models import Order, OrderItem
from apps.utils.exceptions import InsufficientStock, ResourceNotFound
from .models import Product
from .services import ProductService

User = get_user_model()


class ProductServiceTests(TestCase):
    def setUp(self):
        self.producer = User.objects.create_user(
            "olivo@farm.com", name="Granja El Olivo", role=Role.PRODUCER, location="Valle Central"
        )
        self.other = User.objects.create_user("huerto@farm.com", name="Huerto Familiar", role=Role.PRODUCER)
        self.product = Product.objects.create(
            producer=self.producer,
            name="Tomates Cherry",
            description="Dulces y jugosos",
            price=Decimal("3.00"),
            unit="kg",
            stock=20,
            category="Verduras",
        )

    def test_decrement_stock_returns_new_stock(self):
        self.assertEqual(ProductService.decrement_stock(self.product.pk, 5), 15)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 15)

    def test_decrement_stock_never_goes_negative(self):
        with self.assertRaises(InsufficientStock) as ctx:
            ProductService.decrement_stock(self.product.pk, 21)

        self.assertEqual(ctx.exception.available, 20)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 20)

    def test_decrement_stock_unknown_product(self):
        with self.assertRaises(ResourceNotFound):
            ProductService.decrement_stock(999999, 1)

    def test_decrement_stock_rejects_non_positive_quantity(self):
        with self.assertRaises(ValueError):
            ProductService.decrement_stock(self.product.pk, 0)

    def test_list_active_hides_inactive_and_joins_producer(self):
        Product.objects.create(
            producer=self.other, name="Miel", price=Decimal("8.00"), unit="frasco", stock=3, is_active=False
        )

        products = list(ProductService.list_active())

        self.assertEqual([p.pk for p in products], [self.product.pk])
        self.assertEqual(products[0].producer_name, "Granja El Olivo")
        self.assertEqual(products[0].producer_location, "Valle Central")

    def test_update_is_full_replacement(self):
        ProductService.update_product(
            self.product.pk,
            {"name": "Tomates Pera", "price": Decimal("2.80"), "unit": "kg", "stock": 7},
        )

        self.product.refresh_from_db()
        self.assertEqual(self.product.name, "Tomates Pera")
        self.assertEqual(self.product.stock, 7)
        self.assertEqual(self.product.description, "")
        self.assertEqual(self.product.category, "")
        self.assertTrue(self.product.is_active)

    def test_writes_scoped_to_owner(self):
        with self.assertRaises(ResourceNotFound):
            ProductService.delete_product(self.product.pk, producer_id=self.other.pk)
        with self.assertRaises(ResourceNotFound):
            ProductService.set_active(self.product.pk, False, producer_id=self.other.pk)

        self.assertTrue(Product.objects.filter(pk=self.product.pk, is_active=True).exists())

    def test_create_for_non_producer_fails(self):
        consumer = User.objects.create_user("ana@example.com", name="Ana", role=Role.CONSUMER)
        with self.assertRaises(ResourceNotFound):
            ProductService.create_product(consumer.pk, {"name": "X", "price": Decimal("1.00"), "unit": "kg"})

    def test_lock_for_order_skips_unknown_ids(self):
        locked = ProductService.lock_for_order([999999, self.product.pk])
        self.assertEqual(list(locked), [self.product.pk])


class ProductAPITests(APITestCase):
    def setUp(self):
        self.client = APIClient()
        self.producer = User.objects.create_user(
            "olivo@farm.com", name="Granja El Olivo", role=Role.PRODUCER, location="Valle Central"
        )
        self.other = User.objects.create_user("huerto@farm.com", name="Huerto Familiar", role=Role.PRODUCER)

        self.tomatoes = Product.objects.create(
            producer=self.producer, name="Tomates Cherry", price=Decimal("3.00"),
            unit="kg", stock=20, category="Verduras",
        )
        self.honey = Product.objects.create(
            producer=self.other, name="Miel de Abeja", price=Decimal("8.00"),
            unit="frasco", stock=0, category="Despensa",
        )
        self.hidden = Product.objects.create(
            producer=self.producer, name="Aceite", price=Decimal("12.50"),
            unit="litro", stock=50, category="Aceites", is_active=False,
        )

    def test_list_only_active_products(self):
        resp = self.client.get(reverse("product-list"))

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        ids = {p["id"] for p in resp.data}
        self.assertEqual(ids, {self.tomatoes.pk, self.honey.pk})

        tomatoes = next(p for p in resp.data if p["id"] == self.tomatoes.pk)
        self.assertEqual(tomatoes["producer_name"], "Granja El Olivo")
        self.assertEqual(tomatoes["producer_id"], self.producer.pk)
        self.assertEqual(tomatoes["price"], "3.00")

    def test_list_filters(self):
        resp = self.client.get(reverse("product-list"), {"category": "verduras"})
        self.assertEqual([p["id"] for p in resp.data], [self.tomatoes.pk])

        resp = self.client.get(reverse("product-list"), {"producer": self.other.pk})
        self.assertEqual([p["id"] for p in resp.data], [self.honey.pk])

        resp = self.client.get(reverse("product-list"), {"in_stock": "true"})
        self.assertEqual([p["id"] for p in resp.data], [self.tomatoes.pk])

        resp = self.client.get(reverse("product-list"), {"max_price": "5"})
        self.assertEqual([p["id"] for p in resp.data], [self.tomatoes.pk])

    def test_retrieve_unknown_product_404(self):
        resp = self.client.get(reverse("product-detail", kwargs={"pk": 999999}))
        self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(resp.data["code"], "not_found")

    def test_create_product(self):
        resp = self.client.post(reverse("product-list"), {
            "producer_id": self.producer.pk,
            "name": "Lechuga",
            "price": "1.20",
            "unit": "unidad",
            "stock": 30,
            "category": "Verduras",
        }, format="json")

        self.assertEqual(resp.status_code, status.HTTP_201_CREATED)
        product = Product.objects.get(pk=resp.data["id"])
        self.assertEqual(product.producer, self.producer)
        self.assertTrue(product.is_active)

    def test_create_requires_producer(self):
        resp = self.client.post(reverse("product-list"), {
            "name": "Lechuga", "price": "1.20", "unit": "unidad",
        }, format="json")
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)

    def test_create_rejects_negative_price_and_stock(self):
        for field, value in (("price", "-1.00"), ("stock", -3)):
            with self.subTest(field=field):
                payload = {"producer_id": self.producer.pk, "name": "X", "price": "1.00", "unit": "kg"}
                payload[field] = value
                resp = self.client.post(reverse("product-list"), payload, format="json")
                self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
                self.assertEqual(resp.data["code"], "validation_error")

    def test_put_replaces_product(self):
        resp = self.client.put(reverse("product-detail", kwargs={"pk": self.tomatoes.pk}), {
            "name": "Tomates Cherry Bio",
            "price": "3.50",
            "unit": "kg",
            "stock": 12,
            "isActive": False,
        }, format="json")

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data, {"success": True})
        self.tomatoes.refresh_from_db()
        self.assertEqual(self.tomatoes.price, Decimal("3.50"))
        self.assertEqual(self.tomatoes.stock, 12)
        self.assertFalse(self.tomatoes.is_active)
        self.assertEqual(self.tomatoes.category, "")

    def test_put_by_other_producer_404(self):
        resp = self.client.put(reverse("product-detail", kwargs={"pk": self.tomatoes.pk}), {
            "producer_id": self.other.pk, "name": "Robado", "price": "1.00", "unit": "kg",
        }, format="json")

        self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)
        self.tomatoes.refresh_from_db()
        self.assertEqual(self.tomatoes.name, "Tomates Cherry")

    def test_delete_keeps_order_history(self):
        consumer = User.objects.create_user("ana@example.com", name="Ana", role=Role.CONSUMER)
        order = Order.objects.create(consumer=consumer, total=Decimal("6.00"))
        OrderItem.objects.create(
            order=order, product=self.tomatoes, product_name="Tomates Cherry",
            price=Decimal("3.00"), quantity=2,
        )

        resp = self.client.delete(reverse("product-detail", kwargs={"pk": self.tomatoes.pk}))

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertFalse(Product.objects.filter(pk=self.tomatoes.pk).exists())
        item = OrderItem.objects.get(order=order)
        self.assertIsNone(item.product_id)
        self.assertEqual(item.product_name, "Tomates Cherry")

    def test_delete_scoped_by_query_param(self):
        url = reverse("product-detail", kwargs={"pk": self.tomatoes.pk})
        resp = self.client.delete(f"{url}?producer_id={self.other.pk}")

        self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)
        self.assertTrue(Product.objects.filter(pk=self.tomatoes.pk).exists())

    def test_toggle_active(self):
        url = reverse("product-toggle-active", kwargs={"pk": self.tomatoes.pk})

        resp = self.client.post(url, {}, format="json")
        self.assertEqual(resp.data, {"id": self.tomatoes.pk, "is_active": False})

        resp = self.client.post(url, {"is_active": True}, format="json")
        self.assertTrue(resp.data["is_active"])

    def test_hidden_product_stays_in_producer_profile(self):
        resp = self.client.get(reverse("producer-profile", kwargs={"producer_id": self.producer.pk}))

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data["name"], "Granja El Olivo")
        self.assertEqual(
            {p["id"] for p in resp.data["products"]},
            {self.tomatoes.pk, self.hidden.pk},
        )

    def test_profile_of_consumer_404(self):
        consumer = User.objects.create_user("ana@example.com", name="Ana", role=Role.CONSUMER)
        resp = self.client.get(reverse("producer-profile", kwargs={"producer_id": consumer.pk}))
        self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)


class SeedMarketplaceCommandTests(TestCase):
    def test_seed_is_idempotent(self):
        call_command("seed_marketplace", stdout=StringIO())
        call_command("seed_marketplace", stdout=StringIO())

        self.assertEqual(User.objects.filter(role=Role.PRODUCER).count(), 2)
        self.assertEqual(Product.objects.count(), 4)

        tomatoes = Product.objects.get(name="Tomates Cherry")
        self.assertEqual(tomatoes.stock, 20)
        self.assertEqual(tomatoes.price, Decimal("3.00"))
        self.assertEqual(tomatoes.producer.email, "olivo@farm.com")
