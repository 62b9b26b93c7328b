# apps/utils/tests.py
import json
import logging

from django.http import Http404
from django.test import SimpleTestCase, TestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.exceptions import ValidationError

from .exceptions import (
    ConflictError,
    InsufficientStock,
    InvalidOrder,
    ResourceNotFound,
    StorageUnavailable,
    custom_exception_handler,
)
from .logging import JSONFormatter


class ExceptionHandlerTests(SimpleTestCase):
    def test_domain_errors_map_to_status_and_code(self):
        cases = [
            (InvalidOrder("Cart is empty.", code="empty_cart"), 400, "empty_cart"),
            (ResourceNotFound("Product 9 not found."), 404, "not_found"),
            (ConflictError("Retry"), 409, "conflict"),
            (StorageUnavailable("Down"), 503, "storage_unavailable"),
        ]
        for exc, status_code, code in cases:
            with self.subTest(exc=exc):
                resp = custom_exception_handler(exc, {})
                self.assertEqual(resp.status_code, status_code)
                self.assertEqual(resp.data, {"error": exc.message, "code": code})

    def test_insufficient_stock_carries_details(self):
        exc = InsufficientStock("Not enough", product_id=1, requested=25, available=20)
        resp = custom_exception_handler(exc, {})

        self.assertEqual(resp.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(resp.data["details"], {"product_id": 1, "requested": 25, "available": 20})

    def test_drf_validation_error_is_normalized(self):
        resp = custom_exception_handler(ValidationError({"quantity": ["Must be positive."]}), {})

        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(resp.data["code"], "validation_error")
        self.assertEqual(resp.data["error"], "Must be positive.")
        self.assertIn("quantity", resp.data["details"])

    def test_http404(self):
        resp = custom_exception_handler(Http404(), {})
        self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(resp.data["code"], "not_found")

    def test_unexpected_error_is_500(self):
        with self.assertLogs("apps.utils.exceptions", level="ERROR"):
            resp = custom_exception_handler(RuntimeError("boom"), {})
        self.assertEqual(resp.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(resp.data["code"], "server_error")


class JSONFormatterTests(SimpleTestCase):
    def _record(self, msg, args=None, **extra):
        record = logging.LogRecord("apps.orders", logging.INFO, __file__, 1, msg, args, None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_context_fields_are_emitted(self):
        out = json.loads(JSONFormatter().format(self._record("Order placed", order_id=5, user_id=3)))

        self.assertEqual(out["msg"], "Order placed")
        self.assertEqual(out["lvl"], "INFO")
        self.assertEqual(out["order_id"], 5)
        self.assertEqual(out["user_id"], 3)

    def test_sensitive_keys_are_redacted(self):
        record = self._record({"email": "ana@example.com", "items": [{"password": "x", "id": 1}]})
        out = json.loads(JSONFormatter().format(record))

        self.assertIn("***REDACTED***", out["msg"])
        self.assertNotIn("ana@example.com", out["msg"])
        self.assertNotIn("'x'", out["msg"])


class HealthCheckTests(TestCase):
    def test_health_ok(self):
        resp = self.client.get(reverse("health-check"))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["components"]["db"], "ok")
