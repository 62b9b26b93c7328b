# apps/catalog/models.py
from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models

from apps.utils.models import TimestampedModel


class Product(TimestampedModel):
    """
    Sellable item listed by a producer.

    NOTE:
    - `stock` is only decremented through ProductService.decrement_stock,
      which never lets it go below zero. The check constraint backs that up.
    - Order line items snapshot the price, so editing `price` here never
      rewrites history.
    """
    producer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='products',
    )
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.00"))],
    )
    unit = models.CharField(max_length=50, help_text="kg, litro, frasco...")
    stock = models.PositiveIntegerField(default=0)
    category = models.CharField(max_length=100, blank=True, db_index=True)
    image_url = models.CharField(max_length=500, blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = 'products'
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['is_active', 'category'], name='products_active_category_idx'),
            models.Index(fields=['producer', 'is_active'], name='products_producer_active_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(stock__gte=0),
                name='product_stock_non_negative',
            ),
            models.CheckConstraint(
                condition=models.Q(price__gte=0),
                name='product_price_non_negative',
            ),
        ]

    def __str__(self):
        return f"{self.name} ({self.price}/{self.unit}) | Stock: {self.stock}"
