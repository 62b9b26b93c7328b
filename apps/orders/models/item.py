from django.db import models
from .order import Order

__all__ = ["OrderItem"]


class OrderItem(models.Model):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='items')
    # Nulled when the producer hard-deletes the product
    product = models.ForeignKey(
        'catalog.Product',
        null=True,
        on_delete=models.SET_NULL,
        related_name='order_items',
    )

    # Snapshot fields (never rewritten after insert)
    product_name = models.CharField(max_length=255)
    price = models.DecimalField(max_digits=10, decimal_places=2)

    quantity = models.PositiveIntegerField()

    class Meta:
        db_table = 'order_items'
        ordering = ['id']
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gt=0),
                name='order_item_quantity_positive',
            ),
        ]

    @property
    def subtotal(self):
        return self.price * self.quantity

    def __str__(self):
        return f"{self.quantity}x {self.product_name}"
