from django.conf import settings
from django.db import models

__all__ = ["Order"]


class Order(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        # Set only by the fulfilment workflow
        CONFIRMED = "confirmed", "Confirmed"
        DELIVERED = "delivered", "Delivered"
        CANCELLED = "cancelled", "Cancelled"

    consumer = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='orders')

    # Always equals sum(item.price * item.quantity) at creation
    total = models.DecimalField(max_digits=12, decimal_places=2)

    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        db_table = 'orders'
        ordering = ['-created_at', '-id']
        constraints = [
            models.CheckConstraint(
                condition=models.Q(total__gte=0),
                name='order_total_non_negative',
            ),
        ]

    def __str__(self):
        return f"Order #{self.pk} [{self.status}] {self.total}"

    @property
    def items_total(self):
        return sum((i.subtotal for i in self.items.all()), start=0)
