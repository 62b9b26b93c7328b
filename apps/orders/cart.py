"""
In-memory shopping cart held by a single consumer session.

Never persisted: the whole cart is submitted to ``POST /api/orders/`` and
cleared only once the order is accepted, so a failed checkout leaves it
intact for a retry.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional


@dataclass
class CartItem:
    product_id: int
    name: str
    price: Decimal
    stock: int
    quantity: int = 1

    @property
    def subtotal(self) -> Decimal:
        return self.price * self.quantity


class ClientCart:
    def __init__(self):
        self._items: Dict[int, CartItem] = {}

    @staticmethod
    def _field(product, name):
        if isinstance(product, dict):
            return product[name]
        return getattr(product, name)

    def add(self, product, quantity: int = 1) -> CartItem:
        """
        Adds a product (model instance or API dict). Adding the same
        product again bumps its quantity.
        """
        if quantity <= 0:
            raise ValueError("quantity must be positive")

        product_id = int(self._field(product, "id"))
        item = self._items.get(product_id)
        if item is not None:
            item.quantity += quantity
            return item

        item = CartItem(
            product_id=product_id,
            name=self._field(product, "name"),
            price=Decimal(str(self._field(product, "price"))),
            stock=int(self._field(product, "stock")),
            quantity=quantity,
        )
        self._items[product_id] = item
        return item

    def update_quantity(self, product_id: int, delta: int) -> Optional[CartItem]:
        """Shift quantity by delta, clamped to [1, stock]."""
        item = self._items.get(product_id)
        if item is None:
            return None
        upper = max(1, item.stock)
        item.quantity = max(1, min(upper, item.quantity + delta))
        return item

    def remove(self, product_id: int) -> None:
        self._items.pop(product_id, None)

    def clear(self) -> None:
        self._items.clear()

    @property
    def items(self) -> List[CartItem]:
        return list(self._items.values())

    @property
    def total(self) -> Decimal:
        return sum((i.subtotal for i in self._items.values()), Decimal("0.00"))

    @property
    def count(self) -> int:
        return sum(i.quantity for i in self._items.values())

    def __len__(self):
        return len(self._items)

    def as_order_payload(self, consumer_id) -> dict:
        return {
            "consumer_id": consumer_id,
            "items": [
                {"id": i.product_id, "quantity": i.quantity, "price": str(i.price)}
                for i in self._items.values()
            ],
            "total": str(self.total),
        }
