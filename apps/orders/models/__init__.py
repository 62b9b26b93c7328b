"""
Top-level models import shim for the Orders app, so that

    from apps.orders.models import Order, OrderItem

keeps working while the models live in separate modules.
"""

from .order import *          # Order
from .item import *           # OrderItem
