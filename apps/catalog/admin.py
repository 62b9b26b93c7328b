# apps/catalog/admin.py
from django.contrib import admin
from .models import Product


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = (
        "name",
        "producer",
        "category",
        "price",
        "unit",
        "stock",
        "is_active",
    )
    search_fields = ("name", "description", "producer__name")
    list_filter = ("category", "is_active")
    list_editable = ("price", "is_active")
    # Stock only moves through orders
    readonly_fields = ("stock", "created_at", "updated_at")
