from django.contrib import admin
from .models import Order, OrderItem


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = ('product', 'product_name', 'price', 'quantity', 'subtotal')

    def has_add_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """
    Orders are created only by OrderService; the admin can move status.
    """
    list_display = ('id', 'consumer', 'status', 'total', 'created_at')
    list_filter = ('status', 'created_at')
    search_fields = ('id', 'consumer__email', 'consumer__name')
    inlines = [OrderItemInline]
    readonly_fields = ('consumer', 'total', 'created_at')

    def has_add_permission(self, request):
        return False


@admin.register(OrderItem)
class OrderItemAdmin(admin.ModelAdmin):
    list_display = ('order', 'product_name', 'quantity', 'price')
    search_fields = ('order__id', 'product_name')
    readonly_fields = ('order', 'product', 'product_name', 'price', 'quantity')
