from django.urls import path
from .views import PlaceOrderView, ConsumerOrderListView

urlpatterns = [
    path('orders/', PlaceOrderView.as_view(), name='order-place'),
    path('orders/<int:consumer_id>/', ConsumerOrderListView.as_view(), name='consumer-orders'),
]
