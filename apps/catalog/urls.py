from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import ProductViewSet, ProducerProfileView

router = DefaultRouter()
router.register(r"products", ProductViewSet, basename="product")

urlpatterns = [
    path("", include(router.urls)),
    path("producers/<int:producer_id>/", ProducerProfileView.as_view(), name="producer-profile"),
]
