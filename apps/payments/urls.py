from django.urls import path
from rest_framework.routers import DefaultRouter

from apps.payments.views import PaymentDecisionView, PaymentVerificationViewSet

router = DefaultRouter()
router.register("payment-verifications", PaymentVerificationViewSet, basename="payment-verification")

urlpatterns = [
    path("orders/<int:pk>/payment-decision/", PaymentDecisionView.as_view(), name="order-payment-decision"),
    *router.urls,
]
