from django.db.models import Q
from rest_framework import status, viewsets
from rest_framework.decorators import action

from apps.common.permissions import RolePermission, has_capability
from apps.common.responses import EnvelopeResponseMixin, api_success
from apps.orders.models import Order
from apps.orders.serializers import (
    OrderCreateSerializer,
    OrderDetailSerializer,
    OrderSerializer,
    OrderStatusUpdateSerializer,
    PaymentStatusUpdateSerializer,
)
from apps.orders.services import create_order, get_order_details, update_payment_status, update_status


class OrderViewSet(EnvelopeResponseMixin, viewsets.ModelViewSet):
    queryset = Order.objects.select_related("customer", "payment_terms").order_by("-created_at")
    serializer_class = OrderSerializer
    permission_classes = [RolePermission]
    http_method_names = ["get", "post", "head", "options"]
    capability_map = {
        "list": ["orders.view"],
        "retrieve": ["orders.view"],
        "create": ["orders.create"],
        "change_status": ["orders.status"],
        "change_payment_status": ["orders.payment_status"],
    }

    def _customer_scope(self):
        if has_capability(self.request.user, "orders.view.all"):
            return None
        return self.request.user

    def get_queryset(self):
        queryset = super().get_queryset()
        customer = self._customer_scope()
        if customer is not None:
            queryset = queryset.filter(customer=customer)

        status_param = self.request.query_params.get("status")
        payment_status = self.request.query_params.get("payment_status")
        query = self.request.query_params.get("q")
        if status_param:
            queryset = queryset.filter(status=status_param)
        if payment_status:
            queryset = queryset.filter(payment_status=payment_status)
        if query:
            queryset = queryset.filter(
                Q(order_code__icontains=query)
                | Q(recipient_name__icontains=query)
                | Q(customer__username__icontains=query)
                | Q(customer__email__icontains=query)
            )
        return queryset

    def create(self, request, *args, **kwargs):
        serializer = OrderCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        order = create_order(
            customer=request.user,
            lines=data["_lines"],
            delivery_mode=data["mode"],
            delivery_info=dict(data.get("info") or {}),
            terms_agreed=data["terms_agreed"],
            client_totals=data["_client_totals"],
        )
        body = {"order_id": order.id, "order_code": order.order_code, "order": OrderSerializer(order).data}
        return api_success(body, message="Order created.", status_code=status.HTTP_201_CREATED)

    def retrieve(self, request, *args, **kwargs):
        details = get_order_details(kwargs["pk"], customer=self._customer_scope())
        return api_success(OrderDetailSerializer(details).data)

    @action(detail=True, methods=["post"], url_path="status")
    def change_status(self, request, pk=None):
        serializer = OrderStatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = update_status(
            pk,
            serializer.validated_data["status"],
            notes=serializer.validated_data["notes"],
            actor=request.user,
        )
        return api_success(OrderSerializer(order).data, message=f"Order status updated to {order.status}.")

    @action(detail=True, methods=["post"], url_path="payment-status")
    def change_payment_status(self, request, pk=None):
        serializer = PaymentStatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = update_payment_status(pk, serializer.validated_data["payment_status"], actor=request.user)
        return api_success(OrderSerializer(order).data, message=f"Payment status set to {order.payment_status_text}.")
