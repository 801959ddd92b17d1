from django.db.models import Q
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.views import APIView

from apps.common.exceptions import DomainValidationError
from apps.common.permissions import RolePermission, has_capability
from apps.common.responses import EnvelopeResponseMixin, api_success
from apps.orders.serializers import OrderSerializer
from apps.payments.models import PaymentVerification
from apps.payments.serializers import (
    PaymentDecisionSerializer,
    PaymentSubmitSerializer,
    PaymentTermsSerializer,
    PaymentVerificationSerializer,
    RejectVerificationSerializer,
)
from apps.payments.services import approve_verification, decide_payment, reject_verification, submit_proof


class PaymentDecisionView(APIView):
    permission_classes = [RolePermission]
    capability_map = {"post": ["payments.decide"]}

    def post(self, request, pk):
        serializer = PaymentDecisionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        terms = decide_payment(
            pk,
            serializer.validated_data["method"],
            serializer.validated_data["deposit_rate"],
            actor=request.user,
            customer=request.user,
        )
        return api_success(PaymentTermsSerializer(terms).data, message="Payment method saved.")


class PaymentVerificationViewSet(EnvelopeResponseMixin, viewsets.ModelViewSet):
    queryset = PaymentVerification.objects.select_related("order", "submitted_by", "reviewed_by")
    serializer_class = PaymentVerificationSerializer
    permission_classes = [RolePermission]
    http_method_names = ["get", "post", "head", "options"]
    capability_map = {
        "list": ["payments.view"],
        "retrieve": ["payments.view"],
        "create": ["payments.submit"],
        "approve": ["payments.review"],
        "reject": ["payments.review"],
    }

    def get_queryset(self):
        queryset = super().get_queryset()
        if not has_capability(self.request.user, "payments.view.all"):
            queryset = queryset.filter(order__customer=self.request.user)

        status_param = self.request.query_params.get("status")
        order_param = self.request.query_params.get("order")
        query = self.request.query_params.get("q")
        if status_param:
            queryset = queryset.filter(status=status_param.upper())
        if order_param:
            if not order_param.isdigit():
                raise DomainValidationError("order must be a numeric order id.", fields={"order": "Invalid order id."})
            queryset = queryset.filter(order_id=order_param)
        if query:
            queryset = queryset.filter(
                Q(reference_number__icontains=query)
                | Q(account_name__icontains=query)
                | Q(order__order_code__icontains=query)
            )
        return queryset

    def create(self, request, *args, **kwargs):
        serializer = PaymentSubmitSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        verification = submit_proof(
            data["order_id"],
            data.get("method"),
            data["account_name"],
            data["account_number"],
            data["reference_number"],
            data["amount"],
            data["screenshot"],
            actor=request.user,
            customer=request.user,
            order_code=data.get("order_code") or None,
            terms_accepted=data["terms_accepted"],
        )
        return api_success(
            {"verification_id": verification.id, "verification": PaymentVerificationSerializer(verification).data},
            message="Payment submitted for verification.",
            status_code=status.HTTP_201_CREATED,
        )

    @action(detail=True, methods=["post"])
    def approve(self, request, pk=None):
        verification, order = approve_verification(pk, actor=request.user)
        return api_success(
            {"verification": PaymentVerificationSerializer(verification).data, "order": OrderSerializer(order).data},
            message="Payment approved.",
        )

    @action(detail=True, methods=["post"])
    def reject(self, request, pk=None):
        serializer = RejectVerificationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        verification, order = reject_verification(pk, serializer.validated_data["reason"], actor=request.user)
        return api_success(
            {"verification": PaymentVerificationSerializer(verification).data, "order": OrderSerializer(order).data},
            message="Payment rejected.",
        )
