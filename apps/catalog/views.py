from django.db.models import Q
from rest_framework import viewsets

from apps.audit.services import record_audit
from apps.catalog.models import Product
from apps.catalog.serializers import ProductSerializer
from apps.common.permissions import RolePermission, has_capability
from apps.common.responses import EnvelopeResponseMixin


class ProductViewSet(EnvelopeResponseMixin, viewsets.ModelViewSet):
    serializer_class = ProductSerializer
    permission_classes = [RolePermission]
    http_method_names = ["get", "post", "patch", "head", "options"]
    capability_map = {
        "list": ["catalog.view"],
        "retrieve": ["catalog.view"],
        "create": ["catalog.manage"],
        "partial_update": ["catalog.manage"],
    }

    def get_queryset(self):
        queryset = Product.objects.all()
        if not has_capability(self.request.user, "catalog.manage"):
            queryset = queryset.filter(is_active=True)

        query = self.request.query_params.get("q")
        if query:
            queryset = queryset.filter(Q(name__icontains=query) | Q(sku__icontains=query))

        is_active = self.request.query_params.get("is_active")
        if is_active is not None:
            normalized = is_active.strip().lower()
            if normalized in {"1", "true", "yes"}:
                queryset = queryset.filter(is_active=True)
            elif normalized in {"0", "false", "no"}:
                queryset = queryset.filter(is_active=False)
        return queryset

    def perform_create(self, serializer):
        product = serializer.save()
        record_audit(
            actor=self.request.user,
            action="catalog.product.create",
            entity_type="product",
            entity_id=product.id,
            payload={"sku": product.sku, "unit_price": str(product.unit_price), "tax_rate": str(product.tax_rate)},
        )

    def perform_update(self, serializer):
        old_product = self.get_object()
        before = {"unit_price": str(old_product.unit_price), "tax_rate": str(old_product.tax_rate), "is_active": old_product.is_active}
        product = serializer.save()
        after = {"unit_price": str(product.unit_price), "tax_rate": str(product.tax_rate), "is_active": product.is_active}
        record_audit(
            actor=self.request.user,
            action="catalog.product.update",
            entity_type="product",
            entity_id=product.id,
            payload={"before": before, "after": after},
        )
