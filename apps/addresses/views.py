from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from apps.addresses.models import Address
from apps.addresses.psgc import PsgcClient
from apps.addresses.serializers import AddressSerializer, PsgcAreaSerializer
from apps.addresses.services import create_address, delete_address, set_default_address, update_address
from apps.common.permissions import RolePermission
from apps.common.responses import EnvelopeResponseMixin, api_success


class AddressViewSet(EnvelopeResponseMixin, viewsets.ModelViewSet):
    serializer_class = AddressSerializer
    permission_classes = [RolePermission]
    http_method_names = ["get", "post", "patch", "delete", "head", "options"]
    capability_map = {
        "list": ["addresses.manage"],
        "retrieve": ["addresses.manage"],
        "create": ["addresses.manage"],
        "partial_update": ["addresses.manage"],
        "destroy": ["addresses.manage"],
        "set_default": ["addresses.manage"],
    }

    def get_queryset(self):
        return Address.objects.filter(customer=self.request.user).order_by("-is_default", "-created_at")

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        address = create_address(customer=request.user, data=dict(serializer.validated_data))
        return api_success(self.get_serializer(address).data, message="Address saved.", status_code=status.HTTP_201_CREATED)

    def partial_update(self, request, *args, **kwargs):
        address = self.get_object()
        serializer = self.get_serializer(address, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        address = update_address(address=address, data=dict(serializer.validated_data))
        return api_success(self.get_serializer(address).data, message="Address updated.")

    def destroy(self, request, *args, **kwargs):
        promoted = delete_address(address=self.get_object())
        data = {"promoted_default": str(promoted.id) if promoted else None}
        return api_success(data, message="Address deleted.")

    @action(detail=True, methods=["post"], url_path="set-default")
    def set_default(self, request, pk=None):
        address = set_default_address(address=self.get_object())
        return api_success(self.get_serializer(address).data, message="Default address updated.")


class PsgcViewSet(EnvelopeResponseMixin, viewsets.ViewSet):
    permission_classes = [RolePermission]

    def _respond(self, loader):
        with PsgcClient.from_settings() as client:
            areas = loader(client)
        return Response(PsgcAreaSerializer(areas, many=True).data)

    @action(detail=False, methods=["get"])
    def provinces(self, request):
        return self._respond(lambda client: client.provinces())

    @action(detail=False, methods=["get"], url_path=r"provinces/(?P<province_code>\d+)/cities")
    def cities(self, request, province_code=None):
        return self._respond(lambda client: client.cities(province_code))

    @action(detail=False, methods=["get"], url_path=r"cities/(?P<city_code>\d+)/barangays")
    def barangays(self, request, city_code=None):
        return self._respond(lambda client: client.barangays(city_code))
