from rest_framework.routers import DefaultRouter

from apps.addresses.views import AddressViewSet, PsgcViewSet

router = DefaultRouter()
router.register("addresses", AddressViewSet, basename="address")
router.register("psgc", PsgcViewSet, basename="psgc")

urlpatterns = router.urls
