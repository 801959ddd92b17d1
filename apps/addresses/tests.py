from unittest import mock

import httpx
from django.contrib.auth import get_user_model
from django.test import SimpleTestCase
from rest_framework.test import APITestCase

from apps.addresses.models import Address, normalize_ph_mobile
from apps.addresses.psgc import PsgcClient
from apps.audit.models import AuditLog

User = get_user_model()

ADDRESS_PAYLOAD = {
    "nickname": "Home",
    "full_name": "Juan Dela Cruz",
    "phone": "09171234567",
    "email": "juan@example.com",
    "province": "Laguna",
    "province_code": "043400000",
    "city": "Calamba",
    "city_code": "043405000",
    "barangay": "Real",
    "barangay_code": "043405045",
    "street": "123 Rizal St.",
    "postal_code": "4027",
}


class PhoneNormalizationTests(SimpleTestCase):
    def test_common_spellings_normalize_to_e164(self):
        for raw in ("09171234567", "9171234567", "+639171234567", "639171234567", "0917-123-4567"):
            with self.subTest(raw=raw):
                self.assertEqual(normalize_ph_mobile(raw), "+639171234567")

    def test_invalid_numbers_are_rejected(self):
        for raw in ("", "0817123456", "08171234567", "abc", "+1 555 0100"):
            with self.subTest(raw=raw):
                self.assertIsNone(normalize_ph_mobile(raw))


class AddressApiTests(APITestCase):
    def setUp(self):
        self.customer = User.objects.create_user(username="juan", password="juan123", role="CUSTOMER")
        self.other = User.objects.create_user(username="maria", password="maria123", role="CUSTOMER")

    def auth(self, username, password):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")

    def create(self, **overrides):
        return self.client.post("/api/v1/addresses/", {**ADDRESS_PAYLOAD, **overrides}, format="json")

    def test_first_address_becomes_default_and_phone_is_normalized(self):
        self.auth("juan", "juan123")
        response = self.create()
        self.assertEqual(response.status_code, 201)
        self.assertTrue(response.data["data"]["is_default"])
        self.assertEqual(response.data["data"]["phone"], "+639171234567")

        second = self.create(nickname="Office")
        self.assertEqual(second.status_code, 201)
        self.assertFalse(second.data["data"]["is_default"])

    def test_set_default_moves_the_flag(self):
        self.auth("juan", "juan123")
        first = self.create().data["data"]["id"]
        second = self.create(nickname="Office").data["data"]["id"]

        response = self.client.post(f"/api/v1/addresses/{second}/set-default/")
        self.assertEqual(response.status_code, 200)
        self.assertTrue(Address.objects.get(pk=second).is_default)
        self.assertFalse(Address.objects.get(pk=first).is_default)
        self.assertEqual(Address.objects.filter(customer=self.customer, is_default=True).count(), 1)

    def test_deleting_default_promotes_remaining_address(self):
        self.auth("juan", "juan123")
        first = self.create().data["data"]["id"]
        second = self.create(nickname="Office").data["data"]["id"]

        response = self.client.delete(f"/api/v1/addresses/{first}/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["data"]["promoted_default"], second)
        self.assertTrue(Address.objects.get(pk=second).is_default)

    def test_update_is_audited(self):
        self.auth("juan", "juan123")
        address_id = self.create().data["data"]["id"]

        response = self.client.patch(f"/api/v1/addresses/{address_id}/", {"street": "99 Mabini St."}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["data"]["street"], "99 Mabini St.")
        entry = AuditLog.objects.get(action="address.update", entity_id=address_id)
        self.assertEqual(entry.payload["fields"], ["street"])

    def test_invalid_phone_and_postal_code_are_rejected(self):
        self.auth("juan", "juan123")
        response = self.create(phone="12345", postal_code="40a7")
        self.assertEqual(response.status_code, 400)
        self.assertFalse(response.data["success"])
        self.assertIn("phone", response.data["fields"])
        self.assertIn("postal_code", response.data["fields"])

    def test_customers_only_see_their_own_addresses(self):
        self.auth("juan", "juan123")
        address_id = self.create().data["data"]["id"]

        self.auth("maria", "maria123")
        listing = self.client.get("/api/v1/addresses/")
        self.assertEqual(listing.data["data"]["count"], 0)
        self.assertEqual(self.client.get(f"/api/v1/addresses/{address_id}/").status_code, 404)


class PsgcApiTests(APITestCase):
    def setUp(self):
        User.objects.create_user(username="juan", password="juan123", role="CUSTOMER")
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": "juan", "password": "juan123"},
            format="json",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")

    def patch_client(self, handler):
        client = PsgcClient("https://psgc.test/api", 1.0, transport=httpx.MockTransport(handler))
        return mock.patch.object(PsgcClient, "from_settings", return_value=client)

    def test_provinces_are_sorted_by_name(self):
        def handler(request):
            self.assertEqual(request.url.path, "/api/provinces/")
            return httpx.Response(
                200,
                json=[{"code": "043400000", "name": "Laguna"}, {"code": "042100000", "name": "Cavite"}],
            )

        with self.patch_client(handler):
            response = self.client.get("/api/v1/psgc/provinces/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual([row["name"] for row in response.data["data"]], ["Cavite", "Laguna"])

    def test_cities_use_the_province_code(self):
        def handler(request):
            self.assertEqual(request.url.path, "/api/provinces/043400000/cities-municipalities/")
            return httpx.Response(200, json=[{"code": "043405000", "name": "Calamba"}])

        with self.patch_client(handler):
            response = self.client.get("/api/v1/psgc/provinces/043400000/cities/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["data"], [{"code": "043405000", "name": "Calamba"}])

    def test_timeout_surfaces_retryable_error(self):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        with self.patch_client(handler):
            response = self.client.get("/api/v1/psgc/cities/043405000/barangays/")
        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.data["code"], "psgc_unavailable")

    def test_unknown_code_is_not_found(self):
        with self.patch_client(lambda request: httpx.Response(404, json={"message": "not found"})):
            response = self.client.get("/api/v1/psgc/provinces/999999999/cities/")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data["code"], "not_found")

    def test_unreadable_payload_surfaces_retryable_error(self):
        for body in (b"<html>maintenance</html>", b'[{"code": "043400000"}]'):
            with self.subTest(body=body):
                with self.patch_client(lambda request, body=body: httpx.Response(200, content=body)):
                    response = self.client.get("/api/v1/psgc/provinces/")
                self.assertEqual(response.status_code, 503)
                self.assertEqual(response.data["code"], "psgc_unavailable")
