from decimal import Decimal

from django.contrib.auth import get_user_model
from rest_framework.test import APITestCase

from apps.audit.models import AuditLog
from apps.catalog.models import Product

User = get_user_model()


class CatalogTests(APITestCase):
    def setUp(self):
        self.admin = User.objects.create_user(username="admin", password="admin123", role="ADMIN")
        self.customer = User.objects.create_user(username="buyer", password="buyer123", role="CUSTOMER")

    def auth(self, username, password):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")

    def test_product_create_and_update_are_audited(self):
        self.auth("admin", "admin123")
        created = self.client.post(
            "/api/v1/products/",
            {"sku": "rt-001", "name": "Torque Wrench", "unit_price": "1500.00", "is_active": True},
            format="json",
        )
        self.assertEqual(created.status_code, 201)
        self.assertTrue(created.data["success"])
        product_id = created.data["data"]["id"]
        self.assertEqual(created.data["data"]["sku"], "RT-001")
        self.assertEqual(created.data["data"]["tax_rate"], "12.00")

        updated = self.client.patch(f"/api/v1/products/{product_id}/", {"unit_price": "1600.00"}, format="json")
        self.assertEqual(updated.status_code, 200)
        self.assertEqual(updated.data["data"]["unit_price"], "1600.00")

        self.assertTrue(AuditLog.objects.filter(action="catalog.product.create", entity_id=product_id).exists())
        update_log = AuditLog.objects.get(action="catalog.product.update", entity_id=product_id)
        self.assertEqual(update_log.payload["before"]["unit_price"], "1500.00")
        self.assertEqual(update_log.payload["after"]["unit_price"], "1600.00")

    def test_unit_price_must_be_positive(self):
        self.auth("admin", "admin123")
        response = self.client.post(
            "/api/v1/products/",
            {"sku": "RT-002", "name": "Drill", "unit_price": "0.00"},
            format="json",
        )
        self.assertEqual(response.status_code, 400)
        self.assertFalse(response.data["success"])
        self.assertIn("unit_price", response.data["fields"])

    def test_customer_sees_only_active_products_and_cannot_create(self):
        Product.objects.create(sku="RT-010", name="Grinder", unit_price=Decimal("900.00"))
        Product.objects.create(sku="RT-011", name="Old Saw", unit_price=Decimal("500.00"), is_active=False)
        self.auth("buyer", "buyer123")

        listing = self.client.get("/api/v1/products/")
        self.assertEqual(listing.status_code, 200)
        skus = [row["sku"] for row in listing.data["data"]["results"]]
        self.assertEqual(skus, ["RT-010"])

        forbidden = self.client.post(
            "/api/v1/products/",
            {"sku": "RT-012", "name": "Hammer", "unit_price": "200.00"},
            format="json",
        )
        self.assertEqual(forbidden.status_code, 403)
        self.assertEqual(forbidden.data["code"], "permission_denied")

    def test_search_filters_by_name_or_sku(self):
        Product.objects.create(sku="RT-020", name="Impact Driver", unit_price=Decimal("3200.00"))
        Product.objects.create(sku="RT-021", name="Tape Measure", unit_price=Decimal("150.00"))
        self.auth("admin", "admin123")

        response = self.client.get("/api/v1/products/", {"q": "impact"})
        self.assertEqual([row["sku"] for row in response.data["data"]["results"]], ["RT-020"])
