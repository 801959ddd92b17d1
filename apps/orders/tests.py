from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import SimpleTestCase
from rest_framework.test import APITestCase

from apps.addresses.models import Address
from apps.audit.models import AuditLog
from apps.catalog.models import Product
from apps.orders.models import Order, OrderStatus, OrderStatusLog, PaymentStatus, derive_payment_status

User = get_user_model()

INLINE_INFO = {
    "full_name": "Juan Dela Cruz",
    "phone": "09171234567",
    "province": "Laguna",
    "city": "Calamba",
    "barangay": "Real",
    "street": "123 Rizal St.",
    "postal_code": "4027",
}


class OrderTestMixin:
    def setUp(self):
        self.admin = User.objects.create_user(username="admin", password="admin123", role="ADMIN")
        self.customer = User.objects.create_user(username="juan", password="juan123", role="CUSTOMER")
        self.other = User.objects.create_user(username="maria", password="maria123", role="CUSTOMER")
        self.wrench = Product.objects.create(sku="RT-100", name="Torque Wrench", unit_price=Decimal("500.00"))
        self.drill = Product.objects.create(
            sku="RT-200", name="Cordless Drill", unit_price=Decimal("1000.00"), tax_rate=Decimal("0.00")
        )

    def auth(self, username, password):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")

    def place_order(self, **overrides):
        payload = {
            "items": [{"pid": str(self.drill.id), "qty": 1}],
            "mode": "delivery",
            "info": INLINE_INFO,
            "terms_agreed": True,
        }
        payload.update(overrides)
        payload = {key: value for key, value in payload.items() if value is not None}
        return self.client.post("/api/v1/orders/", payload, format="json")


class OrderCreationTests(OrderTestMixin, APITestCase):
    def test_create_order_prices_from_catalog(self):
        self.auth("juan", "juan123")
        response = self.place_order(items=[{"pid": str(self.wrench.id), "qty": 2}, {"pid": str(self.drill.id), "qty": 1}])
        self.assertEqual(response.status_code, 201)
        data = response.data["data"]
        self.assertRegex(data["order_code"], r"^RT\d{8}-[0-9A-F]{6}$")

        order = Order.objects.get(pk=data["order_id"])
        self.assertEqual(order.subtotal, Decimal("2000.00"))
        self.assertEqual(order.tax_amount, Decimal("120.00"))
        self.assertEqual(order.total_amount, Decimal("2120.00"))
        self.assertEqual(order.amount_paid, Decimal("0.00"))
        self.assertEqual(order.status, OrderStatus.PENDING)
        self.assertEqual(order.payment_status, PaymentStatus.PENDING)
        self.assertEqual(order.recipient_phone, "+639171234567")
        self.assertEqual(order.lines.count(), 2)
        self.assertTrue(AuditLog.objects.filter(action="order.create", entity_id=str(order.id)).exists())

    def test_single_item_shorthand(self):
        self.auth("juan", "juan123")
        response = self.place_order(items=None, pid=str(self.wrench.id), qty=3, mode="pickup")
        self.assertEqual(response.status_code, 201)
        order = Order.objects.get(pk=response.data["data"]["order_id"])
        self.assertEqual(order.lines.get().qty, 3)
        self.assertEqual(order.total_amount, Decimal("1680.00"))

    def test_terms_must_be_accepted(self):
        self.auth("juan", "juan123")
        response = self.place_order(terms_agreed=False)
        self.assertEqual(response.status_code, 400)
        self.assertIn("terms_agreed", response.data["fields"])
        self.assertFalse(Order.objects.exists())

    def test_delivery_requires_full_address(self):
        self.auth("juan", "juan123")
        info = {key: value for key, value in INLINE_INFO.items() if key != "street"}
        response = self.place_order(info=info)
        self.assertEqual(response.status_code, 400)
        self.assertIn("street", response.data["fields"]["info"])

    def test_client_total_must_match_server_total(self):
        self.auth("juan", "juan123")
        response = self.place_order(total="900.00")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["code"], "total_mismatch")
        self.assertEqual(response.data["fields"]["total_amount"]["expected"], "1000.00")

        within_tolerance = self.place_order(total="1000.01")
        self.assertEqual(within_tolerance.status_code, 201)

    def test_inactive_product_is_rejected(self):
        self.drill.is_active = False
        self.drill.save()
        self.auth("juan", "juan123")
        response = self.place_order()
        self.assertEqual(response.status_code, 400)
        self.assertIn("items", response.data["fields"])

    def test_saved_address_is_snapshotted(self):
        address = Address.objects.create(
            customer=self.customer,
            full_name="Juan Dela Cruz",
            phone="+639171234567",
            province="Laguna",
            city="Calamba",
            barangay="Real",
            street="123 Rizal St.",
            is_default=True,
        )
        self.auth("juan", "juan123")
        response = self.place_order(info={"address_id": str(address.id)})
        self.assertEqual(response.status_code, 201)

        address.street = "99 Mabini St."
        address.save()

        order = Order.objects.get(pk=response.data["data"]["order_id"])
        self.assertEqual(order.street, "123 Rizal St.")

    def test_address_of_another_customer_is_refused(self):
        address = Address.objects.create(
            customer=self.other,
            full_name="Maria Santos",
            phone="+639181234567",
            province="Cavite",
            city="Imus",
            barangay="Alapan",
            street="1 Aguinaldo Hwy",
            is_default=True,
        )
        self.auth("juan", "juan123")
        response = self.place_order(info={"address_id": str(address.id)})
        self.assertEqual(response.status_code, 400)


class OrderAccessTests(OrderTestMixin, APITestCase):
    def test_customer_only_sees_own_orders(self):
        self.auth("juan", "juan123")
        order_id = self.place_order().data["data"]["order_id"]

        detail = self.client.get(f"/api/v1/orders/{order_id}/")
        self.assertEqual(detail.status_code, 200)
        self.assertEqual(len(detail.data["data"]["items"]), 1)
        self.assertEqual(detail.data["data"]["order"]["payment_status_text"], "Pending")

        self.auth("maria", "maria123")
        self.assertEqual(self.client.get(f"/api/v1/orders/{order_id}/").status_code, 404)
        self.assertEqual(self.client.get("/api/v1/orders/").data["data"]["count"], 0)

    def test_unknown_order_is_not_found(self):
        self.auth("admin", "admin123")
        response = self.client.get("/api/v1/orders/999999/")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data["code"], "not_found")

    def test_customer_cannot_change_status(self):
        self.auth("juan", "juan123")
        order_id = self.place_order().data["data"]["order_id"]
        response = self.client.post(f"/api/v1/orders/{order_id}/status/", {"status": "Processing"}, format="json")
        self.assertEqual(response.status_code, 403)


class OrderStatusTests(OrderTestMixin, APITestCase):
    def setUp(self):
        super().setUp()
        self.auth("juan", "juan123")
        self.order = Order.objects.get(pk=self.place_order().data["data"]["order_id"])
        self.auth("admin", "admin123")

    def set_paid(self, amount):
        Order.objects.filter(pk=self.order.pk).update(amount_paid=Decimal(amount))

    def test_status_change_is_logged(self):
        response = self.client.post(
            f"/api/v1/orders/{self.order.id}/status/",
            {"status": "Processing", "notes": "Packed"},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["data"]["status"], "Processing")
        log = OrderStatusLog.objects.get(order=self.order)
        self.assertEqual((log.old_status, log.new_status, log.notes), ("Pending", "Processing", "Packed"))
        self.assertEqual(log.actor, self.admin)

    def test_completion_blocked_while_one_centavo_remains(self):
        self.set_paid("999.99")
        response = self.client.post(f"/api/v1/orders/{self.order.id}/status/", {"status": "Completed"}, format="json")
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["code"], "payment_incomplete")
        self.assertEqual(response.data["fields"]["remaining_balance"], "0.01")
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.PENDING)

    def test_completion_allowed_when_settled(self):
        self.set_paid("1000.00")
        response = self.client.post(f"/api/v1/orders/{self.order.id}/status/", {"status": "Completed"}, format="json")
        self.assertEqual(response.status_code, 200)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.COMPLETED)

    def test_cancel_is_allowed_with_balance(self):
        response = self.client.post(f"/api/v1/orders/{self.order.id}/status/", {"status": "Cancelled"}, format="json")
        self.assertEqual(response.status_code, 200)

    def test_unknown_status_is_rejected(self):
        response = self.client.post(f"/api/v1/orders/{self.order.id}/status/", {"status": "Shipped"}, format="json")
        self.assertEqual(response.status_code, 400)

    def test_payment_status_override_keeps_amount_paid(self):
        self.set_paid("300.00")
        response = self.client.post(
            f"/api/v1/orders/{self.order.id}/payment-status/",
            {"payment_status": "Fully Paid"},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, PaymentStatus.FULLY_PAID)
        self.assertEqual(self.order.amount_paid, Decimal("300.00"))
        self.assertTrue(AuditLog.objects.filter(action="order.payment_status.override").exists())

    def test_override_does_not_unlock_completion(self):
        self.client.post(
            f"/api/v1/orders/{self.order.id}/payment-status/",
            {"payment_status": "Fully Paid"},
            format="json",
        )
        response = self.client.post(f"/api/v1/orders/{self.order.id}/status/", {"status": "Completed"}, format="json")
        self.assertEqual(response.status_code, 409)


class DerivePaymentStatusTests(SimpleTestCase):
    def test_status_follows_amount_paid(self):
        total = Decimal("1000.00")
        self.assertEqual(derive_payment_status(total, Decimal("0.00")), PaymentStatus.PENDING)
        self.assertEqual(derive_payment_status(total, Decimal("300.00")), PaymentStatus.WITH_BALANCE)
        self.assertEqual(derive_payment_status(total, Decimal("999.99")), PaymentStatus.WITH_BALANCE)
        self.assertEqual(derive_payment_status(total, Decimal("1000.00")), PaymentStatus.FULLY_PAID)
