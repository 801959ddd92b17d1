import io
from decimal import Decimal
from unittest import mock

from django.contrib.auth import get_user_model
from django.core.files.uploadedfile import SimpleUploadedFile
from django.core.management import call_command
from django.db import DatabaseError
from django.test import TestCase, override_settings
from PIL import Image
from rest_framework.test import APITestCase

from apps.audit.models import AuditLog
from apps.catalog.models import Product
from apps.common.exceptions import (
    AmountMismatchError,
    DomainValidationError,
    InvalidDepositRateError,
    OrderNotFoundError,
    PaymentIncompleteError,
    StateConflictError,
    VerificationNotFoundError,
)
from apps.orders.models import Order, OrderLine, OrderStatus, PaymentStatus
from apps.orders.services import update_status
from apps.payments.models import PaymentTerms, PaymentVerification, VerificationStatus
from apps.payments.services import (
    approve_verification,
    current_amount_due,
    decide_payment,
    normalize_account_number,
    reject_verification,
    submit_proof,
)

User = get_user_model()


def make_screenshot(name="proof.png"):
    buffer = io.BytesIO()
    Image.new("RGB", (8, 8), "white").save(buffer, format="PNG")
    return SimpleUploadedFile(name, buffer.getvalue(), content_type="image/png")


class PaymentFixtureMixin:
    def setUp(self):
        self.admin = User.objects.create_user(username="admin", password="admin123", role="ADMIN")
        self.customer = User.objects.create_user(username="juan", password="juan123", role="CUSTOMER")
        self.other = User.objects.create_user(username="maria", password="maria123", role="CUSTOMER")
        self.product = Product.objects.create(
            sku="RT-300", name="Bench Grinder", unit_price=Decimal("1000.00"), tax_rate=Decimal("0.00")
        )
        self.order = self.make_order(self.customer)

    def make_order(self, customer, total="1000.00"):
        total = Decimal(total)
        order = Order.objects.create(
            order_code=f"RT20260101-{Order.objects.count():06X}",
            customer=customer,
            subtotal=total,
            total_amount=total,
            terms_agreed=True,
            recipient_name="Juan Dela Cruz",
            recipient_phone="+639171234567",
        )
        OrderLine.objects.create(
            order=order,
            product=self.product,
            product_name=self.product.name,
            sku=self.product.sku,
            unit_price=total,
            qty=1,
            tax_rate=Decimal("0.00"),
            line_subtotal=total,
            line_tax=Decimal("0.00"),
        )
        return order

    def submit(self, amount, reference="REF123456", method="gcash", account_number="09171234567", order=None):
        order = order or self.order
        return submit_proof(
            order.id,
            method,
            "Juan Dela Cruz",
            account_number,
            reference,
            amount,
            make_screenshot(),
            actor=order.customer,
            customer=order.customer,
        )

    def refresh(self):
        self.order.refresh_from_db()
        return self.order


class PaymentDecisionTests(PaymentFixtureMixin, TestCase):
    def test_first_decision_uses_deposit_share(self):
        terms = decide_payment(self.order.id, "gcash", 30, actor=self.customer, customer=self.customer)
        self.assertEqual(terms.amount_due, Decimal("300.00"))
        self.assertEqual(terms.method, "gcash")
        self.assertTrue(AuditLog.objects.filter(action="payment.decide", entity_id=str(self.order.id)).exists())

    def test_decision_is_idempotent_and_replaceable(self):
        decide_payment(self.order.id, "gcash", 30, customer=self.customer)
        decide_payment(self.order.id, "gcash", 30, customer=self.customer)
        self.assertEqual(PaymentTerms.objects.filter(order=self.order).count(), 1)

        terms = decide_payment(self.order.id, "BPI", 50, customer=self.customer)
        self.assertEqual((terms.method, terms.deposit_rate, terms.amount_due), ("bpi", 50, Decimal("500.00")))
        self.assertEqual(PaymentTerms.objects.filter(order=self.order).count(), 1)

    def test_invalid_rate_and_method_are_rejected(self):
        with self.assertRaises(InvalidDepositRateError):
            decide_payment(self.order.id, "gcash", 40, customer=self.customer)
        with self.assertRaises(DomainValidationError) as ctx:
            decide_payment(self.order.id, "paypal", 30, customer=self.customer)
        self.assertEqual(ctx.exception.detail.code, "invalid_payment_method")

    def test_unknown_or_foreign_order_is_not_found(self):
        with self.assertRaises(OrderNotFoundError):
            decide_payment(999999, "gcash", 30)
        with self.assertRaises(OrderNotFoundError):
            decide_payment(self.order.id, "gcash", 30, customer=self.other)

    def test_cancelled_or_paid_orders_cannot_be_decided(self):
        Order.objects.filter(pk=self.order.pk).update(status=OrderStatus.CANCELLED)
        with self.assertRaises(StateConflictError):
            decide_payment(self.order.id, "gcash", 30)

        paid = self.make_order(self.customer)
        Order.objects.filter(pk=paid.pk).update(amount_paid=paid.total_amount)
        with self.assertRaises(StateConflictError):
            decide_payment(paid.id, "gcash", 30)

    @override_settings(PAYMENT_CHANNELS=["gcash", "bpi", "maya"])
    def test_configured_channels_are_accepted(self):
        terms = decide_payment(self.order.id, "maya", 100)
        self.assertEqual(terms.amount_due, Decimal("1000.00"))


class SubmitProofTests(PaymentFixtureMixin, TestCase):
    def setUp(self):
        super().setUp()
        decide_payment(self.order.id, "gcash", 30, customer=self.customer)

    def test_submission_creates_pending_verification(self):
        verification = self.submit("300.00")
        self.assertEqual(verification.status, VerificationStatus.PENDING)
        self.assertEqual(verification.amount_reported, Decimal("300.00"))
        self.assertFalse(verification.duplicate_reference)
        self.assertTrue(verification.screenshot.name.startswith("payment_proofs/"))
        self.assertEqual(self.refresh().amount_paid, Decimal("0.00"))

    def test_amount_one_centavo_short_is_a_mismatch(self):
        with self.assertRaises(AmountMismatchError) as ctx:
            self.submit("299.99")
        self.assertIn("Amount Mismatch", str(ctx.exception.detail))
        self.assertEqual(ctx.exception.fields, {"expected": "300.00", "actual": "299.99"})
        self.assertFalse(PaymentVerification.objects.exists())

    def test_gcash_number_is_normalized(self):
        verification = self.submit("300.00", account_number="+639123456789")
        self.assertEqual(verification.account_number, "09123456789")

    def test_gcash_number_must_be_eleven_digits(self):
        with self.assertRaises(DomainValidationError) as ctx:
            self.submit("300.00", account_number="123456")
        self.assertEqual(ctx.exception.detail.code, "invalid_account_number")

    def test_bpi_account_rules(self):
        self.assertEqual(normalize_account_number("bpi", "1234 5678 90"), "1234567890")
        for bad in ("12345678", "1234567890123", "12345678a"):
            with self.subTest(account_number=bad), self.assertRaises(DomainValidationError):
                normalize_account_number("bpi", bad)

    def test_reference_number_must_be_alphanumeric(self):
        for bad in ("ABC12", "REF-12345", "A" * 21):
            with self.subTest(reference=bad), self.assertRaises(DomainValidationError):
                self.submit("300.00", reference=bad)

    def test_requires_prior_decision(self):
        order = self.make_order(self.customer)
        with self.assertRaises(StateConflictError) as ctx:
            self.submit("300.00", order=order)
        self.assertEqual(ctx.exception.detail.code, "payment_not_decided")

    def test_cancelled_order_refuses_submission(self):
        Order.objects.filter(pk=self.order.pk).update(status=OrderStatus.CANCELLED)
        with self.assertRaises(StateConflictError):
            self.submit("300.00")

    def test_duplicate_reference_is_flagged(self):
        self.submit("300.00", reference="DUPREF001")
        other_order = self.make_order(self.other)
        decide_payment(other_order.id, "gcash", 30)
        with self.assertLogs("apps.payments.services", level="WARNING"):
            duplicate = self.submit("300.00", reference="dupref001", order=other_order)
        self.assertTrue(duplicate.duplicate_reference)

    @override_settings(PAYMENT_REJECT_DUPLICATE_REFERENCES=True)
    def test_duplicate_reference_can_be_blocked(self):
        self.submit("300.00", reference="DUPREF002")
        with self.assertRaises(DomainValidationError) as ctx:
            self.submit("300.00", reference="DUPREF002")
        self.assertEqual(ctx.exception.detail.code, "duplicate_reference")

    @override_settings(PAYMENT_PROOF_MAX_BYTES=16)
    def test_oversized_proof_is_rejected(self):
        with self.assertRaises(DomainValidationError) as ctx:
            self.submit("300.00")
        self.assertEqual(ctx.exception.detail.code, "proof_too_large")


class VerificationQueueTests(PaymentFixtureMixin, TestCase):
    def test_deposit_then_full_payment(self):
        decide_payment(self.order.id, "gcash", 30, customer=self.customer)
        first = self.submit("300.00", reference="GCASH0001")
        _, order = approve_verification(first.id, actor=self.admin)
        self.assertEqual(order.amount_paid, Decimal("300.00"))
        self.assertEqual(order.remaining_balance, Decimal("700.00"))
        self.assertEqual(order.payment_status, PaymentStatus.WITH_BALANCE)

        terms = decide_payment(self.order.id, "gcash", 30, customer=self.customer)
        self.assertEqual(terms.amount_due, Decimal("700.00"))
        with self.assertRaises(PaymentIncompleteError):
            update_status(self.order.id, OrderStatus.COMPLETED, actor=self.admin)

        second = self.submit("700.00", reference="GCASH0002")
        _, order = approve_verification(second.id, actor=self.admin)
        self.assertEqual(order.amount_paid, Decimal("1000.00"))
        self.assertEqual(order.remaining_balance, Decimal("0.00"))
        self.assertEqual(order.payment_status, PaymentStatus.FULLY_PAID)
        self.assertEqual(current_amount_due(order), Decimal("0.00"))

        completed = update_status(self.order.id, OrderStatus.COMPLETED, actor=self.admin)
        self.assertEqual(completed.status, OrderStatus.COMPLETED)

    def test_reject_then_reapprove(self):
        decide_payment(self.order.id, "gcash", 50, customer=self.customer)
        verification = self.submit("500.00")

        _, order = approve_verification(verification.id, actor=self.admin)
        self.assertEqual(order.amount_paid, Decimal("500.00"))

        verification, order = reject_verification(verification.id, "blurry proof", actor=self.admin)
        self.assertEqual(order.amount_paid, Decimal("0.00"))
        self.assertEqual(order.payment_status, PaymentStatus.PENDING)
        self.assertEqual(verification.rejection_reason, "blurry proof")
        self.assertEqual(verification.reviewed_by, self.admin)
        self.assertIsNotNone(verification.reviewed_at)

        verification, order = approve_verification(verification.id, actor=self.admin)
        self.assertEqual(order.amount_paid, Decimal("500.00"))
        self.assertEqual(verification.rejection_reason, "")

    def test_reapproving_does_not_double_count(self):
        decide_payment(self.order.id, "gcash", 30, customer=self.customer)
        verification = self.submit("300.00")
        approve_verification(verification.id, actor=self.admin)
        _, order = approve_verification(verification.id, actor=self.admin)
        self.assertEqual(order.amount_paid, Decimal("300.00"))

    def test_toggle_matches_single_approval(self):
        decide_payment(self.order.id, "bpi", 30, customer=self.customer)
        verification = self.submit("300.00", method="bpi", account_number="123456789")
        approve_verification(verification.id, actor=self.admin)
        reject_verification(verification.id, "wrong account", actor=self.admin)
        _, order = approve_verification(verification.id, actor=self.admin)
        self.assertEqual(order.amount_paid, Decimal("300.00"))
        self.assertEqual(order.remaining_balance, order.total_amount - order.amount_paid)

    def test_amount_paid_equals_sum_of_approved(self):
        decide_payment(self.order.id, "gcash", 30, customer=self.customer)
        first = self.submit("300.00", reference="SUMREF001")
        approve_verification(first.id, actor=self.admin)
        decide_payment(self.order.id, "gcash", 30, customer=self.customer)
        second = self.submit("700.00", reference="SUMREF002")
        reject_verification(second.id, "duplicate screenshot", actor=self.admin)

        order = self.refresh()
        approved = sum(
            v.amount_reported for v in order.verifications.all() if v.status == VerificationStatus.APPROVED
        )
        self.assertEqual(order.amount_paid, approved)
        self.assertEqual(order.amount_paid, Decimal("300.00"))

    def test_overpayment_is_refused(self):
        decide_payment(self.order.id, "gcash", 100, customer=self.customer)
        first = self.submit("1000.00", reference="OVERREF01")
        second = self.submit("1000.00", reference="OVERREF02")
        approve_verification(first.id, actor=self.admin)

        with self.assertRaises(StateConflictError) as ctx:
            approve_verification(second.id, actor=self.admin)
        self.assertEqual(ctx.exception.detail.code, "overpayment")
        second.refresh_from_db()
        self.assertEqual(second.status, VerificationStatus.PENDING)
        self.assertEqual(self.refresh().amount_paid, Decimal("1000.00"))

    def test_reject_requires_reason(self):
        decide_payment(self.order.id, "gcash", 30, customer=self.customer)
        verification = self.submit("300.00")
        with self.assertRaises(DomainValidationError):
            reject_verification(verification.id, "   ", actor=self.admin)

    def test_unknown_verification_is_not_found(self):
        with self.assertRaises(VerificationNotFoundError):
            approve_verification(424242, actor=self.admin)

    def test_recompute_command_repairs_drift(self):
        decide_payment(self.order.id, "gcash", 30, customer=self.customer)
        verification = self.submit("300.00")
        approve_verification(verification.id, actor=self.admin)
        Order.objects.filter(pk=self.order.pk).update(amount_paid=Decimal("0.00"), payment_status=PaymentStatus.PENDING)

        out = io.StringIO()
        call_command("recompute_order_payments", order=self.order.id, stdout=out)

        order = self.refresh()
        self.assertEqual(order.amount_paid, Decimal("300.00"))
        self.assertEqual(order.payment_status, PaymentStatus.WITH_BALANCE)
        self.assertIn("Orders updated: 1", out.getvalue())


class PaymentApiTests(PaymentFixtureMixin, APITestCase):
    def auth(self, username, password):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")

    def decide(self, method="gcash", rate=30):
        return self.client.post(
            f"/api/v1/orders/{self.order.id}/payment-decision/",
            {"method": method, "deposit_rate": rate},
            format="json",
        )

    def submit_form(self, **overrides):
        payload = {
            "order_id": self.order.id,
            "order_code": self.order.order_code,
            "account_name": "Juan Dela Cruz",
            "account_number": "09171234567",
            "reference_number": "APIREF001",
            "amount_paid": "300.00",
            "screenshot": make_screenshot(),
            "terms_accepted": True,
        }
        payload.update(overrides)
        return self.client.post("/api/v1/payment-verifications/", payload, format="multipart")

    def test_customer_flow_through_admin_approval(self):
        self.auth("juan", "juan123")
        decided = self.decide()
        self.assertEqual(decided.status_code, 200)
        self.assertEqual(decided.data["data"]["amount_due"], "300.00")

        submitted = self.submit_form()
        self.assertEqual(submitted.status_code, 201)
        verification_id = submitted.data["data"]["verification_id"]
        self.assertEqual(submitted.data["data"]["verification"]["status"], "PENDING")

        forbidden = self.client.post(f"/api/v1/payment-verifications/{verification_id}/approve/")
        self.assertEqual(forbidden.status_code, 403)

        self.auth("admin", "admin123")
        queue = self.client.get("/api/v1/payment-verifications/", {"status": "pending"})
        self.assertEqual(queue.data["data"]["count"], 1)

        approved = self.client.post(f"/api/v1/payment-verifications/{verification_id}/approve/")
        self.assertEqual(approved.status_code, 200)
        self.assertEqual(approved.data["data"]["order"]["amount_paid"], "300.00")
        self.assertEqual(approved.data["data"]["order"]["payment_status"], "With Balance")

        rejected = self.client.post(
            f"/api/v1/payment-verifications/{verification_id}/reject/",
            {"reason": "blurry proof"},
            format="json",
        )
        self.assertEqual(rejected.status_code, 200)
        self.assertEqual(rejected.data["data"]["order"]["amount_paid"], "0.00")
        self.assertEqual(rejected.data["data"]["verification"]["rejection_reason"], "blurry proof")

    def test_amount_mismatch_envelope(self):
        self.auth("juan", "juan123")
        self.decide()
        response = self.submit_form(amount_paid="299.99")
        self.assertEqual(response.status_code, 400)
        self.assertFalse(response.data["success"])
        self.assertEqual(response.data["code"], "amount_mismatch")
        self.assertEqual(response.data["fields"]["expected"], "300.00")
        self.assertEqual(response.data["fields"]["actual"], "299.99")
        self.assertIn("₱300.00", response.data["message"])

    def test_amount_reported_alias_is_accepted(self):
        self.auth("juan", "juan123")
        self.decide()
        response = self.client.post(
            "/api/v1/payment-verifications/",
            {
                "order_id": self.order.id,
                "account_name": "Juan Dela Cruz",
                "account_number": "09171234567",
                "reference_number": "ALIASREF1",
                "amount_reported": "300.00",
                "screenshot": make_screenshot(),
                "terms_accepted": True,
            },
            format="multipart",
        )
        self.assertEqual(response.status_code, 201)

    def test_terms_and_image_are_required(self):
        self.auth("juan", "juan123")
        self.decide()
        not_accepted = self.submit_form(terms_accepted=False)
        self.assertEqual(not_accepted.status_code, 400)
        self.assertIn("terms_accepted", not_accepted.data["fields"])

        not_image = self.submit_form(screenshot=SimpleUploadedFile("proof.txt", b"hello", content_type="text/plain"))
        self.assertEqual(not_image.status_code, 400)
        self.assertIn("screenshot", not_image.data["fields"])

    def test_order_code_must_match(self):
        self.auth("juan", "juan123")
        self.decide()
        response = self.submit_form(order_code="RT00000000-000000")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["code"], "order_code_mismatch")

    def test_customer_cannot_decide_for_another_customers_order(self):
        self.auth("maria", "maria123")
        response = self.decide()
        self.assertEqual(response.status_code, 404)

    def test_invalid_deposit_rate_over_http(self):
        self.auth("juan", "juan123")
        response = self.decide(rate=25)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["code"], "invalid_deposit_rate")

    def test_customers_only_see_their_own_verifications(self):
        self.auth("juan", "juan123")
        self.decide()
        self.submit_form()

        self.auth("maria", "maria123")
        listing = self.client.get("/api/v1/payment-verifications/")
        self.assertEqual(listing.data["data"]["count"], 0)

    def test_non_numeric_ids_are_client_errors(self):
        self.auth("admin", "admin123")
        approve = self.client.post("/api/v1/payment-verifications/abc/approve/")
        self.assertEqual(approve.status_code, 404)
        self.assertEqual(approve.data["code"], "not_found")

        reject = self.client.post("/api/v1/payment-verifications/abc/reject/", {"reason": "blurry"}, format="json")
        self.assertEqual(reject.status_code, 404)

        listing = self.client.get("/api/v1/payment-verifications/", {"order": "abc"})
        self.assertEqual(listing.status_code, 400)
        self.assertIn("order", listing.data["fields"])

    def test_database_failure_is_opaque_and_logged(self):
        self.auth("juan", "juan123")
        with mock.patch("apps.payments.views.decide_payment", side_effect=DatabaseError("secret table xyz")):
            with self.assertLogs("apps.common.exceptions", level="ERROR") as logs:
                response = self.decide()
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.data["code"], "persistence_error")
        self.assertEqual(response.data["message"], "Failed to process request.")
        self.assertNotIn("secret table xyz", str(response.data))
        self.assertIsInstance(logs.records[0].exc_info[1], DatabaseError)
