import logging
import re

from django.conf import settings
from django.db import transaction
from django.db.models import DecimalField, Sum, Value
from django.db.models.functions import Coalesce
from django.utils import timezone

from apps.audit.services import record_audit
from apps.common.exceptions import (
    AmountMismatchError,
    DomainValidationError,
    InvalidDepositRateError,
    StateConflictError,
    VerificationNotFoundError,
)
from apps.common.money import ZERO, format_peso, is_settled, percent_of, to_money
from apps.orders.models import OrderStatus, derive_payment_status
from apps.orders.services import get_order
from apps.payments.models import DepositRate, PaymentTerms, PaymentVerification, VerificationStatus

logger = logging.getLogger(__name__)

GCASH_NUMBER_RE = re.compile(r"^09\d{9}$")
BPI_ACCOUNT_RE = re.compile(r"^\d{9,12}$")
DIGITS_RE = re.compile(r"^\d+$")
REFERENCE_RE = re.compile(r"^[A-Za-z0-9]{6,20}$")


def payment_channels():
    return list(settings.PAYMENT_CHANNELS)


def _clean_method(method):
    method = str(method or "").strip().lower()
    if method not in payment_channels():
        raise DomainValidationError(
            f"Unsupported payment method {method!r}.",
            code="invalid_payment_method",
            fields={"method": f"Choose one of: {', '.join(payment_channels())}."},
        )
    return method


def _clean_deposit_rate(deposit_rate):
    try:
        rate = int(deposit_rate)
    except (TypeError, ValueError):
        raise InvalidDepositRateError(fields={"deposit_rate": "Must be 30, 50 or 100."})
    if str(rate) != str(deposit_rate).strip() or rate not in DepositRate.values:
        raise InvalidDepositRateError(fields={"deposit_rate": "Must be 30, 50 or 100."})
    return rate


def compute_amount_due(order, deposit_rate):
    """Deposit share of the total before anything is paid, the remaining balance after."""
    if order.amount_paid <= ZERO:
        return percent_of(order.total_amount, deposit_rate)
    return max(order.remaining_balance, ZERO)


def current_amount_due(order):
    terms = PaymentTerms.objects.filter(order=order).first()
    if terms is None:
        return None
    return compute_amount_due(order, terms.deposit_rate)


def normalize_account_number(method, account_number):
    number = re.sub(r"[\s-]+", "", str(account_number or ""))
    if method == "gcash":
        if number.startswith("+63"):
            number = "0" + number[3:]
        if not GCASH_NUMBER_RE.match(number):
            raise DomainValidationError(
                "GCash number must be 11 digits starting with 09.",
                code="invalid_account_number",
                fields={"account_number": "Use the 09XXXXXXXXX format."},
            )
    elif method == "bpi":
        if not BPI_ACCOUNT_RE.match(number):
            raise DomainValidationError(
                "BPI account number must be 9 to 12 digits.",
                code="invalid_account_number",
                fields={"account_number": "Digits only, 9 to 12 characters."},
            )
    elif not DIGITS_RE.match(number):
        raise DomainValidationError(
            "Account number must contain digits only.",
            code="invalid_account_number",
            fields={"account_number": "Digits only."},
        )
    return number


def _clean_reference(reference_number):
    reference = str(reference_number or "").strip()
    if not REFERENCE_RE.match(reference):
        raise DomainValidationError(
            "Reference number must be 6 to 20 letters or digits.",
            code="invalid_reference_number",
            fields={"reference_number": "6 to 20 alphanumeric characters."},
        )
    return reference


def _check_proof_image(proof_image):
    if not proof_image:
        raise DomainValidationError(
            "A proof of payment screenshot is required.",
            code="missing_proof",
            fields={"screenshot": "Required."},
        )
    content_type = getattr(proof_image, "content_type", None)
    if content_type and not content_type.startswith("image/"):
        raise DomainValidationError(
            "Proof of payment must be an image.",
            code="invalid_proof",
            fields={"screenshot": "Upload an image file."},
        )
    max_bytes = settings.PAYMENT_PROOF_MAX_BYTES
    if proof_image.size > max_bytes:
        raise DomainValidationError(
            f"Proof of payment must be at most {max_bytes // (1024 * 1024)} MB.",
            code="proof_too_large",
            fields={"screenshot": "File too large."},
        )


def _ensure_open(order):
    if order.status == OrderStatus.CANCELLED:
        raise StateConflictError("Order is cancelled.", code="order_cancelled")
    if is_settled(order.remaining_balance):
        raise StateConflictError("Order is already fully paid.", code="already_paid")


@transaction.atomic
def decide_payment(order_id, method, deposit_rate, *, actor=None, customer=None):
    """Record (or replace) the customer's payment method and deposit rate.

    Calling it again with the same arguments stores the same terms.
    """
    rate = _clean_deposit_rate(deposit_rate)
    method = _clean_method(method)
    order = get_order(order_id, customer=customer, lock=True)
    _ensure_open(order)

    amount_due = compute_amount_due(order, rate)
    terms, created = PaymentTerms.objects.update_or_create(
        order=order,
        defaults={
            "method": method,
            "deposit_rate": rate,
            "amount_due": amount_due,
            "decided_by": actor if actor is not None and actor.is_authenticated else None,
        },
    )
    record_audit(
        actor=actor,
        action="payment.decide",
        entity_type="order",
        entity_id=order.id,
        payload={"method": method, "deposit_rate": rate, "amount_due": str(amount_due), "created": created},
    )
    logger.info(
        "payment terms recorded",
        extra={"order_id": order.id, "method": method, "deposit_rate": rate, "amount_due": str(amount_due)},
    )
    return terms


@transaction.atomic
def submit_proof(
    order_id,
    method,
    account_name,
    account_number,
    reference_number,
    amount_reported,
    proof_image,
    *,
    actor=None,
    customer=None,
    order_code=None,
    terms_accepted=True,
):
    order = get_order(order_id, customer=customer, lock=True)
    if order_code and order_code != order.order_code:
        raise DomainValidationError(
            "Order code does not match the order.", code="order_code_mismatch", fields={"order_code": "Mismatch."}
        )
    if order.status == OrderStatus.CANCELLED:
        raise StateConflictError("Cannot submit payment for a cancelled order.", code="order_cancelled")

    terms = PaymentTerms.objects.filter(order=order).first()
    if terms is None:
        raise StateConflictError(
            "Choose a payment method and deposit before submitting proof.", code="payment_not_decided"
        )

    method = _clean_method(method or terms.method)
    account_name = str(account_name or "").strip()
    if not account_name:
        raise DomainValidationError("Account name is required.", fields={"account_name": "Required."})
    account_number = normalize_account_number(method, account_number)
    reference_number = _clean_reference(reference_number)
    _check_proof_image(proof_image)

    amount_due = compute_amount_due(order, terms.deposit_rate)
    if amount_due <= ZERO:
        raise StateConflictError("Order is already fully paid.", code="already_paid")
    try:
        amount = to_money(amount_reported)
    except ValueError:
        raise DomainValidationError("Amount paid must be a number.", fields={"amount_paid": "Invalid amount."})
    if amount != amount_due:
        raise AmountMismatchError(
            f"Amount Mismatch: expected {format_peso(amount_due)}, got {format_peso(amount)}.",
            fields={"expected": str(amount_due), "actual": str(amount)},
        )

    duplicate = (
        PaymentVerification.objects.filter(method=method, reference_number__iexact=reference_number)
        .exclude(status=VerificationStatus.REJECTED)
        .exists()
    )
    if duplicate:
        logger.warning(
            "duplicate payment reference submitted",
            extra={"order_id": order.id, "method": method, "reference_number": reference_number},
        )
        if settings.PAYMENT_REJECT_DUPLICATE_REFERENCES:
            raise DomainValidationError(
                "This reference number has already been submitted.",
                code="duplicate_reference",
                fields={"reference_number": "Already used."},
            )

    verification = PaymentVerification.objects.create(
        order=order,
        method=method,
        account_name=account_name,
        account_number=account_number,
        reference_number=reference_number,
        amount_reported=amount,
        screenshot=proof_image,
        duplicate_reference=duplicate,
        terms_accepted=bool(terms_accepted),
        submitted_by=actor if actor is not None and actor.is_authenticated else None,
    )
    record_audit(
        actor=actor,
        action="payment.submit",
        entity_type="payment_verification",
        entity_id=verification.id,
        payload={"order_id": order.id, "amount": str(amount), "method": method, "reference_number": reference_number},
    )
    logger.info(
        "payment proof submitted",
        extra={"order_id": order.id, "verification_id": verification.id, "amount": str(amount)},
    )
    return verification


def approved_total(order):
    return PaymentVerification.objects.filter(order=order, status=VerificationStatus.APPROVED).aggregate(
        total=Coalesce(Sum("amount_reported"), Value(ZERO), output_field=DecimalField(max_digits=12, decimal_places=2))
    )["total"]


def recompute_order_payment(order):
    """Re-derive ``amount_paid`` and ``payment_status`` from the approved verifications.

    The caller holds the order row lock.
    """
    amount_paid = to_money(approved_total(order))
    if amount_paid > order.total_amount:
        raise StateConflictError(
            f"Approved payments ({format_peso(amount_paid)}) would exceed the order total "
            f"({format_peso(order.total_amount)}).",
            code="overpayment",
            fields={"total_amount": str(order.total_amount), "amount_paid": str(amount_paid)},
        )

    order.amount_paid = amount_paid
    order.payment_status = derive_payment_status(order.total_amount, amount_paid)
    order.save(update_fields=["amount_paid", "payment_status", "updated_at"])

    terms = PaymentTerms.objects.filter(order=order).first()
    if terms is not None:
        terms.amount_due = compute_amount_due(order, terms.deposit_rate)
        terms.save(update_fields=["amount_due", "updated_at"])
    return order


def _review(verification_id, new_status, *, reason="", actor=None):
    try:
        order_id = PaymentVerification.objects.filter(pk=verification_id).values_list("order_id", flat=True).first()
    except (ValueError, TypeError):
        raise VerificationNotFoundError()
    if order_id is None:
        raise VerificationNotFoundError()

    # Order row first, then the verification, so concurrent reviews serialize on the order.
    order = get_order(order_id, lock=True)
    verification = PaymentVerification.objects.select_for_update().get(pk=verification_id)

    previous = verification.status
    verification.status = new_status
    verification.rejection_reason = reason if new_status == VerificationStatus.REJECTED else ""
    verification.reviewed_by = actor if actor is not None and actor.is_authenticated else None
    verification.reviewed_at = timezone.now()
    verification.save(update_fields=["status", "rejection_reason", "reviewed_by", "reviewed_at", "updated_at"])

    order = recompute_order_payment(order)

    action = "payment.approve" if new_status == VerificationStatus.APPROVED else "payment.reject"
    record_audit(
        actor=actor,
        action=action,
        entity_type="payment_verification",
        entity_id=verification.id,
        payload={
            "order_id": order.id,
            "previous_status": previous,
            "amount": str(verification.amount_reported),
            "amount_paid": str(order.amount_paid),
            "reason": verification.rejection_reason,
        },
    )
    logger.info(
        "payment verification reviewed",
        extra={
            "verification_id": verification.id,
            "order_id": order.id,
            "previous_status": previous,
            "new_status": new_status,
            "amount_paid": str(order.amount_paid),
            "payment_status": order.payment_status,
        },
    )
    return verification, order


@transaction.atomic
def approve_verification(verification_id, *, actor=None):
    return _review(verification_id, VerificationStatus.APPROVED, actor=actor)


@transaction.atomic
def reject_verification(verification_id, reason, *, actor=None):
    reason = str(reason or "").strip()
    if not reason:
        raise DomainValidationError("A rejection reason is required.", fields={"reason": "Required."})
    if len(reason) > 255:
        raise DomainValidationError("Rejection reason is too long.", fields={"reason": "At most 255 characters."})
    return _review(verification_id, VerificationStatus.REJECTED, reason=reason, actor=actor)
