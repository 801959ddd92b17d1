import logging
import secrets

from django.db import transaction
from django.utils import timezone

from apps.addresses.models import Address, normalize_ph_mobile
from apps.audit.services import record_audit
from apps.catalog.models import Product
from apps.common.exceptions import DomainValidationError, OrderNotFoundError, PaymentIncompleteError
from apps.common.money import ZERO, format_peso, is_settled, percent_of, to_money
from apps.orders.models import DeliveryMode, Order, OrderLine, OrderStatus, OrderStatusLog, PaymentStatus

logger = logging.getLogger(__name__)

DELIVERY_REQUIRED_FIELDS = ("full_name", "phone", "province", "city", "barangay", "street")
PICKUP_REQUIRED_FIELDS = ("full_name", "phone")
CLIENT_TOTAL_TOLERANCE = to_money("0.01")


def generate_order_code():
    for _ in range(10):
        code = f"RT{timezone.localdate():%Y%m%d}-{secrets.token_hex(3).upper()}"
        if not Order.objects.filter(order_code=code).exists():
            return code
    raise RuntimeError("Could not allocate a unique order code.")


def get_order(order_id, *, customer=None, lock=False):
    queryset = Order.objects.all()
    if lock:
        queryset = queryset.select_for_update()
    if customer is not None:
        queryset = queryset.filter(customer=customer)
    try:
        return queryset.get(pk=order_id)
    except (Order.DoesNotExist, ValueError, TypeError):
        raise OrderNotFoundError()


def _resolve_delivery_snapshot(customer, delivery_mode, delivery_info):
    info = dict(delivery_info or {})
    address_id = info.pop("address_id", None)
    if address_id:
        address = Address.objects.filter(pk=address_id, customer=customer).first()
        if address is None:
            raise DomainValidationError("Saved address not found.", fields={"info": {"address_id": "Unknown address."}})
        snapshot = address.snapshot()
    else:
        snapshot = {key: str(value).strip() for key, value in info.items() if value is not None}

    required = DELIVERY_REQUIRED_FIELDS if delivery_mode == DeliveryMode.DELIVERY else PICKUP_REQUIRED_FIELDS
    missing = [field for field in required if not snapshot.get(field)]
    if missing:
        raise DomainValidationError(
            "Delivery information is incomplete.",
            fields={"info": {field: f"{field} is required" for field in missing}},
        )

    phone = normalize_ph_mobile(snapshot["phone"])
    if not phone:
        raise DomainValidationError("Invalid Philippine mobile number.", fields={"info": {"phone": "Invalid mobile number."}})
    snapshot["phone"] = phone
    return snapshot


def _price_lines(lines):
    if not lines:
        raise DomainValidationError("Order must contain at least one item.", fields={"items": "At least one item is required."})

    product_ids = [line["product_id"] for line in lines]
    products = {str(product.id): product for product in Product.objects.filter(pk__in=product_ids, is_active=True)}

    priced = []
    for line in lines:
        product = products.get(str(line["product_id"]))
        if product is None:
            raise DomainValidationError("Product not found.", fields={"items": f"Unknown product {line['product_id']}."})
        qty = int(line["qty"])
        if qty <= 0:
            raise DomainValidationError("Quantity must be greater than 0.", fields={"items": "Quantity must be greater than 0."})
        line_subtotal = to_money(product.unit_price * qty)
        priced.append(
            {
                "product": product,
                "product_name": product.name,
                "sku": product.sku,
                "unit_price": product.unit_price,
                "qty": qty,
                "tax_rate": product.tax_rate,
                "line_subtotal": line_subtotal,
                "line_tax": percent_of(line_subtotal, product.tax_rate),
            }
        )
    return priced


def _check_client_totals(client_totals, computed):
    for field, value in (client_totals or {}).items():
        if value is None:
            continue
        expected = computed[field]
        if abs(to_money(value) - expected) > CLIENT_TOTAL_TOLERANCE:
            raise DomainValidationError(
                f"Order {field} does not match current prices. Expected {format_peso(expected)}.",
                code="total_mismatch",
                fields={field: {"expected": str(expected), "actual": str(to_money(value))}},
            )


@transaction.atomic
def create_order(*, customer, lines, delivery_mode, delivery_info, terms_agreed, client_totals=None):
    """Price the lines from the catalog, snapshot the delivery address and persist a Pending order.

    ``lines`` is a list of ``{"product_id", "qty"}``. ``client_totals`` may carry
    the checkout page's ``subtotal``/``vat``/``total``; they are only checked,
    never trusted.
    """
    if delivery_mode not in DeliveryMode.values:
        raise DomainValidationError("Delivery mode must be pickup or delivery.", fields={"mode": "Invalid delivery mode."})
    if not terms_agreed:
        raise DomainValidationError("You must accept the terms and conditions.", fields={"terms_agreed": "Required."})

    priced = _price_lines(lines)
    subtotal = to_money(sum((line["line_subtotal"] for line in priced), ZERO))
    tax_amount = to_money(sum((line["line_tax"] for line in priced), ZERO))
    total_amount = to_money(subtotal + tax_amount)
    if total_amount <= ZERO:
        raise DomainValidationError("Order total must be greater than 0.", fields={"total": "Must be greater than 0."})

    client_totals = dict(client_totals or {})
    if "vat" in client_totals:
        client_totals["tax_amount"] = client_totals.pop("vat")
    if "total" in client_totals:
        client_totals["total_amount"] = client_totals.pop("total")
    _check_client_totals(client_totals, {"subtotal": subtotal, "tax_amount": tax_amount, "total_amount": total_amount})

    snapshot = _resolve_delivery_snapshot(customer, delivery_mode, delivery_info)

    order = Order.objects.create(
        order_code=generate_order_code(),
        customer=customer,
        delivery_mode=delivery_mode,
        subtotal=subtotal,
        tax_amount=tax_amount,
        total_amount=total_amount,
        amount_paid=ZERO,
        status=OrderStatus.PENDING,
        payment_status=PaymentStatus.PENDING,
        terms_agreed=True,
        recipient_name=snapshot["full_name"],
        recipient_phone=snapshot["phone"],
        recipient_email=snapshot.get("email", ""),
        province=snapshot.get("province", ""),
        province_code=snapshot.get("province_code", ""),
        city=snapshot.get("city", ""),
        city_code=snapshot.get("city_code", ""),
        barangay=snapshot.get("barangay", ""),
        barangay_code=snapshot.get("barangay_code", ""),
        street=snapshot.get("street", ""),
        postal_code=snapshot.get("postal_code", ""),
    )
    OrderLine.objects.bulk_create([OrderLine(order=order, **line) for line in priced])

    record_audit(
        actor=customer,
        action="order.create",
        entity_type="order",
        entity_id=order.id,
        payload={"order_code": order.order_code, "total_amount": str(total_amount), "mode": delivery_mode},
    )
    logger.info(
        "order created",
        extra={"order_id": order.id, "order_code": order.order_code, "total_amount": str(total_amount)},
    )
    return order


def get_order_details(order_id, *, customer=None):
    queryset = Order.objects.select_related("customer").prefetch_related("lines", "status_logs")
    if customer is not None:
        queryset = queryset.filter(customer=customer)
    try:
        order = queryset.get(pk=order_id)
    except (Order.DoesNotExist, ValueError, TypeError):
        raise OrderNotFoundError()
    return {"order": order, "items": list(order.lines.all())}


@transaction.atomic
def update_status(order_id, new_status, *, notes="", actor=None):
    if new_status not in OrderStatus.values:
        raise DomainValidationError(f"Unknown order status {new_status!r}.", fields={"status": "Invalid status."})

    order = get_order(order_id, lock=True)
    if new_status == OrderStatus.COMPLETED and not is_settled(order.remaining_balance):
        raise PaymentIncompleteError(
            f"Order cannot be completed while a balance of {format_peso(order.remaining_balance)} remains.",
            fields={"remaining_balance": str(order.remaining_balance)},
        )

    old_status = order.status
    if old_status == new_status and not notes:
        return order

    order.status = new_status
    order.save(update_fields=["status", "updated_at"])
    OrderStatusLog.objects.create(order=order, old_status=old_status, new_status=new_status, notes=notes or "", actor=actor)
    record_audit(
        actor=actor,
        action="order.status",
        entity_type="order",
        entity_id=order.id,
        payload={"old_status": old_status, "new_status": new_status, "notes": notes or ""},
    )
    logger.info("order status changed", extra={"order_id": order.id, "old_status": old_status, "new_status": new_status})
    return order


@transaction.atomic
def update_payment_status(order_id, payment_status, *, actor=None):
    """Manual override of the payment status label; ``amount_paid`` is left alone."""
    if payment_status not in PaymentStatus.values:
        raise DomainValidationError(
            f"Unknown payment status {payment_status!r}.", fields={"payment_status": "Invalid payment status."}
        )

    order = get_order(order_id, lock=True)
    previous = order.payment_status
    order.payment_status = payment_status
    order.save(update_fields=["payment_status", "updated_at"])
    record_audit(
        actor=actor,
        action="order.payment_status.override",
        entity_type="order",
        entity_id=order.id,
        payload={"old_payment_status": previous, "new_payment_status": payment_status},
    )
    logger.info(
        "order payment status overridden",
        extra={"order_id": order.id, "old_payment_status": previous, "new_payment_status": payment_status},
    )
    return order
