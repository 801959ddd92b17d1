from django.db import transaction

from apps.addresses.models import Address
from apps.audit.services import record_audit


def _lock_customer_addresses(customer):
    return list(Address.objects.select_for_update().filter(customer=customer).order_by("-created_at"))


@transaction.atomic
def create_address(*, customer, data):
    existing = _lock_customer_addresses(customer)
    make_default = bool(data.pop("is_default", False)) or not existing
    if make_default:
        Address.objects.filter(customer=customer, is_default=True).update(is_default=False)
    address = Address.objects.create(customer=customer, is_default=make_default, **data)
    record_audit(
        actor=customer,
        action="address.create",
        entity_type="address",
        entity_id=address.id,
        payload={"is_default": make_default},
    )
    return address


@transaction.atomic
def update_address(*, address, data):
    _lock_customer_addresses(address.customer)
    make_default = data.pop("is_default", None)
    for field, value in data.items():
        setattr(address, field, value)
    if make_default and not address.is_default:
        Address.objects.filter(customer=address.customer, is_default=True).update(is_default=False)
        address.is_default = True
    address.save()
    record_audit(
        actor=address.customer,
        action="address.update",
        entity_type="address",
        entity_id=address.id,
        payload={"fields": sorted(data), "is_default": address.is_default},
    )
    return address


@transaction.atomic
def set_default_address(*, address):
    _lock_customer_addresses(address.customer)
    if not address.is_default:
        Address.objects.filter(customer=address.customer, is_default=True).update(is_default=False)
        address.is_default = True
        address.save(update_fields=["is_default", "updated_at"])
        record_audit(
            actor=address.customer,
            action="address.set_default",
            entity_type="address",
            entity_id=address.id,
        )
    return address


@transaction.atomic
def delete_address(*, address):
    customer = address.customer
    _lock_customer_addresses(customer)
    was_default = address.is_default
    address_id = address.id
    address.delete()

    promoted = None
    if was_default:
        promoted = Address.objects.filter(customer=customer).order_by("-created_at").first()
        if promoted:
            promoted.is_default = True
            promoted.save(update_fields=["is_default", "updated_at"])

    record_audit(
        actor=customer,
        action="address.delete",
        entity_type="address",
        entity_id=address_id,
        payload={"promoted_default": str(promoted.id) if promoted else None},
    )
    return promoted
