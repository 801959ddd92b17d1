import logging

from apps.audit.models import AuditLog

logger = logging.getLogger(__name__)


def record_audit(*, actor, action, entity_type, entity_id, payload=None):
    """Append one audit row; the caller owns the surrounding transaction."""
    entry = AuditLog.objects.create(
        actor=actor if actor is not None and actor.is_authenticated else None,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        payload=payload or {},
    )
    logger.info(
        "audit %s",
        action,
        extra={"entity_type": entity_type, "entity_id": str(entity_id), "actor_id": entry.actor_id},
    )
    return entry
