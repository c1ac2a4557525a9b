"""
Operations exposed to the REST/CLI layer. Every lookup is scoped by tenant id;
a broadcast id from another school behaves exactly like a missing one.
"""
from __future__ import annotations
import uuid
from typing import Any, Dict, Iterable, List, Optional

from django.db import transaction
from django.utils import timezone

from . import states
from .exceptions import InvalidState, NotFound, ValidationError
from .messages import MAX_MESSAGES_PER_REQUEST, as_messages
from .models import Broadcast, DeliveryRecord
from .recipients import RecipientStore, Scope, resolve_recipients

DEFAULT_RECORDS_PAGE_SIZE = 100
MAX_RECORDS_PAGE_SIZE = 500


def parse_uuid(value, what="id") -> uuid.UUID:
    try:
        return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        raise ValidationError(f"invalid {what}: {value!r}")


def _enqueue(b: Broadcast) -> None:
    from .tasks import send_broadcast_task
    bid, tid = str(b.id), str(b.tenant_id)
    transaction.on_commit(lambda: send_broadcast_task.delay(bid, tid))


def get_broadcast(tenant_id, broadcast_id, for_update=False) -> Broadcast:
    try:
        pk = parse_uuid(broadcast_id, "broadcast id")
    except ValidationError:
        raise NotFound(f"broadcast {broadcast_id} not found")
    qs = Broadcast.objects.select_for_update() if for_update else Broadcast.objects.all()
    b = qs.filter(tenant_id=tenant_id, pk=pk).first()
    if b is None:
        raise NotFound(f"broadcast {broadcast_id} not found")
    return b


def _validate_class_ids(tenant_id, class_ids: Iterable) -> List[str]:
    from roster.models import SchoolClass

    ids = [str(parse_uuid(c, "class id")) for c in class_ids]
    known = {str(pk) for pk in SchoolClass.objects.filter(tenant_id=tenant_id, id__in=ids).values_list("id", flat=True)}
    unknown = [c for c in ids if c not in known]
    if unknown:
        raise ValidationError(f"unknown class ids: {', '.join(unknown)}")
    return ids


def create_broadcast(
    tenant_id,
    *,
    body: Optional[str],
    scope: Optional[str],
    subject: Optional[str] = None,
    subject_localized: Optional[str] = None,
    body_localized: Optional[str] = None,
    target_class_ids: Optional[Iterable] = None,
    template_id=None,
    placeholder_values: Optional[Dict[str, Any]] = None,
    extra_messages: Optional[List[Any]] = None,
    send_immediately: bool = False,
    created_by_id: Optional[str] = None,
) -> Broadcast:
    """
    Persist a DRAFT broadcast, or a SENDING one whose dispatch is queued for
    after commit. Raises ValidationError before anything is written.
    """
    from platformapp.models import Tenant

    if not (body or "").strip():
        raise ValidationError("body is required")
    if not scope:
        raise ValidationError("scope is required")
    parsed_scope = Scope(scope, tuple(target_class_ids or ()))
    class_ids = _validate_class_ids(tenant_id, parsed_scope.group_ids) if parsed_scope.is_scoped else []

    extras = as_messages(extra_messages or [])
    if len(extras) > MAX_MESSAGES_PER_REQUEST - 1:
        raise ValidationError(f"at most {MAX_MESSAGES_PER_REQUEST - 1} extra messages alongside the text")
    if placeholder_values is not None and not isinstance(placeholder_values, dict):
        raise ValidationError("placeholder_values must be an object")

    if not Tenant.objects.filter(id=tenant_id).exists():
        raise NotFound(f"tenant {tenant_id} not found")

    with transaction.atomic():
        b = Broadcast.objects.create(
            tenant_id=tenant_id,
            subject=subject,
            subject_localized=subject_localized,
            body=body,
            body_localized=body_localized,
            scope=parsed_scope.kind,
            target_class_ids=class_ids,
            template_id=parse_uuid(template_id, "template id") if template_id else None,
            placeholder_values=placeholder_values or {},
            extra_messages=[m.to_payload() for m in extras],
            status=states.SENDING if send_immediately else states.DRAFT,
            heartbeat_at=timezone.now() if send_immediately else None,
            created_by_id=str(created_by_id) if created_by_id else None,
        )
        if send_immediately:
            _enqueue(b)
    return b


def send_broadcast(tenant_id, broadcast_id) -> Broadcast:
    with transaction.atomic():
        b = get_broadcast(tenant_id, broadcast_id, for_update=True)
        if b.status != states.DRAFT:
            raise InvalidState(f"only draft broadcasts can be sent (status is {b.status})")
        b.mark_sending()
        _enqueue(b)
    return b


def get_broadcast_status(tenant_id, broadcast_id) -> Dict[str, Any]:
    b = get_broadcast(tenant_id, broadcast_id)
    return {
        "status": b.status,
        "total_recipients": b.total_recipients,
        "sent_count": b.sent_count,
        "failed_count": b.failed_count,
    }


def list_delivery_records(tenant_id, broadcast_id, page: int = 1, page_size: int = DEFAULT_RECORDS_PAGE_SIZE) -> List[DeliveryRecord]:
    b = get_broadcast(tenant_id, broadcast_id)
    if page < 1 or page_size < 1:
        raise ValidationError("page and page_size must be positive")
    page_size = min(page_size, MAX_RECORDS_PAGE_SIZE)
    offset = (page - 1) * page_size
    qs = DeliveryRecord.objects.filter(tenant_id=tenant_id, broadcast=b).order_by("recipient_id")
    return list(qs[offset : offset + page_size])


def delete_broadcast(tenant_id, broadcast_id) -> None:
    with transaction.atomic():
        b = get_broadcast(tenant_id, broadcast_id, for_update=True)
        if b.status != states.DRAFT:
            raise InvalidState("only draft broadcasts can be deleted")
        b.delete()


def preview_recipients(tenant_id, scope: Scope, store: Optional[RecipientStore] = None) -> Dict[str, Any]:
    recipients = resolve_recipients(tenant_id, scope, store)
    return {
        "count": len(recipients),
        "recipients": [
            {
                "id": r.id,
                "name": r.name,
                "line_display_name": r.display_name,
                "students": list(r.subject_names),
            }
            for r in recipients
        ],
    }


def list_classes(tenant_id) -> List[Dict[str, Any]]:
    """Classes to pick a class_parents scope from, with active student counts."""
    from roster.selectors import classes_with_student_counts

    return [
        {"id": str(c.id), "name": c.name, "student_count": c.student_count}
        for c in classes_with_student_counts(tenant_id)
    ]
