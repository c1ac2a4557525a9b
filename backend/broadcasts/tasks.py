from __future__ import annotations
import logging
from datetime import timedelta
from typing import Optional

from celery import shared_task
from django.conf import settings
from django.db.models import Q
from django.utils import timezone

from . import states
from .dispatcher import BroadcastDispatcher
from .exceptions import NotFound
from .models import Broadcast

logger = logging.getLogger(__name__)


@shared_task(ignore_result=True)
def send_broadcast_task(broadcast_id: str, tenant_id: Optional[str] = None):
    """
    Background half of "send": resolve, fan out, and settle the final status.
    Failures are recorded on the broadcast itself; the caller polls status.
    """
    try:
        BroadcastDispatcher().run(broadcast_id, tenant_id=tenant_id)
    except NotFound:
        logger.warning("broadcast %s vanished before dispatch", broadcast_id)


@shared_task
def resume_stalled_broadcasts(stall_seconds: Optional[int] = None) -> dict:
    """
    Beat job: finish SENDING broadcasts whose worker stopped reporting progress
    (process crash, deploy). Only PENDING delivery records are re-sent.
    """
    stall = int(stall_seconds or getattr(settings, "BROADCAST_STALL_SECONDS", 900))
    cutoff = timezone.now() - timedelta(seconds=stall)

    ids = list(
        Broadcast.objects.filter(status=states.SENDING)
        .filter(Q(heartbeat_at__lt=cutoff) | Q(heartbeat_at__isnull=True, updated_at__lt=cutoff))
        .order_by("created_at")
        .values_list("id", flat=True)
    )
    if not ids:
        return {"ok": True, "stalled": 0, "resumed": 0}

    dispatcher = BroadcastDispatcher()
    resumed = 0
    for bid in ids:
        try:
            if dispatcher.resume(bid, stalled_before=cutoff) is not None:
                resumed += 1
        except Exception:
            logger.exception("resume of broadcast %s failed", bid)
    logger.info("stalled broadcasts: %d found, %d resumed", len(ids), resumed)
    return {"ok": True, "stalled": len(ids), "resumed": resumed}
