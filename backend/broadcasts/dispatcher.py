from __future__ import annotations
import logging
import time
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from datetime import datetime
from typing import Iterator, List, Optional, Sequence, Tuple

from django.conf import settings
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from . import states
from .batching import chunked, effective_batch_size, sec_for_batch
from .clients import PushClient, get_push_client
from .credentials import CredentialProvider, LineCredentials, TenantCredentialProvider
from .exceptions import NotConfigured, NotFound
from .messages import Message, TextMessage, as_messages
from .models import (
    Broadcast, DeliveryRecord, DELIVERY_PENDING, DELIVERY_SENT, DELIVERY_FAILED, FAILURE_REASON_MAX,
)
from .recipients import RecipientStore, RosterRecipientStore, Scope, resolve_recipients
from .rendering import default_values, render

logger = logging.getLogger(__name__)

# (recipient_id, destination_id)
Target = Tuple[str, str]


class BroadcastDispatcher:
    """
    Drives one broadcast from SENDING to a terminal status.

    Provider calls may run on a small thread pool, but only the calling thread
    touches the database: it applies each batch outcome as it completes, and
    counters move through F() expressions, so concurrent batches never lose
    an increment. A batch outcome that cannot be written is retried, then
    left PENDING for resume rather than guessed.

    With a per-minute throttle, batch i is not sent before the summed
    `sec_for_batch` delays of the batches ahead of it.
    """

    apply_attempts = 3
    apply_retry_delay = 0.5
    heartbeat_interval = 60

    def __init__(
        self,
        credential_provider: Optional[CredentialProvider] = None,
        push_client: Optional[PushClient] = None,
        store: Optional[RecipientStore] = None,
        max_batch_size: Optional[int] = None,
        max_workers: Optional[int] = None,
        rate_per_min: Optional[int] = None,
    ):
        self.credentials = credential_provider or TenantCredentialProvider()
        self.push_client = push_client or get_push_client()
        self.store = store or RosterRecipientStore()
        self.max_batch_size = effective_batch_size(
            max_batch_size if max_batch_size is not None else getattr(settings, "BROADCAST_MAX_BATCH_SIZE", 500)
        )
        self.max_workers = max(1, int(max_workers if max_workers is not None else getattr(settings, "BROADCAST_MAX_WORKERS", 1)))
        self.rate_per_min = int(rate_per_min if rate_per_min is not None else getattr(settings, "BROADCAST_RATE_PER_MIN", 0))
        self.sleep = time.sleep
        self.clock = time.monotonic

    # -------- entry points --------

    def run(self, broadcast_id, tenant_id=None) -> Optional[Broadcast]:
        """Start a DRAFT or freshly SENDING broadcast. Returns None if it was already started."""
        b = self._claim_new(broadcast_id, tenant_id)
        if b is None:
            return None
        prepared = self._prepare(b)
        if prepared is None:
            return b
        return self._deliver(b, *prepared)

    def resume(self, broadcast_id, stalled_before: Optional[datetime] = None) -> Optional[Broadcast]:
        """
        Pick up a SENDING broadcast whose worker died. Only PENDING records are
        sent again; records that already reached sent/failed are left alone.
        """
        b = self._claim_stalled(broadcast_id, stalled_before)
        if b is None:
            return None

        if not b.records.exists():
            # died before the audience was persisted
            prepared = self._prepare(b)
            if prepared is None:
                return b
            return self._deliver(b, *prepared)

        try:
            auth = self.credentials.get(b.tenant_id)
        except NotConfigured as e:
            logger.warning("resume of broadcast %s aborted: %s", b.id, e)
            self._fail_pending(b, str(e))
            b.mark_completed()
            return b

        pending = list(
            b.records.filter(status=DELIVERY_PENDING)
            .order_by("recipient_id")
            .values_list("recipient_id", "destination_id")
        )
        logger.info("resuming broadcast %s: %d pending recipients", b.id, len(pending))
        return self._deliver(b, auth, pending)

    # -------- claiming --------

    def _claim_new(self, broadcast_id, tenant_id) -> Optional[Broadcast]:
        with transaction.atomic():
            qs = Broadcast.objects.select_for_update().filter(pk=broadcast_id)
            if tenant_id is not None:
                qs = qs.filter(tenant_id=tenant_id)
            b = qs.first()
            if b is None:
                raise NotFound(f"broadcast {broadcast_id} not found")

            if b.status == states.DRAFT:
                b.mark_sending()
            elif b.status != states.SENDING or b.sent_at is not None:
                logger.info("broadcast %s already %s, not dispatching again", b.id, b.status)
                return None

            now = timezone.now()
            b.sent_at = now
            b.heartbeat_at = now
            b.save(update_fields=["sent_at", "heartbeat_at", "updated_at"])
            return b

    def _claim_stalled(self, broadcast_id, stalled_before) -> Optional[Broadcast]:
        with transaction.atomic():
            b = Broadcast.objects.select_for_update().filter(pk=broadcast_id, status=states.SENDING).first()
            if b is None:
                return None
            last_seen = b.heartbeat_at or b.updated_at
            if stalled_before is not None and last_seen and last_seen >= stalled_before:
                return None
            now = timezone.now()
            b.sent_at = b.sent_at or now
            b.heartbeat_at = now
            b.save(update_fields=["sent_at", "heartbeat_at", "updated_at"])
            return b

    # -------- audience --------

    def _prepare(self, b: Broadcast) -> Optional[Tuple[LineCredentials, List[Target]]]:
        """
        Credentials, audience and PENDING records. Returns (auth, targets),
        or None when the broadcast already reached a terminal state.
        """
        try:
            auth = self.credentials.get(b.tenant_id)
        except NotConfigured as e:
            logger.warning("broadcast %s failed: %s", b.id, e)
            b.mark_failed("provider credentials not configured")
            return None

        try:
            recipients = resolve_recipients(b.tenant_id, Scope.from_broadcast(b), self.store)
        except Exception as e:
            logger.exception("recipient resolution failed for broadcast %s", b.id)
            b.mark_failed(f"recipient resolution failed: {e}"[:FAILURE_REASON_MAX])
            return None

        if not recipients:
            logger.info("broadcast %s has an empty audience", b.id)
            b.mark_completed()
            return None

        try:
            with transaction.atomic():
                DeliveryRecord.objects.bulk_create(
                    [
                        DeliveryRecord(
                            tenant_id=b.tenant_id,
                            broadcast=b,
                            recipient_id=str(r.id),
                            subject_id=r.subject_id,
                            destination_id=r.destination_id,
                            status=DELIVERY_PENDING,
                        )
                        for r in recipients
                    ],
                    batch_size=1000,
                )
                Broadcast.objects.filter(pk=b.pk).update(
                    total_recipients=len(recipients), heartbeat_at=timezone.now(), updated_at=timezone.now(),
                )
        except Exception as e:
            logger.exception("could not record the audience of broadcast %s", b.id)
            b.mark_failed(f"could not record recipients: {e}"[:FAILURE_REASON_MAX])
            return None

        b.total_recipients = len(recipients)
        return auth, [(str(r.id), r.destination_id) for r in recipients]

    # -------- delivery --------

    def build_messages(self, b: Broadcast) -> List[Message]:
        text = render(b.body, default_values(b))
        return [TextMessage(text)] + as_messages(b.extra_messages or [])

    def _deliver(self, b: Broadcast, auth: LineCredentials, targets: Sequence[Target]) -> Broadcast:
        logger.info(
            "dispatching broadcast %s: %d recipients, batch size %d, %d worker(s)",
            b.id, len(targets), self.max_batch_size, self.max_workers,
        )
        try:
            messages = self.build_messages(b)
        except Exception as e:
            # nothing has been submitted yet
            logger.exception("dispatch of broadcast %s aborted", b.id)
            self._fail_pending(b, f"dispatch aborted: {e}")
            b.mark_completed()
            return b

        start = self.clock()
        unsettled = 0
        if self.max_workers == 1:
            for batch, eta in self._plan(targets):
                self._wait_until(b, start + eta)
                unsettled += not self._settle(b, batch, self._send(auth, batch, messages))
        else:
            with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="broadcast") as pool:
                futures = {
                    pool.submit(self._send, auth, batch, messages, start + eta): batch
                    for batch, eta in self._plan(targets)
                }
                pending = set(futures)
                while pending:
                    done, pending = wait(pending, timeout=self.heartbeat_interval, return_when=FIRST_COMPLETED)
                    if not done:
                        self._touch(b)
                    for fut in done:
                        unsettled += not self._settle(b, futures[fut], fut.result())

        if unsettled:
            logger.error(
                "broadcast %s: %d batch outcome(s) could not be recorded, left in SENDING for resume",
                b.id, unsettled,
            )
            return b

        b.mark_completed()
        logger.info(
            "broadcast %s finished %s: sent=%d failed=%d total=%d",
            b.id, b.status, b.sent_count, b.failed_count, b.total_recipients,
        )
        return b

    def _plan(self, targets: Sequence[Target]) -> Iterator[Tuple[List[Target], int]]:
        """(batch, seconds after start) pairs; offsets grow by the throttle delay of each batch."""
        offset = 0
        for batch in chunked(targets, self.max_batch_size):
            yield batch, offset
            offset += sec_for_batch(len(batch), self.rate_per_min)

    def _wait_until(self, b: Broadcast, deadline: float) -> None:
        """Throttle wait on the dispatching thread, keeping the heartbeat fresh."""
        while True:
            remaining = deadline - self.clock()
            if remaining <= 0:
                return
            self._touch(b)
            self.sleep(min(remaining, self.heartbeat_interval))

    def _touch(self, b: Broadcast) -> None:
        now = timezone.now()
        Broadcast.objects.filter(pk=b.pk).update(heartbeat_at=now, updated_at=now)

    def _settle(self, b: Broadcast, batch: Sequence[Target], error: Optional[str]) -> bool:
        """Record one batch outcome. False means its records stay PENDING."""
        for attempt in range(1, self.apply_attempts + 1):
            try:
                self._apply(b, batch, error)
                return True
            except Exception:
                logger.exception(
                    "broadcast %s: recording a batch of %d failed (attempt %d/%d)",
                    b.id, len(batch), attempt, self.apply_attempts,
                )
                if attempt < self.apply_attempts:
                    self.sleep(self.apply_retry_delay * attempt)
        return False

    def _send(
        self, auth: LineCredentials, batch: Sequence[Target], messages: List[Message], not_before: Optional[float] = None,
    ) -> Optional[str]:
        """Returns None on success, else the failure reason. Runs on worker threads: no DB access."""
        if not_before is not None:
            delay = not_before - self.clock()
            if delay > 0:
                self.sleep(delay)
        try:
            self.push_client.send_batch(auth, [dest for _, dest in batch], messages)
        except Exception as e:
            # whole batch fails; the provider does not tell us which id was bad
            return str(e) or e.__class__.__name__
        return None

    def _apply(self, b: Broadcast, batch: Sequence[Target], error: Optional[str]) -> int:
        now = timezone.now()
        pending = DeliveryRecord.objects.filter(
            broadcast_id=b.pk, recipient_id__in=[rid for rid, _ in batch], status=DELIVERY_PENDING,
        )
        with transaction.atomic():
            if error is None:
                n = pending.update(status=DELIVERY_SENT, sent_at=now)
                Broadcast.objects.filter(pk=b.pk).update(sent_count=F("sent_count") + n, heartbeat_at=now, updated_at=now)
            else:
                logger.warning("broadcast %s: batch of %d failed: %s", b.id, len(batch), error)
                n = pending.update(status=DELIVERY_FAILED, failed_at=now, failure_reason=error[:FAILURE_REASON_MAX])
                Broadcast.objects.filter(pk=b.pk).update(failed_count=F("failed_count") + n, heartbeat_at=now, updated_at=now)
        return n

    def _fail_pending(self, b: Broadcast, reason: str) -> int:
        now = timezone.now()
        with transaction.atomic():
            n = DeliveryRecord.objects.filter(broadcast_id=b.pk, status=DELIVERY_PENDING).update(
                status=DELIVERY_FAILED, failed_at=now, failure_reason=reason[:FAILURE_REASON_MAX],
            )
            Broadcast.objects.filter(pk=b.pk).update(failed_count=F("failed_count") + n, heartbeat_at=now, updated_at=now)
        return n
