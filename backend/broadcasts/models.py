from django.db import models
from django.utils import timezone
from common.models import BaseModel

from . import states


SCOPE_ALL_PARENTS = "all_parents"
SCOPE_CLASS_PARENTS = "class_parents"

SCOPE_CHOICES = (
    (SCOPE_ALL_PARENTS, "All parents"),
    (SCOPE_CLASS_PARENTS, "Parents of selected classes"),
)

DELIVERY_PENDING = "pending"
DELIVERY_SENT = "sent"
DELIVERY_FAILED = "failed"

DELIVERY_STATUS = (
    (DELIVERY_PENDING, "Pending"),
    (DELIVERY_SENT, "Sent"),
    (DELIVERY_FAILED, "Failed"),
)

FAILURE_REASON_MAX = 500


class Broadcast(BaseModel):
    """
    One outbound campaign for one school. Counters are written only by the
    dispatcher (with F() expressions); read them after refresh_from_db().
    """
    tenant = models.ForeignKey("platformapp.Tenant", on_delete=models.CASCADE, related_name="broadcasts")

    subject = models.CharField(max_length=255, blank=True, null=True)
    body = models.TextField()
    subject_localized = models.CharField(max_length=255, blank=True, null=True)
    body_localized = models.TextField(blank=True, null=True)

    scope = models.CharField(max_length=16, choices=SCOPE_CHOICES, default=SCOPE_ALL_PARENTS)
    target_class_ids = models.JSONField(default=list, blank=True)
    template_id = models.UUIDField(blank=True, null=True)
    placeholder_values = models.JSONField(default=dict, blank=True)  # {"event_date": "12 May"}
    extra_messages = models.JSONField(default=list, blank=True)  # [{"type": "sticker", ...}]

    status = models.CharField(max_length=16, choices=states.BROADCAST_STATUS, default=states.DRAFT)
    total_recipients = models.IntegerField(default=0)
    sent_count = models.IntegerField(default=0)
    failed_count = models.IntegerField(default=0)
    error_message = models.TextField(blank=True, null=True)

    created_by_id = models.CharField(max_length=64, blank=True, null=True)
    sent_at = models.DateTimeField(blank=True, null=True)
    completed_at = models.DateTimeField(blank=True, null=True)
    heartbeat_at = models.DateTimeField(blank=True, null=True)

    class Meta:
        indexes = [
            models.Index(fields=["tenant", "status", "created_at"]),
            models.Index(fields=["status", "heartbeat_at"]),
        ]

    def __str__(self):
        return f"Broadcast#{self.id} {self.status} ({self.sent_count}/{self.failed_count}/{self.total_recipients})"

    def mark_sending(self):
        states.check_transition(self.status, states.SENDING)
        self.status = states.SENDING
        self.heartbeat_at = timezone.now()
        self.save(update_fields=["status", "heartbeat_at", "updated_at"])

    def mark_completed(self):
        self.refresh_from_db(fields=["sent_count", "failed_count", "total_recipients"])
        final = states.terminal_status(self.sent_count, self.failed_count)
        states.check_transition(self.status, final)
        self.status = final
        self.completed_at = timezone.now()
        self.save(update_fields=["status", "completed_at", "updated_at"])

    def mark_failed(self, msg=""):
        states.check_transition(self.status, states.FAILED)
        self.status = states.FAILED
        self.error_message = msg
        self.completed_at = timezone.now()
        self.save(update_fields=["status", "error_message", "completed_at", "updated_at"])


class DeliveryRecord(models.Model):
    """
    One recipient's outcome within one broadcast. pending -> sent|failed, once.
    """
    id = models.BigAutoField(primary_key=True)
    tenant = models.ForeignKey("platformapp.Tenant", on_delete=models.CASCADE, related_name="delivery_records")
    broadcast = models.ForeignKey("broadcasts.Broadcast", on_delete=models.CASCADE, related_name="records")

    recipient_id = models.CharField(max_length=64)  # recipient store id, usually a guardian uuid
    subject_id = models.CharField(max_length=64, blank=True, null=True)  # linked student, for display
    destination_id = models.CharField(max_length=64)

    status = models.CharField(max_length=16, choices=DELIVERY_STATUS, default=DELIVERY_PENDING)
    sent_at = models.DateTimeField(blank=True, null=True)
    failed_at = models.DateTimeField(blank=True, null=True)
    failure_reason = models.CharField(max_length=FAILURE_REASON_MAX, blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = (("broadcast", "recipient_id"),)
        indexes = [
            models.Index(fields=["tenant", "broadcast", "status"]),
        ]
