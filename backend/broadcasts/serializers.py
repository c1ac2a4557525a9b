from rest_framework import serializers

from .models import Broadcast, DeliveryRecord, SCOPE_CHOICES


class BroadcastSerializer(serializers.ModelSerializer):
    class Meta:
        model = Broadcast
        fields = "__all__"
        read_only_fields = (
            "tenant", "status", "total_recipients", "sent_count", "failed_count", "error_message",
            "created_by_id", "sent_at", "completed_at", "heartbeat_at", "created_at", "updated_at",
        )


class BroadcastCreateSerializer(serializers.Serializer):
    """
    Shape check only; business rules (scope/class ownership, message limits)
    live in services.create_broadcast so the CLI gets them too.
    """
    subject = serializers.CharField(max_length=255, required=False, allow_blank=True, allow_null=True)
    subject_localized = serializers.CharField(max_length=255, required=False, allow_blank=True, allow_null=True)
    body = serializers.CharField(required=False, allow_blank=True, allow_null=True, trim_whitespace=False)
    body_localized = serializers.CharField(required=False, allow_blank=True, allow_null=True, trim_whitespace=False)
    scope = serializers.ChoiceField(choices=SCOPE_CHOICES, required=False, allow_null=True)
    target_class_ids = serializers.ListField(child=serializers.CharField(), required=False, default=list)
    template_id = serializers.UUIDField(required=False, allow_null=True)
    placeholder_values = serializers.DictField(required=False, default=dict)
    extra_messages = serializers.ListField(child=serializers.JSONField(), required=False, default=list)
    send_now = serializers.BooleanField(required=False, default=False)


class BroadcastStatusSerializer(serializers.Serializer):
    status = serializers.CharField()
    total_recipients = serializers.IntegerField()
    sent_count = serializers.IntegerField()
    failed_count = serializers.IntegerField()


class DeliveryRecordSerializer(serializers.ModelSerializer):
    class Meta:
        model = DeliveryRecord
        fields = (
            "id", "broadcast", "recipient_id", "subject_id", "status",
            "sent_at", "failed_at", "failure_reason", "created_at",
        )
        read_only_fields = fields
