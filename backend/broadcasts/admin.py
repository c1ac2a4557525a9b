from django.contrib import admin

from .models import Broadcast, DeliveryRecord


@admin.register(Broadcast)
class BroadcastAdmin(admin.ModelAdmin):
    list_display = ('id', 'tenant', 'subject', 'scope', 'status', 'total_recipients', 'sent_count', 'failed_count', 'created_at')
    list_filter = ('status', 'scope')
    search_fields = ('subject', 'body', 'tenant__name')
    readonly_fields = ('status', 'total_recipients', 'sent_count', 'failed_count', 'sent_at', 'completed_at', 'heartbeat_at')


@admin.register(DeliveryRecord)
class DeliveryRecordAdmin(admin.ModelAdmin):
    list_display = ('broadcast', 'recipient_id', 'status', 'sent_at', 'failed_at')
    list_filter = ('status',)
    search_fields = ('recipient_id', 'failure_reason')
