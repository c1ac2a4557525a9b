from django.contrib import admin

from .models import Tenant, ProviderCredential


@admin.register(Tenant)
class TenantAdmin(admin.ModelAdmin):
    list_display = ('name', 'slug', 'status', 'timezone')
    search_fields = ('name', 'slug')


@admin.register(ProviderCredential)
class ProviderCredentialAdmin(admin.ModelAdmin):
    list_display = ('tenant', 'provider', 'channel_id', 'is_active')
    list_filter = ('provider', 'is_active')
    search_fields = ('tenant__name', 'channel_id')
    exclude = ('channel_secret',)
