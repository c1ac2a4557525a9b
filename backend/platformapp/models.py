from django.db import models
from common.models import BaseModel


PROVIDER_CHOICES = (
    ("line", "LINE Messaging API"),
)


class Tenant(BaseModel):
    """A school. Every other row in the system hangs off one of these."""
    slug = models.SlugField(max_length=100, unique=True)
    name = models.CharField(max_length=200)
    status = models.CharField(max_length=20, default="active")
    timezone = models.CharField(max_length=64, default="UTC")

    def __str__(self):
        return self.name


class ProviderCredential(BaseModel):
    """
    Per-school messaging channel credentials. Each school runs its own LINE
    official account, so tokens are never shared across tenants.
    """
    tenant = models.OneToOneField("platformapp.Tenant", on_delete=models.CASCADE, related_name="provider_credential")
    provider = models.CharField(max_length=16, choices=PROVIDER_CHOICES, default="line")
    channel_id = models.CharField(max_length=64, blank=True, null=True)
    channel_secret = models.CharField(max_length=128, blank=True, null=True)
    access_token = models.TextField(blank=True, null=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        indexes = [models.Index(fields=["tenant", "provider"])]

    def __str__(self):
        return f"{self.provider} credentials for {self.tenant_id}"
