from dataclasses import dataclass
from typing import Optional

from .exceptions import NotConfigured


@dataclass(frozen=True)
class LineCredentials:
    access_token: str
    channel_id: Optional[str] = None
    channel_secret: Optional[str] = None

    def __repr__(self):
        return f"LineCredentials(channel_id={self.channel_id!r}, access_token='***')"


class CredentialProvider:
    def get(self, tenant_id) -> LineCredentials:
        raise NotImplementedError


class TenantCredentialProvider(CredentialProvider):
    """Reads the school's own LINE channel token from platformapp."""

    def get(self, tenant_id) -> LineCredentials:
        from platformapp.models import ProviderCredential

        cred = ProviderCredential.objects.filter(tenant_id=tenant_id, provider="line", is_active=True).first()
        if not cred or not (cred.access_token or "").strip():
            raise NotConfigured(f"LINE credentials not configured for tenant {tenant_id}")
        return LineCredentials(
            access_token=cred.access_token.strip(),
            channel_id=cred.channel_id,
            channel_secret=cred.channel_secret,
        )
