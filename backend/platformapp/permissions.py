# backend/platformapp/permissions.py
from __future__ import annotations
from typing import Optional

from rest_framework.permissions import BasePermission


def get_request_tenant_id(request) -> Optional[str]:
    """
    Standard way to read the tenant from the request.
    - Prefer X-Tenant-ID header
    - Fallback to ?tenant= query param
    """
    tid = request.META.get("HTTP_X_TENANT_ID") or request.query_params.get("tenant")
    return str(tid) if tid else None


class HasTenantContext(BasePermission):
    """
    Require a tenant context (header or query) for any request (read or write).
    """
    message = "X-Tenant-ID header or ?tenant= is required."

    def has_permission(self, request, view):
        return get_request_tenant_id(request) is not None
