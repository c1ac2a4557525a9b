# backend/common/mixins.py
from __future__ import annotations

import uuid
from typing import Iterable, Optional
from django.db.models import Q, Model
from django.core.exceptions import FieldDoesNotExist
from rest_framework.viewsets import ModelViewSet
from rest_framework.pagination import PageNumberPagination
from rest_framework.exceptions import PermissionDenied, ValidationError
from rest_framework.permissions import SAFE_METHODS

# -----------------------------
# Pagination
# -----------------------------
class DefaultPagination(PageNumberPagination):
    page_size = 25
    page_size_query_param = "page_size"
    max_page_size = 200


# -----------------------------
# Base tenant-scoped MVSet
# -----------------------------
class TenantScopedModelViewSet(ModelViewSet):
    """
    Opinionated, multi-tenant base ViewSet:

    - Reads tenant from `X-Tenant-ID` header or `?tenant=` query param.
    - If tenant is present, auto-filters queryset by `<tenant_field>_id=...`.
    - If tenant is missing: reads return an empty set, writes are forbidden.
    - Adds simple "q" search (icontains across `search_fields`) and "order" (comma-separated).

    Override:
      - `tenant_field` (default "tenant")
      - `search_fields` (tuple of field names)
      - `ordering_fields` (tuple of field names allowed for ordering)
      - `default_ordering` (sequence)
    """
    pagination_class = DefaultPagination

    tenant_header = "HTTP_X_TENANT_ID"
    tenant_query_param = "tenant"
    tenant_field = "tenant"

    search_fields: Iterable[str] = tuple()
    ordering_fields: Iterable[str] = tuple()
    default_ordering: Iterable[str] = ("-created_at",)

    # ---- Tenant helpers ----
    def get_tenant_id(self) -> Optional[str]:
        req = self.request
        tid = req.META.get(self.tenant_header) or req.query_params.get(self.tenant_query_param)
        if not tid:
            return None
        try:
            return str(uuid.UUID(str(tid)))
        except ValueError:
            raise ValidationError({"tenant": "Malformed tenant id."})

    def require_tenant_id(self) -> str:
        tenant_id = self.get_tenant_id()
        if not tenant_id:
            raise PermissionDenied("Missing tenant context")
        return tenant_id

    # ---- Queryset plumbing ----
    def _model_class(self) -> type[Model]:
        if hasattr(self, "queryset") and self.queryset is not None:
            return self.queryset.model
        return self.get_serializer().Meta.model  # type: ignore[attr-defined]

    def _has_field(self, field_name: str) -> bool:
        try:
            self._model_class()._meta.get_field(field_name)
            return True
        except FieldDoesNotExist:
            return False

    def _apply_tenant_filter(self, qs, tenant_id: str):
        return qs.filter(**{f"{self.tenant_field}_id": tenant_id})

    def _apply_search(self, qs):
        q = self.request.query_params.get("q")
        if not q:
            return qs
        fields = tuple(self.search_fields) or tuple(
            f for f in ("name", "title", "subject") if self._has_field(f)
        )
        if not fields:
            return qs
        cond = Q()
        for f in fields:
            cond |= Q(**{f"{f}__icontains": q})
        return qs.filter(cond)

    def _apply_ordering(self, qs):
        order_param = self.request.query_params.get("order")
        fields_allowed = set(self.ordering_fields or ())
        if order_param:
            items = [s.strip() for s in order_param.split(",") if s.strip()]
            cleaned = []
            for it in items:
                base = it[1:] if it.startswith("-") else it
                if not fields_allowed or base in fields_allowed:
                    cleaned.append(it)
            if cleaned:
                return qs.order_by(*cleaned)
        return qs.order_by(*self.default_ordering) if self.default_ordering else qs

    def get_queryset(self):
        if hasattr(self, "queryset") and self.queryset is not None:
            qs = self.queryset.all()
        else:
            qs = self._model_class().objects.all()

        tenant_id = self.get_tenant_id()
        if not tenant_id:
            # For safe methods, return empty; for mutations, block
            if self.request.method in SAFE_METHODS:
                return qs.none()
            raise PermissionDenied("Missing tenant context")

        qs = self._apply_tenant_filter(qs, tenant_id)
        qs = self._apply_search(qs)
        qs = self._apply_ordering(qs)
        return qs
