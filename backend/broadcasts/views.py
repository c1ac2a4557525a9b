from rest_framework import permissions, filters, status
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.views import APIView
from django_filters.rest_framework import DjangoFilterBackend

from common.mixins import TenantScopedModelViewSet
from platformapp.permissions import HasTenantContext, get_request_tenant_id
from . import services
from .clients import get_push_client
from .credentials import TenantCredentialProvider
from .exceptions import BatchSendError, InvalidState, NotConfigured, NotFound, ValidationError
from .models import Broadcast, SCOPE_ALL_PARENTS
from .recipients import Scope
from .serializers import (
    BroadcastSerializer, BroadcastCreateSerializer, BroadcastStatusSerializer, DeliveryRecordSerializer,
)


READ_FILTERS = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]


def _error(exc):
    if isinstance(exc, NotFound):
        return Response({"detail": "Broadcast not found"}, status=status.HTTP_404_NOT_FOUND)
    if isinstance(exc, InvalidState):
        return Response({"detail": str(exc)}, status=status.HTTP_409_CONFLICT)
    return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)


def _int_param(request, name, default):
    raw = request.query_params.get(name)
    if raw in (None, ""):
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")


class BroadcastViewSet(TenantScopedModelViewSet):
    queryset = Broadcast.objects.all()
    serializer_class = BroadcastSerializer
    permission_classes = [permissions.IsAuthenticated, HasTenantContext]
    http_method_names = ["get", "post", "delete", "head", "options"]
    filter_backends = READ_FILTERS
    search_fields = ["subject", "body"]
    ordering_fields = ["created_at", "sent_at", "status"]
    filterset_fields = ["status", "scope"]

    def create(self, request, *args, **kwargs):
        """
        Body:
        {
          "subject": "...", "body": "Dear parents of {{school_name}} ...",
          "scope": "all_parents" | "class_parents", "target_class_ids": ["..."],
          "send_now": true
        }
        """
        tenant_id = self.require_tenant_id()
        ser = BroadcastCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data
        try:
            b = services.create_broadcast(
                tenant_id,
                subject=data.get("subject"),
                subject_localized=data.get("subject_localized"),
                body=data.get("body"),
                body_localized=data.get("body_localized"),
                scope=data.get("scope"),
                target_class_ids=data.get("target_class_ids"),
                template_id=data.get("template_id"),
                placeholder_values=data.get("placeholder_values"),
                extra_messages=data.get("extra_messages"),
                send_immediately=data.get("send_now", False),
                created_by_id=getattr(request.user, "pk", None),
            )
        except NotFound:
            return Response({"detail": "Tenant not found"}, status=status.HTTP_404_NOT_FOUND)
        except ValidationError as e:
            return _error(e)
        return Response(BroadcastSerializer(b).data, status=status.HTTP_201_CREATED)

    def destroy(self, request, pk=None, *args, **kwargs):
        try:
            services.delete_broadcast(self.require_tenant_id(), pk)
        except (NotFound, InvalidState) as e:
            return _error(e)
        return Response({"ok": True})

    @action(detail=True, methods=["post"])
    def send(self, request, pk=None):
        try:
            services.send_broadcast(self.require_tenant_id(), pk)
        except (NotFound, InvalidState) as e:
            return _error(e)
        return Response({"ok": True, "detail": "Broadcast sending started"}, status=status.HTTP_202_ACCEPTED)

    @action(detail=True, methods=["get"], url_path="status")
    def broadcast_status(self, request, pk=None):
        try:
            summary = services.get_broadcast_status(self.require_tenant_id(), pk)
        except NotFound as e:
            return _error(e)
        return Response(BroadcastStatusSerializer(summary).data)

    @action(detail=True, methods=["get"])
    def records(self, request, pk=None):
        try:
            page = _int_param(request, "page", 1)
            page_size = _int_param(request, "page_size", services.DEFAULT_RECORDS_PAGE_SIZE)
            rows = services.list_delivery_records(self.require_tenant_id(), pk, page=page, page_size=page_size)
        except (NotFound, ValidationError) as e:
            return _error(e)
        return Response({"page": page, "results": DeliveryRecordSerializer(rows, many=True).data})

    @action(detail=False, methods=["get"])
    def preview(self, request):
        """?scope=class_parents&class_ids=a,b"""
        kind = request.query_params.get("scope") or SCOPE_ALL_PARENTS
        raw_ids = [c for c in (request.query_params.get("class_ids") or "").split(",") if c.strip()]
        try:
            class_ids = [str(services.parse_uuid(c, "class id")) for c in raw_ids]
            scope = Scope(kind, tuple(class_ids))
            return Response(services.preview_recipients(self.require_tenant_id(), scope))
        except ValidationError as e:
            return _error(e)

    @action(detail=False, methods=["get"])
    def classes(self, request):
        return Response(services.list_classes(self.require_tenant_id()))


class ProviderStatusView(APIView):
    """Is the school's LINE channel configured, and does the token still work?"""
    permission_classes = [permissions.IsAuthenticated, HasTenantContext]

    def get(self, request):
        try:
            tenant_id = services.parse_uuid(get_request_tenant_id(request), "tenant id")
        except ValidationError as e:
            return _error(e)
        try:
            auth = TenantCredentialProvider().get(tenant_id)
        except NotConfigured:
            return Response({"configured": False, "message": "LINE credentials not configured for this school"})

        try:
            info = get_push_client().get_bot_info(auth)
        except BatchSendError as e:
            return Response({"configured": True, "valid": False, "message": e.reason})

        return Response({
            "configured": True,
            "valid": True,
            "bot_name": info.get("displayName"),
            "bot_id": info.get("userId"),
            "picture_url": info.get("pictureUrl"),
        })
