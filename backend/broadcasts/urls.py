from rest_framework.routers import DefaultRouter
from django.urls import path, include
from .views import BroadcastViewSet, ProviderStatusView

router = DefaultRouter()
router.register(r'messages', BroadcastViewSet, basename='broadcast')

urlpatterns = [
    path('provider/status/', ProviderStatusView.as_view(), name='broadcast-provider-status'),
    path('', include(router.urls)),
]
