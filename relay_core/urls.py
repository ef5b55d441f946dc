"""
RELAY Main URL Configuration
"""

from django.contrib import admin
from django.urls import path, include
from drf_spectacular.views import SpectacularAPIView
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from logistics.health import health_check, readiness_check


# ===========================================
# ADMIN SITE CUSTOMIZATION
# ===========================================
admin.site.site_header = "RELAY Dispatch Control Tower"
admin.site.site_title = "RELAY Admin"
admin.site.index_title = "Dispatch operations"


@api_view(['GET'])
@permission_classes([AllowAny])
def api_root(request):
    """API Root endpoint with available routes."""
    return Response({
        'name': 'RELAY API',
        'version': '1.0.0',
        'endpoints': {
            'auth': {
                'token': '/api/auth/token/',
                'refresh': '/api/auth/token/refresh/',
            },
            'partner': {
                'me': '/api/partner/me/',
                'status': '/api/partner/status/',
                'location': '/api/partner/location/',
                'orders': '/api/partner/orders/',
                'accept': '/api/partner/orders/<id>/accept/',
                'reject': '/api/partner/orders/<id>/reject/',
                'report_status': '/api/partner/orders/<id>/status/',
                'proof': '/api/partner/orders/<id>/proof/',
            },
            'orders': {
                'list': '/api/orders/',
                'location': '/api/orders/<id>/location/',
                'tracking': '/api/orders/<id>/tracking/',
                'cancel': '/api/orders/<id>/cancel/',
                'retry_dispatch': '/api/orders/<id>/dispatch/retry/',
            },
            'devices': '/api/devices/',
            'schema': '/api/schema/',
        }
    })


urlpatterns = [
    path('admin/', admin.site.urls),
    path('health/', health_check, name='health'),
    path('health/ready/', readiness_check, name='health-ready'),

    # API Root
    path('api/', api_root, name='api-root'),
    path('api/schema/', SpectacularAPIView.as_view(), name='schema'),

    # Auth
    path('api/auth/token/', TokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('api/auth/token/refresh/', TokenRefreshView.as_view(), name='token_refresh'),

    # App URLs
    path('api/', include('partners.urls')),
    path('api/', include('logistics.urls')),
    path('api/', include('notifications.urls')),
]
