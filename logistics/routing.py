"""
LOGISTICS App - WebSocket Routing Configuration

Maps WebSocket URLs to consumers for real-time tracking.
"""

from django.urls import re_path
from . import consumers


websocket_urlpatterns = [
    # Track a specific order in real-time
    # ws://localhost:8000/ws/orders/<uuid>/
    re_path(
        r'ws/orders/(?P<order_id>[0-9a-f-]+)/$',
        consumers.OrderTrackingConsumer.as_asgi()
    ),

    # Partner app - receive offers and send location updates
    # ws://localhost:8000/ws/partner/
    re_path(
        r'ws/partner/$',
        consumers.PartnerDeviceConsumer.as_asgi()
    ),
]
