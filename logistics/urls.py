"""
Logistics App URLs
"""

from django.urls import path

from .views import (
    CustomerOrderListView,
    DispatchRetryView,
    OrderAcceptView,
    OrderCancelView,
    OrderLocationView,
    OrderRejectView,
    OrderStatusView,
    OrderTrackingView,
    PartnerLocationView,
    PartnerOrdersView,
    ProofOfDeliveryView,
)

urlpatterns = [
    # Partner endpoints
    path('partner/orders/', PartnerOrdersView.as_view(), name='partner-orders'),
    path('partner/orders/<uuid:order_id>/accept/', OrderAcceptView.as_view(), name='order-accept'),
    path('partner/orders/<uuid:order_id>/reject/', OrderRejectView.as_view(), name='order-reject'),
    path('partner/orders/<uuid:order_id>/status/', OrderStatusView.as_view(), name='order-status'),
    path('partner/orders/<uuid:order_id>/proof/', ProofOfDeliveryView.as_view(), name='order-proof'),
    path('partner/location/', PartnerLocationView.as_view(), name='partner-location'),

    # Customer endpoints
    path('orders/', CustomerOrderListView.as_view(), name='customer-orders'),
    path('orders/<uuid:order_id>/location/', OrderLocationView.as_view(), name='order-location'),
    path('orders/<uuid:order_id>/tracking/', OrderTrackingView.as_view(), name='order-tracking'),
    path('orders/<uuid:order_id>/cancel/', OrderCancelView.as_view(), name='order-cancel'),
    path('orders/<uuid:order_id>/dispatch/retry/', DispatchRetryView.as_view(), name='order-dispatch-retry'),
]
