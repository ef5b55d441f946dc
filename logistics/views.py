"""
Logistics App Views - Partner order actions & customer tracking API
"""

import logging

from django.db import transaction
from django.shortcuts import get_object_or_404
from rest_framework import generics, permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from partners.services import PartnerRegistry
from partners.views import IsPartner

from .exceptions import InvalidOrderStateError, InvalidTransition, PartnerMismatchError
from .models import ActorType, DispatchState, Order, OrderStatus, TERMINAL_STATUSES
from .serializers import (
    CancelSerializer,
    LocationPingSerializer,
    OrderSerializer,
    ProofOfDeliverySerializer,
    RejectSerializer,
    StatusUpdateSerializer,
)
from .services.completion import CompletionService
from .services.dispatch import AcceptOutcome, DispatchCoordinator, RejectOutcome
from .services.tracking import TrackingService, build_location_view

logger = logging.getLogger(__name__)


def _state_error_response(error):
    """Map tracking/completion errors to HTTP."""
    if isinstance(error, PartnerMismatchError):
        return Response({'error': str(error)}, status=status.HTTP_403_FORBIDDEN)
    if isinstance(error, InvalidTransition):
        return Response({'error': str(error)}, status=status.HTTP_400_BAD_REQUEST)
    return Response({'error': str(error)}, status=status.HTTP_409_CONFLICT)


# ============================================
# PARTNER ENDPOINTS
# ============================================

class OrderAcceptView(APIView):
    """
    API endpoint for a partner to accept an offered order.

    POST /api/partner/orders/{order_id}/accept/

    Race-condition safe: the first acceptance wins, later ones get 409.
    """

    permission_classes = [IsPartner]

    def post(self, request, order_id):
        result = DispatchCoordinator().accept_offer(order_id, request.partner)

        if result.outcome == AcceptOutcome.LOST:
            return Response({'error': result.message}, status=status.HTTP_409_CONFLICT)
        if result.outcome == AcceptOutcome.INVALID:
            return Response({'error': result.message}, status=status.HTTP_400_BAD_REQUEST)

        order = result.order
        return Response({
            'status': 'ok',
            'outcome': result.outcome.value,
            'message': 'Order accepted',
            'order': OrderSerializer(order).data,
        })


class OrderRejectView(APIView):
    """
    Partner hands back an order they accepted, before pickup.

    POST /api/partner/orders/{order_id}/reject/
    """

    permission_classes = [IsPartner]

    def post(self, request, order_id):
        serializer = RejectSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = DispatchCoordinator().reject_assignment(
            order_id, request.partner, serializer.validated_data.get('reason', '')
        )
        if result.outcome == RejectOutcome.INVALID:
            return Response({'error': result.message}, status=status.HTTP_409_CONFLICT)

        return Response({'status': 'ok', 'outcome': result.outcome.value})


class OrderStatusView(APIView):
    """
    Partner reports pickup / departure.

    POST /api/partner/orders/{order_id}/status/

    Request body:
    {
        "status": "picked",
        "note": "Collected at the counter",
        "location": [77.2090, 28.6139]
    }
    """

    permission_classes = [IsPartner]

    def post(self, request, order_id):
        serializer = StatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            order = TrackingService().record_status_transition(
                order_id,
                data['status'],
                actor_type=ActorType.PARTNER,
                actor_id=request.partner.id,
                note=data.get('note', ''),
                location=data.get('location'),
                partner_id=request.partner.id,
            )
        except Order.DoesNotExist:
            return Response({'error': 'Order not found'}, status=status.HTTP_404_NOT_FOUND)
        except (InvalidOrderStateError, PartnerMismatchError) as e:
            return _state_error_response(e)

        return Response({'status': 'ok', 'order': OrderSerializer(order).data})


class ProofOfDeliveryView(APIView):
    """
    Partner confirms delivery at a drop point.

    POST /api/partner/orders/{order_id}/proof/

    The final drop completes the order and credits the partner.
    """

    permission_classes = [IsPartner]

    def post(self, request, order_id):
        serializer = ProofOfDeliverySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        proof = dict(serializer.validated_data)
        drop_sequence = proof.pop('dropSequence', None)

        order = get_object_or_404(Order, pk=order_id)
        if order.requires_signature and not proof.get('signature') and order.status != OrderStatus.DELIVERED:
            return Response({'error': 'This order requires a signature'}, status=status.HTTP_400_BAD_REQUEST)

        try:
            result = CompletionService().complete_delivery(
                order_id, request.partner, proof, drop_sequence=drop_sequence
            )
        except (InvalidOrderStateError, PartnerMismatchError) as e:
            return _state_error_response(e)

        return Response({
            'status': 'ok',
            'completed': result.completed or result.already_delivered,
            'dropSequence': result.drop_sequence,
            'order': OrderSerializer(result.order).data,
        })


class PartnerLocationView(APIView):
    """
    Partner location ping.

    POST /api/partner/location/

    Request body:
    {
        "coordinates": [77.2090, 28.6139],
        "accuracy": 8.5,
        "heading": 120,
        "speed": 6.2
    }

    Updates the partner's last known position and, while they carry an
    order, its live tracking projection.
    """

    permission_classes = [IsPartner]

    def post(self, request):
        serializer = LocationPingSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        partner = request.partner
        lng, lat = data['coordinates']

        if partner.current_order_id:
            try:
                accepted = TrackingService().record_location(
                    partner.current_order_id,
                    partner.id,
                    data['coordinates'],
                    accuracy=data.get('accuracy'),
                    speed=data.get('speed'),
                    bearing=data.get('heading'),
                    timestamp=data.get('timestamp'),
                )
            except (InvalidOrderStateError, PartnerMismatchError) as e:
                logger.warning(f"[TRACKING] Ping for order {str(partner.current_order_id)[:8]} refused: {e}")
                accepted = PartnerRegistry.update_location(
                    partner.id, lat, lng,
                    accuracy=data.get('accuracy'),
                    heading=data.get('heading'),
                    speed=data.get('speed'),
                    timestamp=data.get('timestamp'),
                )
        else:
            accepted = PartnerRegistry.update_location(
                partner.id, lat, lng,
                accuracy=data.get('accuracy'),
                heading=data.get('heading'),
                speed=data.get('speed'),
                timestamp=data.get('timestamp'),
            )

        return Response({
            'status': 'ok' if accepted else 'stale',
            'location': {'lat': lat, 'lng': lng},
        })


class PartnerOrdersView(APIView):
    """
    GET /api/partner/orders/

    Current order plus the 50 most recent past orders.
    """

    permission_classes = [IsPartner]

    def get(self, request):
        partner = request.partner
        orders = Order.objects.filter(partner=partner).prefetch_related('drops')

        current = orders.exclude(status__in=TERMINAL_STATUSES).first()
        past = orders.filter(status__in=TERMINAL_STATUSES)[:50]

        return Response({
            'current': OrderSerializer(current).data if current else None,
            'past': OrderSerializer(past, many=True).data,
        })


# ============================================
# CUSTOMER ENDPOINTS
# ============================================

class OwnedOrderMixin:
    """Orders are only visible to their owner (and staff)."""

    permission_classes = [permissions.IsAuthenticated]

    def get_order(self, request, order_id):
        queryset = Order.objects.select_related('partner')
        if not request.user.is_staff:
            queryset = queryset.filter(user=request.user)
        return get_object_or_404(queryset, pk=order_id)


class CustomerOrderListView(generics.ListAPIView):
    """
    GET /api/orders/?status=in_transit&ordering=-created_at

    The caller's orders, paginated.
    """

    serializer_class = OrderSerializer
    permission_classes = [permissions.IsAuthenticated]
    filterset_fields = ['status', 'dispatch_state', 'order_type']
    ordering_fields = ['created_at', 'pricing_total']

    def get_queryset(self):
        return (
            Order.objects.filter(user=self.request.user)
            .select_related('partner')
            .prefetch_related('drops')
        )


class OrderLocationView(OwnedOrderMixin, APIView):
    """
    GET /api/orders/{order_id}/location/

    Where is my order: status, dispatch state, partner position and ETA.
    """

    def get(self, request, order_id):
        order = self.get_order(request, order_id)
        return Response(build_location_view(order))


class OrderTrackingView(OwnedOrderMixin, APIView):
    """
    GET /api/orders/{order_id}/tracking/

    Live tracking projection plus full status history.
    """

    def get(self, request, order_id):
        order = self.get_order(request, order_id)
        return Response({
            'id': str(order.id),
            'status': order.status,
            'tracking': order.tracking_payload(),
        })


class OrderCancelView(OwnedOrderMixin, APIView):
    """
    POST /api/orders/{order_id}/cancel/

    Only before pickup.
    """

    def post(self, request, order_id):
        order = self.get_order(request, order_id)
        serializer = CancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        actor_type = ActorType.ADMIN if request.user.is_staff and order.user_id != request.user.pk else ActorType.USER
        try:
            order = DispatchCoordinator().cancel_order(
                order.id,
                actor_type,
                request.user.pk,
                serializer.validated_data.get('reason', ''),
            )
        except InvalidOrderStateError as e:
            return Response({'error': str(e)}, status=status.HTTP_409_CONFLICT)

        return Response({'status': 'ok', 'order': OrderSerializer(order).data})


class DispatchRetryView(OwnedOrderMixin, APIView):
    """
    POST /api/orders/{order_id}/dispatch/retry/

    Search again after no partner was found.
    """

    def post(self, request, order_id):
        from .tasks import start_dispatch

        order = self.get_order(request, order_id)
        if order.status != OrderStatus.PENDING or order.dispatch_state not in (
            DispatchState.IDLE, DispatchState.EXHAUSTED
        ):
            return Response(
                {'error': f'Dispatch cannot restart ({order.status}, {order.dispatch_state})'},
                status=status.HTTP_409_CONFLICT
            )

        transaction.on_commit(lambda: start_dispatch.delay(str(order.id)))
        return Response({'status': 'queued'}, status=status.HTTP_202_ACCEPTED)
