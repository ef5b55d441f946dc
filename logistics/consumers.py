"""
LOGISTICS App - WebSocket Consumers for Real-time Tracking

Provides real-time updates for:
- Order tracking (customers)
- Partner app (offers, assignment confirmations, location reporting)
"""

import logging
from typing import Any, Dict, Optional

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncJsonWebsocketConsumer

logger = logging.getLogger(__name__)


class OrderTrackingConsumer(AsyncJsonWebsocketConsumer):
    """
    WebSocket consumer for tracking a specific order.

    Clients connect to: ws://host/ws/orders/<order_id>/

    Events received:
    - order_status_update: Status changed (pending -> assigned -> picked -> ...)
    - partner_location_update: Partner GPS position updated
    - order_eta_update: Remaining distance/ETA recomputed
    - dispatch_state_update: Searching / no partner found
    """

    async def connect(self):
        self.order_id = self.scope['url_route']['kwargs']['order_id']
        self.room_group_name = f'order_{self.order_id}'

        snapshot = await self.get_order()
        if not snapshot:
            await self.close(code=4004)
            return

        await self.channel_layer.group_add(
            self.room_group_name,
            self.channel_name
        )

        await self.accept()

        # Send initial state
        await self.send_json({
            'type': 'connection_established',
            'order_id': self.order_id,
            **snapshot,
        })

        logger.info(f"[WS] Client connected to order {self.order_id[:8]}")

    async def disconnect(self, close_code):
        await self.channel_layer.group_discard(
            self.room_group_name,
            self.channel_name
        )
        logger.info(f"[WS] Client disconnected from order {self.order_id[:8]}")

    async def receive_json(self, content):
        if content.get('type') == 'ping':
            await self.send_json({'type': 'pong'})

    # ============================================
    # Event Handlers (called via channel_layer.group_send)
    # ============================================

    async def order_status_update(self, event):
        await self.send_json({
            'type': 'status_update',
            'status': event['status'],
            'timestamp': event['timestamp'],
            'message': event.get('message', ''),
        })

    async def partner_location_update(self, event):
        await self.send_json({
            'type': 'location_update',
            'latitude': event['latitude'],
            'longitude': event['longitude'],
            'timestamp': event['timestamp'],
            'speed': event.get('speed'),
            'bearing': event.get('bearing'),
        })

    async def order_eta_update(self, event):
        await self.send_json({
            'type': 'eta_update',
            'eta': event['eta'],
            'remaining_distance_m': event['remaining_distance_m'],
            'remaining_duration_s': event['remaining_duration_s'],
        })

    async def dispatch_state_update(self, event):
        await self.send_json({
            'type': 'dispatch_update',
            'dispatch_state': event['dispatch_state'],
            'message': event.get('message', ''),
        })

    # ============================================
    # Database helpers
    # ============================================

    @database_sync_to_async
    def get_order(self) -> Optional[Dict[str, Any]]:
        from django.core.exceptions import ValidationError
        from logistics.models import Order
        from logistics.services.tracking import build_location_view

        try:
            order = Order.objects.select_related('partner').get(pk=self.order_id)
        except (Order.DoesNotExist, ValidationError, ValueError):
            return None
        view = build_location_view(order)
        return {
            'status': view['status'],
            'dispatch_state': view['dispatchState'],
            'partner': view['partner'],
            'route': view['route'],
        }


class PartnerDeviceConsumer(AsyncJsonWebsocketConsumer):
    """
    WebSocket consumer for the partner mobile app.

    Clients connect to: ws://host/ws/partner/

    Events sent by partner:
    - authenticate: {token} JWT access token, unless the session is already authenticated
    - location_update: {latitude, longitude, accuracy, speed, bearing}

    Events received by partner:
    - notification: Push (new order offers)
    - order_assigned: Their acceptance won
    - order_cancelled: An assigned order was cancelled
    """

    partner_id = None
    groups_joined = ()

    async def connect(self):
        await self.accept()

        user = self.scope.get('user')
        if user is not None and user.is_authenticated:
            partner = await self.get_partner_for_user(user.pk)
            if partner:
                await self._join(partner)
                return

        await self.send_json({
            'type': 'connection_established',
            'message': 'Send {"type": "authenticate", "token": ...} to receive orders.',
        })

    async def disconnect(self, close_code):
        for group in self.groups_joined:
            await self.channel_layer.group_discard(group, self.channel_name)
        logger.info(f"[WS] Partner {self.partner_id} disconnected")

    async def receive_json(self, content):
        message_type = content.get('type')

        if message_type == 'authenticate':
            partner = await self.authenticate_token(content.get('token'))
            if partner:
                await self._join(partner)
            else:
                await self.send_json({'type': 'error', 'message': 'Invalid token'})

        elif message_type == 'location_update':
            if not self.partner_id:
                await self.send_json({'type': 'error', 'message': 'Not authenticated'})
                return
            latitude = content.get('latitude')
            longitude = content.get('longitude')
            if latitude is None or longitude is None:
                await self.send_json({'type': 'error', 'message': 'latitude and longitude required'})
                return
            accepted = await self.record_location(content)
            await self.send_json({
                'type': 'location_confirmed',
                'latitude': latitude,
                'longitude': longitude,
                'accepted': accepted,
            })

        elif message_type == 'ping':
            await self.send_json({'type': 'pong'})

    async def _join(self, partner: Dict[str, Any]):
        from notifications.push import device_group_name

        self.partner_id = partner['id']
        groups = [f'partner_{self.partner_id}']
        if partner['device_token']:
            groups.append(device_group_name(partner['device_token']))

        for group in groups:
            await self.channel_layer.group_add(group, self.channel_name)
        self.groups_joined = tuple(groups)

        await self.send_json({
            'type': 'authenticated',
            'partner_id': self.partner_id,
            'name': partner['name'],
            'status': partner['status'],
        })
        logger.info(f"[WS] Partner {self.partner_id[:8]} connected")

    # ============================================
    # Event Handlers (received from channel_layer)
    # ============================================

    async def push_notification(self, event):
        await self.send_json({
            'type': 'notification',
            'title': event['title'],
            'body': event['body'],
            'data': event.get('data', {}),
        })

    async def order_assigned(self, event):
        await self.send_json({
            'type': 'order_assigned',
            'order_id': event['order_id'],
            'details': event.get('details', {}),
        })

    async def order_cancelled(self, event):
        await self.send_json({
            'type': 'order_cancelled',
            'order_id': event['order_id'],
            'reason': event.get('reason', ''),
        })

    # ============================================
    # Database helpers
    # ============================================

    @staticmethod
    def _partner_dict(partner) -> Dict[str, Any]:
        return {
            'id': str(partner.id),
            'name': partner.name,
            'status': partner.status,
            'device_token': partner.device_token,
        }

    @database_sync_to_async
    def get_partner_for_user(self, user_id) -> Optional[Dict[str, Any]]:
        from partners.models import Partner

        partner = Partner.objects.filter(user_id=user_id).first()
        return self._partner_dict(partner) if partner else None

    @database_sync_to_async
    def authenticate_token(self, token: Optional[str]) -> Optional[Dict[str, Any]]:
        from partners.models import Partner
        from rest_framework_simplejwt.exceptions import TokenError
        from rest_framework_simplejwt.tokens import AccessToken

        if not token:
            return None
        try:
            user_id = AccessToken(token)['user_id']
        except (TokenError, KeyError):
            return None
        partner = Partner.objects.filter(user_id=user_id).first()
        return self._partner_dict(partner) if partner else None

    @database_sync_to_async
    def record_location(self, content: Dict[str, Any]) -> bool:
        """Last known position, plus the live projection of the current order."""
        from logistics.exceptions import InvalidOrderStateError, PartnerMismatchError
        from logistics.services.tracking import TrackingService
        from partners.models import Partner
        from partners.services import PartnerRegistry

        try:
            lat = float(content['latitude'])
            lng = float(content['longitude'])
        except (KeyError, TypeError, ValueError):
            return False

        current_order_id = (
            Partner.objects.filter(pk=self.partner_id).values_list('current_order_id', flat=True).first()
        )
        if current_order_id:
            try:
                return TrackingService().record_location(
                    current_order_id,
                    self.partner_id,
                    [lng, lat],
                    accuracy=content.get('accuracy'),
                    speed=content.get('speed'),
                    bearing=content.get('bearing'),
                )
            except (InvalidOrderStateError, PartnerMismatchError) as e:
                logger.warning(f"[WS] Location for order {str(current_order_id)[:8]} refused: {e}")
            except ValueError:
                return False

        return PartnerRegistry.update_location(
            self.partner_id, lat, lng,
            accuracy=content.get('accuracy'),
            heading=content.get('bearing'),
            speed=content.get('speed'),
        )
