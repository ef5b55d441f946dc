"""
NOTIFICATIONS App - Push transport over WebSocket

Apps keep a WebSocket open and join the channel group derived from their
device token. A push is a group_send to that group.
"""

import hashlib
import logging
from typing import Any, Dict, Optional

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

logger = logging.getLogger(__name__)


def device_group_name(device_token: str) -> str:
    """Channel group for a device token (group names only allow a limited charset)."""
    digest = hashlib.sha256(device_token.encode('utf-8')).hexdigest()[:40]
    return f"device_{digest}"


class MobilePushService:
    """
    Push notifications to partner and customer apps.

    A missing device token is a silent no-op, not an error.
    """

    @staticmethod
    def _get_channel_layer():
        return get_channel_layer()

    @classmethod
    def push(
        cls,
        device_token: Optional[str],
        title: str,
        body: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Send a notification to one device.

        Args:
            device_token: Target device; empty means nothing to do
            title: Notification title
            body: Notification body
            data: String-keyed payload for the app

        Returns:
            True if the message was handed to the channel layer
        """
        if not device_token:
            logger.debug("[PUSH] No device token, skipping")
            return False

        channel_layer = cls._get_channel_layer()
        if not channel_layer:
            logger.warning("[PUSH] No channel layer configured")
            return False

        async_to_sync(channel_layer.group_send)(
            device_group_name(device_token),
            {
                'type': 'push_notification',
                'title': title,
                'body': body,
                'data': data or {},
            }
        )
        logger.info(f"[PUSH] Sent '{title}' to device {device_token[:8]}...")
        return True
