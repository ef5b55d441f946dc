"""
NOTIFICATIONS App - Notification Gateway

What the dispatch coordinator calls to notify people. Everything is queued
as Celery work after the current transaction commits, and a failure to
queue is logged, never raised: a partner who misses a push simply cannot
accept.
"""

import logging

from django.db import transaction

logger = logging.getLogger(__name__)


class NotificationGateway:

    def _queue(self, task, *args, label=''):
        def _send():
            try:
                task.delay(*args)
            except Exception as e:
                logger.error(f"[NOTIFY] Failed to queue {label}: {e}")

        transaction.on_commit(_send)

    def offer(self, offer):
        """Offer notification to one candidate partner."""
        from notifications.tasks import send_offer_notification
        self._queue(send_offer_notification, offer.pk, label=f"offer {offer.pk}")

    def no_partners(self, order):
        """One notice to the customer once dispatch gives up."""
        from notifications.tasks import send_no_partner_notice
        self._queue(send_no_partner_notice, str(order.id), label=f"no-partner notice {order.short_id}")

    def status_changed(self, order, status):
        from notifications.tasks import send_order_status_notice
        self._queue(
            send_order_status_notice, str(order.id), status,
            label=f"status notice {order.short_id}"
        )

    def assigned(self, order):
        """Partner details to the customer once an offer is won."""
        from notifications.tasks import send_assignment_notice
        self._queue(send_assignment_notice, str(order.id), label=f"assignment notice {order.short_id}")
