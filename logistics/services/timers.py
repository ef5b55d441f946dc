"""
LOGISTICS App - Offer round deadline timer

Each round's deadline is a Celery task scheduled with a countdown. Cancelling
revokes it; a timer that still fires re-checks the round before acting, so a
late or duplicate fire is harmless.
"""

import logging
import uuid

from celery import current_app
from django.db import transaction

logger = logging.getLogger(__name__)


class CeleryDeadlineTimer:

    def schedule(self, attempt_id, seconds: int) -> str:
        """
        Fire `expire_offer_round(attempt_id)` after `seconds`.

        The task is sent once the surrounding transaction commits, so the
        worker always sees the round it expires.

        Returns:
            Celery task id (used to cancel)
        """
        from logistics.tasks import expire_offer_round

        task_id = str(uuid.uuid4())
        transaction.on_commit(
            lambda: expire_offer_round.apply_async(
                args=[str(attempt_id)],
                countdown=seconds,
                task_id=task_id,
            )
        )
        return task_id

    def cancel(self, task_id: str) -> None:
        if not task_id:
            return
        try:
            current_app.control.revoke(task_id)
        except Exception as e:
            logger.warning(f"[DISPATCH] Could not revoke timer {task_id}: {e}")
