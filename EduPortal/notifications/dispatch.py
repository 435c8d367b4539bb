# notifications/dispatch.py
"""Fire-and-forget entry point for every notification the core sends.

``notify`` never raises: the task is queued once the surrounding transaction
commits, and a broker failure is only logged.
"""
from __future__ import annotations

import logging
from typing import Optional

from django.db import transaction

from .tasks import deliver_notification

logger = logging.getLogger(__name__)


def _enqueue(user_id: int, kind: str, data: dict) -> None:
    try:
        deliver_notification.delay(user_id, kind, data)
    except Exception as e:
        logger.warning("Notification %s for user %s not queued: %s", kind, user_id, e)


def notify(user_id: int, kind: str, data: Optional[dict] = None) -> None:
    payload = dict(data or {})
    transaction.on_commit(lambda: _enqueue(user_id, kind, payload))
