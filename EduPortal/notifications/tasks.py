# notifications/tasks.py
from __future__ import annotations

import logging
from celery import shared_task
from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.mail import send_mail
from django.utils import timezone

from .messages import render
from .models import Notification

logger = logging.getLogger(__name__)


@shared_task(bind=True)
def deliver_notification(self, user_id: int, kind: str, data: dict) -> dict:
    """Store the in-app notification, then hand the e-mail to its own retried task."""
    User = get_user_model()
    try:
        user = User.objects.get(pk=user_id)
    except User.DoesNotExist:
        logger.warning("deliver_notification: user %s not found (kind=%s)", user_id, kind)
        return {"ok": False, "error": "user_not_found"}

    try:
        title, content, action_url = render(kind, data)
    except ValueError as e:
        logger.warning("deliver_notification: %s", e)
        return {"ok": False, "error": "unknown_kind"}

    n = Notification.objects.create(user=user, kind=kind, title=title, content=content, action_url=action_url)
    if user.email:
        email_notification.delay(n.id)
    return {"ok": True, "notification": n.id}


@shared_task(bind=True, autoretry_for=(Exception,), retry_backoff=True, max_retries=3)
def email_notification(self, notification_id: int) -> dict:
    try:
        n = Notification.objects.select_related("user").get(pk=notification_id)
    except Notification.DoesNotExist:
        return {"ok": False, "error": "notification_not_found"}

    if n.emailed_at:
        return {"ok": True, "status": "already_sent"}

    send_mail(n.title, n.content, settings.DEFAULT_FROM_EMAIL, [n.user.email])
    Notification.objects.filter(pk=n.pk, emailed_at__isnull=True).update(emailed_at=timezone.now())
    logger.info("Notification %s e-mailed to user %s", n.pk, n.user_id)
    return {"ok": True, "status": "sent"}
