# payments/tasks.py
from __future__ import annotations

import logging
from celery import shared_task
from django.db.models import Q
from django.utils import timezone

from EduPortal.errors import ExternalServiceError, NotFoundError
from notifications.dispatch import notify
from .models import PaymentInstallment, PaymentPlan
from .reconciliation import reconcile

logger = logging.getLogger(__name__)


@shared_task(bind=True, autoretry_for=(ExternalServiceError,), retry_backoff=True, max_retries=5)
def reconcile_payment(self, reference: str) -> dict:
    """Webhook / callback entry point. Gateway outages are retried; everything else is final."""
    try:
        result = reconcile(reference)
    except NotFoundError:
        logger.warning("reconcile_payment: unknown reference %s", reference)
        return {"ok": False, "error": "payment_not_found"}
    return {"ok": result.success, "status": result.status, "message": result.message}


@shared_task
def remind_overdue_installments() -> dict:
    """Notify each student once a day about pending installments past their due date."""
    now = timezone.now()
    today = timezone.localdate(now)
    start_of_day = timezone.localtime(now).replace(hour=0, minute=0, second=0, microsecond=0)

    overdue = (
        PaymentInstallment.objects
        .select_related("payment_plan__course")
        .filter(
            status=PaymentInstallment.Status.PENDING,
            payment_plan__status=PaymentPlan.Status.ACTIVE,
            due_date__lt=today,
        )
        .filter(Q(last_reminded_at__isnull=True) | Q(last_reminded_at__lt=start_of_day))
    )

    reminded = 0
    for inst in overdue:
        plan = inst.payment_plan
        notify(plan.user_id, "installment_overdue", {
            "plan_id": plan.id,
            "course_title": plan.course.title,
            "installment_number": inst.installment_number,
            "amount": str(inst.amount),
            "due_date": inst.due_date.isoformat(),
        })
        PaymentInstallment.objects.filter(pk=inst.pk).update(last_reminded_at=now)
        reminded += 1

    if reminded:
        logger.info("Sent %s overdue installment reminders", reminded)
    return {"ok": True, "reminded": reminded}
