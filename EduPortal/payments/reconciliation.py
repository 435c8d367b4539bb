# payments/reconciliation.py
"""Turn a gateway verification into application / enrollment / installment state.

``reconcile`` is safe to call any number of times for the same reference:
the PENDING -> COMPLETED transition is a conditional UPDATE, and only the
delivery that wins it applies the downstream writes. All of those writes
share one transaction with the status change.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from django.db import transaction
from django.utils import timezone

from courses.models import Application, ApplicationDraft, Course, Enrollment
from EduPortal.errors import NotFoundError
from notifications.dispatch import notify
from .gateway import VerificationResult, get_verifier
from .installments import build_schedule
from .models import Payment, PaymentInstallment, PaymentPlan

logger = logging.getLogger(__name__)

INITIAL_INSTALLMENT_MARKER = "INSTALLMENT_INIT"
DEFAULT_COURSE_TITLE = "Course"


@dataclass
class ReconciliationResult:
    success: bool
    status: str
    payment: Optional[Payment]
    message: str

    def as_dict(self) -> dict:
        p = self.payment
        return {
            "success": self.success,
            "status": self.status,
            "message": self.message,
            "payment": None if p is None else {
                "id": p.id,
                "reference": p.reference,
                "type": p.type,
                "amount": str(p.amount),
                "status": p.status,
                "application_id": p.application_id,
                "enrollment_id": p.enrollment_id,
                "paid_at": p.paid_at.isoformat() if p.paid_at else None,
            },
        }


# -----------------------
# Helpers
# -----------------------
def _course_id_from_metadata(metadata: dict):
    return (metadata or {}).get("courseId") or (metadata or {}).get("course_id")


def is_initial_installment(metadata: dict) -> bool:
    metadata = metadata or {}
    return (str(metadata.get("type", "")).upper() == INITIAL_INSTALLMENT_MARKER
            or bool(metadata.get("isInitialInstallment")))


def _settled_result(payment: Payment) -> ReconciliationResult:
    if payment.status == Payment.Status.COMPLETED:
        return ReconciliationResult(True, payment.status, payment, "Payment already verified")
    if payment.status == Payment.Status.FAILED:
        return ReconciliationResult(False, payment.status, payment, "Payment verification failed")
    return ReconciliationResult(False, payment.status, payment, "Payment still pending, please retry")


def _link(payment: Payment, **fields) -> None:
    Payment.objects.filter(pk=payment.pk).update(**fields)
    for name, value in fields.items():
        setattr(payment, name, value)


def _activate_enrollment(user_id, course_id) -> Enrollment:
    enrollment, created = Enrollment.objects.select_for_update().get_or_create(
        user_id=user_id, course_id=course_id, defaults={"status": Enrollment.Status.ACTIVE}
    )
    if not created and enrollment.status != Enrollment.Status.ACTIVE:
        enrollment.status = Enrollment.Status.ACTIVE
        enrollment.save(update_fields=["status"])
    return enrollment


def course_title_for(payment: Payment) -> str:
    if payment.enrollment_id:
        return payment.enrollment.course.title
    if payment.application_id:
        return payment.application.course.title
    return DEFAULT_COURSE_TITLE


def _check_amount(payment: Payment, result: VerificationResult) -> None:
    if not result.amount_minor_units:
        return
    verified = Decimal(result.amount_minor_units) / 100
    if verified != payment.amount:
        logger.warning(
            "Payment %s amount mismatch: expected %s, gateway reported %s",
            payment.reference, payment.amount, verified,
        )


# -----------------------
# Per-type handlers
# -----------------------
def _apply_application_fee(payment: Payment, now) -> None:
    if payment.application_id:
        app = payment.application
        app.status = Application.Status.UNDER_REVIEW
        app.submitted_at = app.submitted_at or now
        app.save(update_fields=["status", "submitted_at"])
        return

    course_id = _course_id_from_metadata(payment.metadata)
    if not course_id:
        logger.warning("Application fee %s has no linked application and no courseId", payment.reference)
        return

    app = Application.objects.filter(user_id=payment.user_id, course_id=course_id).first()
    draft = ApplicationDraft.objects.filter(user_id=payment.user_id, course_id=course_id).first()
    if app is None and draft is None:
        logger.info("Application fee %s paid without application or draft; left unlinked", payment.reference)
        return

    if app is None:
        app = Application.objects.create(
            user_id=payment.user_id,
            course_id=course_id,
            status=Application.Status.UNDER_REVIEW,
            form_data=draft.form_data,
            submitted_at=now,
        )
        logger.info("Created application %s from draft for payment %s", app.pk, payment.reference)
    elif app.status == Application.Status.DRAFT:
        app.status = Application.Status.UNDER_REVIEW
        if draft is not None:
            app.form_data = draft.form_data
        app.submitted_at = now
        app.save(update_fields=["status", "form_data", "submitted_at"])

    _link(payment, application=app)
    if draft is not None:
        draft.delete()


def _apply_tuition(payment: Payment) -> Optional[Enrollment]:
    if payment.enrollment_id:
        enrollment = payment.enrollment
        if enrollment.status != Enrollment.Status.ACTIVE:
            enrollment.status = Enrollment.Status.ACTIVE
            enrollment.save(update_fields=["status"])
        return enrollment

    if payment.application_id:
        course_id = payment.application.course_id
    else:
        course_id = _course_id_from_metadata(payment.metadata)
    if not course_id:
        logger.warning("Tuition payment %s has neither enrollment, application nor courseId", payment.reference)
        return None

    enrollment = _activate_enrollment(payment.user_id, course_id)
    _link(payment, enrollment=enrollment)
    return enrollment


def _start_installment_plan(payment: Payment, now) -> Optional[Enrollment]:
    if payment.application_id:
        course = payment.application.course
    else:
        course = Course.objects.filter(pk=_course_id_from_metadata(payment.metadata)).first()
    if course is None:
        logger.error("Upfront installment %s has no resolvable course; no plan created", payment.reference)
        return None

    enrollment = _activate_enrollment(payment.user_id, course.pk)
    schedule = build_schedule(course.price, payment.amount, course.installment_splits(), timezone.localdate(now))

    plan = PaymentPlan.objects.create(
        user_id=payment.user_id,
        course=course,
        total_amount=course.price,
        installment_count=schedule.installment_count,
        monthly_amount=schedule.monthly_amount,
        start_date=schedule.installments[0].due_date,
        end_date=schedule.end_date,
        status=PaymentPlan.Status.ACTIVE,
    )
    rows = []
    for item in schedule.installments:
        row = PaymentInstallment(
            payment_plan=plan,
            installment_number=item.number,
            amount=item.amount,
            due_date=item.due_date,
        )
        if item.number == 1:
            row.amount = payment.amount
            row.status = PaymentInstallment.Status.PAID
            row.paid_at = now
            row.payment = payment
        rows.append(row)
    PaymentInstallment.objects.bulk_create(rows)

    _link(payment, enrollment=enrollment)
    logger.info(
        "Payment plan %s created for user %s / course %s: %s installments, monthly %s",
        plan.pk, payment.user_id, course.pk, plan.installment_count, plan.monthly_amount,
    )
    return enrollment


def _apply_later_installment(payment: Payment, now) -> None:
    qs = PaymentInstallment.objects.select_for_update().filter(
        payment_plan__user_id=payment.user_id, status=PaymentInstallment.Status.PENDING
    )
    installment_id = (payment.metadata or {}).get("installmentId")
    if installment_id:
        installment = qs.filter(pk=installment_id).first()
    else:
        course_id = _course_id_from_metadata(payment.metadata)
        if course_id:
            qs = qs.filter(payment_plan__course_id=course_id)
        installment = qs.order_by("due_date", "installment_number").first()

    if installment is None:
        logger.warning("Installment payment %s matches no pending installment", payment.reference)
        return

    installment.status = PaymentInstallment.Status.PAID
    installment.paid_at = now
    installment.payment = payment
    installment.save(update_fields=["status", "paid_at", "payment"])

    plan = installment.payment_plan
    if not plan.installments.filter(status=PaymentInstallment.Status.PENDING).exists():
        plan.status = PaymentPlan.Status.COMPLETED
        plan.save(update_fields=["status"])
        logger.info("Payment plan %s fully paid", plan.pk)

    if not payment.enrollment_id:
        enrollment = Enrollment.objects.filter(user_id=payment.user_id, course_id=plan.course_id).first()
        if enrollment is not None:
            _link(payment, enrollment=enrollment)


def _apply(payment: Payment, now) -> Optional[Enrollment]:
    """Run the handler for the payment type; returns the enrollment it activated."""
    if payment.type == Payment.Type.APPLICATION_FEE:
        _apply_application_fee(payment, now)
        return None
    if payment.type == Payment.Type.TUITION:
        return _apply_tuition(payment)
    if payment.type == Payment.Type.INSTALLMENT:
        if is_initial_installment(payment.metadata):
            return _start_installment_plan(payment, now)
        _apply_later_installment(payment, now)
        return None
    raise ValueError(f"Unhandled payment type: {payment.type}")


# -----------------------
# Entry point
# -----------------------
def _mark_failed(payment: Payment, result: VerificationResult) -> ReconciliationResult:
    with transaction.atomic():
        updated = Payment.objects.filter(pk=payment.pk, status=Payment.Status.PENDING).update(
            status=Payment.Status.FAILED,
            gateway_status=result.gateway_status,
            updated_at=timezone.now(),
        )
        payment.refresh_from_db()
        if not updated:
            return _settled_result(payment)
        notify(payment.user_id, "payment_failed", {
            "payment_id": payment.id,
            "reference": payment.reference,
            "gateway_status": result.message or result.gateway_status,
        })

    logger.info("Payment %s marked FAILED (%s)", payment.reference, result.gateway_status)
    return ReconciliationResult(False, payment.status, payment, result.message or "Payment verification failed")


def _mark_completed(payment: Payment, result: VerificationResult) -> ReconciliationResult:
    now = timezone.now()
    metadata = {**(result.metadata or {}), **(payment.metadata or {})}

    with transaction.atomic():
        claimed = Payment.objects.filter(pk=payment.pk, status=Payment.Status.PENDING).update(
            status=Payment.Status.COMPLETED,
            paid_at=result.paid_at or now,
            gateway_status=result.gateway_status,
            metadata=metadata,
            updated_at=now,
        )
        if not claimed:
            payment.refresh_from_db()
            logger.info("Payment %s already settled by another delivery (%s)", payment.reference, payment.status)
            return _settled_result(payment)

        payment = Payment.objects.select_related(
            "application__course", "enrollment__course"
        ).get(pk=payment.pk)
        _check_amount(payment, result)
        enrollment = _apply(payment, now)

        course_title = course_title_for(payment)
        notify(payment.user_id, "payment_confirmed", {
            "payment_id": payment.id,
            "reference": payment.reference,
            "amount": str(payment.amount),
            "course_title": course_title,
        })
        if enrollment is not None and enrollment.status == Enrollment.Status.ACTIVE:
            notify(payment.user_id, "enrollment_confirmed", {
                "course_id": enrollment.course_id,
                "course_title": course_title,
            })

    logger.info("Payment %s (%s) reconciled", payment.reference, payment.type)
    return ReconciliationResult(True, payment.status, payment, "Payment verified successfully")


def reconcile(reference: str, verifier=None) -> ReconciliationResult:
    """Verify ``reference`` with the gateway and apply its consequences once.

    Raises ``NotFoundError`` for an unknown reference. Verifier errors
    (``ExternalServiceError``) propagate with the payment still PENDING.
    """
    payment = Payment.objects.filter(reference=reference).first()
    if payment is None:
        raise NotFoundError("Payment record not found")
    if payment.status != Payment.Status.PENDING:
        return _settled_result(payment)

    verifier = verifier or get_verifier()
    result = verifier.verify(reference)

    if result.success:
        return _mark_completed(payment, result)
    if result.is_final_failure:
        return _mark_failed(payment, result)

    logger.info("Payment %s still %s at the gateway", reference, result.gateway_status or "pending")
    return ReconciliationResult(False, payment.status, payment, "Payment still pending, please retry")
