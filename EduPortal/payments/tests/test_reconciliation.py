from decimal import Decimal

import pytest

from courses.models import Application, ApplicationDraft, Enrollment
from EduPortal.errors import ExternalServiceError, NotFoundError
from notifications.models import Notification
from payments.gateway import VerificationResult
from payments.models import Payment, PaymentInstallment, PaymentPlan
from payments.reconciliation import reconcile

pytestmark = pytest.mark.django_db


@pytest.fixture
def make_payment(student):
    counter = iter(range(1, 1000))

    def _make(payment_type=Payment.Type.TUITION, amount="3000.00", **fields):
        return Payment.objects.create(
            reference=f"ref-{next(counter)}", user=fields.pop("user", student),
            type=payment_type, amount=Decimal(amount), **fields,
        )
    return _make


def test_unknown_reference(verifier):
    with pytest.raises(NotFoundError):
        reconcile("nope", verifier=verifier)
    assert verifier.calls == []


def test_application_fee_moves_application_under_review_once(make_payment, student, course, verifier):
    app = Application.objects.create(user=student, course=course, status=Application.Status.DRAFT)
    payment = make_payment(Payment.Type.APPLICATION_FEE, "50.00", application=app)

    first = reconcile(payment.reference, verifier=verifier)
    second = reconcile(payment.reference, verifier=verifier)

    app.refresh_from_db()
    assert first.success and first.status == Payment.Status.COMPLETED
    assert first.payment.paid_at is not None
    assert app.status == Application.Status.UNDER_REVIEW
    assert second.success and second.message == "Payment already verified"
    assert verifier.calls == [payment.reference]


def test_application_fee_promotes_draft(make_payment, student, course, verifier):
    ApplicationDraft.objects.create(user=student, course=course, form_data={"motivation": "distributed things"})
    payment = make_payment(Payment.Type.APPLICATION_FEE, "50.00", metadata={"courseId": course.id})

    reconcile(payment.reference, verifier=verifier)

    app = Application.objects.get(user=student, course=course)
    payment.refresh_from_db()
    assert app.status == Application.Status.UNDER_REVIEW
    assert app.form_data == {"motivation": "distributed things"}
    assert payment.application_id == app.id
    assert not ApplicationDraft.objects.exists()


def test_application_fee_without_anything_to_link(make_payment, course, verifier):
    payment = make_payment(Payment.Type.APPLICATION_FEE, "50.00", metadata={"courseId": course.id})
    result = reconcile(payment.reference, verifier=verifier)
    assert result.success
    assert result.payment.application_id is None
    assert not Application.objects.exists()


def test_tuition_activates_enrollment_and_notifies(make_payment, student, course, verifier,
                                                   django_capture_on_commit_callbacks):
    app = Application.objects.create(user=student, course=course, status=Application.Status.APPROVED)
    payment = make_payment(application=app)

    with django_capture_on_commit_callbacks(execute=True):
        result = reconcile(payment.reference, verifier=verifier)

    enrollment = Enrollment.objects.get(user=student, course=course)
    assert enrollment.status == Enrollment.Status.ACTIVE
    assert result.payment.enrollment_id == enrollment.id
    kinds = set(Notification.objects.filter(user=student).values_list("kind", flat=True))
    assert kinds == {"payment_confirmed", "enrollment_confirmed"}
    confirmed = Notification.objects.get(user=student, kind="payment_confirmed")
    assert course.title in confirmed.title


def test_tuition_reactivates_suspended_enrollment_from_metadata(make_payment, student, course, verifier):
    Enrollment.objects.create(user=student, course=course, status=Enrollment.Status.SUSPENDED)
    payment = make_payment(metadata={"course_id": course.id})

    reconcile(payment.reference, verifier=verifier)

    assert Enrollment.objects.get(user=student, course=course).status == Enrollment.Status.ACTIVE


def test_gateway_metadata_is_merged_without_overriding_ours(make_payment, make_verifier, course):
    payment = make_payment(metadata={"courseId": course.id, "source": "checkout"})
    verifier = make_verifier(VerificationResult(
        success=True, gateway_status="success", amount_minor_units=300000,
        metadata={"source": "gateway", "channel": "card"},
    ))

    result = reconcile(payment.reference, verifier=verifier)

    assert result.payment.metadata == {"courseId": course.id, "source": "checkout", "channel": "card"}
    assert result.payment.gateway_status == "success"


def test_upfront_installment_creates_plan(make_payment, student, course, verifier):
    payment = make_payment(Payment.Type.INSTALLMENT, "1200.00",
                           metadata={"courseId": course.id, "type": "INSTALLMENT_INIT"})

    reconcile(payment.reference, verifier=verifier)

    plan = PaymentPlan.objects.get(user=student, course=course)
    rows = list(plan.installments.order_by("installment_number"))
    assert plan.installment_count == 3
    assert plan.total_amount == Decimal("3000.00")
    assert plan.monthly_amount == Decimal("900.00")
    assert [r.amount for r in rows] == [Decimal("1200.00"), Decimal("900.00"), Decimal("900.00")]
    assert rows[0].status == PaymentInstallment.Status.PAID
    assert rows[0].payment_id == payment.id
    assert all(r.status == PaymentInstallment.Status.PENDING for r in rows[1:])
    assert plan.end_date == rows[-1].due_date
    assert Enrollment.objects.get(user=student, course=course).status == Enrollment.Status.ACTIVE


def test_later_installments_complete_the_plan(make_payment, student, course, verifier):
    init = make_payment(Payment.Type.INSTALLMENT, "1200.00", metadata={"courseId": course.id, "isInitialInstallment": True})
    reconcile(init.reference, verifier=verifier)
    plan = PaymentPlan.objects.get(user=student, course=course)

    second = make_payment(Payment.Type.INSTALLMENT, "900.00", metadata={"courseId": course.id})
    reconcile(second.reference, verifier=verifier)
    paid = plan.installments.get(installment_number=2)
    assert paid.status == PaymentInstallment.Status.PAID
    assert paid.payment_id == second.id
    plan.refresh_from_db()
    assert plan.status == PaymentPlan.Status.ACTIVE

    last = plan.installments.get(installment_number=3)
    third = make_payment(Payment.Type.INSTALLMENT, "900.00", metadata={"installmentId": last.id})
    reconcile(third.reference, verifier=verifier)
    plan.refresh_from_db()
    third.refresh_from_db()
    assert plan.status == PaymentPlan.Status.COMPLETED
    assert third.enrollment is not None


def test_final_failure_marks_payment_failed(make_payment, make_verifier, student, django_capture_on_commit_callbacks):
    payment = make_payment()
    verifier = make_verifier(VerificationResult(success=False, gateway_status="failed", message="Declined"))

    with django_capture_on_commit_callbacks(execute=True):
        result = reconcile(payment.reference, verifier=verifier)

    payment.refresh_from_db()
    assert result.success is False
    assert payment.status == Payment.Status.FAILED
    assert Notification.objects.filter(user=student, kind="payment_failed").count() == 1
    assert not Enrollment.objects.exists()


def test_pending_at_gateway_leaves_payment_pending(make_payment, make_verifier):
    payment = make_payment()
    verifier = make_verifier(VerificationResult(success=False, gateway_status="ongoing"))

    result = reconcile(payment.reference, verifier=verifier)

    payment.refresh_from_db()
    assert result.success is False
    assert result.message == "Payment still pending, please retry"
    assert payment.status == Payment.Status.PENDING


def test_gateway_error_propagates_and_leaves_payment_untouched(make_payment, make_verifier):
    payment = make_payment()
    verifier = make_verifier(error=ExternalServiceError("Could not reach Paystack. Try again."))

    with pytest.raises(ExternalServiceError):
        reconcile(payment.reference, verifier=verifier)

    payment.refresh_from_db()
    assert payment.status == Payment.Status.PENDING


def test_losing_a_concurrent_delivery_applies_nothing(make_payment, course):
    payment = make_payment(metadata={"courseId": course.id})

    class RacingVerifier:
        def verify(self, reference):
            # another worker completes the payment while we talk to the gateway
            Payment.objects.filter(reference=reference).update(status=Payment.Status.COMPLETED)
            return VerificationResult(success=True, gateway_status="success")

    result = reconcile(payment.reference, verifier=RacingVerifier())

    assert result.success
    assert result.message == "Payment already verified"
    assert not Enrollment.objects.exists()


def test_result_as_dict(make_payment, verifier):
    payment = make_payment()
    data = reconcile(payment.reference, verifier=verifier).as_dict()
    assert data["success"] is True
    assert data["payment"]["reference"] == payment.reference
    assert data["payment"]["amount"] == "3000.00"


def test_tuition_reconciled_twice_creates_one_enrollment(make_payment, student, course, verifier,
                                                         django_capture_on_commit_callbacks):
    app = Application.objects.create(user=student, course=course, status=Application.Status.APPROVED)
    payment = make_payment(application=app)

    with django_capture_on_commit_callbacks(execute=True):
        first = reconcile(payment.reference, verifier=verifier)
        second = reconcile(payment.reference, verifier=verifier)

    assert first.success and second.success
    assert second.message == "Payment already verified"
    assert Enrollment.objects.filter(user=student, course=course).count() == 1
    assert second.payment.enrollment_id == first.payment.enrollment_id
    assert Notification.objects.filter(user=student, kind="payment_confirmed").count() == 1
    assert verifier.calls == [payment.reference]


def test_upfront_installment_reconciled_twice_creates_one_plan(make_payment, student, course, verifier):
    payment = make_payment(Payment.Type.INSTALLMENT, "1200.00",
                           metadata={"courseId": course.id, "type": "INSTALLMENT_INIT"})

    reconcile(payment.reference, verifier=verifier)
    again = reconcile(payment.reference, verifier=verifier)

    assert again.success and again.status == Payment.Status.COMPLETED
    assert Enrollment.objects.filter(user=student, course=course).count() == 1
    assert PaymentPlan.objects.filter(user=student, course=course).count() == 1
    assert PaymentInstallment.objects.filter(payment_plan__user=student).count() == 3
    assert PaymentInstallment.objects.filter(payment=payment, status=PaymentInstallment.Status.PAID).count() == 1
