# payments/models.py
from decimal import Decimal

from django.conf import settings
from django.db import models


class Payment(models.Model):
    class Type(models.TextChoices):
        APPLICATION_FEE = "APPLICATION_FEE", "Application fee"
        TUITION = "TUITION", "Tuition"
        INSTALLMENT = "INSTALLMENT", "Installment"

    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        COMPLETED = "COMPLETED", "Completed"
        FAILED = "FAILED", "Failed"

    reference = models.CharField(max_length=120, unique=True)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="payments")
    type = models.CharField(max_length=16, choices=Type.choices)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.PENDING)
    application = models.ForeignKey(
        "courses.Application", on_delete=models.SET_NULL, null=True, blank=True, related_name="payments"
    )
    enrollment = models.ForeignKey(
        "courses.Enrollment", on_delete=models.SET_NULL, null=True, blank=True, related_name="payments"
    )
    # courseId, installment markers, gateway payload
    metadata = models.JSONField(default=dict, blank=True)
    gateway_status = models.CharField(max_length=40, blank=True)
    paid_at = models.DateTimeField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.reference} {self.type} {self.amount} ({self.status})"


class PaymentPlan(models.Model):
    class Status(models.TextChoices):
        ACTIVE = "ACTIVE", "Active"
        COMPLETED = "COMPLETED", "Completed"

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="payment_plans")
    course = models.ForeignKey("courses.Course", on_delete=models.PROTECT, related_name="payment_plans")
    total_amount = models.DecimalField(max_digits=12, decimal_places=2)
    installment_count = models.PositiveIntegerField()
    monthly_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))
    start_date = models.DateField()
    end_date = models.DateField()
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.ACTIVE)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"Plan {self.pk} for {self.user} / {self.course} ({self.installment_count}x)"


class PaymentInstallment(models.Model):
    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        PAID = "PAID", "Paid"

    payment_plan = models.ForeignKey(PaymentPlan, on_delete=models.CASCADE, related_name="installments")
    installment_number = models.PositiveIntegerField()
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    due_date = models.DateField()
    status = models.CharField(max_length=8, choices=Status.choices, default=Status.PENDING)
    paid_at = models.DateTimeField(blank=True, null=True)
    payment = models.ForeignKey(
        Payment, on_delete=models.SET_NULL, null=True, blank=True, related_name="installments"
    )
    last_reminded_at = models.DateTimeField(blank=True, null=True)

    class Meta:
        unique_together = (("payment_plan", "installment_number"),)
        ordering = ["payment_plan", "installment_number"]

    def __str__(self):
        return f"#{self.installment_number} of plan {self.payment_plan_id}: {self.amount} ({self.status})"
