# courses/models.py
from decimal import Decimal

from django.conf import settings
from django.db import models

DEFAULT_MID_COURSE_PCT = Decimal("30")
DEFAULT_COMPLETION_PCT = Decimal("30")


class Course(models.Model):
    title = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    instructor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        limit_choices_to={"role": "instructor"},
        on_delete=models.PROTECT,
        related_name="taught_courses",
    )
    price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))
    application_fee = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))
    installment_enabled = models.BooleanField(default=False)
    # {"upfront": 40, "midCourse": 30, "completion": 30}; an optional "schedule"
    # list of percentages replaces midCourse/completion for longer plans.
    installment_plan = models.JSONField(blank=True, null=True)
    is_published = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["title"]

    def __str__(self):
        return self.title

    def installment_splits(self) -> list[Decimal]:
        """Percentages of the price due for each installment after the upfront one."""
        plan = self.installment_plan or {}
        schedule = plan.get("schedule")
        if schedule:
            return [Decimal(str(p)) for p in schedule]
        mid = plan.get("midCourse")
        completion = plan.get("completion")
        return [
            Decimal(str(mid)) if mid is not None else DEFAULT_MID_COURSE_PCT,
            Decimal(str(completion)) if completion is not None else DEFAULT_COMPLETION_PCT,
        ]


class Enrollment(models.Model):
    class Status(models.TextChoices):
        ACTIVE = "ACTIVE", "Active"
        SUSPENDED = "SUSPENDED", "Suspended"
        COMPLETED = "COMPLETED", "Completed"

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="enrollments")
    course = models.ForeignKey(Course, on_delete=models.CASCADE, related_name="enrollments")
    status = models.CharField(max_length=12, choices=Status.choices, default=Status.ACTIVE)
    enrolled_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ("user", "course")

    def __str__(self):
        return f"{self.user} in {self.course} ({self.status})"


class Application(models.Model):
    class Status(models.TextChoices):
        DRAFT = "DRAFT", "Draft"
        UNDER_REVIEW = "UNDER_REVIEW", "Under review"
        APPROVED = "APPROVED", "Approved"
        REJECTED = "REJECTED", "Rejected"

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="applications")
    course = models.ForeignKey(Course, on_delete=models.CASCADE, related_name="applications")
    status = models.CharField(max_length=14, choices=Status.choices, default=Status.DRAFT)
    form_data = models.JSONField(default=dict, blank=True)
    submitted_at = models.DateTimeField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ("user", "course")

    def __str__(self):
        return f"Application of {self.user} for {self.course} ({self.status})"


class ApplicationDraft(models.Model):
    """Form data saved before the applicant formally submits."""
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="application_drafts")
    course = models.ForeignKey(Course, on_delete=models.CASCADE, related_name="application_drafts")
    form_data = models.JSONField(default=dict, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = ("user", "course")

    def __str__(self):
        return f"Draft of {self.user} for {self.course}"
