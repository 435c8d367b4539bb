# assignments/models.py
from __future__ import annotations

from dataclasses import dataclass, asdict
from pathlib import PurePosixPath
from typing import Optional, Union

from django.conf import settings
from django.db import models


@dataclass(frozen=True)
class SubmissionFile:
    """A file held in the blob store, referenced by URL."""
    name: str
    type: str
    size: int
    url: str

    @property
    def extension(self) -> str:
        ext = (self.type or "").strip().lower().lstrip(".")
        if ext and "/" not in ext:
            return ext
        return PurePosixPath(self.name or "").suffix.lower().lstrip(".")

    @classmethod
    def from_dict(cls, data: dict) -> "SubmissionFile":
        return cls(
            name=str(data.get("name") or data.get("originalName") or ""),
            type=str(data.get("type") or data.get("fileType") or ""),
            size=int(data.get("size") or data.get("fileSize") or 0),
            url=str(data.get("url") or ""),
        )

    def to_dict(self) -> dict:
        return asdict(self)


# Score variants: which of grade/original_score/final_score are meaningful.
@dataclass(frozen=True)
class Ungraded:
    pass


@dataclass(frozen=True)
class GradedOnTime:
    score: float


@dataclass(frozen=True)
class GradedLate:
    original: float
    final: float
    penalty: float


Score = Union[Ungraded, GradedOnTime, GradedLate]


def default_allowed_formats():
    return ["pdf", "doc", "docx", "txt", "zip"]


class Assignment(models.Model):
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    course = models.ForeignKey("courses.Course", related_name="assignments", on_delete=models.CASCADE)
    instructor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        limit_choices_to={"role": "instructor"},
        related_name="authored_assignments",
        on_delete=models.CASCADE,
    )
    due_date = models.DateTimeField()
    total_points = models.PositiveIntegerField(default=100)

    # Submission rules
    max_file_size = models.PositiveIntegerField(default=10, help_text="Megabytes per file")
    allowed_formats = models.JSONField(default=default_allowed_formats, blank=True)
    max_files = models.PositiveIntegerField(default=5)
    allow_late_submission = models.BooleanField(default=False)
    late_penalty = models.FloatField(blank=True, null=True, help_text="Percent deducted per day late")

    # Counters
    submission_count = models.PositiveIntegerField(default=0)
    graded_count = models.PositiveIntegerField(default=0)

    is_published = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size * 1024 * 1024

    @property
    def normalized_formats(self) -> set[str]:
        return {str(f).strip().lower().lstrip(".") for f in (self.allowed_formats or [])}

    def is_owned_by(self, user) -> bool:
        uid = getattr(user, "id", None)
        return uid is not None and (self.instructor_id == uid or self.course.instructor_id == uid)

    def __str__(self):
        return f"{self.title} - {self.course.title}"


class AssignmentSubmission(models.Model):
    class Status(models.TextChoices):
        DRAFT = "DRAFT", "Draft"
        SUBMITTED = "SUBMITTED", "Submitted"
        GRADED = "GRADED", "Graded"
        RETURNED = "RETURNED", "Returned"
        RESUBMITTED = "RESUBMITTED", "Resubmitted"

    assignment = models.ForeignKey(Assignment, related_name="submissions", on_delete=models.CASCADE)
    student = models.ForeignKey(settings.AUTH_USER_MODEL, related_name="assignment_submissions", on_delete=models.CASCADE)
    submission_text = models.TextField(blank=True, null=True)
    files = models.JSONField(default=list, blank=True)
    status = models.CharField(max_length=12, choices=Status.choices, default=Status.DRAFT)

    is_late = models.BooleanField(default=False)
    days_late = models.PositiveIntegerField(default=0)
    submitted_at = models.DateTimeField(blank=True, null=True)

    grade = models.FloatField(null=True, blank=True)
    original_score = models.FloatField(null=True, blank=True)
    final_score = models.FloatField(null=True, blank=True)
    feedback = models.TextField(blank=True, null=True)
    graded_at = models.DateTimeField(blank=True, null=True)
    graded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, related_name="graded_submissions",
        on_delete=models.SET_NULL, blank=True, null=True,
    )

    resubmission_count = models.PositiveIntegerField(default=0)
    last_resubmitted_at = models.DateTimeField(blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["assignment", "student"], name="uniq_submission_assignment_student"),
        ]
        ordering = ["-submitted_at", "-id"]

    def __str__(self):
        return f"Submission of {self.student} for {self.assignment}"

    @property
    def parsed_files(self) -> list[SubmissionFile]:
        return [SubmissionFile.from_dict(f) for f in (self.files or [])]

    def set_files(self, files) -> None:
        self.files = [f.to_dict() for f in files]

    @property
    def effective_score(self) -> Optional[float]:
        return self.final_score if self.final_score is not None else self.grade

    @property
    def score(self) -> Score:
        if self.grade is None:
            return Ungraded()
        if self.original_score is not None and self.final_score is not None:
            return GradedLate(
                original=self.original_score,
                final=self.final_score,
                penalty=round(self.original_score - self.final_score, 2),
            )
        return GradedOnTime(score=self.grade)


class GradingHistory(models.Model):
    """Append-only audit trail of grade changes."""
    submission = models.ForeignKey(AssignmentSubmission, related_name="grading_history", on_delete=models.CASCADE)
    previous_grade = models.FloatField(null=True, blank=True)
    new_grade = models.FloatField()
    previous_feedback = models.TextField(blank=True, null=True)
    new_feedback = models.TextField(blank=True, null=True)
    graded_by = models.ForeignKey(settings.AUTH_USER_MODEL, related_name="grading_entries", on_delete=models.SET_NULL, null=True)
    graded_at = models.DateTimeField()
    reason = models.TextField(blank=True, null=True)

    class Meta:
        ordering = ["-graded_at", "-id"]
        verbose_name_plural = "grading history"

    def __str__(self):
        return f"{self.submission_id}: {self.previous_grade} -> {self.new_grade}"
