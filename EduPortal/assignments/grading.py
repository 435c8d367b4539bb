# assignments/grading.py
"""Instructor side of the assignment workflow: grade validation, late
penalties, grading history and per-assignment statistics."""
from __future__ import annotations

import logging
import math
import statistics
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from django.conf import settings
from django.db import DatabaseError, transaction
from django.db.models import F
from django.utils import timezone

from EduPortal.errors import AccessDeniedError, NotFoundError, ServiceError, ValidationError
from notifications.dispatch import notify
from .models import Assignment, AssignmentSubmission, GradingHistory
from .submissions import can_view_submission

logger = logging.getLogger(__name__)

Status = AssignmentSubmission.Status

# (label, inclusive upper edge as a fraction of total points)
GRADE_BANDS = (
    ("Below 60%", 0.6),
    ("60-70%", 0.7),
    ("70-80%", 0.8),
    ("80-90%", 0.9),
    ("90-100%", 1.0),
)


@dataclass
class CalculatedGrade:
    original_score: float
    final_score: float
    late_penalty: float = 0.0
    penalty_amount: float = 0.0


@dataclass
class GradeValidation:
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    calculated_grade: Optional[CalculatedGrade] = None

    @property
    def is_valid(self) -> bool:
        return not self.errors


def apply_late_penalty(grade: float, is_late: bool, late_penalty_pct: Optional[float], days_late: int) -> CalculatedGrade:
    """Linear per-day deduction, floored at zero."""
    if not is_late or not late_penalty_pct or days_late <= 0:
        return CalculatedGrade(original_score=grade, final_score=grade)
    fraction = round((late_penalty_pct / 100) * days_late, 6)
    penalty_amount = grade * fraction
    return CalculatedGrade(
        original_score=grade,
        final_score=round(max(0.0, grade - penalty_amount), 2),
        late_penalty=fraction,
        penalty_amount=round(penalty_amount, 2),
    )


def _as_number(value) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _load_submission(submission_id, lock: bool = False) -> AssignmentSubmission:
    qs = AssignmentSubmission.objects.select_for_update() if lock else AssignmentSubmission.objects
    sub = qs.filter(pk=submission_id).first()
    if sub is None:
        raise NotFoundError("Submission not found")
    return sub


def validate_grade(
    submission_id,
    grade,
    instructor,
    feedback: Optional[str] = None,
    submission: Optional[AssignmentSubmission] = None,
) -> GradeValidation:
    """Check a proposed grade and work out the score that would be stored.

    Ownership problems raise ``AccessDeniedError``; everything else is
    reported through ``errors``/``warnings`` on the returned result.
    """
    sub = submission or _load_submission(submission_id)
    a = sub.assignment
    if not a.is_owned_by(instructor):
        raise AccessDeniedError("Access denied. You don't have permission to grade this submission.")

    result = GradeValidation()
    value = _as_number(grade)
    if value is None:
        result.errors.append("Grade must be a number")
        return result
    if value < 0:
        result.errors.append("Grade cannot be negative")
    if value > a.total_points:
        result.errors.append(f"Grade cannot exceed {a.total_points} points")
    if sub.status == Status.DRAFT:
        result.errors.append("Cannot grade a submission that has not been submitted")
    if result.errors:
        return result

    calc = apply_late_penalty(value, sub.is_late, a.late_penalty, sub.days_late)
    result.calculated_grade = calc
    if calc.late_penalty:
        result.warnings.append(
            f"Late penalty applied: {a.late_penalty:g}% per day × {sub.days_late} days = "
            f"{calc.late_penalty * 100:.1f}% reduction"
        )

    if sub.grade is not None and a.total_points:
        change = abs(calc.final_score - sub.effective_score) / a.total_points * 100
        if change > settings.GRADE_SWING_WARNING_PCT:
            result.warnings.append(f"Significant grade change detected: {change:.1f}% change from previous grade")

    if feedback and len(feedback) > settings.FEEDBACK_WARNING_LENGTH:
        result.warnings.append("Feedback is quite long. Consider being more concise.")

    return result


def _record_history(sub, previous_grade, previous_feedback, instructor, graded_at, reason) -> None:
    try:
        with transaction.atomic():
            GradingHistory.objects.create(
                submission=sub,
                previous_grade=previous_grade,
                new_grade=sub.grade,
                previous_feedback=previous_feedback,
                new_feedback=sub.feedback,
                graded_by=instructor,
                graded_at=graded_at,
                reason=reason or None,
            )
    except DatabaseError as e:
        logger.warning("Could not record grading history for submission %s: %s", sub.pk, e)


def grade_submission(
    submission_id,
    grade,
    instructor,
    feedback: Optional[str] = None,
    return_to_student: bool = False,
) -> AssignmentSubmission:
    """Validate and store a grade; the returned submission carries ``validation``."""
    with transaction.atomic():
        sub = _load_submission(submission_id, lock=True)
        validation = validate_grade(sub.pk, grade, instructor, feedback, submission=sub)
        if not validation.is_valid:
            raise ValidationError(validation.errors)

        calc = validation.calculated_grade
        a = sub.assignment
        previous_grade, previous_feedback = sub.grade, sub.feedback
        first_grading = sub.graded_at is None
        now = timezone.now()

        sub.grade = calc.final_score
        if sub.is_late:
            sub.original_score, sub.final_score = calc.original_score, calc.final_score
        else:
            sub.original_score = sub.final_score = None
        sub.feedback = feedback or None
        sub.status = Status.RETURNED if return_to_student else Status.GRADED
        sub.graded_at = now
        sub.graded_by = instructor
        sub.save()

        _record_history(sub, previous_grade, previous_feedback, instructor, now, "; ".join(validation.warnings))

        if first_grading:
            Assignment.objects.filter(pk=a.pk).update(graded_count=F("graded_count") + 1)

        notify(sub.student_id, "assignment_graded", {
            "assignment_id": a.id,
            "assignment_title": a.title,
            "score": f"{sub.grade:g}",
            "total_points": a.total_points,
        })

    logger.info(
        "Submission %s graded %s/%s by %s (previous=%s, status=%s)",
        sub.pk, sub.grade, a.total_points, instructor.pk, previous_grade, sub.status,
    )
    sub.validation = validation
    return sub


def bulk_grade_submissions(
    submission_ids: Iterable,
    grade,
    instructor,
    feedback: Optional[str] = None,
    return_to_student: bool = False,
) -> dict:
    """Grade each submission in its own transaction; failures are reported, not raised."""
    ids = list(submission_ids or [])
    if not ids:
        raise ValidationError("At least one submission required")

    successful, failed = [], []
    for sid in ids:
        try:
            successful.append(grade_submission(sid, grade, instructor, feedback, return_to_student))
        except (ServiceError, DatabaseError, ValueError, TypeError) as e:
            logger.info("bulk grading: submission %s failed: %s", sid, e)
            failed.append({"submission_id": sid, "error": str(e)})

    logger.info("bulk grading by %s: %s ok, %s failed", instructor.pk, len(successful), len(failed))
    return {"successful": successful, "failed": failed}


def get_grading_history(submission_id, user) -> List[GradingHistory]:
    sub = _load_submission(submission_id)
    if not can_view_submission(user, sub):
        raise AccessDeniedError()
    return list(
        GradingHistory.objects.filter(submission=sub)
        .select_related("graded_by")
        .order_by("-graded_at", "-id")
    )


def _band_index(score: float, total_points: int) -> int:
    for i, (_, upper) in enumerate(GRADE_BANDS):
        if score <= total_points * upper:
            return i
    return len(GRADE_BANDS) - 1


def get_assignment_grade_statistics(assignment_id) -> dict:
    a = Assignment.objects.filter(pk=assignment_id).first()
    if a is None:
        raise NotFoundError("Assignment not found")

    total = AssignmentSubmission.objects.filter(assignment=a).exclude(status=Status.DRAFT).count()
    graded = (AssignmentSubmission.objects
              .filter(assignment=a, status__in=[Status.GRADED, Status.RETURNED], grade__isnull=False)
              .only("grade", "final_score"))
    scores = [s.effective_score for s in graded]

    distribution = [{"range": label, "count": 0} for label, _ in GRADE_BANDS]
    for score in scores:
        distribution[_band_index(score, a.total_points)]["count"] += 1

    return {
        "total_submissions": total,
        "graded_submissions": len(scores),
        "average_grade": round(statistics.fmean(scores), 2) if scores else 0,
        "highest_grade": max(scores) if scores else 0,
        "lowest_grade": min(scores) if scores else 0,
        "grade_distribution": distribution,
    }
