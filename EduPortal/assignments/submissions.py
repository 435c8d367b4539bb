# assignments/submissions.py
"""Student side of the assignment workflow.

One row per (assignment, student): drafts, hand-ins and resubmissions all
mutate the same ``AssignmentSubmission``. ``Assignment.submission_count``
always equals the number of non-draft submissions for the assignment.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional

from django.db import IntegrityError, transaction
from django.db.models import F, Q
from django.utils import timezone

from courses.models import Enrollment
from EduPortal.errors import (
    AccessDeniedError, AlreadyGradedError, AlreadySubmittedError,
    DeadlinePassedError, NotEnrolledError, NotFoundError, ValidationError,
)
from notifications.dispatch import notify
from .models import Assignment, AssignmentSubmission, SubmissionFile

logger = logging.getLogger(__name__)

Status = AssignmentSubmission.Status
MAX_PAGE_SIZE = 100
SECONDS_PER_DAY = 24 * 60 * 60


@dataclass
class SubmissionValidation:
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    deadline_passed: bool = False

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def raise_for_errors(self) -> None:
        if self.deadline_passed:
            raise DeadlinePassedError(self.errors)
        if self.errors:
            raise ValidationError(self.errors)


# -----------------------
# Pure helpers
# -----------------------
def lateness(due_date: datetime, now: datetime, is_draft: bool) -> tuple[bool, int]:
    """(is_late, days_late); a partial day counts as a whole day."""
    if is_draft or now <= due_date:
        return False, 0
    return True, math.ceil((now - due_date).total_seconds() / SECONDS_PER_DAY)


def calculate_late_penalty(submission: AssignmentSubmission) -> float:
    """Fraction of the grade lost to lateness: linear per day, uncapped."""
    pct = submission.assignment.late_penalty
    if not submission.is_late or not pct or submission.days_late <= 0:
        return 0.0
    return (pct / 100) * submission.days_late


def _coerce_files(files: Optional[Iterable]) -> Optional[List[SubmissionFile]]:
    if files is None:
        return None
    return [f if isinstance(f, SubmissionFile) else SubmissionFile.from_dict(f) for f in files]


def validate_submission(
    assignment: Assignment,
    text: Optional[str],
    files: List[SubmissionFile],
    is_draft: bool,
    now: Optional[datetime] = None,
) -> SubmissionValidation:
    """Check every rule and collect every violation."""
    now = now or timezone.now()
    result = SubmissionValidation()

    if not is_draft and not assignment.is_published:
        result.errors.append("Assignment is not yet published")

    if len(files) > assignment.max_files:
        result.errors.append(f"Too many files. Maximum allowed: {assignment.max_files}")

    formats = assignment.normalized_formats
    for f in files:
        if f.extension not in formats:
            result.errors.append(f"File format '{f.extension or '?'}' is not allowed for file '{f.name}'")
        if f.size > assignment.max_file_size_bytes:
            result.errors.append(f"File '{f.name}' exceeds maximum size of {assignment.max_file_size}MB")

    if not is_draft and not files and not (text or "").strip():
        result.errors.append("Submission must contain either files or text")

    is_late, _ = lateness(assignment.due_date, now, is_draft)
    if is_late:
        if not assignment.allow_late_submission:
            result.deadline_passed = True
            result.errors.append("Assignment deadline has passed and late submissions are not allowed")
        elif assignment.late_penalty:
            result.warnings.append(
                f"This is a late submission. A penalty of {assignment.late_penalty:g}% per day will be applied."
            )
        else:
            result.warnings.append("This is a late submission.")

    return result


def _next_status(sub: AssignmentSubmission, is_draft: bool, resubmit: bool, now: datetime) -> str:
    """Apply the state machine to an existing row; stamps timestamps and counters on ``sub``."""
    current = sub.status
    if current == Status.GRADED:
        raise AlreadyGradedError()

    if is_draft:
        if current == Status.RETURNED:
            raise ValidationError("A returned submission can only be resubmitted, not saved as a draft")
        return Status.DRAFT

    if current == Status.DRAFT:
        new = Status.SUBMITTED
    elif current in (Status.SUBMITTED, Status.RESUBMITTED):
        if not resubmit:
            raise AlreadySubmittedError()
        new = current
    else:
        new = Status.RESUBMITTED

    sub.submitted_at = now
    sub.resubmission_count += 1
    sub.last_resubmitted_at = now
    return new


def _is_counted(status: Optional[str]) -> bool:
    return status is not None and status != Status.DRAFT


def _counter_delta(old: Optional[str], new: str) -> int:
    return int(_is_counted(new)) - int(_is_counted(old))


def _bump_submission_count(assignment: Assignment, delta: int) -> None:
    if delta > 0:
        Assignment.objects.filter(pk=assignment.pk).update(submission_count=F("submission_count") + delta)
    elif delta < 0:
        Assignment.objects.filter(pk=assignment.pk, submission_count__gt=0).update(
            submission_count=F("submission_count") + delta
        )
    if delta:
        assignment.refresh_from_db(fields=["submission_count"])


def _after_hand_in(sub: AssignmentSubmission) -> None:
    a = sub.assignment
    notify(sub.student_id, "submission_received", {
        "assignment_id": a.id,
        "assignment_title": a.title,
        "late_note": f" It was {sub.days_late} day(s) late." if sub.is_late else "",
    })


def _get_assignment(assignment_id) -> Assignment:
    a = Assignment.objects.select_related("course").filter(pk=assignment_id).first()
    if a is None:
        raise NotFoundError("Assignment not found")
    return a


def _base_queryset():
    return AssignmentSubmission.objects.select_related(
        "assignment", "assignment__course", "student", "graded_by"
    )


# -----------------------
# Writes
# -----------------------
def create_submission(
    assignment_id,
    student,
    text: Optional[str] = None,
    files: Optional[Iterable] = None,
    is_draft: bool = False,
    resubmit: bool = False,
) -> AssignmentSubmission:
    """Create or upsert the student's submission for an assignment.

    Raises ``NotFoundError``, ``NotEnrolledError``, ``ValidationError`` (all
    problems at once), ``DeadlinePassedError``, ``AlreadySubmittedError`` or
    ``AlreadyGradedError`` before anything is written. The returned
    submission carries non-fatal ``warnings``.
    """
    assignment = _get_assignment(assignment_id)
    enrolled = Enrollment.objects.filter(
        user=student, course_id=assignment.course_id, status=Enrollment.Status.ACTIVE
    ).exists()
    if not enrolled:
        raise NotEnrolledError()

    parsed = _coerce_files(files) or []
    now = timezone.now()
    validation = validate_submission(assignment, text, parsed, is_draft, now)
    validation.raise_for_errors()
    is_late, days_late = lateness(assignment.due_date, now, is_draft)

    with transaction.atomic():
        sub = (AssignmentSubmission.objects.select_for_update()
               .filter(assignment=assignment, student=student).first())
        previous = sub.status if sub else None

        if sub is None:
            try:
                with transaction.atomic():
                    sub = AssignmentSubmission(assignment=assignment, student=student)
                    sub.submission_text = text or None
                    sub.set_files(parsed)
                    sub.status = Status.DRAFT if is_draft else Status.SUBMITTED
                    sub.is_late, sub.days_late = is_late, days_late
                    sub.submitted_at = None if is_draft else now
                    sub.save()
            except IntegrityError:
                # lost the insert race; continue on the winner's row
                logger.info("Concurrent submission for assignment=%s student=%s", assignment.pk, student.pk)
                sub = AssignmentSubmission.objects.select_for_update().get(assignment=assignment, student=student)
                previous = sub.status

        if previous is not None:
            sub.status = _next_status(sub, is_draft, resubmit, now)
            sub.submission_text = text or None
            sub.set_files(parsed)
            sub.is_late, sub.days_late = is_late, days_late
            if is_draft:
                sub.submitted_at = None
            sub.save()

        _bump_submission_count(assignment, _counter_delta(previous, sub.status))
        if not is_draft:
            _after_hand_in(sub)

    logger.info(
        "Submission %s for assignment %s by student %s: %s -> %s (late=%s, days=%s)",
        sub.pk, assignment.pk, student.pk, previous, sub.status, sub.is_late, sub.days_late,
    )
    sub.assignment = assignment
    sub.warnings = validation.warnings
    return sub


def update_submission(
    submission_id,
    student,
    text: Optional[str] = None,
    files: Optional[Iterable] = None,
    is_draft: Optional[bool] = None,
) -> AssignmentSubmission:
    """Edit the owner's submission; omitted fields keep their stored values."""
    parsed = _coerce_files(files)
    now = timezone.now()

    with transaction.atomic():
        sub = AssignmentSubmission.objects.select_for_update().filter(pk=submission_id).first()
        if sub is None:
            raise NotFoundError("Submission not found")
        if sub.student_id != getattr(student, "id", None):
            raise AccessDeniedError()
        if sub.status == Status.GRADED:
            raise AlreadyGradedError()

        assignment = sub.assignment
        if is_draft is None:
            is_draft = sub.status == Status.DRAFT
        new_text = text if text is not None else sub.submission_text
        new_files = parsed if parsed is not None else sub.parsed_files

        validation = validate_submission(assignment, new_text, new_files, is_draft, now)
        validation.raise_for_errors()

        previous = sub.status
        sub.status = _next_status(sub, is_draft, True, now)
        sub.submission_text = new_text or None
        sub.set_files(new_files)
        sub.is_late, sub.days_late = lateness(assignment.due_date, now, is_draft)
        if is_draft:
            sub.submitted_at = None
        sub.save()

        _bump_submission_count(assignment, _counter_delta(previous, sub.status))
        if not is_draft:
            _after_hand_in(sub)

    logger.info("Submission %s updated by student %s: %s -> %s", sub.pk, student.pk, previous, sub.status)
    sub.warnings = validation.warnings
    return sub


# -----------------------
# Reads
# -----------------------
def can_view_submission(user, sub: AssignmentSubmission) -> bool:
    if getattr(user, "is_admin", False):
        return True
    if sub.student_id == getattr(user, "id", None):
        return True
    return sub.assignment.is_owned_by(user)


def _paginate(qs, page, limit) -> dict:
    page = max(1, int(page or 1))
    limit = max(1, min(int(limit or 10), MAX_PAGE_SIZE))
    start = (page - 1) * limit
    return {
        "submissions": list(qs[start:start + limit]),
        "total": qs.count(),
        "page": page,
        "limit": limit,
    }


def _filter_status(qs, status):
    if status is None:
        return qs
    if status not in Status.values:
        raise ValidationError(f"Unknown submission status '{status}'")
    return qs.filter(status=status)


def _newest_first(qs):
    return qs.order_by(F("submitted_at").desc(nulls_last=True), "-id")


def get_submission_by_id(submission_id, user) -> AssignmentSubmission:
    sub = _base_queryset().filter(pk=submission_id).first()
    if sub is None:
        raise NotFoundError("Submission not found")
    if not can_view_submission(user, sub):
        raise AccessDeniedError()
    return sub


def get_submissions_by_assignment(assignment_id, user, status: Optional[str] = None, page=1, limit=10) -> dict:
    assignment = _get_assignment(assignment_id)
    if not (getattr(user, "is_admin", False) or assignment.is_owned_by(user)):
        raise AccessDeniedError()
    qs = _filter_status(_base_queryset().filter(assignment=assignment), status)
    return _paginate(_newest_first(qs), page, limit)


def get_submissions_by_student(
    student_id, user, course_id=None, status: Optional[str] = None, page=1, limit=10
) -> dict:
    qs = _base_queryset().filter(student_id=student_id)
    if getattr(user, "is_admin", False) or str(getattr(user, "id", None)) == str(student_id):
        pass
    elif getattr(user, "role", None) == "instructor":
        qs = qs.filter(Q(assignment__instructor=user) | Q(assignment__course__instructor=user))
    else:
        raise AccessDeniedError()

    if course_id is not None:
        qs = qs.filter(assignment__course_id=course_id)
    qs = _filter_status(qs, status)
    return _paginate(_newest_first(qs), page, limit)
