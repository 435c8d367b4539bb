# EduPortal/errors.py
"""Domain errors raised by the submission, grading and payment services.

Every error carries a list of human readable ``messages`` so callers can
surface all problems at once; ``str(err)`` joins them.
"""
from __future__ import annotations

from typing import Iterable, List, Optional


class ServiceError(Exception):
    default_message = "Operation failed"

    def __init__(self, messages: Optional[Iterable[str] | str] = None):
        if messages is None:
            messages = [self.default_message]
        elif isinstance(messages, str):
            messages = [messages]
        self.messages: List[str] = list(messages) or [self.default_message]
        super().__init__("; ".join(self.messages))


class ValidationError(ServiceError):
    default_message = "Validation failed"


class AccessDeniedError(ServiceError):
    default_message = "Access denied"


class NotFoundError(ServiceError):
    default_message = "Not found"


class NotEnrolledError(ServiceError):
    default_message = "Student is not enrolled in this course"


class AlreadySubmittedError(ServiceError):
    default_message = "Assignment has already been submitted"


class AlreadyGradedError(ServiceError):
    default_message = "Cannot update a graded submission"


class DeadlinePassedError(ValidationError):
    default_message = "Assignment deadline has passed and late submissions are not allowed"


class ExternalServiceError(ServiceError):
    default_message = "External service unavailable"
