# notifications/messages.py
"""Title/body/action templates per notification kind, filled with ``str.format``."""
from __future__ import annotations

from collections import defaultdict

MESSAGES = {
    "submission_received": (
        "Submission received: {assignment_title}",
        "Your submission for \"{assignment_title}\" was received.{late_note}",
        "/assignments/{assignment_id}",
    ),
    "assignment_graded": (
        "Assignment Graded: {assignment_title}",
        "Your submission for \"{assignment_title}\" has been graded. Score: {score}/{total_points}",
        "/assignments/{assignment_id}",
    ),
    "payment_confirmed": (
        "Payment received for {course_title}",
        "We received your payment of {amount} (reference {reference}) for {course_title}.",
        "/payments/{payment_id}",
    ),
    "payment_failed": (
        "Payment failed",
        "Your payment with reference {reference} could not be completed: {gateway_status}.",
        "/payments/{payment_id}",
    ),
    "enrollment_confirmed": (
        "Welcome to {course_title}",
        "Your enrollment in {course_title} is now active.",
        "/courses/{course_id}",
    ),
    "installment_overdue": (
        "Installment overdue for {course_title}",
        "Installment #{installment_number} of {amount} for {course_title} was due on {due_date}.",
        "/payments/plans/{plan_id}",
    ),
}


def render(kind: str, data: dict) -> tuple[str, str, str]:
    """Return (title, content, action_url); unknown placeholders render empty."""
    try:
        title, content, action = MESSAGES[kind]
    except KeyError:
        raise ValueError(f"Unknown notification kind: {kind}")
    values = defaultdict(str, data or {})
    return title.format_map(values), content.format_map(values), action.format_map(values)
