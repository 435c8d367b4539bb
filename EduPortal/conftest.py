from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from assignments.models import Assignment
from courses.models import Course, Enrollment
from payments.gateway import VerificationResult


@pytest.fixture
def instructor(django_user_model):
    return django_user_model.objects.create_user(
        username="prof", password="x", email="prof@example.com", role="instructor",
        first_name="Ada", last_name="Lovelace",
    )


@pytest.fixture
def other_instructor(django_user_model):
    return django_user_model.objects.create_user(username="prof2", password="x", role="instructor")


@pytest.fixture
def student(django_user_model):
    return django_user_model.objects.create_user(
        username="stud", password="x", email="stud@example.com", role="student",
        first_name="Alan", last_name="Turing",
    )


@pytest.fixture
def other_student(django_user_model):
    return django_user_model.objects.create_user(username="stud2", password="x", role="student")


@pytest.fixture
def admin_user(django_user_model):
    return django_user_model.objects.create_user(username="boss", password="x", role="admin")


@pytest.fixture
def course(instructor):
    return Course.objects.create(
        title="Distributed Systems",
        instructor=instructor,
        price=Decimal("3000.00"),
        application_fee=Decimal("50.00"),
        installment_enabled=True,
        installment_plan={"upfront": 40, "midCourse": 30, "completion": 30},
        is_published=True,
    )


@pytest.fixture
def enrollment(student, course):
    return Enrollment.objects.create(user=student, course=course, status=Enrollment.Status.ACTIVE)


@pytest.fixture
def make_assignment(course, instructor):
    def _make(**overrides):
        fields = dict(
            title="Raft notes",
            course=course,
            instructor=instructor,
            due_date=timezone.now() + timedelta(days=3),
            total_points=100,
            is_published=True,
        )
        fields.update(overrides)
        return Assignment.objects.create(**fields)
    return _make


@pytest.fixture
def assignment(make_assignment):
    return make_assignment()


@pytest.fixture
def late_assignment(make_assignment):
    # 1.5 days overdue rounds up to 2 days late
    return make_assignment(
        title="Paxos essay",
        due_date=timezone.now() - timedelta(days=1, hours=12),
        allow_late_submission=True,
        late_penalty=5,
    )


@pytest.fixture
def pdf():
    return {"name": "notes.pdf", "type": "pdf", "size": 1024, "url": "https://files.example.com/notes.pdf"}


class FakeVerifier:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    def verify(self, reference):
        self.calls.append(reference)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def make_verifier():
    return FakeVerifier


@pytest.fixture
def verifier():
    """Gateway stub reporting a successful charge."""
    return FakeVerifier(VerificationResult(success=True, gateway_status="success"))
