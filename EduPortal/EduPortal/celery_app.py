import os
from celery import Celery # type: ignore

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "EduPortal.settings")

app = Celery("EduPortal")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()

app.conf.beat_schedule = {
    "flag-overdue-installments-daily": {
        "task": "payments.tasks.remind_overdue_installments",
        "schedule": 60.0 * 60 * 24,
    },
}
