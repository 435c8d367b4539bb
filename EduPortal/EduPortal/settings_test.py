from .settings import *  # noqa: F401,F403

# Tasks run inline; no broker or result backend is contacted.
CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL = "memory://"
CELERY_RESULT_BACKEND = "cache+memory://"

EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"
PAYSTACK_SECRET_KEY = "sk_test_dummy"
