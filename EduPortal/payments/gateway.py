# payments/gateway.py
"""Payment verifier contract plus the Paystack implementation.

A verifier's ``verify(reference)`` returns a ``VerificationResult`` or raises
``ExternalServiceError`` when the gateway cannot be reached or answers with
something unusable. A raised error leaves the payment untouched.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import requests
from django.conf import settings
from django.utils.dateparse import parse_datetime
from django.utils.module_loading import import_string

from EduPortal.errors import ExternalServiceError

logger = logging.getLogger(__name__)

FAILED_STATUSES = frozenset({"failed", "abandoned", "reversed"})


@dataclass
class VerificationResult:
    success: bool
    gateway_status: str
    amount_minor_units: int = 0
    paid_at: Optional[datetime] = None
    metadata: dict = field(default_factory=dict)
    message: str = ""

    @property
    def is_final_failure(self) -> bool:
        return not self.success and self.gateway_status in FAILED_STATUSES


class PaystackVerifier:
    def __init__(self, secret_key: Optional[str] = None, base_url: Optional[str] = None,
                 timeout: Optional[int] = None, session: Optional[requests.Session] = None):
        self.secret_key = secret_key if secret_key is not None else settings.PAYSTACK_SECRET_KEY
        self.base_url = (base_url or settings.PAYSTACK_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.PAYSTACK_TIMEOUT
        self.session = session or requests.Session()

    def verify(self, reference: str) -> VerificationResult:
        headers = {"Authorization": f"Bearer {self.secret_key}"}
        try:
            response = self.session.get(
                f"{self.base_url}/transaction/verify/{reference}",
                headers=headers,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.warning("Paystack unreachable for reference=%s: %s", reference, e)
            raise ExternalServiceError("Could not reach Paystack. Try again.") from e

        if response.status_code != 200:
            raise ExternalServiceError(f"Paystack verification failed with HTTP {response.status_code}")

        try:
            body = response.json()
        except ValueError as e:
            raise ExternalServiceError("Invalid Paystack response") from e
        if not body.get("status") or not isinstance(body.get("data"), dict):
            raise ExternalServiceError(body.get("message") or "Invalid Paystack response")

        trx = body["data"]
        status = str(trx.get("status") or "").lower()
        paid_at = trx.get("paid_at") or trx.get("paidAt")
        metadata = trx.get("metadata")
        return VerificationResult(
            success=status == "success",
            gateway_status=status,
            amount_minor_units=int(trx.get("amount") or 0),
            paid_at=parse_datetime(paid_at) if paid_at else None,
            metadata=metadata if isinstance(metadata, dict) else {},
            message=trx.get("gateway_response") or body.get("message") or "",
        )


def get_verifier():
    return import_string(settings.PAYMENT_VERIFIER)()
