from unittest import mock

import pytest
import requests

from EduPortal.errors import ExternalServiceError
from payments.gateway import PaystackVerifier


def _response(status_code=200, body=None, bad_json=False):
    resp = mock.Mock(status_code=status_code)
    if bad_json:
        resp.json.side_effect = ValueError("no json")
    else:
        resp.json.return_value = body
    return resp


def _verifier(response=None, error=None):
    session = mock.Mock()
    if error is not None:
        session.get.side_effect = error
    else:
        session.get.return_value = response
    return PaystackVerifier(secret_key="sk_test", base_url="https://gw.test/", timeout=5, session=session), session


def test_successful_verification():
    body = {
        "status": True,
        "message": "Verification successful",
        "data": {
            "status": "success",
            "amount": 120000,
            "paid_at": "2025-01-15T10:00:00Z",
            "metadata": {"courseId": 7},
            "gateway_response": "Approved",
        },
    }
    verifier, session = _verifier(_response(body=body))

    result = verifier.verify("ref-1")

    session.get.assert_called_once_with(
        "https://gw.test/transaction/verify/ref-1",
        headers={"Authorization": "Bearer sk_test"},
        timeout=5,
    )
    assert result.success is True
    assert result.amount_minor_units == 120000
    assert result.metadata == {"courseId": 7}
    assert result.paid_at.year == 2025
    assert result.is_final_failure is False


def test_failed_and_pending_statuses():
    failed, _ = _verifier(_response(body={"status": True, "data": {"status": "abandoned", "metadata": ""}}))
    result = failed.verify("ref-2")
    assert result.success is False
    assert result.is_final_failure is True
    assert result.metadata == {}

    pending, _ = _verifier(_response(body={"status": True, "data": {"status": "ongoing"}}))
    assert pending.verify("ref-3").is_final_failure is False


@pytest.mark.parametrize("kwargs", [
    {"error": requests.exceptions.ConnectTimeout("slow")},
    {"response": _response(status_code=502)},
    {"response": _response(bad_json=True)},
    {"response": _response(body={"status": False, "message": "Transaction reference not found"})},
])
def test_gateway_problems_raise_external_service_error(kwargs):
    verifier, _ = _verifier(**kwargs)
    with pytest.raises(ExternalServiceError):
        verifier.verify("ref-4")
