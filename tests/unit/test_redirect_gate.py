"""Tests for the redirect decision gate."""

from datetime import datetime, timedelta
from uuid import uuid4

import pytest

from clicktrail.core.security import hash_password
from clicktrail.models.link import LinkStatus
from clicktrail.schemas.link import LinkRecord
from clicktrail.services.redirect_gate import GateOutcome, evaluate

NOW = datetime(2024, 3, 10, 12, 0, 0)


def make_record(**overrides) -> LinkRecord:
    fields = {
        "id": uuid4(),
        "owner_id": uuid4(),
        "short_code": "abc123",
        "original_url": "https://example.com",
        "status": LinkStatus.ACTIVE,
        "created_at": NOW - timedelta(days=3),
    }
    fields.update(overrides)
    return LinkRecord(**fields)


def test_active_link_redirects():
    decision = evaluate(make_record(), now=NOW)
    assert decision.outcome == GateOutcome.ACTIVE
    assert decision.allowed


@pytest.mark.parametrize("link", [None, make_record(status=LinkStatus.DELETED)])
def test_missing_or_deleted_is_not_found(link):
    assert evaluate(link, now=NOW).outcome == GateOutcome.NOT_FOUND


def test_disabled_carries_reason():
    decision = evaluate(make_record(status=LinkStatus.DISABLED, disabled_reason="phishing"), now=NOW)
    assert decision.outcome == GateOutcome.DISABLED
    assert decision.reason == "phishing"
    assert not decision.allowed


def test_expired_by_status_or_timestamp():
    assert evaluate(make_record(status=LinkStatus.EXPIRED), now=NOW).outcome == GateOutcome.EXPIRED
    past = make_record(expires_at=NOW - timedelta(seconds=1))
    assert evaluate(past, now=NOW).outcome == GateOutcome.EXPIRED
    future = make_record(expires_at=NOW + timedelta(hours=1))
    assert evaluate(future, now=NOW).outcome == GateOutcome.ACTIVE


def test_password_protected_link():
    link = make_record(password_hash=hash_password("hunter2"))
    assert evaluate(link, now=NOW).outcome == GateOutcome.PASSWORD_REQUIRED
    assert evaluate(link, "wrong", now=NOW).outcome == GateOutcome.PASSWORD_REQUIRED
    assert evaluate(link, "hunter2", now=NOW).outcome == GateOutcome.ACTIVE


def test_checks_run_in_order():
    # Disabled wins over expired and password
    link = make_record(
        status=LinkStatus.DISABLED,
        expires_at=NOW - timedelta(days=1),
        password_hash=hash_password("pw"),
    )
    assert evaluate(link, now=NOW).outcome == GateOutcome.DISABLED

    # Expired wins over password
    link = make_record(expires_at=NOW - timedelta(days=1), password_hash=hash_password("pw"))
    assert evaluate(link, "pw", now=NOW).outcome == GateOutcome.EXPIRED
