from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
from sqlalchemy.orm import Session

from benefit_cycles.models.benefit import Benefit
from benefit_cycles.models.benefit_status import BenefitStatus
from benefit_cycles.models.card import Card
from benefit_cycles.models.user import User
from benefit_cycles.services.usage_service import (
    InvalidPartialAmountError,
    add_partial_completion,
    calculate_completion_percentage,
    calculate_completion_state,
    calculate_remaining_amount,
    calculate_total_used_value,
    mark_full_completion,
    reset_completion,
    toggle_not_usable,
    update_used_amount,
    validate_partial_amount,
)

NOW = datetime(2025, 8, 15, 12, tzinfo=timezone.utc)


def _make_status(db: Session, max_amount: float | None = 100, used_amount: float = 0) -> BenefitStatus:
    user = User(email="usage@example.com")
    db.add(user)
    db.flush()
    card = Card(user_id=user.id, name="Test Card", issuer="Amex", opened_date=datetime(2024, 1, 15))
    db.add(card)
    db.flush()
    benefit = Benefit(
        card_id=card.id,
        category="Dining",
        description="$100 dining credit",
        max_amount=max_amount,
        frequency="QUARTERLY",
    )
    db.add(benefit)
    db.flush()
    status = BenefitStatus(
        benefit_id=benefit.id,
        user_id=user.id,
        cycle_start_date=datetime(2025, 7, 15),
        cycle_end_date=datetime(2025, 10, 14, 23, 59, 59, 999000),
        used_amount=used_amount,
    )
    db.add(status)
    db.commit()
    return status


# --- Pure derivations ---

def test_completion_state():
    assert calculate_completion_state(0, 100) == "not_started"
    assert calculate_completion_state(None, 100) == "not_started"
    assert calculate_completion_state(40, 100) == "partial"
    assert calculate_completion_state(100, 100) == "complete"
    assert calculate_completion_state(150, 100) == "complete"
    assert calculate_completion_state(-5, 100) == "not_started"


def test_completion_state_without_cap():
    assert calculate_completion_state(0, None) == "not_started"
    assert calculate_completion_state(5, 0) == "complete"
    assert calculate_completion_state(10, 0) == "complete"


def test_validate_partial_amount_rejections():
    assert validate_partial_amount(-1, 0, 100).error == "Amount cannot be negative"
    assert validate_partial_amount(0, 0, 100).error == "Amount must be greater than zero"
    result = validate_partial_amount(50, 60, 100)
    assert not result.is_valid
    assert result.error == "Amount exceeds remaining balance of $40.00"


def test_validate_partial_amount_clamps_within_tolerance():
    result = validate_partial_amount(33.3405, 66.66, 100)
    assert result.is_valid
    assert result.clamped_amount == pytest.approx(33.34)


def test_validate_partial_amount_against_remaining():
    result = validate_partial_amount(80, 30, 100)
    assert not result.is_valid
    assert "exceeds remaining" in result.error
    result = validate_partial_amount(70, 30, 100)
    assert result.is_valid
    assert result.clamped_amount == 70


def test_validate_partial_amount_uncapped():
    result = validate_partial_amount(1000, 0, None)
    assert result.is_valid
    assert result.clamped_amount == 1000


def test_remaining_and_percentage():
    assert calculate_remaining_amount(30, 100) == 70
    assert calculate_remaining_amount(130, 100) == 0
    assert calculate_remaining_amount(30, None) == 0
    assert calculate_completion_percentage(25, 100) == 25
    assert calculate_completion_percentage(250, 100) == 100
    assert calculate_completion_percentage(5, None) == 100
    assert calculate_completion_percentage(0, None) == 0


def test_total_used_value_counts_partial_usage():
    statuses = [
        SimpleNamespace(used_amount=100, is_completed=True),
        SimpleNamespace(used_amount=35.5, is_completed=False),
        SimpleNamespace(used_amount=None, is_completed=False),
    ]
    assert calculate_total_used_value(statuses) == pytest.approx(135.5)


# --- Completion actions ---

def test_add_partial_then_complete(db_session):
    status = _make_status(db_session)

    add_partial_completion(db_session, status, 40, 100, now=NOW)
    assert status.used_amount == 40
    assert not status.is_completed
    assert status.completed_at is None

    add_partial_completion(db_session, status, 60, 100, now=NOW)
    assert status.used_amount == 100
    assert status.is_completed
    assert status.completed_at == datetime(2025, 8, 15, 12)


def test_add_partial_rejects_over_remaining(db_session):
    status = _make_status(db_session, used_amount=90)
    with pytest.raises(InvalidPartialAmountError, match="remaining balance of \\$10.00"):
        add_partial_completion(db_session, status, 20, 100)
    assert status.used_amount == 90


def test_update_used_amount_recomputes_completion(db_session):
    status = _make_status(db_session)
    mark_full_completion(db_session, status, 100, now=NOW)
    assert status.is_completed

    update_used_amount(db_session, status, 20, 100)
    assert status.used_amount == 20
    assert not status.is_completed
    assert status.completed_at is None


def test_update_used_amount_rejects_above_max(db_session):
    status = _make_status(db_session)
    with pytest.raises(InvalidPartialAmountError):
        update_used_amount(db_session, status, 150, 100)


def test_mark_full_completion_sets_used_to_max(db_session):
    status = _make_status(db_session, used_amount=10)
    mark_full_completion(db_session, status, 100, now=NOW)
    assert status.used_amount == 100
    assert status.is_completed
    assert status.completed_at == datetime(2025, 8, 15, 12)


def test_reset_completion(db_session):
    status = _make_status(db_session)
    mark_full_completion(db_session, status, 100, now=NOW)
    reset_completion(db_session, status)
    assert status.used_amount == 0
    assert not status.is_completed
    assert status.completed_at is None


def test_toggle_not_usable_clears_completion(db_session):
    status = _make_status(db_session)
    mark_full_completion(db_session, status, 100, now=NOW)

    toggle_not_usable(db_session, status)
    assert status.is_not_usable
    assert not status.is_completed
    assert status.completed_at is None

    toggle_not_usable(db_session, status)
    assert not status.is_not_usable
