from collections.abc import Iterable
from datetime import datetime

from sqlalchemy.orm import Session

from benefit_cycles.models.benefit_status import BenefitStatus
from benefit_cycles.schemas.usage import CompletionState, PartialAmountValidation
from benefit_cycles.utils.timezone import to_db_datetime, utc_now

# Slack for amounts that differ from the remaining balance only by float error
AMOUNT_TOLERANCE = 0.001


class InvalidPartialAmountError(ValueError):
    pass


# --- Pure derivations ---

def calculate_completion_state(used_amount: float | None, max_amount: float | None) -> CompletionState:
    used = max(0.0, used_amount or 0)
    cap = max_amount or 0

    # Without a cap there is no partial state: any usage completes the benefit
    if cap <= 0:
        return "complete" if used > 0 else "not_started"
    if used <= 0:
        return "not_started"
    if used >= cap:
        return "complete"
    return "partial"


def validate_partial_amount(
    amount: float,
    current_used_amount: float | None,
    max_amount: float | None,
) -> PartialAmountValidation:
    current_used = current_used_amount or 0
    cap = max_amount or 0

    if amount < 0:
        return PartialAmountValidation(is_valid=False, error="Amount cannot be negative")
    if amount == 0:
        return PartialAmountValidation(is_valid=False, error="Amount must be greater than zero")

    if cap <= 0:
        return PartialAmountValidation(is_valid=True, clamped_amount=amount)

    remaining = cap - current_used
    if amount > remaining:
        if abs(amount - remaining) <= AMOUNT_TOLERANCE:
            return PartialAmountValidation(is_valid=True, clamped_amount=remaining)
        return PartialAmountValidation(
            is_valid=False,
            error=f"Amount exceeds remaining balance of ${max(remaining, 0):.2f}",
        )
    return PartialAmountValidation(is_valid=True, clamped_amount=amount)


def calculate_remaining_amount(used_amount: float | None, max_amount: float | None) -> float:
    cap = max_amount or 0
    if cap <= 0:
        return 0
    return max(0, cap - (used_amount or 0))


def calculate_completion_percentage(used_amount: float | None, max_amount: float | None) -> float:
    used = used_amount or 0
    cap = max_amount or 0
    if cap <= 0:
        return 100 if used > 0 else 0
    return min(100, max(0, used / cap * 100))


def calculate_total_used_value(statuses: Iterable) -> float:
    """Sum used_amount across statuses, partial ones included."""
    return sum(max(0, s.used_amount or 0) for s in statuses)


# --- Completion actions ---

def _apply_completion_state(status: BenefitStatus, max_amount: float | None, now: datetime) -> None:
    complete = calculate_completion_state(status.used_amount, max_amount) == "complete"
    if complete and not status.is_completed:
        status.completed_at = to_db_datetime(now)
    elif not complete:
        status.completed_at = None
    status.is_completed = complete


def add_partial_completion(
    db: Session,
    status: BenefitStatus,
    amount: float,
    max_amount: float | None,
    now: datetime | None = None,
) -> BenefitStatus:
    """Add amount to the status' used_amount after validating it against the cap."""
    result = validate_partial_amount(amount, status.used_amount, max_amount)
    if not result.is_valid:
        raise InvalidPartialAmountError(result.error)

    status.used_amount = (status.used_amount or 0) + result.clamped_amount
    _apply_completion_state(status, max_amount, now or utc_now())
    db.commit()
    db.refresh(status)
    return status


def update_used_amount(
    db: Session,
    status: BenefitStatus,
    used_amount: float,
    max_amount: float | None,
    now: datetime | None = None,
) -> BenefitStatus:
    """Overwrite used_amount with an absolute value."""
    if used_amount < 0:
        raise InvalidPartialAmountError("Amount cannot be negative")
    if max_amount and max_amount > 0 and used_amount > max_amount + AMOUNT_TOLERANCE:
        raise InvalidPartialAmountError(f"Amount exceeds maximum of ${max_amount:.2f}")

    if max_amount and max_amount > 0:
        used_amount = min(used_amount, max_amount)
    status.used_amount = used_amount
    _apply_completion_state(status, max_amount, now or utc_now())
    db.commit()
    db.refresh(status)
    return status


def mark_full_completion(
    db: Session,
    status: BenefitStatus,
    max_amount: float | None,
    now: datetime | None = None,
) -> BenefitStatus:
    if max_amount and max_amount > 0:
        status.used_amount = max_amount
    status.is_completed = True
    status.completed_at = to_db_datetime(now or utc_now())
    status.is_not_usable = False
    db.commit()
    db.refresh(status)
    return status


def reset_completion(db: Session, status: BenefitStatus) -> BenefitStatus:
    status.used_amount = 0
    status.is_completed = False
    status.completed_at = None
    db.commit()
    db.refresh(status)
    return status


def toggle_not_usable(db: Session, status: BenefitStatus) -> BenefitStatus:
    status.is_not_usable = not status.is_not_usable
    if status.is_not_usable:
        status.is_completed = False
        status.completed_at = None
    db.commit()
    db.refresh(status)
    return status
