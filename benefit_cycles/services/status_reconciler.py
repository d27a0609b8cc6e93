import logging
from collections.abc import Iterable
from datetime import datetime

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from benefit_cycles.config import settings
from benefit_cycles.models.benefit import Benefit
from benefit_cycles.models.benefit_status import BenefitStatus
from benefit_cycles.models.card import Card
from benefit_cycles.models.user import User
from benefit_cycles.schemas.benefit_cycle import CycleValidationResult, CycleWindow
from benefit_cycles.services.benefit_validation import check_benefit_cycle
from benefit_cycles.utils.cycle_utils import (
    RECURRING_FREQUENCIES,
    MissingAnchorError,
    UnsupportedFrequencyError,
    calculate_cycle_for_template,
    template_from_benefit,
)
from benefit_cycles.utils.timezone import normalize_cycle_date, to_db_datetime, utc_now

logger = logging.getLogger(__name__)

_NATIVE_UPSERT = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


def upsert_cycle_status(
    db: Session,
    benefit_id: int,
    user_id: int,
    window: CycleWindow,
    occurrence_index: int = 0,
) -> None:
    """Ensure the status row for this cycle occurrence exists.

    A new row starts uncompleted with nothing used. An existing row only gets
    its cycle_end_date refreshed; completion and used_amount are never touched.
    Safe under concurrent callers: the unique key decides the winner.
    """
    cycle_start = to_db_datetime(normalize_cycle_date(window.cycle_start))
    cycle_end = to_db_datetime(window.cycle_end)
    now = to_db_datetime(utc_now())

    insert = _NATIVE_UPSERT.get(db.get_bind().dialect.name)
    if insert is not None:
        stmt = insert(BenefitStatus).values(
            benefit_id=benefit_id,
            user_id=user_id,
            cycle_start_date=cycle_start,
            cycle_end_date=cycle_end,
            occurrence_index=occurrence_index,
            is_completed=False,
            used_amount=0,
            is_not_usable=False,
            order_index=0,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["benefit_id", "user_id", "cycle_start_date", "occurrence_index"],
            set_={"cycle_end_date": cycle_end, "updated_at": now},
        )
        db.execute(stmt)
        return

    _conditional_insert(db, benefit_id, user_id, cycle_start, cycle_end, occurrence_index)


def _conditional_insert(
    db: Session,
    benefit_id: int,
    user_id: int,
    cycle_start: datetime,
    cycle_end: datetime,
    occurrence_index: int,
) -> None:
    """Insert-then-update for dialects without ON CONFLICT."""

    def _existing() -> BenefitStatus | None:
        return (
            db.query(BenefitStatus)
            .filter(
                BenefitStatus.benefit_id == benefit_id,
                BenefitStatus.user_id == user_id,
                BenefitStatus.cycle_start_date == cycle_start,
                BenefitStatus.occurrence_index == occurrence_index,
            )
            .first()
        )

    status = _existing()
    if status is None:
        try:
            with db.begin_nested():
                db.add(BenefitStatus(
                    benefit_id=benefit_id,
                    user_id=user_id,
                    cycle_start_date=cycle_start,
                    cycle_end_date=cycle_end,
                    occurrence_index=occurrence_index,
                    is_completed=False,
                    used_amount=0,
                    order_index=0,
                ))
            return
        except IntegrityError:
            # Lost the race to a concurrent insert; fall through to the update
            status = _existing()
            if status is None:
                raise
    status.cycle_end_date = cycle_end
    db.flush()


def ensure_cycle_statuses(
    db: Session,
    benefit: Benefit,
    user_id: int,
    anchor_date: datetime | None,
    now: datetime,
    *,
    blocking: bool | None = None,
) -> CycleValidationResult:
    """Upsert a status for every occurrence of the cycle containing now.

    Does not commit; the caller owns the transaction. Returns the cycle
    validation result (ONE_TIME lifetimes are not validated). blocking
    defaults to the block_on_cycle_mismatch setting.
    """
    template = template_from_benefit(benefit)
    on_missing_anchor = "raise" if settings.missing_anchor_policy == "defer" else "fallback"
    window = calculate_cycle_for_template(
        template,
        now,
        anchor_date,
        benefit_start_date=benefit.start_date,
        on_missing_anchor=on_missing_anchor,
    )
    result = CycleValidationResult(is_valid=True)
    if template.frequency in RECURRING_FREQUENCIES:
        result = check_benefit_cycle(
            template,
            window,
            blocking=settings.block_on_cycle_mismatch if blocking is None else blocking,
            context=f"benefit={benefit.id} user={user_id}",
        )
    for occurrence_index in range(template.occurrences_in_cycle):
        upsert_cycle_status(db, benefit.id, user_id, window, occurrence_index)
    return result


def _active_recurring_benefits(card: Card, now: datetime) -> list[Benefit]:
    db_now = to_db_datetime(now)
    return [
        b for b in card.benefits
        if b.frequency != "ONE_TIME"
        and (b.start_date is None or b.start_date <= db_now)
        and (b.end_date is None or b.end_date > db_now)
    ]


def reconcile_benefit_statuses(
    db: Session,
    now: datetime | None = None,
    user_ids: Iterable[int] | None = None,
) -> dict:
    """Create missing current-cycle statuses for every active card's recurring benefits.

    Each benefit is its own unit of work: it is committed on success and rolled
    back on failure without stopping the run. user_ids restricts the run to a
    subset of users so work can be split across workers.

    Returns a summary dict with counts of actions taken.
    """
    if now is None:
        now = utc_now()
    summary = {
        "cards_processed": 0,
        "cards_successful": 0,
        "cards_failed": 0,
        "benefits_processed": 0,
        "benefits_skipped": 0,
        "benefits_failed": 0,
        "upserts_attempted": 0,
        "upserts_successful": 0,
        "upserts_failed": 0,
    }

    query = (
        db.query(Card)
        .join(User, Card.user_id == User.id)
        .filter(Card.status == "active", User.is_active == True)  # noqa: E712
        .order_by(Card.id)
    )
    if user_ids is not None:
        query = query.filter(Card.user_id.in_(list(user_ids)))
    cards = query.all()

    for card in cards:
        summary["cards_processed"] += 1
        card_id, user_id, opened_date = card.id, card.user_id, card.opened_date
        try:
            benefits = _active_recurring_benefits(card, now)
        except Exception:
            logger.exception("Failed to load benefits for card %s (user: %s)", card_id, user_id)
            db.rollback()
            summary["cards_failed"] += 1
            continue

        for benefit in benefits:
            summary["benefits_processed"] += 1
            _reconcile_one(db, benefit, card_id, user_id, opened_date, now, summary)
        summary["cards_successful"] += 1

    logger.info("Benefit status reconciliation: %s", summary)
    return summary


def _reconcile_one(db, benefit, card_id, user_id, opened_date, now, summary):
    occurrences = benefit.occurrences_in_cycle or 1
    context = (
        f"benefit={benefit.id} user={user_id} card={card_id} frequency={benefit.frequency} "
        f"alignment={benefit.cycle_alignment} start_month={benefit.fixed_cycle_start_month} "
        f"duration={benefit.fixed_cycle_duration_months} now={now.isoformat()}"
    )
    try:
        ensure_cycle_statuses(db, benefit, user_id, opened_date, now)
        db.commit()
    except MissingAnchorError as exc:
        db.rollback()
        summary["benefits_skipped"] += 1
        logger.warning("Skipping cycle for %s: %s", context, exc)
        return
    except UnsupportedFrequencyError as exc:
        db.rollback()
        summary["benefits_failed"] += 1
        logger.error("Cannot calculate cycle for %s: %s", context, exc)
        return
    except Exception:
        db.rollback()
        summary["benefits_failed"] += 1
        summary["upserts_attempted"] += occurrences
        summary["upserts_failed"] += occurrences
        logger.exception("Error reconciling cycle for %s", context)
        return
    summary["upserts_attempted"] += occurrences
    summary["upserts_successful"] += occurrences
