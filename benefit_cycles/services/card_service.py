import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from benefit_cycles.models.benefit import Benefit
from benefit_cycles.models.card import Card
from benefit_cycles.models.user import User
from benefit_cycles.schemas.benefit_cycle import BenefitDefinition
from benefit_cycles.schemas.card import CardCreate, CardCreateResult
from benefit_cycles.services.status_reconciler import ensure_cycle_statuses
from benefit_cycles.utils.timezone import as_utc, to_db_datetime, utc_now

logger = logging.getLogger(__name__)


def build_benefit(card_id: int, definition: BenefitDefinition, start_date: datetime) -> Benefit:
    return Benefit(
        card_id=card_id,
        category=definition.category,
        description=definition.description,
        percentage=definition.percentage,
        max_amount=definition.max_amount,
        frequency=definition.frequency,
        cycle_alignment=definition.cycle_alignment,
        fixed_cycle_start_month=definition.fixed_cycle_start_month,
        fixed_cycle_duration_months=definition.fixed_cycle_duration_months,
        occurrences_in_cycle=definition.occurrences_in_cycle,
        start_date=to_db_datetime(start_date),
    )


def create_card_for_user(
    db: Session,
    user_id: int,
    data: CardCreate,
    now: datetime | None = None,
) -> CardCreateResult:
    """Create a card with its benefits and seed the current cycle of each one.

    A missing opened date is replaced by Jan 1 of the current year; cycles for
    such cards run Jan-Dec until the real date is entered. Cycle validation is
    advisory here unless block_on_cycle_mismatch is set, in which case a
    mismatch raises CycleMismatchError and nothing is written.
    """
    if now is None:
        now = utc_now()
    now = as_utc(now)

    user = db.get(User, user_id)
    if user is None:
        raise ValueError(f"User {user_id} not found")

    opened_date = data.opened_date
    opened_date_defaulted = False
    if opened_date is None:
        opened_date = datetime(now.year, 1, 1, tzinfo=timezone.utc)
        opened_date_defaulted = True
        logger.warning(
            "Card %r for user %s has no opened date; defaulting to %s",
            data.name, user_id, opened_date.date().isoformat(),
        )

    warnings: list[str] = []
    statuses_created = 0
    try:
        card = Card(
            user_id=user_id,
            name=data.name,
            issuer=data.issuer,
            last_four_digits=data.last_four_digits,
            opened_date=to_db_datetime(opened_date),
        )
        db.add(card)
        db.flush()

        for definition in data.benefits:
            benefit = build_benefit(card.id, definition, now)
            db.add(benefit)
            db.flush()
            result = ensure_cycle_statuses(db, benefit, user_id, opened_date, now)
            if not result.is_valid:
                warnings.append(result.error)
            statuses_created += definition.occurrences_in_cycle

        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "Created card %s for user %s with %d benefits and %d statuses",
        card.id, user_id, len(data.benefits), statuses_created,
    )
    return CardCreateResult(
        card_id=card.id,
        benefits_created=len(data.benefits),
        statuses_created=statuses_created,
        opened_date_defaulted=opened_date_defaulted,
        validation_warnings=warnings,
    )
