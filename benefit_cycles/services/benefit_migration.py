import logging
from datetime import datetime, timezone
from pathlib import Path

import yaml
from sqlalchemy.orm import Session

from benefit_cycles.models.benefit import Benefit
from benefit_cycles.models.card import Card
from benefit_cycles.models.user import User
from benefit_cycles.schemas.migration import MigrationPlan
from benefit_cycles.services.benefit_validation import check_benefit_cycle
from benefit_cycles.services.card_service import build_benefit
from benefit_cycles.services.status_reconciler import ensure_cycle_statuses
from benefit_cycles.utils.cycle_utils import (
    RECURRING_FREQUENCIES,
    MissingAnchorError,
    calculate_cycle_for_template,
    template_from_benefit,
)
from benefit_cycles.utils.timezone import as_utc, utc_now

logger = logging.getLogger(__name__)

# Stand-in anchor used to exercise anniversary cycles before touching real cards
PRECHECK_ANCHOR = datetime(2024, 1, 15, tzinfo=timezone.utc)


def load_migration_plan(path: str | Path) -> MigrationPlan:
    """Parse a YAML migration plan. Raises ValueError on unreadable or invalid input."""
    path = Path(path)
    try:
        with open(path) as fh:
            data = yaml.safe_load(fh)
    except (OSError, yaml.YAMLError) as exc:
        raise ValueError(f"Cannot read migration plan {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"Migration plan {path} must be a mapping")
    # pydantic ValidationError is a ValueError subclass
    return MigrationPlan.model_validate(data)


def precheck_migration_plan(plan: MigrationPlan, now: datetime) -> list[str]:
    """Compute and validate each recurring benefit's cycle against the mock anchor.

    Raises CycleMismatchError on the first mismatch. Returns a line per check passed.
    """
    checks = []
    for definition in plan.benefits:
        if definition.frequency not in RECURRING_FREQUENCIES:
            continue
        template = template_from_benefit(definition)
        window = calculate_cycle_for_template(template, now, PRECHECK_ANCHOR)
        check_benefit_cycle(
            template,
            window,
            blocking=True,
            context=f"plan={plan.id} benefit={definition.description!r}",
        )
        checks.append(
            f"{definition.description}: {window.cycle_start.date().isoformat()} -> "
            f"{window.cycle_end.date().isoformat()}"
        )
    return checks


def run_benefit_migration(
    db: Session,
    plan: MigrationPlan,
    now: datetime | None = None,
    dry_run: bool = True,
) -> dict:
    """Add the plan's benefits to every active card named plan.card_name.

    Benefits already on a card (same description) are left alone, so rerunning
    a plan is harmless. Everything happens in one transaction: any error rolls
    it all back, and a dry run rolls back after counting.

    Returns a summary dict with counts of actions taken.
    """
    if now is None:
        now = utc_now()
    now = as_utc(now)
    start_date = plan.effective_date or now

    summary = {
        "plan_id": plan.id,
        "dry_run": dry_run,
        "cards_matched": 0,
        "benefits_added": 0,
        "benefits_existing": 0,
        "statuses_seeded": 0,
        "statuses_deferred": 0,
        "checks": precheck_migration_plan(plan, now),
    }

    cards = (
        db.query(Card)
        .join(User, Card.user_id == User.id)
        .filter(Card.name == plan.card_name, Card.status == "active", User.is_active == True)  # noqa: E712
        .order_by(Card.id)
        .all()
    )
    summary["cards_matched"] = len(cards)

    try:
        for card in cards:
            existing = {b.description for b in card.benefits}
            for definition in plan.benefits:
                if definition.description in existing:
                    summary["benefits_existing"] += 1
                    continue
                benefit = build_benefit(card.id, definition, start_date)
                db.add(benefit)
                db.flush()
                summary["benefits_added"] += 1
                summary["statuses_seeded"] += _seed(db, benefit, card, now, summary)
        if dry_run:
            db.rollback()
        else:
            db.commit()
    except Exception:
        db.rollback()
        logger.exception("Benefit migration %s failed; rolled back", plan.id)
        raise

    logger.info("Benefit migration %s%s: %s", plan.id, " (dry run)" if dry_run else "", summary)
    return summary


def _seed(db: Session, benefit: Benefit, card: Card, now: datetime, summary: dict) -> int:
    try:
        ensure_cycle_statuses(db, benefit, card.user_id, card.opened_date, now, blocking=True)
    except MissingAnchorError:
        # Left for the reconciler once the card has an opened date
        summary["statuses_deferred"] += 1
        logger.warning("Card %s has no opened date; status seeding deferred", card.id)
        return 0
    return benefit.occurrences_in_cycle
