"""Offline repair of BenefitStatus rows duplicated by sub-day cycle start drift.

Rows written before cycle starts were normalized can hold the same logical cycle
twice, e.g. 2025-10-01T07:00 and 2025-10-01T00:00, because the unique key
compares exact timestamps. This job groups rows by
(benefit, user, UTC date of cycle start, occurrence), keeps one survivor per
group, deletes the rest, and normalizes the survivor's cycle start.
"""
import logging
from collections import defaultdict
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.orm import Session

from benefit_cycles.config import REPAIR_SAMPLE_LIMIT, settings
from benefit_cycles.models.benefit_status import BenefitStatus
from benefit_cycles.schemas.repair import NormalizationSample, RepairReport, RepairSample
from benefit_cycles.utils.timezone import (
    as_utc,
    is_midnight_utc,
    normalize_cycle_date,
    to_db_datetime,
)

logger = logging.getLogger(__name__)

GroupKey = tuple[int, int, str, int]


def group_key(status: BenefitStatus) -> GroupKey:
    return (
        status.benefit_id,
        status.user_id,
        as_utc(status.cycle_start_date).date().isoformat(),
        status.occurrence_index,
    )


def _updated(status: BenefitStatus) -> datetime:
    return as_utc(status.updated_at or status.created_at or datetime.min)


def choose_survivor(records: list[BenefitStatus]) -> BenefitStatus:
    """Pick the row to keep: completed first, then exact midnight UTC, then most recently updated."""
    return sorted(
        records,
        key=lambda s: (
            not s.is_completed,
            not is_midnight_utc(s.cycle_start_date),
            -_updated(s).timestamp(),
            s.id,
        ),
    )[0]


def _kept_reason(survivor: BenefitStatus) -> str:
    if survivor.is_completed:
        return "completed"
    if is_midnight_utc(survivor.cycle_start_date):
        return "midnight_utc"
    return "most_recent"


def find_duplicate_groups(db: Session) -> dict[GroupKey, list[BenefitStatus]]:
    """Load every status and group by logical cycle."""
    statuses = (
        db.query(BenefitStatus)
        .order_by(BenefitStatus.benefit_id, BenefitStatus.user_id, BenefitStatus.cycle_start_date)
        .all()
    )
    groups: dict[GroupKey, list[BenefitStatus]] = defaultdict(list)
    for status in statuses:
        groups[group_key(status)].append(status)
    return groups


def repair_duplicate_statuses(
    db: Session,
    *,
    dry_run: bool = True,
    confirm: bool = False,
    batch_size: int | None = None,
    should_stop: Callable[[], bool] | None = None,
    sample_limit: int = REPAIR_SAMPLE_LIMIT,
) -> RepairReport:
    """Detect and (optionally) remove duplicate cycle rows.

    Dry run by default. A destructive run needs confirm=True. Work is committed
    one batch at a time; a batch holds whole groups and about batch_size rows,
    so a run that is interrupted or cancelled through should_stop leaves only
    fully repaired groups behind, and rerunning picks up the rest.
    """
    if not dry_run and not confirm:
        raise ValueError("Destructive duplicate repair requires confirm=True")
    batch_size = batch_size or settings.repair_batch_size
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")

    report = RepairReport(dry_run=dry_run)
    groups = find_duplicate_groups(db)
    report.total_records = sum(len(records) for records in groups.values())

    # (survivor, losers) per group that needs any change
    plan: list[tuple[BenefitStatus, list[BenefitStatus]]] = []
    for key, records in groups.items():
        survivor = choose_survivor(records)
        losers = [r for r in records if r.id != survivor.id]
        needs_normalizing = not is_midnight_utc(survivor.cycle_start_date)
        if not losers and not needs_normalizing:
            continue

        if losers:
            report.duplicate_groups += 1
            report.rows_to_delete += len(losers)
            reason = _kept_reason(survivor)
            if reason == "completed":
                report.kept_because_completed += 1
            elif reason == "midnight_utc":
                report.kept_because_midnight += 1
            else:
                report.kept_because_recent += 1
            if len(report.samples) < sample_limit:
                report.samples.append(RepairSample(
                    benefit_id=key[0],
                    user_id=key[1],
                    cycle_date=key[2],
                    occurrence_index=key[3],
                    kept_id=survivor.id,
                    kept_cycle_start=as_utc(survivor.cycle_start_date),
                    kept_reason=reason,
                    deleted_ids=[r.id for r in losers],
                ))
        if needs_normalizing:
            report.rows_to_normalize += 1
            if len(report.normalization_samples) < sample_limit:
                report.normalization_samples.append(NormalizationSample(
                    status_id=survivor.id,
                    current=as_utc(survivor.cycle_start_date),
                    normalized=normalize_cycle_date(survivor.cycle_start_date),
                ))
        plan.append((survivor, losers))

    logger.info(
        "Duplicate scan: %d records, %d duplicate groups, %d to delete, %d to normalize",
        report.total_records, report.duplicate_groups, report.rows_to_delete, report.rows_to_normalize,
    )

    if dry_run or not plan:
        return report

    batch: list[tuple[BenefitStatus, list[BenefitStatus]]] = []
    batch_rows = 0
    for entry in plan:
        batch.append(entry)
        batch_rows += 1 + len(entry[1])
        if batch_rows >= batch_size:
            _apply_batch(db, batch, report)
            batch, batch_rows = [], 0
            if should_stop is not None and should_stop():
                report.cancelled = True
                logger.warning(
                    "Duplicate repair cancelled after %d batches (%d deleted, %d normalized)",
                    report.batches_committed, report.deleted, report.normalized,
                )
                return report
    if batch:
        _apply_batch(db, batch, report)

    logger.info(
        "Duplicate repair complete: %d deleted, %d normalized in %d batches",
        report.deleted, report.normalized, report.batches_committed,
    )
    return report


def _apply_batch(
    db: Session,
    batch: list[tuple[BenefitStatus, list[BenefitStatus]]],
    report: RepairReport,
) -> None:
    deleted = 0
    normalized = 0
    try:
        for survivor, losers in batch:
            for loser in losers:
                db.delete(loser)
                deleted += 1
            # Losers must be gone before the survivor takes the midnight key
            db.flush()
            if not is_midnight_utc(survivor.cycle_start_date):
                survivor.cycle_start_date = to_db_datetime(normalize_cycle_date(survivor.cycle_start_date))
                normalized += 1
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Duplicate repair batch failed after %d batches", report.batches_committed)
        raise
    report.deleted += deleted
    report.normalized += normalized
    report.batches_committed += 1
