import logging
from datetime import date, datetime, timezone
from typing import Literal

from dateutil.relativedelta import relativedelta

from benefit_cycles.config import settings
from benefit_cycles.schemas.benefit_cycle import (
    Anniversary,
    BenefitTemplate,
    CalendarFixed,
    CycleWindow,
)
from benefit_cycles.utils.timezone import as_utc, end_of_day, start_of_day

logger = logging.getLogger(__name__)

# Length of one recurring cycle, in months
_FREQUENCY_MONTHS = {
    "MONTHLY": 1,
    "QUARTERLY": 3,
    "YEARLY": 12,
}

RECURRING_FREQUENCIES = tuple(_FREQUENCY_MONTHS)


class UnsupportedFrequencyError(ValueError):
    pass


class MissingAnchorError(ValueError):
    pass


def calculate_benefit_cycle(
    frequency: str,
    alignment: Anniversary | CalendarFixed,
    reference_date: datetime,
    anchor_date: datetime | None = None,
    *,
    benefit_start_date: datetime | None = None,
    on_missing_anchor: Literal["fallback", "raise"] = "fallback",
) -> CycleWindow:
    """Return the cycle window that is active at reference_date.

    Calendar-fixed cycles ignore the anchor. Anniversary cycles are anchored to
    the day of month (and month) of anchor_date; when it is missing they either
    fall back to Jan 1 of the reference year, flagged on the returned window,
    or raise MissingAnchorError. ONE_TIME benefits get a single lifetime window
    starting at benefit_start_date.

    Raises UnsupportedFrequencyError for any frequency outside
    MONTHLY/QUARTERLY/YEARLY/ONE_TIME.
    """
    if frequency == "ONE_TIME":
        if benefit_start_date is None:
            raise ValueError("ONE_TIME benefits require benefit_start_date")
        return calculate_one_time_lifetime(benefit_start_date)

    period_months = _FREQUENCY_MONTHS.get(frequency)
    if period_months is None:
        raise UnsupportedFrequencyError(f"Unsupported frequency for cycle calculation: {frequency!r}")

    ref = as_utc(reference_date)

    if isinstance(alignment, CalendarFixed):
        start, end = _calendar_fixed_cycle(alignment, period_months, ref.date())
        return CycleWindow(cycle_start=start_of_day(start), cycle_end=end_of_day(end))

    if isinstance(alignment, Anniversary):
        anchor_fallback = False
        if anchor_date is None:
            if on_missing_anchor == "raise":
                raise MissingAnchorError(
                    f"Anniversary-aligned {frequency} benefit has no anchor date"
                )
            anchor_date = datetime(ref.year, 1, 1, tzinfo=timezone.utc)
            anchor_fallback = True
            logger.warning(
                "No anchor date for anniversary-aligned %s benefit; using fallback anchor %s",
                frequency, anchor_date.date().isoformat(),
            )
        start, end = _anniversary_cycle(period_months, as_utc(anchor_date).date(), ref.date())
        return CycleWindow(
            cycle_start=start_of_day(start),
            cycle_end=end_of_day(end),
            anchor_fallback=anchor_fallback,
        )

    raise TypeError(f"Unknown cycle alignment: {alignment!r}")


def calculate_one_time_lifetime(benefit_start_date: datetime, years: int | None = None) -> CycleWindow:
    """Window for a ONE_TIME benefit: its start instant through end of day N years later."""
    if years is None:
        years = settings.one_time_lifetime_years
    start = as_utc(benefit_start_date)
    end = end_of_day(start.date() + relativedelta(years=years))
    return CycleWindow(cycle_start=start, cycle_end=end)


def calculate_cycle_for_template(
    template: BenefitTemplate,
    reference_date: datetime,
    anchor_date: datetime | None = None,
    *,
    benefit_start_date: datetime | None = None,
    on_missing_anchor: Literal["fallback", "raise"] = "fallback",
) -> CycleWindow:
    return calculate_benefit_cycle(
        template.frequency,
        template.alignment,
        reference_date,
        anchor_date,
        benefit_start_date=benefit_start_date,
        on_missing_anchor=on_missing_anchor,
    )


def alignment_from_fields(
    cycle_alignment: str | None,
    fixed_cycle_start_month: int | None,
    fixed_cycle_duration_months: int | None,
) -> Anniversary | CalendarFixed:
    """Build the alignment variant from flat storage columns."""
    if cycle_alignment in (None, "CARD_ANNIVERSARY"):
        return Anniversary()
    if cycle_alignment == "CALENDAR_FIXED":
        if fixed_cycle_start_month is None or fixed_cycle_duration_months is None:
            raise ValueError(
                "CALENDAR_FIXED alignment requires fixed_cycle_start_month and fixed_cycle_duration_months"
            )
        return CalendarFixed(
            start_month=fixed_cycle_start_month,
            duration_months=fixed_cycle_duration_months,
        )
    raise ValueError(f"Unknown cycle alignment: {cycle_alignment!r}")


def template_from_benefit(benefit) -> BenefitTemplate:
    """Convert a Benefit row (or a BenefitDefinition) into a BenefitTemplate."""
    return BenefitTemplate(
        frequency=benefit.frequency,
        alignment=alignment_from_fields(
            benefit.cycle_alignment,
            benefit.fixed_cycle_start_month,
            benefit.fixed_cycle_duration_months,
        ),
        max_amount=benefit.max_amount,
        occurrences_in_cycle=benefit.occurrences_in_cycle or 1,
        description=benefit.description or "",
    )


def _months_between(earlier: date, later: date) -> int:
    return (later.year - earlier.year) * 12 + later.month - earlier.month


def _calendar_fixed_cycle(alignment: CalendarFixed, frequency_months: int, ref: date) -> tuple[date, date]:
    # Windows repeat every period; a duration longer than the frequency widens the period
    period = max(frequency_months, alignment.duration_months)
    duration = relativedelta(months=alignment.duration_months)

    year = ref.year if ref.month >= alignment.start_month else ref.year - 1
    start = date(year, alignment.start_month, 1)
    start += relativedelta(months=(_months_between(start, ref) // period) * period)
    end = start + duration - relativedelta(days=1)

    if ref > end:
        # Gap between windows: the next window is the active one
        start += relativedelta(months=period)
        end = start + duration - relativedelta(days=1)
    return start, end


def _anniversary_cycle(period_months: int, anchor: date, ref: date) -> tuple[date, date]:
    # Offsets are always taken from the anchor itself so a 31st anchor does not drift to the 28th
    k = _months_between(anchor, ref) // period_months
    start = anchor + relativedelta(months=k * period_months)
    if start > ref:
        k -= 1
        start = anchor + relativedelta(months=k * period_months)
    end = anchor + relativedelta(months=(k + 1) * period_months) - relativedelta(days=1)
    return start, end
