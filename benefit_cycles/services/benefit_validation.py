"""Sanity checks for computed cycles against what a benefit's description promises.

Deliberately narrow: only windows the description spells out (a quarter marker
such as "Q3: Jul-Sep" or "third quarter", or a month name on a calendar-fixed
benefit) are checked. Everything else is reported valid.
"""
import logging
import re

from benefit_cycles.schemas.benefit_cycle import (
    BenefitTemplate,
    CalendarFixed,
    CycleValidationResult,
    CycleWindow,
)
from benefit_cycles.utils.timezone import as_utc

logger = logging.getLogger(__name__)

_MONTH_ABBR = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
_MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]

_QUARTER_MARKER = re.compile(r"\bQ(\d)\b")
_QUARTER_WORDS = re.compile(r"\b(first|second|third|fourth)\s+quarter\b", re.IGNORECASE)
_QUARTER_ORDINALS = {"first": 1, "second": 2, "third": 3, "fourth": 4}
# Capitalized full names only; "may" is too common as a verb to match loosely
_MONTH_NAME = re.compile(r"\b(" + "|".join(_MONTH_NAMES) + r")\b")


class CycleMismatchError(ValueError):
    def __init__(self, result: CycleValidationResult, context: str | None = None):
        self.result = result
        self.context = context
        message = result.error or "Cycle validation failed"
        if context:
            message = f"{message} [{context}]"
        super().__init__(message)


def _month_range_label(start_month: int, months: int) -> str:
    end_month = (start_month - 1 + months - 1) % 12 + 1
    if months == 1:
        return _MONTH_ABBR[start_month - 1]
    return f"{_MONTH_ABBR[start_month - 1]}-{_MONTH_ABBR[end_month - 1]}"


def _expected_window(template: BenefitTemplate) -> tuple[str, int, int] | None:
    """Return (marker, start_month, months) encoded in the description, if any."""
    description = template.description or ""

    quarter = None
    match = _QUARTER_MARKER.search(description)
    if match:
        quarter = int(match.group(1))
    else:
        words = _QUARTER_WORDS.search(description)
        if words:
            quarter = _QUARTER_ORDINALS[words.group(1).lower()]
    if quarter is not None:
        return f"Q{quarter}", (quarter - 1) * 3 + 1, 3

    if isinstance(template.alignment, CalendarFixed):
        match = _MONTH_NAME.search(description)
        if match:
            month = _MONTH_NAMES.index(match.group(1)) + 1
            return match.group(1), month, 1
    return None


def validate_benefit_cycle(template: BenefitTemplate, window: CycleWindow) -> CycleValidationResult:
    expected = _expected_window(template)
    if expected is None:
        return CycleValidationResult(is_valid=True)

    marker, start_month, months = expected
    actual_start_month = as_utc(window.cycle_start).month

    if marker.startswith("Q"):
        quarter = marker[1:]
        if quarter not in ("1", "2", "3", "4"):
            return CycleValidationResult(
                is_valid=False,
                error=f'Unknown quarter "{quarter}" in benefit description',
                actual_start_month=actual_start_month,
            )
        alignment = template.alignment
        if isinstance(alignment, CalendarFixed) and alignment.duration_months != 3:
            return CycleValidationResult(
                is_valid=False,
                error=(
                    f"{marker} benefit should have fixed_cycle_duration_months=3, "
                    f"got {alignment.duration_months}"
                ),
                expected_months=_month_range_label(start_month, months),
                actual_start_month=actual_start_month,
            )

    expected_months = [(start_month - 1 + i) % 12 + 1 for i in range(months)]
    label = _month_range_label(start_month, months)
    if actual_start_month not in expected_months:
        return CycleValidationResult(
            is_valid=False,
            error=(
                f'{marker} benefit "{template.description}" has wrong cycle start month. '
                f"Expected: {start_month} ({label}), Got: {actual_start_month}. "
                f"Computed window {window.cycle_start.isoformat()} -> {window.cycle_end.isoformat()}. "
                "This indicates a cycle calculation bug."
            ),
            expected_months=label,
            actual_start_month=actual_start_month,
        )
    return CycleValidationResult(is_valid=True, expected_months=label, actual_start_month=actual_start_month)


def check_benefit_cycle(
    template: BenefitTemplate,
    window: CycleWindow,
    *,
    blocking: bool,
    context: str | None = None,
) -> CycleValidationResult:
    """Validate and apply policy: log when advisory, raise CycleMismatchError when blocking."""
    result = validate_benefit_cycle(template, window)
    if result.is_valid:
        return result
    if blocking:
        raise CycleMismatchError(result, context)
    logger.warning("Cycle validation mismatch (advisory) %s: %s", context or "", result.error)
    return result
