import logging
from datetime import datetime, timezone

import pytest

from benefit_cycles.schemas.benefit_cycle import Anniversary, BenefitTemplate, CalendarFixed, CycleWindow
from benefit_cycles.services.benefit_validation import (
    CycleMismatchError,
    check_benefit_cycle,
    validate_benefit_cycle,
)

UTC = timezone.utc


def _window(start_month: int, end_month: int, year: int = 2025) -> CycleWindow:
    return CycleWindow(
        cycle_start=datetime(year, start_month, 1, tzinfo=UTC),
        cycle_end=datetime(year, end_month, 28, 23, 59, 59, tzinfo=UTC),
    )


def _template(description: str, alignment=None, frequency: str = "QUARTERLY") -> BenefitTemplate:
    return BenefitTemplate(
        frequency=frequency,
        alignment=alignment or CalendarFixed(start_month=7, duration_months=3),
        description=description,
    )


# --- Quarter markers ---

def test_q3_marker_matching_window_is_valid():
    result = validate_benefit_cycle(_template("$50 Resy credit (Q3: Jul-Sep)"), _window(7, 9))
    assert result.is_valid
    assert result.expected_months == "Jul-Sep"
    assert result.actual_start_month == 7


def test_q3_marker_with_january_window_is_rejected():
    result = validate_benefit_cycle(_template("$50 Resy credit (Q3: Jul-Sep)"), _window(1, 3))
    assert not result.is_valid
    assert "wrong cycle start month" in result.error
    assert "Expected: 7 (Jul-Sep), Got: 1" in result.error
    assert result.actual_start_month == 1


def test_quarter_words_are_recognized():
    template = _template("Third quarter dining credit", CalendarFixed(start_month=7, duration_months=3))
    assert validate_benefit_cycle(template, _window(7, 9)).is_valid
    assert not validate_benefit_cycle(template, _window(4, 6)).is_valid


def test_unknown_quarter():
    result = validate_benefit_cycle(_template("Q5 bonus"), _window(7, 9))
    assert not result.is_valid
    assert "Unknown quarter" in result.error


def test_quarter_benefit_must_last_three_months():
    template = _template("Q2 travel credit", CalendarFixed(start_month=4, duration_months=6))
    result = validate_benefit_cycle(template, _window(4, 9))
    assert not result.is_valid
    assert "fixed_cycle_duration_months=3" in result.error


def test_quarter_marker_checked_for_anniversary_benefits():
    template = _template("Q4 hotel credit", Anniversary())
    assert not validate_benefit_cycle(template, _window(3, 5)).is_valid


# --- Month names ---

def test_month_name_on_calendar_fixed_benefit():
    template = _template("December holiday credit", CalendarFixed(start_month=12, duration_months=1), "YEARLY")
    assert validate_benefit_cycle(template, _window(12, 12)).is_valid
    result = validate_benefit_cycle(template, _window(11, 11))
    assert not result.is_valid
    assert "Expected: 12 (Dec), Got: 11" in result.error


def test_month_name_ignored_for_anniversary_benefits():
    template = _template("Renews every January", Anniversary(), "YEARLY")
    assert validate_benefit_cycle(template, _window(6, 6)).is_valid


def test_lowercase_month_word_ignored():
    template = _template("You may use this credit", CalendarFixed(start_month=1, duration_months=1), "MONTHLY")
    assert validate_benefit_cycle(template, _window(2, 2)).is_valid


def test_description_without_markers_is_valid():
    result = validate_benefit_cycle(_template("$200 airline fee credit"), _window(2, 4))
    assert result.is_valid
    assert result.error is None


# --- Policy ---

def test_check_blocking_raises():
    with pytest.raises(CycleMismatchError) as exc_info:
        check_benefit_cycle(_template("Q3 credit"), _window(1, 3), blocking=True, context="benefit=9")
    assert not exc_info.value.result.is_valid
    assert "benefit=9" in str(exc_info.value)


def test_check_advisory_logs_and_returns(caplog):
    with caplog.at_level(logging.WARNING):
        result = check_benefit_cycle(_template("Q3 credit"), _window(1, 3), blocking=False)
    assert not result.is_valid
    assert "wrong cycle start month" in caplog.text
