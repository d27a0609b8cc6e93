from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, model_validator

BenefitFrequency = Literal["MONTHLY", "QUARTERLY", "YEARLY", "ONE_TIME"]
CycleAlignmentName = Literal["CARD_ANNIVERSARY", "CALENDAR_FIXED"]


class Anniversary(BaseModel):
    """Cycles anchored to the card's opened date."""
    kind: Literal["anniversary"] = "anniversary"

    model_config = {"frozen": True}


class CalendarFixed(BaseModel):
    """Cycles on fixed calendar months, independent of any anchor."""
    kind: Literal["calendar_fixed"] = "calendar_fixed"
    start_month: int = Field(ge=1, le=12)
    duration_months: int = Field(ge=1, le=12)

    model_config = {"frozen": True}


CycleAlignment = Annotated[Union[Anniversary, CalendarFixed], Field(discriminator="kind")]


class BenefitTemplate(BaseModel):
    frequency: str
    alignment: CycleAlignment = Anniversary()
    max_amount: float | None = None
    occurrences_in_cycle: int = Field(default=1, ge=1)
    description: str = ""


class CycleWindow(BaseModel):
    cycle_start: datetime
    cycle_end: datetime
    # True when an anniversary cycle was computed from the Jan 1 fallback anchor
    anchor_fallback: bool = False

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def check_order(self):
        if self.cycle_end <= self.cycle_start:
            raise ValueError("cycle_end must be after cycle_start")
        return self

    def contains(self, instant: datetime) -> bool:
        return self.cycle_start <= instant <= self.cycle_end


class CycleValidationResult(BaseModel):
    is_valid: bool
    error: str | None = None
    expected_months: str | None = None  # e.g. "Jul-Sep"
    actual_start_month: int | None = None


class BenefitDefinition(BaseModel):
    """A catalog benefit as declared in onboarding input or a migration plan."""
    category: str = Field(min_length=1, max_length=100)
    description: str = Field(min_length=1)
    percentage: float = 0
    max_amount: float | None = Field(default=None, ge=0)
    frequency: BenefitFrequency
    cycle_alignment: CycleAlignmentName = "CARD_ANNIVERSARY"
    fixed_cycle_start_month: int | None = Field(default=None, ge=1, le=12)
    fixed_cycle_duration_months: int | None = Field(default=None, ge=1, le=12)
    occurrences_in_cycle: int = Field(default=1, ge=1)

    @model_validator(mode="after")
    def check_fixed_fields(self):
        fixed = (self.fixed_cycle_start_month, self.fixed_cycle_duration_months)
        if self.cycle_alignment == "CALENDAR_FIXED" and None in fixed:
            raise ValueError(
                "CALENDAR_FIXED benefits require fixed_cycle_start_month and fixed_cycle_duration_months"
            )
        if self.cycle_alignment == "CARD_ANNIVERSARY" and fixed != (None, None):
            raise ValueError("fixed cycle fields only apply to CALENDAR_FIXED benefits")
        return self
