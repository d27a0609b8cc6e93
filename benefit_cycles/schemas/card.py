import re
from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from benefit_cycles.schemas.benefit_cycle import BenefitDefinition


class CardCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    issuer: str = Field(min_length=1, max_length=100)
    last_four_digits: str | None = None
    opened_date: datetime | None = None
    benefits: list[BenefitDefinition] = []

    @field_validator("last_four_digits")
    @classmethod
    def validate_last_four_digits(cls, v: str | None) -> str | None:
        if v is not None and v != "":
            if not re.match(r"^\d{4}$", v):
                raise ValueError("last_four_digits must be exactly 4 digits")
        return v or None


class CardCreateResult(BaseModel):
    card_id: int
    benefits_created: int
    statuses_created: int
    # Set when opened_date was missing and the Jan 1 default was used
    opened_date_defaulted: bool = False
    validation_warnings: list[str] = []
