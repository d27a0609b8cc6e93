from datetime import datetime

from pydantic import BaseModel, Field

from benefit_cycles.schemas.benefit_cycle import BenefitDefinition


class MigrationPlan(BaseModel):
    """New catalog benefits to roll out to every active card of one product."""
    id: str  # e.g. "amex_platinum_2025_q_credits"
    card_name: str = Field(min_length=1)
    description: str | None = None
    # Start date for the added benefits; defaults to the run time
    effective_date: datetime | None = None
    benefits: list[BenefitDefinition] = Field(min_length=1)
