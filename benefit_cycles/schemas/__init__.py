from benefit_cycles.schemas.benefit_cycle import (
    Anniversary,
    BenefitDefinition,
    BenefitTemplate,
    CalendarFixed,
    CycleValidationResult,
    CycleWindow,
)
from benefit_cycles.schemas.card import CardCreate, CardCreateResult
from benefit_cycles.schemas.migration import MigrationPlan
from benefit_cycles.schemas.repair import RepairReport, RepairSample, NormalizationSample
from benefit_cycles.schemas.usage import PartialAmountValidation

__all__ = [
    "Anniversary", "CalendarFixed", "BenefitTemplate", "BenefitDefinition",
    "CycleWindow", "CycleValidationResult",
    "CardCreate", "CardCreateResult",
    "MigrationPlan",
    "RepairReport", "RepairSample", "NormalizationSample",
    "PartialAmountValidation",
]
