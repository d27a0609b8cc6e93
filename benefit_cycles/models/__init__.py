from benefit_cycles.models.user import User
from benefit_cycles.models.card import Card
from benefit_cycles.models.benefit import Benefit
from benefit_cycles.models.benefit_status import BenefitStatus

__all__ = ["User", "Card", "Benefit", "BenefitStatus"]
