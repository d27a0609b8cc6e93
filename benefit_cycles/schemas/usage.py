from typing import Literal

from pydantic import BaseModel

CompletionState = Literal["not_started", "partial", "complete"]


class PartialAmountValidation(BaseModel):
    is_valid: bool
    error: str | None = None
    clamped_amount: float | None = None
