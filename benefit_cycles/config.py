from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./benefit_cycles.db"
    log_level: str = "INFO"
    repair_batch_size: int = 100
    # fallback: anchor missing cards at Jan 1 of the reference year; defer: skip them
    missing_anchor_policy: Literal["fallback", "defer"] = "fallback"
    block_on_cycle_mismatch: bool = False
    one_time_lifetime_years: int = 10

    model_config = {"env_prefix": "", "case_sensitive": False}


settings = Settings()

# Rows shown per dry-run report section
REPAIR_SAMPLE_LIMIT = 5
