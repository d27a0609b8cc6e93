from datetime import datetime, timezone

from sqlalchemy import Float, Integer, DateTime, ForeignKey, Boolean, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from benefit_cycles.database import Base


class BenefitStatus(Base):
    """Progress of one user on one occurrence of one benefit cycle."""

    __tablename__ = "benefit_statuses"
    __table_args__ = (
        # cycle_start_date is always midnight UTC on write; this key is the only idempotency guard
        UniqueConstraint(
            "benefit_id", "user_id", "cycle_start_date", "occurrence_index",
            name="uq_benefit_status_cycle",
        ),
        Index("ix_benefit_statuses_user_cycle_end", "user_id", "cycle_end_date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    benefit_id: Mapped[int] = mapped_column(ForeignKey("benefits.id"), index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    cycle_start_date: Mapped[datetime] = mapped_column(DateTime)
    cycle_end_date: Mapped[datetime] = mapped_column(DateTime)
    occurrence_index: Mapped[int] = mapped_column(Integer, default=0)
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False)
    used_amount: Mapped[float] = mapped_column(Float, default=0)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    is_not_usable: Mapped[bool] = mapped_column(Boolean, default=False)
    order_index: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    benefit: Mapped["Benefit"] = relationship(back_populates="statuses")  # noqa: F821
    user: Mapped["User"] = relationship(back_populates="benefit_statuses")  # noqa: F821
