from datetime import datetime, timezone

from sqlalchemy import String, Text, Integer, Float, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from benefit_cycles.database import Base


class Benefit(Base):
    __tablename__ = "benefits"

    id: Mapped[int] = mapped_column(primary_key=True)
    card_id: Mapped[int] = mapped_column(ForeignKey("cards.id"), index=True)
    category: Mapped[str] = mapped_column(String(100))
    description: Mapped[str] = mapped_column(Text)
    percentage: Mapped[float] = mapped_column(Float, default=0)
    max_amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    frequency: Mapped[str] = mapped_column(String(20))  # MONTHLY|QUARTERLY|YEARLY|ONE_TIME
    cycle_alignment: Mapped[str] = mapped_column(
        String(20), default="CARD_ANNIVERSARY"
    )  # CARD_ANNIVERSARY|CALENDAR_FIXED
    fixed_cycle_start_month: Mapped[int | None] = mapped_column(Integer, nullable=True)
    fixed_cycle_duration_months: Mapped[int | None] = mapped_column(Integer, nullable=True)
    occurrences_in_cycle: Mapped[int] = mapped_column(Integer, default=1)
    start_date: Mapped[datetime] = mapped_column(
        DateTime, default=lambda: datetime.now(timezone.utc)
    )
    end_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=lambda: datetime.now(timezone.utc)
    )

    card: Mapped["Card"] = relationship(back_populates="benefits")  # noqa: F821
    statuses: Mapped[list["BenefitStatus"]] = relationship(  # noqa: F821
        back_populates="benefit", cascade="all, delete-orphan"
    )
