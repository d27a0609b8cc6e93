from datetime import datetime, timezone

from sqlalchemy import String, DateTime, Boolean
from sqlalchemy.orm import Mapped, mapped_column, relationship

from benefit_cycles.database import Base


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True, index=True)
    display_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=lambda: datetime.now(timezone.utc)
    )

    cards: Mapped[list["Card"]] = relationship(back_populates="user", cascade="all, delete-orphan")  # noqa: F821
    benefit_statuses: Mapped[list["BenefitStatus"]] = relationship(  # noqa: F821
        back_populates="user", cascade="all, delete-orphan"
    )
