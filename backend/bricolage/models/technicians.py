"""
Technician profile model - extends User for service providers.
"""
from typing import Optional
from uuid import UUID

from sqlalchemy import Integer, Numeric, Boolean, ForeignKey, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from bricolage.lib.db import Base


class TechnicianProfile(Base):
    """
    Technician entity - service providers (1:1 with User).
    """
    __tablename__ = "technician_profiles"

    # Primary key (also foreign key to users)
    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )

    years_of_experience: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Reputation, recomputed when a review targets this technician
    average_rating: Mapped[Optional[float]] = mapped_column(
        Numeric(3, 2),
        nullable=True,
    )
    review_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    # Only available technicians can receive new bookings
    is_available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<TechnicianProfile(user_id={self.user_id}, rating={self.average_rating})>"
