import uuid
from datetime import UTC, datetime
from typing import Optional

from sqlalchemy import BigInteger, DateTime, Float, Integer, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from rafflecache.models.base import Base


class RaffleActivity(Base):
    __tablename__ = "raffle_activities"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    transaction_version: Mapped[str] = mapped_column(String(32), nullable=False, unique=True, index=True)
    activity_type: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    raffle_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    user_address: Mapped[str] = mapped_column(String(80), nullable=False, index=True)
    ticket_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    total_paid: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    prize_amount: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    block_height: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
