#winelot/models/distribution.py
from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    String,
    DateTime,
    Uuid,
    ForeignKey,
    Index,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from winelot.db.base import Base


class Distribution(Base):
    """
    One executed payout of a lot's supply.
    Amounts are fixed-point strings; platform + winery + reserve <= total supply.
    """

    __tablename__ = "wine_distributions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    wine_lot_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("wine_lots.id", ondelete="RESTRICT"),
        nullable=False,
    )

    platform_amount: Mapped[str] = mapped_column(String(32), nullable=False)
    winery_amount: Mapped[str] = mapped_column(String(32), nullable=False)
    reserve_amount: Mapped[str] = mapped_column(String(32), nullable=False)

    distribution_tx_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    distribution_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    lot = relationship("WineLot", back_populates="distributions")

    __table_args__ = (
        Index("ix_distribution_lot", "wine_lot_id"),
        Index("ix_distribution_at", "distribution_at"),
    )
