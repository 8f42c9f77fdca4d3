#winelot/models/token_issuance.py
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    String,
    Text,
    DateTime,
    Integer,
    Numeric,
    Uuid,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Index,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from winelot.db.base import Base


class TokenIssuance(Base):
    """
    One emission attempt for a lot.

    Append-only: re-running emission adds a row with seq+1 and stamps
    superseded_at on earlier unconfirmed rows. The row with the highest
    seq is authoritative.
    """

    __tablename__ = "wine_token_issuances"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    wine_lot_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("wine_lots.id", ondelete="RESTRICT"),
        nullable=False,
    )
    seq: Mapped[int] = mapped_column(Integer, nullable=False)  # monotonic per lot

    total_supply: Mapped[str] = mapped_column(String(32), nullable=False)  # 7 decimal places
    price_per_unit_usd: Mapped[Decimal] = mapped_column(Numeric(18, 7), nullable=False)
    reserve_ratio_bps: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    emission_xdr: Mapped[str] = mapped_column(Text, nullable=False)
    emission_tx_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    issued_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    superseded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    lot = relationship("WineLot", back_populates="issuances")

    __table_args__ = (
        UniqueConstraint("wine_lot_id", "seq", name="uq_issuance_lot_seq"),
        CheckConstraint("reserve_ratio_bps >= 0 AND reserve_ratio_bps <= 10000", name="ck_issuance_reserve_bps"),
        Index("ix_issuance_lot", "wine_lot_id"),
    )
