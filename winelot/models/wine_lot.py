#winelot/models/wine_lot.py
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    String,
    Text,
    DateTime,
    Integer,
    Numeric,
    Uuid,
    UniqueConstraint,
    CheckConstraint,
    Index,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from winelot.db.base import Base, JSONType
from winelot.models.enums import LotStatus


class WineLot(Base):
    """
    One tokenizable lot of wine.

    Identity: (issuer_public_key, token_code), token_code upper-cased.
    The distribution account secret is stored encrypted only.
    Status is the single source of truth for which workflow step is legal.
    Rows are never deleted.
    """

    __tablename__ = "wine_lots"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # Asset identity
    issuer_public_key: Mapped[str] = mapped_column(String(56), nullable=False)
    token_code: Mapped[str] = mapped_column(String(12), nullable=False)

    # Lot attributes
    winery_name: Mapped[str] = mapped_column(String(256), nullable=False)
    region: Mapped[str] = mapped_column(String(128), nullable=False)
    country: Mapped[str] = mapped_column(String(128), nullable=False)
    appellation: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    vineyard: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    vintage: Mapped[int] = mapped_column(Integer, nullable=False)
    bottle_format_ml: Mapped[int] = mapped_column(Integer, nullable=False, default=750)
    bottle_count: Mapped[int] = mapped_column(Integer, nullable=False)
    price_per_bottle_usd: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    platform_fee_bps: Mapped[int] = mapped_column(Integer, nullable=False, default=1000)

    sku: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    custodial_partner: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    storage_location: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    insurance_policy: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    documentation_urls: Mapped[List[str]] = mapped_column(JSONType, nullable=False, default=list)
    token_metadata: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    # Custodial distribution account
    distribution_public_key: Mapped[str] = mapped_column(String(56), nullable=False)
    distribution_secret_encrypted: Mapped[str] = mapped_column(Text, nullable=False)

    # Lifecycle
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=LotStatus.CREATED.value)

    trustline_tx_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    emission_tx_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    emitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    distribution_tx_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    distributed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    issuances = relationship(
        "TokenIssuance",
        back_populates="lot",
        order_by="TokenIssuance.seq",
    )
    distributions = relationship(
        "Distribution",
        back_populates="lot",
        order_by="Distribution.distribution_at",
    )

    __table_args__ = (
        UniqueConstraint("issuer_public_key", "token_code", name="uq_wine_lots_issuer_token"),
        CheckConstraint("platform_fee_bps >= 0 AND platform_fee_bps <= 10000", name="ck_wine_lots_fee_bps"),
        CheckConstraint("bottle_count > 0", name="ck_wine_lots_bottle_count_positive"),
        Index("ix_wine_lots_status", "status"),
    )

    @property
    def lot_status(self) -> LotStatus:
        return LotStatus(self.status)

    @property
    def total_token_supply(self) -> Optional[str]:
        return (self.token_metadata or {}).get("totalTokenSupply")
