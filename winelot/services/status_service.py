#winelot/services/status_service.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session

from winelot.core.amounts import normalize_token_code
from winelot.core.errors import LotNotFound, ValidationError
from winelot.models.distribution import Distribution
from winelot.models.enums import LotStatus
from winelot.models.token_issuance import TokenIssuance
from winelot.models.wine_lot import WineLot

MAX_LIST_LIMIT = 500


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _num(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


def _issuance_view(issuance: Optional[TokenIssuance]) -> Optional[Dict[str, Any]]:
    if issuance is None:
        return None
    return {
        "seq": issuance.seq,
        "totalSupply": issuance.total_supply,
        "pricePerUnitUsd": _num(issuance.price_per_unit_usd),
        "reserveRatioBps": issuance.reserve_ratio_bps,
        "emissionTxHash": issuance.emission_tx_hash,
        "issuedAt": _iso(issuance.issued_at),
    }


def _distribution_view(distribution: Optional[Distribution]) -> Optional[Dict[str, Any]]:
    if distribution is None:
        return None
    return {
        "platformAmount": distribution.platform_amount,
        "wineryAmount": distribution.winery_amount,
        "reserveAmount": distribution.reserve_amount,
        "txHash": distribution.distribution_tx_hash,
        "distributionAt": _iso(distribution.distribution_at),
    }


class StatusService:
    """Read-only projections. Never mutates."""

    # ---------------------------
    # READS
    # ---------------------------

    def _latest_issuance(self, db: Session, lot_id) -> Optional[TokenIssuance]:
        return (
            db.execute(
                select(TokenIssuance)
                .where(TokenIssuance.wine_lot_id == lot_id)
                .order_by(desc(TokenIssuance.seq))
                .limit(1)
            )
            .scalars()
            .first()
        )

    def _latest_distribution(self, db: Session, lot_id) -> Optional[Distribution]:
        return (
            db.execute(
                select(Distribution)
                .where(Distribution.wine_lot_id == lot_id)
                .order_by(desc(Distribution.distribution_at))
                .limit(1)
            )
            .scalars()
            .first()
        )

    def status(self, db: Session, *, issuer: str, token_code: str) -> Dict[str, Any]:
        code = normalize_token_code(token_code)
        lot = (
            db.execute(
                select(WineLot).where(
                    WineLot.issuer_public_key == issuer,
                    WineLot.token_code == code,
                )
            )
            .scalars()
            .one_or_none()
        )
        if not lot:
            raise LotNotFound("Wine lot not found", details={"issuerPublicKey": issuer, "tokenCode": code})

        issuance = self._latest_issuance(db, lot.id)
        distribution = self._latest_distribution(db, lot.id)

        return {
            "status": lot.status,
            "lotId": str(lot.id),
            "tokenCode": lot.token_code,
            "issuerPublicKey": lot.issuer_public_key,
            "wineryName": lot.winery_name,
            "region": lot.region,
            "country": lot.country,
            "appellation": lot.appellation,
            "vineyard": lot.vineyard,
            "vintage": lot.vintage,
            "bottleCount": lot.bottle_count,
            "bottleFormatMl": lot.bottle_format_ml,
            "pricePerBottleUsd": _num(lot.price_per_bottle_usd),
            "platformFeeBps": lot.platform_fee_bps,
            "documentationUrls": lot.documentation_urls or [],
            "metadata": lot.token_metadata or {},
            "distributionAccount": lot.distribution_public_key,
            "trustlineTxHash": lot.trustline_tx_hash,
            "emissionTxHash": lot.emission_tx_hash or (issuance.emission_tx_hash if issuance else None),
            "distributionTxHash": lot.distribution_tx_hash
            or (distribution.distribution_tx_hash if distribution else None),
            "createdAt": _iso(lot.created_at),
            "updatedAt": _iso(lot.updated_at),
            "emittedAt": _iso(lot.emitted_at or (issuance.issued_at if issuance else None)),
            "distributedAt": _iso(lot.distributed_at or (distribution.distribution_at if distribution else None)),
            "latestIssuance": _issuance_view(issuance),
            "latestDistribution": _distribution_view(distribution),
        }

    def list_distributed(self, db: Session, *, limit: int = 100, offset: int = 0) -> Dict[str, Any]:
        if limit < 1 or limit > MAX_LIST_LIMIT:
            raise ValidationError(f"limit must be between 1 and {MAX_LIST_LIMIT}", field="limit")
        if offset < 0:
            raise ValidationError("offset must be >= 0", field="offset")

        lots: List[WineLot] = list(
            db.execute(
                select(WineLot)
                .where(WineLot.status == LotStatus.DISTRIBUTED.value)
                .order_by(desc(WineLot.distributed_at), WineLot.token_code)
                .limit(limit)
                .offset(offset)
            )
            .scalars()
            .all()
        )
        total = db.execute(
            select(func.count()).select_from(WineLot).where(WineLot.status == LotStatus.DISTRIBUTED.value)
        ).scalar_one()

        rows = []
        for lot in lots:
            distribution = self._latest_distribution(db, lot.id)
            rows.append(
                {
                    "lotId": str(lot.id),
                    "tokenCode": lot.token_code,
                    "issuerPublicKey": lot.issuer_public_key,
                    "wineryName": lot.winery_name,
                    "region": lot.region,
                    "country": lot.country,
                    "vintage": lot.vintage,
                    "bottleCount": lot.bottle_count,
                    "pricePerBottleUsd": _num(lot.price_per_bottle_usd),
                    "totalTokenSupply": lot.total_token_supply,
                    "distributionTxHash": lot.distribution_tx_hash,
                    "distributedAt": _iso(lot.distributed_at),
                    "latestDistribution": _distribution_view(distribution),
                }
            )

        return {"lots": rows, "count": len(rows), "total": total, "limit": limit, "offset": offset}
