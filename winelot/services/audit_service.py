from __future__ import annotations

import uuid
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from winelot.models.audit_log import LotAuditLog
from winelot.models.enums import LotAction, LotStatus


def _status_value(status: Optional[LotStatus]) -> Optional[str]:
    return status.value if status is not None else None


class AuditService:
    def record(
        self,
        db: Session,
        *,
        lot_id: uuid.UUID,
        action: LotAction,
        from_status: Optional[LotStatus],
        to_status: Optional[LotStatus],
        request_id: Optional[str],
        details: Optional[Dict[str, Any]] = None,
    ) -> LotAuditLog:
        """
        Append-only audit insert.

        Does NOT commit: the caller commits it together with the transition
        it records. details must never carry secret material.
        """
        row = LotAuditLog(
            wine_lot_id=lot_id,
            action=action.value,
            from_status=_status_value(from_status),
            to_status=_status_value(to_status),
            request_id=request_id,
            details_json=dict(details or {}),
        )
        db.add(row)
        return row

    def list_for_lot(self, db: Session, lot_id: uuid.UUID) -> list[LotAuditLog]:
        return list(
            db.execute(
                select(LotAuditLog)
                .where(LotAuditLog.wine_lot_id == lot_id)
                .order_by(LotAuditLog.created_at, LotAuditLog.id)
            )
            .scalars()
            .all()
        )
