# winelot/api/v1/tokenization.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from winelot.core.auth_deps import require_service_caller
from winelot.core.deps import get_lifecycle_service, get_status_service
from winelot.core.errors import ValidationError
from winelot.db.session import get_db
from winelot.schemas.tokenization import (
    DistributeRequest,
    DistributeResponse,
    DistributedLotsResponse,
    EmissionRequest,
    EmissionResponse,
    LotStatusResponse,
    PrepareTokenRequest,
    PrepareTokenResponse,
    SubmitSignedRequest,
    SubmitSignedResponse,
    TrustlineRequest,
    TrustlineResponse,
)
from winelot.services.lot_lifecycle_service import LotLifecycleService
from winelot.services.status_service import MAX_LIST_LIMIT, StatusService

router = APIRouter(prefix="/tokenization", tags=["tokenization"])

# Mutations are service-authenticated (open when SERVICE_AUTH_ENABLED=false)
mutation_guard = [Depends(require_service_caller)]


def _rid(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


@router.post(
    "/prepare",
    response_model=PrepareTokenResponse,
    response_model_exclude_none=True,
    dependencies=mutation_guard,
)
def prepare_token(
    payload: PrepareTokenRequest,
    request: Request,
    db: Session = Depends(get_db),
    svc: LotLifecycleService = Depends(get_lifecycle_service),
):
    return svc.prepare(db, payload=payload.model_dump(), request_id=_rid(request))


@router.post("/trustline", response_model=TrustlineResponse, dependencies=mutation_guard)
def establish_trustline(
    payload: TrustlineRequest,
    request: Request,
    db: Session = Depends(get_db),
    svc: LotLifecycleService = Depends(get_lifecycle_service),
):
    return svc.establish_trustline(
        db,
        issuer=payload.issuerPublicKey,
        token_code=payload.tokenCode,
        request_id=_rid(request),
    )


@router.post("/emission", response_model=EmissionResponse, dependencies=mutation_guard)
def build_emission(
    payload: EmissionRequest,
    request: Request,
    db: Session = Depends(get_db),
    svc: LotLifecycleService = Depends(get_lifecycle_service),
):
    return svc.emission(
        db,
        issuer=payload.issuerPublicKey,
        token_code=payload.tokenCode,
        total_supply=payload.totalSupply,
        price_per_unit_usd=payload.pricePerUnitUsd,
        reserve_ratio_bps=payload.reserveRatioBps,
        request_id=_rid(request),
    )


@router.post("/submit", response_model=SubmitSignedResponse, dependencies=mutation_guard)
def submit_signed(
    payload: SubmitSignedRequest,
    request: Request,
    db: Session = Depends(get_db),
    svc: LotLifecycleService = Depends(get_lifecycle_service),
):
    return svc.submit(
        db,
        issuer=payload.issuerPublicKey,
        token_code=payload.tokenCode,
        signed_xdr=payload.signedXDR,
        request_id=_rid(request),
    )


@router.post("/distribute", response_model=DistributeResponse, dependencies=mutation_guard)
def distribute(
    payload: DistributeRequest,
    request: Request,
    db: Session = Depends(get_db),
    svc: LotLifecycleService = Depends(get_lifecycle_service),
):
    return svc.distribute(
        db,
        issuer=payload.issuerPublicKey,
        token_code=payload.tokenCode,
        winery_payout=payload.wineryPayoutPublicKey,
        reserve_payout=payload.reservePublicKey,
        request_id=_rid(request),
    )


# ---------------------------
# READS (always open)
# ---------------------------

@router.get("/status", response_model=LotStatusResponse)
def lot_status(
    code: Optional[str] = Query(None),
    issuer: Optional[str] = Query(None),
    tokenCode: Optional[str] = Query(None),
    issuerPublicKey: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    svc: StatusService = Depends(get_status_service),
):
    token_code = code or tokenCode
    issuer_key = issuer or issuerPublicKey
    if not token_code or not issuer_key:
        raise ValidationError(
            "Missing required parameters: code and issuer",
            details={"required": ["code", "issuer"]},
        )
    return svc.status(db, issuer=issuer_key, token_code=token_code)


@router.get("/distributed", response_model=DistributedLotsResponse)
def list_distributed(
    limit: int = Query(100),
    offset: int = Query(0),
    db: Session = Depends(get_db),
    svc: StatusService = Depends(get_status_service),
):
    return svc.list_distributed(db, limit=limit, offset=offset)
