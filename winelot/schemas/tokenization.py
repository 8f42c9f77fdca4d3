from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict

# Request bodies are deliberately loose: numeric fields accept numbers or
# numeric strings and are validated by the lifecycle service, which reports
# every missing field at once.
Numeric = Optional[Union[int, float, str]]


class LotRef(BaseModel):
    issuerPublicKey: str
    tokenCode: str


# ─────────────────────────────────────────────
# REQUESTS
# ─────────────────────────────────────────────

class PrepareTokenRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    issuerPublicKey: Optional[str] = None
    tokenCode: Optional[str] = None
    wineryName: Optional[str] = None
    wineName: Optional[str] = None  # legacy alias of wineryName
    region: Optional[str] = None
    country: Optional[str] = None
    appellation: Optional[str] = None
    vineyard: Optional[str] = None
    vintage: Numeric = None
    bottleFormatMl: Numeric = None
    bottleCount: Numeric = None
    pricePerBottleUsd: Numeric = None
    sku: Optional[str] = None
    custodialPartner: Optional[str] = None
    storageLocation: Optional[str] = None
    insurancePolicy: Optional[str] = None
    documentationUrls: Optional[Union[List[str], str]] = None
    platformFeeBps: Numeric = None
    unitsPerBottle: Numeric = None
    totalTokenUnits: Numeric = None
    description: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class TrustlineRequest(LotRef):
    pass


class EmissionRequest(LotRef):
    totalSupply: Numeric = None
    pricePerUnitUsd: Numeric = None
    reserveRatioBps: Numeric = 0


class SubmitSignedRequest(LotRef):
    signedXDR: Optional[str] = None


class DistributeRequest(LotRef):
    wineryPayoutPublicKey: Optional[str] = None
    reservePublicKey: Optional[str] = None


# ─────────────────────────────────────────────
# RESPONSES
# ─────────────────────────────────────────────

class PrepareTokenResponse(BaseModel):
    success: bool = True
    distributionAccount: str
    lotId: str
    totalTokenSupply: str
    trustlineTxHash: Optional[str] = None
    warning: Optional[str] = None


class TrustlineResponse(BaseModel):
    success: bool = True
    lotId: str
    distributionAccount: str
    trustlineTxHash: str
    totalTokenSupply: str


class EmissionResponse(BaseModel):
    success: bool = True
    xdr: str
    lotId: str
    distributionAccount: str
    totalSupply: str


class SubmitSignedResponse(BaseModel):
    success: bool = True
    txHash: str
    lotId: str
    transactionUrl: str


class AllocationBreakdown(BaseModel):
    wineryAmount: str
    platformAmount: str
    reserveAmount: str
    platformFeeBps: int
    reserveRatioBps: int


class DistributeResponse(BaseModel):
    success: bool = True
    distributionTxHash: str
    transactionUrl: str
    lotId: str
    distributionAccount: str
    allocations: AllocationBreakdown


class IssuanceView(BaseModel):
    seq: int
    totalSupply: str
    pricePerUnitUsd: Optional[str] = None
    reserveRatioBps: int
    emissionTxHash: Optional[str] = None
    issuedAt: Optional[str] = None


class DistributionView(BaseModel):
    platformAmount: str
    wineryAmount: str
    reserveAmount: str
    txHash: str
    distributionAt: Optional[str] = None


class LotStatusResponse(BaseModel):
    status: str
    lotId: str
    tokenCode: str
    issuerPublicKey: str
    wineryName: str
    region: str
    country: str
    appellation: Optional[str] = None
    vineyard: Optional[str] = None
    vintage: int
    bottleCount: int
    bottleFormatMl: int
    pricePerBottleUsd: Optional[str] = None
    platformFeeBps: int
    documentationUrls: List[str]
    metadata: Dict[str, Any]
    distributionAccount: str
    trustlineTxHash: Optional[str] = None
    emissionTxHash: Optional[str] = None
    distributionTxHash: Optional[str] = None
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None
    emittedAt: Optional[str] = None
    distributedAt: Optional[str] = None
    latestIssuance: Optional[IssuanceView] = None
    latestDistribution: Optional[DistributionView] = None


class DistributedLot(BaseModel):
    lotId: str
    tokenCode: str
    issuerPublicKey: str
    wineryName: str
    region: str
    country: str
    vintage: int
    bottleCount: int
    pricePerBottleUsd: Optional[str] = None
    totalTokenSupply: Optional[str] = None
    distributionTxHash: Optional[str] = None
    distributedAt: Optional[str] = None
    latestDistribution: Optional[DistributionView] = None


class DistributedLotsResponse(BaseModel):
    lots: List[DistributedLot]
    count: int
    total: int
    limit: int
    offset: int
