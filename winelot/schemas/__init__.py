from winelot.schemas.tokenization import (
    PrepareTokenRequest,
    PrepareTokenResponse,
    TrustlineRequest,
    TrustlineResponse,
    EmissionRequest,
    EmissionResponse,
    SubmitSignedRequest,
    SubmitSignedResponse,
    DistributeRequest,
    DistributeResponse,
    AllocationBreakdown,
    LotStatusResponse,
    DistributedLotsResponse,
)
