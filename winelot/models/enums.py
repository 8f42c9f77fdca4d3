#winelot/models/enums.py
from __future__ import annotations
from enum import Enum


class LotStatus(str, Enum):
    # strictly forward: created -> trustline_created -> emission_pending -> tokens_emitted -> distributed
    CREATED = "created"
    TRUSTLINE_CREATED = "trustline_created"
    EMISSION_PENDING = "emission_pending"
    TOKENS_EMITTED = "tokens_emitted"
    DISTRIBUTED = "distributed"


class LotAction(str, Enum):
    LOT_CREATED = "LOT_CREATED"
    TRUSTLINE_CREATED = "TRUSTLINE_CREATED"
    TRUSTLINE_FAILED = "TRUSTLINE_FAILED"
    EMISSION_PREPARED = "EMISSION_PREPARED"
    TOKENS_EMITTED = "TOKENS_EMITTED"
    LOT_DISTRIBUTED = "LOT_DISTRIBUTED"
