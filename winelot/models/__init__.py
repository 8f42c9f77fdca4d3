from winelot.models.wine_lot import WineLot
from winelot.models.token_issuance import TokenIssuance
from winelot.models.distribution import Distribution
from winelot.models.audit_log import LotAuditLog
