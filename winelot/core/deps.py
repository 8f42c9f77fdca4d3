#winelot/core/deps.py
"""
FastAPI providers for the workflow services.

Process-wide collaborators (settings, ledger client, vault, HTTP client) are
built once; the services themselves are cheap and built per request.
"""
from __future__ import annotations

from functools import lru_cache

import httpx
from fastapi import Depends

from winelot.core.config import Settings, get_settings
from winelot.core.vault import SecretVault, get_vault
from winelot.services.funding_service import AccountFundingService
from winelot.services.ledger_client import LedgerClient, get_ledger_client
from winelot.services.lot_lifecycle_service import LotLifecycleService
from winelot.services.status_service import StatusService


@lru_cache(maxsize=1)
def get_http_client() -> httpx.Client:
    return httpx.Client(timeout=get_settings().http_timeout_seconds)


def get_ledger() -> LedgerClient:
    return get_ledger_client()


def get_secret_vault() -> SecretVault:
    return get_vault()


def get_funding_service(
    settings: Settings = Depends(get_settings),
    ledger: LedgerClient = Depends(get_ledger),
) -> AccountFundingService:
    return AccountFundingService(settings, ledger, http_client=get_http_client())


def get_lifecycle_service(
    settings: Settings = Depends(get_settings),
    ledger: LedgerClient = Depends(get_ledger),
    vault: SecretVault = Depends(get_secret_vault),
    funding: AccountFundingService = Depends(get_funding_service),
) -> LotLifecycleService:
    return LotLifecycleService(settings, ledger, vault, funding)


def get_status_service() -> StatusService:
    return StatusService()
