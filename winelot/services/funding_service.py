#winelot/services/funding_service.py
"""
Custodial account funding.

Strategy, in order:
  1) platform funding key configured -> create_account signed by it
  2) no key, faucet known for the network -> GET the faucet
  3) otherwise FundingRequired (PUBLIC) / FundingUnavailable

Funding is asynchronous relative to Horizon visibility, so both paths end
with a bounded existence poll.
"""
from __future__ import annotations

import logging
import time
from typing import Callable, Optional

import httpx

from winelot.core.config import Settings
from winelot.core.errors import FundingRequired, FundingUnavailable, LedgerError, LedgerSubmissionError
from winelot.core.network import NetworkConfig
from winelot.services.ledger_client import LedgerClient

logger = logging.getLogger(__name__)


class AccountFundingService:
    def __init__(
        self,
        settings: Settings,
        ledger: LedgerClient,
        http_client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings
        self.ledger = ledger
        self.network: NetworkConfig = ledger.network
        self.http_client = http_client or httpx.Client(timeout=settings.http_timeout_seconds)
        self.sleep = sleep

    @property
    def funding_secret(self) -> Optional[str]:
        return self.settings.platform_funding_secret_key or None

    # ---------------------------
    # PRECONDITION
    # ---------------------------

    def ensure_available(self) -> None:
        """
        Raise before any ledger mutation if fund_account() could not succeed.
        """
        if self.funding_secret:
            return
        if self.network.is_production:
            raise FundingRequired(
                "PLATFORM_FUNDING_SECRET_KEY is required for PUBLIC network",
                details={"network": self.network.name},
            )
        if not self.network.friendbot_url:
            raise FundingUnavailable(
                "No funding method available: PLATFORM_FUNDING_SECRET_KEY not set "
                "and Friendbot not available for this network",
                details={"network": self.network.name},
            )

    # ---------------------------
    # FUNDING
    # ---------------------------

    def fund_account(self, public_key: str) -> None:
        self.ensure_available()

        if self.funding_secret:
            self._fund_with_platform_key(public_key)
        else:
            self._fund_with_faucet(public_key)

        self._verify_exists(public_key)

    def _fund_with_platform_key(self, public_key: str) -> None:
        logger.info("[funding] creating account %s with platform funding key", public_key)
        try:
            tx_hash = self.ledger.create_account(
                self.funding_secret,
                public_key,
                self.settings.starting_balance,
            )
        except LedgerSubmissionError as exc:
            raise FundingUnavailable(
                f"Account funding failed: {exc.detail}",
                details={
                    "publicKey": public_key,
                    "transactionCode": exc.transaction_code,
                    "operationCodes": exc.operation_codes,
                },
            ) from exc
        except LedgerError as exc:
            raise FundingUnavailable(
                f"Account funding failed: {exc}",
                details={"publicKey": public_key},
            ) from exc
        logger.info("[funding] create_account %s submitted tx=%s", public_key, tx_hash)

    def _fund_with_faucet(self, public_key: str) -> None:
        url = self.network.friendbot_url_for(public_key)
        logger.info("[funding] funding %s via friendbot on %s", public_key, self.network.name)
        try:
            response = self.http_client.get(url)
        except httpx.HTTPError as exc:
            raise FundingUnavailable(
                f"Friendbot funding failed: {exc}",
                details={"publicKey": public_key},
            ) from exc

        if response.status_code < 200 or response.status_code >= 300:
            raise FundingUnavailable(
                f"Friendbot funding failed: {response.status_code} {response.text}",
                details={"publicKey": public_key, "status": response.status_code},
            )

    def _verify_exists(self, public_key: str) -> None:
        attempts = max(1, self.settings.funding_verify_attempts)
        backoff = self.settings.funding_verify_backoff_seconds

        for attempt in range(1, attempts + 1):
            self.sleep(backoff)
            if self.ledger.account_exists(public_key):
                logger.info("[funding] verified %s on attempt %d", public_key, attempt)
                return
            logger.info(
                "[funding] account %s not yet visible (%d/%d)",
                public_key,
                attempt,
                attempts,
            )

        raise FundingUnavailable(
            f"Distribution account not found after funding. Public key: {public_key}. "
            f"Network: {self.network.name}",
            details={"publicKey": public_key, "attempts": attempts},
        )
