#winelot/services/distribution_allocator.py
"""
Basis-point split of a lot's supply and the payout batch that settles it.

Rounding rule: platform and reserve shares are rounded DOWN to ledger
precision and the winery takes the remainder, so the three amounts sum to
the total exactly whenever platform_fee_bps + reserve_ratio_bps <= 10000.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_DOWN
from typing import Dict, List, Optional, Sequence

from winelot.core.amounts import LEDGER_DECIMALS, MAX_BPS, to_decimal, to_fixed_amount
from winelot.core.config import Settings
from winelot.core.errors import (
    AccountNotFound,
    ConfigurationError,
    InsufficientTokenBalance,
    LedgerError,
    LedgerSubmissionError,
    MissingTrustline,
    NoPayableAmount,
    TransactionRejected,
    ValidationError,
)
from winelot.services.ledger_client import AssetRef, LedgerClient, PaymentInstruction

logger = logging.getLogger(__name__)

_QUANTUM = Decimal(1).scaleb(-LEDGER_DECIMALS)
_ZERO = Decimal("0")


def _share(total: Decimal, bps: int) -> Decimal:
    return (total * Decimal(bps) / Decimal(MAX_BPS)).quantize(_QUANTUM, rounding=ROUND_DOWN)


def _format_optional(amount: Decimal, field_name: str) -> str:
    return to_fixed_amount(amount, LEDGER_DECIMALS, field_name) if amount > 0 else "0"


@dataclass(frozen=True)
class Allocation:
    total_supply: Decimal
    platform_amount: Decimal
    winery_amount: Decimal
    reserve_amount: Decimal
    platform_fee_bps: int
    reserve_ratio_bps: int

    @property
    def platform_str(self) -> str:
        return to_fixed_amount(self.platform_amount, LEDGER_DECIMALS, "platformAmount")

    @property
    def winery_str(self) -> str:
        return _format_optional(self.winery_amount, "wineryAmount")

    @property
    def reserve_str(self) -> str:
        return _format_optional(self.reserve_amount, "reserveAmount")

    def as_payload(self) -> Dict[str, object]:
        return {
            "wineryAmount": self.winery_str,
            "platformAmount": self.platform_str,
            "reserveAmount": self.reserve_str,
            "platformFeeBps": self.platform_fee_bps,
            "reserveRatioBps": self.reserve_ratio_bps,
        }


def compute_allocation(total_supply, platform_fee_bps: int, reserve_ratio_bps: int) -> Allocation:
    total = to_decimal(total_supply, "totalSupply")
    if total <= 0:
        raise ValidationError(
            f"Total supply must be positive. Received: {total_supply}",
            field="totalSupply",
            kind="InvalidAmount",
        )

    platform = _share(total, platform_fee_bps)
    reserve = _share(total, reserve_ratio_bps)
    winery = max(total - platform - reserve, _ZERO)

    return Allocation(
        total_supply=total,
        platform_amount=platform,
        winery_amount=winery,
        reserve_amount=reserve,
        platform_fee_bps=platform_fee_bps,
        reserve_ratio_bps=reserve_ratio_bps,
    )


@dataclass(frozen=True)
class PayoutLine:
    label: str
    field: str  # request field that supplies the destination
    destination: Optional[str]
    amount: Decimal
    amount_str: str
    trust_secret: Optional[str] = None  # only for accounts whose key the platform holds


class DistributionAllocator:
    def __init__(self, settings: Settings, ledger: LedgerClient):
        self.settings = settings
        self.ledger = ledger

    # ---------------------------
    # PLANNING
    # ---------------------------

    def plan(
        self,
        allocation: Allocation,
        *,
        winery_payout: Optional[str],
        reserve_payout: Optional[str],
    ) -> List[PayoutLine]:
        """
        Non-zero shares only. A non-zero share without a destination fails
        closed instead of being left in the distribution account.
        """
        candidates = [
            PayoutLine(
                label="Platform treasury",
                field="platformTreasuryPublicKey",
                destination=self.settings.platform_treasury_public_key or None,
                amount=allocation.platform_amount,
                amount_str=allocation.platform_str,
                trust_secret=self.settings.platform_treasury_secret_key or None,
            ),
            PayoutLine(
                label="Winery payout",
                field="wineryPayoutPublicKey",
                destination=winery_payout or None,
                amount=allocation.winery_amount,
                amount_str=allocation.winery_str,
            ),
            PayoutLine(
                label="Reserve",
                field="reservePublicKey",
                destination=reserve_payout or None,
                amount=allocation.reserve_amount,
                amount_str=allocation.reserve_str,
            ),
        ]

        lines: List[PayoutLine] = []
        for line in candidates:
            if line.amount <= 0:
                continue
            if not line.destination:
                if line.field == "platformTreasuryPublicKey":
                    raise ConfigurationError(
                        "PLATFORM_TREASURY_PUBLIC_KEY is required to pay the platform fee",
                        details={"platformAmount": line.amount_str},
                    )
                raise ValidationError(
                    f"{line.field} is required when the {line.label.lower()} amount is {line.amount_str}",
                    field=line.field,
                    details={"amount": line.amount_str},
                )
            lines.append(line)

        if not lines:
            raise NoPayableAmount(
                "At least one of platformAmount, wineryAmount, or reserveAmount must be greater than zero.",
                details=allocation.as_payload(),
            )
        return lines

    # ---------------------------
    # LEDGER CHECKS
    # ---------------------------

    def check_balance(self, distribution_address: str, asset: AssetRef, total_supply: Decimal) -> Decimal:
        account = self.ledger.load_account(distribution_address)
        available = account.asset_balance(asset)
        if available is None:
            raise InsufficientTokenBalance(
                "Distribution account missing token balance. Ensure emission transaction completed successfully.",
                details={"distributionAccount": distribution_address, "tokenCode": asset.code},
            )

        epsilon = Decimal(self.settings.distribution_balance_epsilon)
        if available + epsilon < total_supply:
            raise InsufficientTokenBalance(
                f"Distribution account balance ({available}) is lower than expected total supply ({total_supply}).",
                details={
                    "availableBalance": str(available),
                    "totalSupply": to_fixed_amount(total_supply),
                },
            )
        return available

    def ensure_trustlines(self, lines: Sequence[PayoutLine], asset: AssetRef, limit: str) -> None:
        for line in lines:
            try:
                account = self.ledger.load_account(line.destination)
            except AccountNotFound as exc:
                raise MissingTrustline(
                    f"{line.label} account {line.destination} does not exist on the ledger.",
                    details={"destination": line.destination, "field": line.field},
                ) from exc

            if account.has_trustline(asset):
                continue

            if not line.trust_secret:
                raise MissingTrustline(
                    f"{line.label} account is missing trustline for {asset.code}.",
                    details={"destination": line.destination, "field": line.field},
                )

            logger.info("[distribute] creating %s trustline for %s", line.label, asset.code)
            try:
                self.ledger.change_trust(line.trust_secret, asset, limit)
            except LedgerSubmissionError as exc:
                raise TransactionRejected(
                    f"{line.label} trustline failed: {exc.detail}",
                    details={
                        "transactionCode": exc.transaction_code,
                        "operationCodes": exc.operation_codes,
                    },
                ) from exc
            except LedgerError as exc:
                # change_trust is idempotent; a retry re-sets the same limit
                raise TransactionRejected(
                    f"{line.label} trustline failed: {exc}",
                    details={"destination": line.destination, "field": line.field},
                ) from exc

    # ---------------------------
    # SETTLEMENT
    # ---------------------------

    def execute(self, distribution_secret: str, asset: AssetRef, lines: Sequence[PayoutLine]) -> str:
        payments = [PaymentInstruction(destination=l.destination, amount=l.amount_str) for l in lines]
        return self.ledger.pay_batch(
            distribution_secret,
            asset,
            payments,
            self.settings.transaction_timeout_seconds,
        )
