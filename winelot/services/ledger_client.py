#winelot/services/ledger_client.py
"""
Ledger client facade.

The workflow services talk to the ledger only through the LedgerClient
protocol below. StellarLedgerClient is the production adapter (stellar-sdk,
Horizon); it is bound once at startup by get_ledger_client().

Submissions are never retried here. A rejected submission is raised as
LedgerSubmissionError and may be rebuilt. An ambiguous one (connection lost,
Horizon 504) is raised as LedgerOutcomeUnknown carrying the tx hash, which
must be looked up before anything is rebuilt.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from functools import lru_cache
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from stellar_sdk import (
    Asset,
    FeeBumpTransactionEnvelope,
    Keypair,
    Server,
    StrKey,
    TransactionBuilder,
)
from stellar_sdk.exceptions import (
    BaseHorizonError,
    ConnectionError as HorizonConnectionError,
    NotFoundError,
)

from winelot.core.config import Settings, get_settings
from winelot.core.errors import (
    AccountNotFound,
    InvalidEnvelope,
    LedgerError,
    LedgerOutcomeUnknown,
    LedgerSubmissionError,
)
from winelot.core.network import NetworkConfig, resolve_network

logger = logging.getLogger(__name__)

STROOPS_PER_UNIT = Decimal("10000000")
# Horizon answers 504 when the tx was accepted but not yet seen in a ledger
HORIZON_TIMEOUT_STATUS = 504


# ─────────────────────────────────────────────
# VALUE TYPES
# ─────────────────────────────────────────────

@dataclass(frozen=True)
class AssetRef:
    code: str
    issuer: str


@dataclass(frozen=True)
class AssetBalance:
    asset_type: str
    balance: Decimal
    asset_code: Optional[str] = None
    asset_issuer: Optional[str] = None

    @property
    def is_native(self) -> bool:
        return self.asset_type == "native"

    def matches(self, asset: AssetRef) -> bool:
        return self.asset_code == asset.code and self.asset_issuer == asset.issuer


@dataclass
class LedgerAccount:
    address: str
    sequence: int
    balances: List[AssetBalance] = field(default_factory=list)

    def native_balance(self) -> Decimal:
        for b in self.balances:
            if b.is_native:
                return b.balance
        return Decimal("0")

    def asset_balance(self, asset: AssetRef) -> Optional[Decimal]:
        for b in self.balances:
            if b.matches(asset):
                return b.balance
        return None

    def has_trustline(self, asset: AssetRef) -> bool:
        return self.asset_balance(asset) is not None


@dataclass(frozen=True)
class PaymentInstruction:
    destination: str
    amount: str  # fixed-point string, never a float


class LedgerClient(Protocol):
    network: NetworkConfig

    def generate_keypair(self) -> Tuple[str, str]: ...

    def public_key_for(self, secret: str) -> str: ...

    def is_valid_address(self, address: str) -> bool: ...

    def load_account(self, address: str) -> LedgerAccount: ...

    def account_exists(self, address: str) -> bool: ...

    def fee_for(self, operation_count: int) -> Decimal: ...

    def create_account(self, funder_secret: str, destination: str, starting_balance: str) -> str: ...

    def change_trust(self, signer_secret: str, asset: AssetRef, limit: str) -> str: ...

    def build_payment_envelope(
        self, source: str, destination: str, asset: AssetRef, amount: str, timeout: int
    ) -> str: ...

    def envelope_hash(self, envelope_xdr: str) -> str: ...

    def submit_envelope(self, envelope_xdr: str) -> str: ...

    def pay_batch(
        self, signer_secret: str, asset: AssetRef, payments: Sequence[PaymentInstruction], timeout: int
    ) -> str: ...


# ─────────────────────────────────────────────
# RESULT CODES
# ─────────────────────────────────────────────

RESULT_CODE_MESSAGES: Dict[str, str] = {
    "tx_failed": "Transaction failed",
    "tx_insufficient_fee": "Insufficient transaction fee",
    "tx_too_early": "Transaction submitted too early",
    "tx_too_late": "Transaction expired",
    "tx_missing_operation": "Transaction missing operations",
    "tx_bad_auth": "Transaction authentication failed",
    "tx_bad_auth_extra": "Transaction has extra signatures",
    "tx_bad_seq": "Transaction sequence number does not match source account",
    "op_underfunded": "Account has insufficient balance",
    "op_low_reserve": "Account minimum reserve not met",
    "op_line_full": "Trustline limit reached",
    "op_no_trust": "Destination has no trustline",
    "op_not_authorized": "Operation not authorized",
    "op_no_issuer": "Issuer account does not exist",
    "op_no_destination": "Destination account does not exist",
    "op_success": "Operation succeeded",
}


def describe_result_codes(result_codes: Dict[str, Any]) -> str:
    """
    "Transaction: <msg>. Operation 1: <msg>. ..." ; unknown codes pass through.
    """
    messages: List[str] = []
    tx_code = result_codes.get("transaction")
    if tx_code:
        messages.append(f"Transaction: {RESULT_CODE_MESSAGES.get(tx_code, tx_code)}")
    for index, op_code in enumerate(result_codes.get("operations") or [], start=1):
        messages.append(f"Operation {index}: {RESULT_CODE_MESSAGES.get(op_code, op_code)}")
    return ". ".join(messages) or "Transaction failed on the ledger"


# ─────────────────────────────────────────────
# STELLAR ADAPTER
# ─────────────────────────────────────────────

def _parse_balance(raw: Dict[str, Any]) -> AssetBalance:
    return AssetBalance(
        asset_type=raw.get("asset_type", ""),
        balance=Decimal(str(raw.get("balance", "0"))),
        asset_code=raw.get("asset_code"),
        asset_issuer=raw.get("asset_issuer"),
    )


def _submission_error(exc: BaseHorizonError) -> LedgerSubmissionError:
    extras = exc.extras or {}
    codes = extras.get("result_codes") or {}
    detail = exc.detail or exc.title or str(exc)
    if codes:
        detail = describe_result_codes(codes)
    return LedgerSubmissionError(detail, result_codes=codes, status=exc.status)


class StellarLedgerClient:
    def __init__(self, network: NetworkConfig, *, base_fee: int = 100, server: Optional[Server] = None):
        self.network = network
        self.base_fee = base_fee
        self.server = server or Server(horizon_url=network.horizon_url)

    # ---------------------------
    # KEYS
    # ---------------------------

    def generate_keypair(self) -> Tuple[str, str]:
        kp = Keypair.random()
        return kp.public_key, kp.secret

    def public_key_for(self, secret: str) -> str:
        return Keypair.from_secret(secret).public_key

    def is_valid_address(self, address: str) -> bool:
        return StrKey.is_valid_ed25519_public_key(address or "")

    # ---------------------------
    # READS
    # ---------------------------

    def load_account(self, address: str) -> LedgerAccount:
        try:
            raw = self.server.accounts().account_id(address).call()
        except NotFoundError:
            raise AccountNotFound(address)
        except BaseHorizonError as exc:
            raise LedgerError(f"Horizon error loading {address}: {exc.title or exc}") from exc
        return LedgerAccount(
            address=address,
            sequence=int(raw.get("sequence", 0)),
            balances=[_parse_balance(b) for b in raw.get("balances", [])],
        )

    def account_exists(self, address: str) -> bool:
        try:
            self.load_account(address)
            return True
        except AccountNotFound:
            return False

    def fee_for(self, operation_count: int) -> Decimal:
        return Decimal(self.base_fee * operation_count) / STROOPS_PER_UNIT

    # ---------------------------
    # TRANSACTIONS
    # ---------------------------

    def _builder(self, source_address: str) -> TransactionBuilder:
        try:
            source = self.server.load_account(source_address)
        except NotFoundError:
            raise AccountNotFound(source_address)
        return TransactionBuilder(
            source_account=source,
            network_passphrase=self.network.passphrase,
            base_fee=self.base_fee,
        )

    def _submit(self, envelope) -> str:
        try:
            response = self.server.submit_transaction(envelope)
        except BaseHorizonError as exc:
            if exc.status == HORIZON_TIMEOUT_STATUS:
                raise LedgerOutcomeUnknown(
                    "Horizon timed out waiting for the transaction; it may still be applied",
                    tx_hash=envelope.hash_hex(),
                ) from exc
            raise _submission_error(exc) from exc
        except HorizonConnectionError as exc:
            raise LedgerOutcomeUnknown(
                f"Horizon unreachable during submission: {exc}",
                tx_hash=envelope.hash_hex(),
            ) from exc
        return response["hash"]

    def create_account(self, funder_secret: str, destination: str, starting_balance: str) -> str:
        funder = Keypair.from_secret(funder_secret)
        tx = (
            self._builder(funder.public_key)
            .append_create_account_op(destination=destination, starting_balance=starting_balance)
            .set_timeout(180)
            .build()
        )
        tx.sign(funder)
        return self._submit(tx)

    def change_trust(self, signer_secret: str, asset: AssetRef, limit: str) -> str:
        signer = Keypair.from_secret(signer_secret)
        tx = (
            self._builder(signer.public_key)
            .append_change_trust_op(asset=Asset(asset.code, asset.issuer), limit=limit)
            .set_timeout(180)
            .build()
        )
        tx.sign(signer)
        return self._submit(tx)

    def build_payment_envelope(
        self, source: str, destination: str, asset: AssetRef, amount: str, timeout: int
    ) -> str:
        tx = (
            self._builder(source)
            .append_payment_op(destination=destination, asset=Asset(asset.code, asset.issuer), amount=amount)
            .set_timeout(timeout)
            .build()
        )
        return tx.to_xdr()

    def _parse_envelope(self, envelope_xdr: str):
        try:
            return TransactionBuilder.from_xdr(envelope_xdr, self.network.passphrase)
        except Exception as exc:
            # the XDR decoder raises a range of low-level errors on malformed input
            raise InvalidEnvelope(f"Could not parse transaction envelope: {exc}") from exc

    def envelope_hash(self, envelope_xdr: str) -> str:
        envelope = self._parse_envelope(envelope_xdr)
        if isinstance(envelope, FeeBumpTransactionEnvelope):
            envelope = envelope.transaction.inner_transaction_envelope
        return envelope.hash_hex()

    def submit_envelope(self, envelope_xdr: str) -> str:
        return self._submit(self._parse_envelope(envelope_xdr))

    def pay_batch(
        self, signer_secret: str, asset: AssetRef, payments: Sequence[PaymentInstruction], timeout: int
    ) -> str:
        signer = Keypair.from_secret(signer_secret)
        sdk_asset = Asset(asset.code, asset.issuer)
        builder = self._builder(signer.public_key)
        for p in payments:
            builder.append_payment_op(destination=p.destination, asset=sdk_asset, amount=p.amount)
        tx = builder.set_timeout(timeout).build()
        tx.sign(signer)
        logger.info("[ledger] submitting batch of %d payments from %s", len(payments), signer.public_key)
        return self._submit(tx)


@lru_cache(maxsize=1)
def get_ledger_client() -> StellarLedgerClient:
    settings: Settings = get_settings()
    network = resolve_network(settings)
    logger.info("[ledger] bound to %s via %s", network.name, network.horizon_url)
    return StellarLedgerClient(network, base_fee=settings.base_fee)
