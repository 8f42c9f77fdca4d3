"""
In-memory ledger implementing the LedgerClient protocol for tests.

Envelopes are base64 JSON; a "signed" envelope is the unsigned one plus a
"|sig:<signer>" suffix, so the signature-independent hash is the hash of
the part before the first "|".
"""
from __future__ import annotations

import base64
import binascii
import hashlib
import itertools
import json
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from winelot.core.errors import AccountNotFound, InvalidEnvelope, LedgerSubmissionError
from winelot.core.network import NetworkConfig, TESTNET_PASSPHRASE
from winelot.services.ledger_client import (
    AssetBalance,
    AssetRef,
    LedgerAccount,
    PaymentInstruction,
    describe_result_codes,
)

TESTNET = NetworkConfig(
    name="TESTNET",
    passphrase=TESTNET_PASSPHRASE,
    horizon_url="https://horizon-testnet.stellar.org",
    friendbot_url="https://friendbot.stellar.org/",
    explorer_base="https://stellar.expert/explorer/testnet",
)


def rejection(tx_code: str, *op_codes: str) -> LedgerSubmissionError:
    codes = {"transaction": tx_code, "operations": list(op_codes)}
    return LedgerSubmissionError(describe_result_codes(codes), result_codes=codes, status=400)


@dataclass
class FakeAccount:
    native: Decimal
    trustlines: Dict[Tuple[str, str], Decimal] = field(default_factory=dict)


class FakeLedger:
    def __init__(self, network: NetworkConfig = TESTNET, base_fee: int = 100):
        self.network = network
        self.base_fee = base_fee
        self.accounts: Dict[str, FakeAccount] = {}
        self.secrets: Dict[str, str] = {}
        self.submitted: List[str] = []
        self.batches: List[List[PaymentInstruction]] = []
        self.trust_calls: List[Tuple[str, AssetRef, str]] = []
        # operation name -> exception raised on the next call
        self.failures: Dict[str, Exception] = {}
        self._ids = itertools.count(1)
        self._tx = itertools.count(1)

    # ---------------------------
    # helpers for tests
    # ---------------------------

    def new_keypair(self) -> Tuple[str, str]:
        n = next(self._ids)
        public, secret = f"G{n:055d}", f"S{n:055d}"
        self.secrets[secret] = public
        return public, secret

    def create_funded_account(self, native: str = "100") -> Tuple[str, str]:
        public, secret = self.new_keypair()
        self.accounts[public] = FakeAccount(native=Decimal(native))
        return public, secret

    def add_trustline(self, public: str, asset: AssetRef, balance: str = "0") -> None:
        self.accounts[public].trustlines[(asset.code, asset.issuer)] = Decimal(balance)

    def token_balance(self, public: str, asset: AssetRef) -> Optional[Decimal]:
        return self.accounts[public].trustlines.get((asset.code, asset.issuer))

    def sign(self, envelope_xdr: str, signer: str = "issuer") -> str:
        return f"{envelope_xdr}|sig:{signer}"

    def _maybe_fail(self, operation: str) -> None:
        exc = self.failures.pop(operation, None)
        if exc is not None:
            raise exc

    def _next_hash(self) -> str:
        return hashlib.sha256(f"tx-{next(self._tx)}".encode()).hexdigest()

    def _account(self, public: str) -> FakeAccount:
        if public not in self.accounts:
            raise AccountNotFound(public)
        return self.accounts[public]

    def _signer(self, secret: str) -> str:
        if secret not in self.secrets:
            raise rejection("tx_bad_auth")
        return self.secrets[secret]

    # ---------------------------
    # LedgerClient protocol
    # ---------------------------

    def generate_keypair(self) -> Tuple[str, str]:
        return self.new_keypair()

    def public_key_for(self, secret: str) -> str:
        return self.secrets[secret]

    def is_valid_address(self, address: str) -> bool:
        return isinstance(address, str) and address.startswith("G") and len(address) == 56

    def load_account(self, address: str) -> LedgerAccount:
        self._maybe_fail("load_account")
        acct = self._account(address)
        balances = [AssetBalance(asset_type="native", balance=acct.native)]
        for (code, issuer), bal in acct.trustlines.items():
            balances.append(
                AssetBalance(asset_type="credit_alphanum12", balance=bal, asset_code=code, asset_issuer=issuer)
            )
        return LedgerAccount(address=address, sequence=1, balances=balances)

    def account_exists(self, address: str) -> bool:
        return address in self.accounts

    def fee_for(self, operation_count: int) -> Decimal:
        return Decimal(self.base_fee * operation_count) / Decimal("10000000")

    def create_account(self, funder_secret: str, destination: str, starting_balance: str) -> str:
        self._maybe_fail("create_account")
        funder = self._account(self._signer(funder_secret))
        funder.native -= Decimal(starting_balance)
        self.accounts[destination] = FakeAccount(native=Decimal(starting_balance))
        return self._next_hash()

    def change_trust(self, signer_secret: str, asset: AssetRef, limit: str) -> str:
        self._maybe_fail("change_trust")
        public = self._signer(signer_secret)
        self._account(public).trustlines.setdefault((asset.code, asset.issuer), Decimal("0"))
        self.trust_calls.append((public, asset, limit))
        return self._next_hash()

    def build_payment_envelope(self, source: str, destination: str, asset: AssetRef, amount: str, timeout: int) -> str:
        self._account(source)
        body = {
            "source": source,
            "destination": destination,
            "code": asset.code,
            "issuer": asset.issuer,
            "amount": amount,
            "timeout": timeout,
            "nonce": next(self._tx),
        }
        return base64.b64encode(json.dumps(body, sort_keys=True).encode()).decode()

    def _decode(self, envelope_xdr: str) -> Tuple[str, dict]:
        unsigned = (envelope_xdr or "").split("|", 1)[0]
        try:
            body = json.loads(base64.b64decode(unsigned, validate=True))
        except (binascii.Error, ValueError) as exc:
            raise InvalidEnvelope(f"Could not parse transaction envelope: {exc}") from exc
        return unsigned, body

    def envelope_hash(self, envelope_xdr: str) -> str:
        unsigned, _ = self._decode(envelope_xdr)
        return hashlib.sha256(unsigned.encode()).hexdigest()

    def submit_envelope(self, envelope_xdr: str) -> str:
        self._maybe_fail("submit_envelope")
        _, body = self._decode(envelope_xdr)
        if "|sig:" not in envelope_xdr:
            raise rejection("tx_bad_auth")
        key = (body["code"], body["issuer"])
        dest = self._account(body["destination"])
        if key not in dest.trustlines:
            raise rejection("tx_failed", "op_no_trust")
        dest.trustlines[key] += Decimal(body["amount"])
        self.submitted.append(envelope_xdr)
        return self._next_hash()

    def pay_batch(
        self, signer_secret: str, asset: AssetRef, payments: Sequence[PaymentInstruction], timeout: int
    ) -> str:
        self._maybe_fail("pay_batch")
        source = self._account(self._signer(signer_secret))
        key = (asset.code, asset.issuer)
        total = sum((Decimal(p.amount) for p in payments), Decimal("0"))
        if source.trustlines.get(key, Decimal("0")) < total:
            raise rejection("tx_failed", *["op_underfunded"] * len(payments))
        for p in payments:
            if key not in self._account(p.destination).trustlines:
                raise rejection("tx_failed", "op_no_trust")
        for p in payments:
            source.trustlines[key] -= Decimal(p.amount)
            self.accounts[p.destination].trustlines[key] += Decimal(p.amount)
        self.batches.append(list(payments))
        return self._next_hash()


def lot_payload(issuer: str, token_code: str = "MALBEC21", **overrides):
    payload = {
        "issuerPublicKey": issuer,
        "tokenCode": token_code,
        "wineryName": "Bodega Andes",
        "region": "Mendoza",
        "country": "Argentina",
        "vintage": 2021,
        "bottleCount": 5000,
        "pricePerBottleUsd": 42.5,
    }
    payload.update(overrides)
    return payload
