#winelot/services/lot_lifecycle_service.py
"""
Wine-lot tokenization lifecycle.

    CREATED -> TRUSTLINE_CREATED -> EMISSION_PENDING -> TOKENS_EMITTED -> DISTRIBUTED

Every mutating operation:
  1) validates its input before any ledger I/O
  2) re-reads the lot FOR UPDATE and checks the source status
  3) talks to the ledger
  4) advances with UPDATE ... WHERE id = :id AND status = :expected
     (0 rows -> InvalidTransition, a concurrent request won)
  5) appends an audit row in the same commit

Ledger rejections never advance state; the caller retries the same step.
An unknown submission outcome is reported with its tx hash instead, since
rebuilding before that hash is looked up could apply the step twice.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from winelot.core.amounts import (
    derive_token_supply,
    ensure_bps,
    ensure_number,
    ensure_positive_integer,
    normalize_token_code,
    to_decimal,
    to_fixed_amount,
)
from winelot.core.config import Settings
from winelot.core.errors import (
    AccountNotFound,
    DuplicateLot,
    InsufficientBalance,
    InsufficientTokenBalance,
    InvalidEnvelope,
    InvalidTransition,
    IssuerNotFound,
    LedgerError,
    LedgerOutcomeUnknown,
    LedgerSubmissionError,
    LotNotFound,
    PersistenceError,
    SubmissionOutcomeUnknown,
    TokenizationError,
    TransactionRejected,
    ValidationError,
)
from winelot.core.vault import SecretVault
from winelot.models.distribution import Distribution
from winelot.models.enums import LotAction, LotStatus
from winelot.models.token_issuance import TokenIssuance
from winelot.models.wine_lot import WineLot
from winelot.services.audit_service import AuditService
from winelot.services.distribution_allocator import DistributionAllocator, compute_allocation
from winelot.services.funding_service import AccountFundingService
from winelot.services.ledger_client import AssetRef, LedgerClient

logger = logging.getLogger(__name__)


ALLOWED_SOURCES: Dict[str, frozenset] = {
    "trustline": frozenset({LotStatus.CREATED}),
    "emission": frozenset({LotStatus.CREATED, LotStatus.TRUSTLINE_CREATED, LotStatus.EMISSION_PENDING}),
    "submit": frozenset({LotStatus.EMISSION_PENDING}),
    "distribute": frozenset({LotStatus.TOKENS_EMITTED}),
}

REQUIRED_PREPARE_FIELDS = (
    "issuerPublicKey",
    "tokenCode",
    "wineryName",
    "region",
    "country",
    "vintage",
    "bottleCount",
    "pricePerBottleUsd",
)

TRUSTLINE_WARNING = "Wine lot created but trustline creation failed. It can be retried later."

MIN_PRICE_PER_BOTTLE = "0.01"
MIN_PRICE_PER_UNIT = "0.000001"
MIN_TOKEN_UNITS = "0.0000001"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def _optional_str(value: Any) -> Optional[str]:
    if _is_blank(value):
        return None
    return str(value).strip()


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _documentation_urls(value: Any) -> List[str]:
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if not _is_blank(v)]
    return [str(value)]


class LotLifecycleService:
    def __init__(
        self,
        settings: Settings,
        ledger: LedgerClient,
        vault: SecretVault,
        funding: AccountFundingService,
        allocator: Optional[DistributionAllocator] = None,
        audit: Optional[AuditService] = None,
        clock: Callable[[], datetime] = _now,
    ):
        self.settings = settings
        self.ledger = ledger
        self.vault = vault
        self.funding = funding
        self.allocator = allocator or DistributionAllocator(settings, ledger)
        self.audit = audit or AuditService()
        self.clock = clock

    # ---------------------------
    # READS / LOCKS
    # ---------------------------

    def _find_lot(self, db: Session, issuer: str, token_code: str) -> Optional[WineLot]:
        return (
            db.execute(
                select(WineLot).where(
                    WineLot.issuer_public_key == issuer,
                    WineLot.token_code == token_code,
                )
            )
            .scalars()
            .one_or_none()
        )

    def _lot_for_update(self, db: Session, issuer: str, token_code: str) -> WineLot:
        lot = (
            db.execute(
                select(WineLot)
                .where(
                    WineLot.issuer_public_key == issuer,
                    WineLot.token_code == token_code,
                )
                .with_for_update()
            )
            .scalars()
            .one_or_none()
        )
        if not lot:
            raise LotNotFound(
                "Wine lot not found",
                details={"issuerPublicKey": issuer, "tokenCode": token_code},
            )
        return lot

    def _latest_issuance(self, db: Session, lot_id: uuid.UUID) -> Optional[TokenIssuance]:
        return (
            db.execute(
                select(TokenIssuance)
                .where(TokenIssuance.wine_lot_id == lot_id)
                .order_by(TokenIssuance.seq.desc())
                .limit(1)
            )
            .scalars()
            .first()
        )

    # ---------------------------
    # TRANSITIONS
    # ---------------------------

    def _require_source(self, lot: WineLot, operation: str, message: str) -> LotStatus:
        current = lot.lot_status
        if current in ALLOWED_SOURCES[operation]:
            return current

        details: Dict[str, Any] = {"currentStatus": current.value, "lotId": str(lot.id)}
        if current == LotStatus.DISTRIBUTED:
            details["distributionTxHash"] = lot.distribution_tx_hash
            details["distributedAt"] = _iso(lot.distributed_at)
        raise InvalidTransition(message, details=details)

    def _advance(self, db: Session, lot: WineLot, expected: LotStatus, target: LotStatus, **values: Any) -> None:
        result = db.execute(
            update(WineLot)
            .where(WineLot.id == lot.id, WineLot.status == expected.value)
            .values(status=target.value, updated_at=self.clock(), **values)
        )
        if result.rowcount != 1:
            db.rollback()
            raise InvalidTransition(
                f"Wine lot is no longer {expected.value}; a concurrent request advanced it.",
                details={"lotId": str(lot.id), "expectedStatus": expected.value},
            )

    def _commit_after_ledger(self, db: Session, *, context: str, details: Dict[str, Any]) -> None:
        """
        Commit a transition whose ledger side already succeeded. A failure here
        leaves the ledger ahead of the database; details carry the tx hash.
        """
        try:
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("[%s] persistence failed after ledger success %s", context, details)
            raise PersistenceError(
                f"Ledger transaction succeeded but the {context} state could not be saved",
                details=details,
            ) from exc

    @staticmethod
    def _rejected(exc: LedgerError, message: str) -> TokenizationError:
        if isinstance(exc, LedgerOutcomeUnknown):
            return SubmissionOutcomeUnknown(
                f"{message}: outcome unknown, look up the transaction before retrying. {exc.detail}",
                details={"txHash": exc.tx_hash},
            )
        if isinstance(exc, LedgerSubmissionError):
            return TransactionRejected(
                exc.detail,
                details={
                    "transactionCode": exc.transaction_code,
                    "operationCodes": exc.operation_codes,
                },
            )
        return TransactionRejected(f"{message}: {exc}")

    # ---------------------------
    # PREPARE
    # ---------------------------

    def _validate_prepare(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        data = dict(payload)
        if _is_blank(data.get("wineryName")) and not _is_blank(data.get("wineName")):
            data["wineryName"] = data["wineName"]

        missing = [f for f in REQUIRED_PREPARE_FIELDS if _is_blank(data.get(f))]
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}.",
                details={"missingFields": missing},
            )

        token_code = normalize_token_code(data["tokenCode"])
        issuer = str(data["issuerPublicKey"]).strip()
        if not self.ledger.is_valid_address(issuer):
            raise ValidationError("issuerPublicKey is not a valid account address", field="issuerPublicKey")

        bottle_count = ensure_positive_integer(data["bottleCount"], "bottleCount")
        vintage = ensure_positive_integer(data["vintage"], "vintage")
        bottle_format_ml = ensure_positive_integer(
            750 if _is_blank(data.get("bottleFormatMl")) else data["bottleFormatMl"],
            "bottleFormatMl",
        )
        price_per_bottle = ensure_number(data["pricePerBottleUsd"], "pricePerBottleUsd", min=MIN_PRICE_PER_BOTTLE)
        units_per_bottle = ensure_number(
            1 if _is_blank(data.get("unitsPerBottle")) else data["unitsPerBottle"],
            "unitsPerBottle",
            min=MIN_TOKEN_UNITS,
        )

        if _is_blank(data.get("totalTokenUnits")):
            total_supply = derive_token_supply(bottle_count, units_per_bottle)
        else:
            total_units = ensure_number(data["totalTokenUnits"], "totalTokenUnits", min=MIN_TOKEN_UNITS)
            total_supply = to_fixed_amount(total_units, field_name="totalTokenSupply")

        raw_fee = data.get("platformFeeBps")
        platform_fee_bps = ensure_bps(
            self.settings.default_platform_fee_bps if _is_blank(raw_fee) else raw_fee,
            "platformFeeBps",
        )

        metadata = data.get("metadata") or {}
        if not isinstance(metadata, dict):
            raise ValidationError("metadata must be an object", field="metadata")

        return {
            "issuer": issuer,
            "token_code": token_code,
            "winery_name": str(data["wineryName"]).strip(),
            "region": str(data["region"]).strip(),
            "country": str(data["country"]).strip(),
            "appellation": _optional_str(data.get("appellation")),
            "vineyard": _optional_str(data.get("vineyard")),
            "vintage": vintage,
            "bottle_format_ml": bottle_format_ml,
            "bottle_count": bottle_count,
            "price_per_bottle_usd": price_per_bottle,
            "platform_fee_bps": platform_fee_bps,
            "sku": _optional_str(data.get("sku")),
            "custodial_partner": _optional_str(data.get("custodialPartner")),
            "storage_location": _optional_str(data.get("storageLocation")),
            "insurance_policy": _optional_str(data.get("insurancePolicy")),
            "description": _optional_str(data.get("description")),
            "documentation_urls": _documentation_urls(data.get("documentationUrls")),
            "token_metadata": {
                **metadata,
                "unitsPerBottle": str(units_per_bottle),
                "totalTokenSupply": total_supply,
            },
        }

    def prepare(self, db: Session, *, payload: Dict[str, Any], request_id: Optional[str] = None) -> Dict[str, Any]:
        fields = self._validate_prepare(payload)
        issuer = fields.pop("issuer")
        token_code = fields.pop("token_code")
        total_supply = fields["token_metadata"]["totalTokenSupply"]

        try:
            self.ledger.load_account(issuer)
        except AccountNotFound as exc:
            raise IssuerNotFound(
                "Issuer account does not exist on Stellar network",
                details={"issuerPublicKey": issuer},
            ) from exc

        if self._find_lot(db, issuer, token_code):
            raise DuplicateLot(
                "Wine lot with this code already exists for this issuer",
                details={"issuerPublicKey": issuer, "tokenCode": token_code},
            )

        self.funding.ensure_available()

        distribution_public, distribution_secret = self.ledger.generate_keypair()
        lot = WineLot(
            issuer_public_key=issuer,
            token_code=token_code,
            distribution_public_key=distribution_public,
            distribution_secret_encrypted=self.vault.encrypt(distribution_secret),
            status=LotStatus.CREATED.value,
            **fields,
        )
        db.add(lot)
        try:
            db.flush()
            self.audit.record(
                db,
                lot_id=lot.id,
                action=LotAction.LOT_CREATED,
                from_status=None,
                to_status=LotStatus.CREATED,
                request_id=request_id,
                details={"tokenCode": token_code, "totalTokenSupply": total_supply},
            )
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise DuplicateLot(
                "Wine lot with this code already exists for this issuer",
                details={"issuerPublicKey": issuer, "tokenCode": token_code},
            ) from exc
        except SQLAlchemyError as exc:
            db.rollback()
            raise PersistenceError("Error saving wine lot to database", details={"reason": str(exc)}) from exc

        lot_id = lot.id
        logger.info("[prepare] lot=%s created %s:%s distribution=%s", lot_id, token_code, issuer, distribution_public)

        try:
            self.funding.fund_account(distribution_public)
        except TokenizationError as exc:
            exc.details.setdefault("lotId", str(lot_id))
            logger.error("[prepare] lot=%s funding failed: %s", lot_id, exc.message)
            raise

        response: Dict[str, Any] = {
            "success": True,
            "distributionAccount": distribution_public,
            "lotId": str(lot_id),
            "totalTokenSupply": total_supply,
        }

        lot = self._lot_for_update(db, issuer, token_code)
        asset = AssetRef(token_code, issuer)
        try:
            tx_hash = self.ledger.change_trust(distribution_secret, asset, total_supply)
        except LedgerError as exc:
            logger.warning("[prepare] lot=%s trustline failed: %s", lot_id, exc)
            self.audit.record(
                db,
                lot_id=lot_id,
                action=LotAction.TRUSTLINE_FAILED,
                from_status=LotStatus.CREATED,
                to_status=LotStatus.CREATED,
                request_id=request_id,
                details={"reason": str(exc)},
            )
            db.commit()
            response["warning"] = TRUSTLINE_WARNING
            return response

        self._advance(db, lot, LotStatus.CREATED, LotStatus.TRUSTLINE_CREATED, trustline_tx_hash=tx_hash)
        self.audit.record(
            db,
            lot_id=lot_id,
            action=LotAction.TRUSTLINE_CREATED,
            from_status=LotStatus.CREATED,
            to_status=LotStatus.TRUSTLINE_CREATED,
            request_id=request_id,
            details={"trustlineTxHash": tx_hash},
        )
        self._commit_after_ledger(db, context="trustline", details={"lotId": str(lot_id), "trustlineTxHash": tx_hash})
        logger.info("[prepare] lot=%s trustline tx=%s", lot_id, tx_hash)

        response["trustlineTxHash"] = tx_hash
        return response

    # ---------------------------
    # TRUSTLINE (resume)
    # ---------------------------

    def establish_trustline(
        self,
        db: Session,
        *,
        issuer: str,
        token_code: str,
        request_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        code = normalize_token_code(token_code)
        lot = self._lot_for_update(db, issuer, code)
        self._require_source(lot, "trustline", "Wine lot trustline is already established.")

        if not self.ledger.account_exists(lot.distribution_public_key):
            logger.info("[trustline] lot=%s distribution account missing, funding", lot.id)
            self.funding.fund_account(lot.distribution_public_key)

        total_supply = lot.total_token_supply or derive_token_supply(lot.bottle_count)
        secret = self.vault.decrypt(lot.distribution_secret_encrypted)
        try:
            tx_hash = self.ledger.change_trust(secret, AssetRef(code, issuer), total_supply)
        except LedgerError as exc:
            raise self._rejected(exc, "Trustline creation failed") from exc

        self._advance(db, lot, LotStatus.CREATED, LotStatus.TRUSTLINE_CREATED, trustline_tx_hash=tx_hash)
        self.audit.record(
            db,
            lot_id=lot.id,
            action=LotAction.TRUSTLINE_CREATED,
            from_status=LotStatus.CREATED,
            to_status=LotStatus.TRUSTLINE_CREATED,
            request_id=request_id,
            details={"trustlineTxHash": tx_hash},
        )
        self._commit_after_ledger(db, context="trustline", details={"lotId": str(lot.id), "trustlineTxHash": tx_hash})
        logger.info("[trustline] lot=%s trustline tx=%s", lot.id, tx_hash)

        return {
            "success": True,
            "lotId": str(lot.id),
            "distributionAccount": lot.distribution_public_key,
            "trustlineTxHash": tx_hash,
            "totalTokenSupply": total_supply,
        }

    # ---------------------------
    # EMISSION
    # ---------------------------

    def emission(
        self,
        db: Session,
        *,
        issuer: str,
        token_code: str,
        price_per_unit_usd: Any,
        total_supply: Any = None,
        reserve_ratio_bps: Any = 0,
        request_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        code = normalize_token_code(token_code)
        if _is_blank(price_per_unit_usd):
            raise ValidationError("pricePerUnitUsd is required", field="pricePerUnitUsd")
        price = ensure_number(price_per_unit_usd, "pricePerUnitUsd", min=MIN_PRICE_PER_UNIT)
        reserve_bps = ensure_bps(0 if _is_blank(reserve_ratio_bps) else reserve_ratio_bps, "reserveRatioBps")

        override: Optional[str] = None
        if not _is_blank(total_supply):
            override = to_fixed_amount(total_supply, field_name="totalSupply")
            if to_decimal(override) <= 0:
                raise ValidationError("totalSupply must be positive", field="totalSupply", kind="InvalidAmount")

        lot = self._lot_for_update(db, issuer, code)
        current = self._require_source(lot, "emission", "Wine lot is not ready for emission.")

        if lot.platform_fee_bps + reserve_bps > 10000:
            raise ValidationError(
                "platformFeeBps + reserveRatioBps must not exceed 10000",
                field="reserveRatioBps",
                details={"platformFeeBps": lot.platform_fee_bps, "reserveRatioBps": reserve_bps},
            )

        supply = override or lot.total_token_supply or derive_token_supply(lot.bottle_count)

        try:
            issuer_account = self.ledger.load_account(issuer)
        except AccountNotFound as exc:
            raise IssuerNotFound("Issuer account does not exist on Stellar network", details={"issuerPublicKey": issuer}) from exc

        balance = issuer_account.native_balance()
        required = self.ledger.fee_for(1) + Decimal(self.settings.issuer_fee_margin)
        if balance < required:
            raise InsufficientBalance(
                f"Issuer account requires ~{required:.2f} XLM, has {balance:.2f} XLM.",
                details={
                    "currentBalance": str(balance),
                    "requiredBalance": str(required),
                    "shortfall": str(required - balance),
                },
            )

        try:
            envelope = self.ledger.build_payment_envelope(
                issuer,
                lot.distribution_public_key,
                AssetRef(code, issuer),
                supply,
                self.settings.emission_timeout_seconds,
            )
        except AccountNotFound as exc:
            raise IssuerNotFound("Issuer account does not exist on Stellar network", details={"issuerPublicKey": issuer}) from exc

        now = self.clock()
        db.execute(
            update(TokenIssuance)
            .where(
                TokenIssuance.wine_lot_id == lot.id,
                TokenIssuance.issued_at.is_(None),
                TokenIssuance.superseded_at.is_(None),
            )
            .values(superseded_at=now)
        )
        last_seq = db.execute(
            select(func.max(TokenIssuance.seq)).where(TokenIssuance.wine_lot_id == lot.id)
        ).scalar()
        issuance = TokenIssuance(
            wine_lot_id=lot.id,
            seq=(last_seq or 0) + 1,
            total_supply=supply,
            price_per_unit_usd=price,
            reserve_ratio_bps=reserve_bps,
            emission_xdr=envelope,
        )
        db.add(issuance)

        self._advance(db, lot, current, LotStatus.EMISSION_PENDING, emission_tx_hash=None)
        self.audit.record(
            db,
            lot_id=lot.id,
            action=LotAction.EMISSION_PREPARED,
            from_status=current,
            to_status=LotStatus.EMISSION_PENDING,
            request_id=request_id,
            details={"seq": issuance.seq, "totalSupply": supply, "reserveRatioBps": reserve_bps},
        )
        try:
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise PersistenceError("Error saving token issuance", details={"lotId": str(lot.id)}) from exc

        logger.info("[emission] lot=%s issuance seq=%s supply=%s", lot.id, issuance.seq, supply)
        return {
            "success": True,
            "xdr": envelope,
            "lotId": str(lot.id),
            "distributionAccount": lot.distribution_public_key,
            "totalSupply": supply,
        }

    # ---------------------------
    # SUBMIT
    # ---------------------------

    def submit(
        self,
        db: Session,
        *,
        issuer: str,
        token_code: str,
        signed_xdr: Any,
        request_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        code = normalize_token_code(token_code)
        if _is_blank(signed_xdr) or not isinstance(signed_xdr, str):
            raise ValidationError("signedXDR is required", field="signedXDR")

        lot = self._lot_for_update(db, issuer, code)
        self._require_source(lot, "submit", "Wine lot has no pending emission to submit.")

        issuance = self._latest_issuance(db, lot.id)
        if not issuance:
            raise InvalidTransition("No pending issuance found for wine lot", details={"lotId": str(lot.id)})

        try:
            signed_hash = self.ledger.envelope_hash(signed_xdr)
        except InvalidEnvelope as exc:
            raise TransactionRejected(
                "Signed transaction envelope could not be parsed",
                details={"lotId": str(lot.id), "reason": str(exc)},
            ) from exc

        if signed_hash != self.ledger.envelope_hash(issuance.emission_xdr):
            raise TransactionRejected(
                "Signed transaction does not match the pending emission",
                details={"lotId": str(lot.id), "issuanceSeq": issuance.seq},
            )

        try:
            tx_hash = self.ledger.submit_envelope(signed_xdr)
        except LedgerError as exc:
            logger.warning("[submit] lot=%s rejected: %s", lot.id, exc)
            raise self._rejected(exc, "Transaction submission failed") from exc

        now = self.clock()
        issuance.emission_tx_hash = tx_hash
        issuance.issued_at = now
        self._advance(
            db,
            lot,
            LotStatus.EMISSION_PENDING,
            LotStatus.TOKENS_EMITTED,
            emission_tx_hash=tx_hash,
            emitted_at=now,
        )
        self.audit.record(
            db,
            lot_id=lot.id,
            action=LotAction.TOKENS_EMITTED,
            from_status=LotStatus.EMISSION_PENDING,
            to_status=LotStatus.TOKENS_EMITTED,
            request_id=request_id,
            details={"txHash": tx_hash, "issuanceSeq": issuance.seq},
        )
        self._commit_after_ledger(db, context="emission", details={"lotId": str(lot.id), "txHash": tx_hash})
        logger.info("[submit] lot=%s emitted tx=%s", lot.id, tx_hash)

        return {
            "success": True,
            "txHash": tx_hash,
            "lotId": str(lot.id),
            "transactionUrl": self.ledger.network.explorer_tx_url(tx_hash),
        }

    # ---------------------------
    # DISTRIBUTE
    # ---------------------------

    def distribute(
        self,
        db: Session,
        *,
        issuer: str,
        token_code: str,
        winery_payout: Optional[str] = None,
        reserve_payout: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        code = normalize_token_code(token_code)
        winery_payout = _optional_str(winery_payout)
        reserve_payout = _optional_str(reserve_payout)
        for field, value in (("wineryPayoutPublicKey", winery_payout), ("reservePublicKey", reserve_payout)):
            if value and not self.ledger.is_valid_address(value):
                raise ValidationError(f"{field} is not a valid account address", field=field)

        lot = self._lot_for_update(db, issuer, code)
        if lot.lot_status == LotStatus.DISTRIBUTED:
            self._require_source(lot, "distribute", "Tokens for this wine lot were already distributed.")
        self._require_source(lot, "distribute", "Wine lot is not ready for distribution.")

        issuance = self._latest_issuance(db, lot.id)
        if not issuance:
            raise InvalidTransition("No issuance record found for wine lot", details={"lotId": str(lot.id)})

        allocation = compute_allocation(issuance.total_supply, lot.platform_fee_bps, issuance.reserve_ratio_bps)
        lines = self.allocator.plan(allocation, winery_payout=winery_payout, reserve_payout=reserve_payout)

        asset = AssetRef(code, issuer)
        try:
            self.allocator.check_balance(lot.distribution_public_key, asset, allocation.total_supply)
        except AccountNotFound as exc:
            raise InsufficientTokenBalance(
                "Distribution account does not exist on the ledger",
                details={"distributionAccount": lot.distribution_public_key},
            ) from exc

        self.allocator.ensure_trustlines(lines, asset, issuance.total_supply)

        try:
            tx_hash = self.allocator.execute(self.vault.decrypt(lot.distribution_secret_encrypted), asset, lines)
        except LedgerError as exc:
            logger.warning("[distribute] lot=%s rejected: %s", lot.id, exc)
            raise self._rejected(exc, "Distribution transaction failed") from exc

        now = self.clock()
        db.add(
            Distribution(
                wine_lot_id=lot.id,
                platform_amount=allocation.platform_str,
                winery_amount=allocation.winery_str,
                reserve_amount=allocation.reserve_str,
                distribution_tx_hash=tx_hash,
                distribution_at=now,
            )
        )
        self._advance(
            db,
            lot,
            LotStatus.TOKENS_EMITTED,
            LotStatus.DISTRIBUTED,
            distribution_tx_hash=tx_hash,
            distributed_at=now,
        )
        self.audit.record(
            db,
            lot_id=lot.id,
            action=LotAction.LOT_DISTRIBUTED,
            from_status=LotStatus.TOKENS_EMITTED,
            to_status=LotStatus.DISTRIBUTED,
            request_id=request_id,
            details={"distributionTxHash": tx_hash, **allocation.as_payload()},
        )
        self._commit_after_ledger(
            db, context="distribution", details={"lotId": str(lot.id), "distributionTxHash": tx_hash}
        )
        logger.info("[distribute] lot=%s distributed tx=%s lines=%d", lot.id, tx_hash, len(lines))

        return {
            "success": True,
            "distributionTxHash": tx_hash,
            "transactionUrl": self.ledger.network.explorer_tx_url(tx_hash),
            "lotId": str(lot.id),
            "distributionAccount": lot.distribution_public_key,
            "allocations": allocation.as_payload(),
        }
