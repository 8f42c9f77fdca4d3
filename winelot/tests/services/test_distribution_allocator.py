from decimal import Decimal

import pytest

from winelot.core.errors import (
    AccountNotFound,
    ConfigurationError,
    InsufficientTokenBalance,
    LedgerOutcomeUnknown,
    MissingTrustline,
    NoPayableAmount,
    TransactionRejected,
    ValidationError,
)
from winelot.services.distribution_allocator import Allocation, DistributionAllocator, compute_allocation
from winelot.services.ledger_client import AssetRef


def test_ten_percent_platform_fee_scenario():
    a = compute_allocation("1000.0000000", 1000, 0)

    assert a.platform_str == "100.0000000"
    assert a.winery_str == "900.0000000"
    assert a.reserve_str == "0"
    assert a.as_payload() == {
        "wineryAmount": "900.0000000",
        "platformAmount": "100.0000000",
        "reserveAmount": "0",
        "platformFeeBps": 1000,
        "reserveRatioBps": 0,
    }


@pytest.mark.parametrize(
    "total, fee, reserve",
    [
        ("1000.0000000", 1000, 0),
        ("0.0000003", 3333, 3333),
        ("12345.6789012", 250, 1750),
        ("1.0000001", 9999, 1),
        ("777.7777777", 0, 10000),
    ],
)
def test_split_sums_to_total(total, fee, reserve):
    a = compute_allocation(total, fee, reserve)
    assert a.platform_amount + a.winery_amount + a.reserve_amount == Decimal(total)
    assert min(a.platform_amount, a.winery_amount, a.reserve_amount) >= 0


def test_zero_fee_formats_platform_amount_in_fixed_point():
    a = compute_allocation("1000", 0, 0)

    assert a.as_payload() == {
        "wineryAmount": "1000.0000000",
        "platformAmount": "0.0000000",
        "reserveAmount": "0",
        "platformFeeBps": 0,
        "reserveRatioBps": 0,
    }


def test_dust_shares_stay_in_fixed_point():
    a = compute_allocation("0.0000010", 1000, 0)
    assert a.platform_str == "0.0000001"
    assert a.winery_str == "0.0000009"


def test_winery_never_negative_when_bps_overflow():
    a = compute_allocation("10", 8000, 5000)
    assert a.winery_amount == 0
    assert a.winery_str == "0"


def test_zero_total_is_rejected():
    with pytest.raises(ValidationError):
        compute_allocation("0", 1000, 0)


# ─────────────────────────────────────────────
# plan / ledger checks
# ─────────────────────────────────────────────

@pytest.fixture()
def allocator(settings, ledger):
    return DistributionAllocator(settings, ledger)


def test_plan_skips_zero_lines(allocator, ledger, treasury):
    winery, _ = ledger.create_funded_account()
    lines = allocator.plan(compute_allocation("1000", 1000, 0), winery_payout=winery, reserve_payout=None)

    assert [(l.label, l.destination, l.amount_str) for l in lines] == [
        ("Platform treasury", treasury[0], "100.0000000"),
        ("Winery payout", winery, "900.0000000"),
    ]


def test_plan_fails_closed_on_missing_destination(allocator):
    with pytest.raises(ValidationError) as ei:
        allocator.plan(compute_allocation("1000", 1000, 500), winery_payout=None, reserve_payout=None)
    assert ei.value.details["field"] == "wineryPayoutPublicKey"


def test_plan_requires_treasury_for_platform_fee(settings, ledger):
    bare = settings.model_copy(update={"platform_treasury_public_key": None})
    with pytest.raises(ConfigurationError):
        DistributionAllocator(bare, ledger).plan(
            compute_allocation("1000", 1000, 0), winery_payout="G" * 56, reserve_payout=None
        )


def test_plan_with_nothing_to_pay(allocator):
    empty = Allocation(
        total_supply=Decimal("0.0000001"),
        platform_amount=Decimal("0"),
        winery_amount=Decimal("0"),
        reserve_amount=Decimal("0"),
        platform_fee_bps=1000,
        reserve_ratio_bps=0,
    )
    with pytest.raises(NoPayableAmount):
        allocator.plan(empty, winery_payout=None, reserve_payout=None)


def test_balance_guard(allocator, ledger, issuer):
    holder, _ = ledger.create_funded_account()
    asset = AssetRef("MALBEC21", issuer)

    with pytest.raises(InsufficientTokenBalance):
        allocator.check_balance(holder, asset, Decimal("1000"))

    ledger.add_trustline(holder, asset, "999.9999995")
    assert allocator.check_balance(holder, asset, Decimal("1000")) == Decimal("999.9999995")

    ledger.add_trustline(holder, asset, "999.99")
    with pytest.raises(InsufficientTokenBalance) as ei:
        allocator.check_balance(holder, asset, Decimal("1000"))
    assert ei.value.details["availableBalance"] == "999.99"


def test_treasury_trustline_is_created_but_winery_must_exist(allocator, ledger, issuer, treasury):
    asset = AssetRef("MALBEC21", issuer)
    winery, _ = ledger.create_funded_account()
    lines = allocator.plan(compute_allocation("1000", 1000, 0), winery_payout=winery, reserve_payout=None)

    with pytest.raises(MissingTrustline) as ei:
        allocator.ensure_trustlines(lines, asset, "1000.0000000")
    assert ei.value.details["field"] == "wineryPayoutPublicKey"
    assert ledger.token_balance(treasury[0], asset) == 0
    assert ledger.trust_calls == [(treasury[0], asset, "1000.0000000")]

    ledger.add_trustline(winery, asset)
    allocator.ensure_trustlines(lines, asset, "1000.0000000")
    assert len(ledger.trust_calls) == 1


def test_unknown_destination_is_missing_trustline(allocator, ledger, issuer, treasury):
    asset = AssetRef("MALBEC21", issuer)
    ledger.add_trustline(treasury[0], asset)
    lines = allocator.plan(compute_allocation("1000", 1000, 0), winery_payout="G" + "9" * 55, reserve_payout=None)

    with pytest.raises(MissingTrustline) as ei:
        allocator.ensure_trustlines(lines, asset, "1000.0000000")
    assert ei.value.details["field"] == "wineryPayoutPublicKey"
    assert isinstance(ei.value.__cause__, AccountNotFound)


def test_trustline_outcome_unknown_is_rejected(allocator, ledger, issuer, treasury):
    asset = AssetRef("MALBEC21", issuer)
    winery, _ = ledger.create_funded_account()
    lines = allocator.plan(compute_allocation("1000", 1000, 0), winery_payout=winery, reserve_payout=None)
    ledger.failures["change_trust"] = LedgerOutcomeUnknown("Horizon unreachable during submission")

    with pytest.raises(TransactionRejected) as ei:
        allocator.ensure_trustlines(lines, asset, "1000.0000000")
    assert ei.value.details["field"] == "platformTreasuryPublicKey"
