import pytest

from winelot.core.errors import LotNotFound, ValidationError
from winelot.services.ledger_client import AssetRef
from winelot.services.status_service import StatusService
from winelot.tests.fakes import lot_payload


def _distribute(service, db, ledger, issuer, code):
    service.prepare(db, payload=lot_payload(issuer, token_code=code, bottleCount=100))
    built = service.emission(db, issuer=issuer, token_code=code, price_per_unit_usd="10")
    service.submit(db, issuer=issuer, token_code=code, signed_xdr=ledger.sign(built["xdr"]))
    winery, _ = ledger.create_funded_account()
    ledger.add_trustline(winery, AssetRef(code, issuer))
    return service.distribute(db, issuer=issuer, token_code=code, winery_payout=winery)


def test_status_of_fresh_lot(service, db, issuer):
    res = service.prepare(db, payload=lot_payload(issuer, appellation="Lujan de Cuyo"))

    view = StatusService().status(db, issuer=issuer, token_code="malbec21")

    assert view["status"] == "trustline_created"
    assert view["lotId"] == res["lotId"]
    assert view["tokenCode"] == "MALBEC21"
    assert view["appellation"] == "Lujan de Cuyo"
    assert view["bottleFormatMl"] == 750
    assert view["trustlineTxHash"] == res["trustlineTxHash"]
    assert view["emissionTxHash"] is None
    assert view["latestIssuance"] is None
    assert view["latestDistribution"] is None
    assert "distributionSecretEncrypted" not in view


def test_status_after_distribution(service, db, ledger, issuer):
    out = _distribute(service, db, ledger, issuer, "MALBEC21")

    view = StatusService().status(db, issuer=issuer, token_code="MALBEC21")

    assert view["status"] == "distributed"
    assert view["distributionTxHash"] == out["distributionTxHash"]
    assert view["emittedAt"] is not None
    assert view["latestIssuance"]["seq"] == 1
    assert view["latestIssuance"]["totalSupply"] == "100.0000000"
    assert view["latestIssuance"]["emissionTxHash"] == view["emissionTxHash"]
    assert view["latestDistribution"]["platformAmount"] == "10.0000000"
    assert view["latestDistribution"]["wineryAmount"] == "90.0000000"
    assert view["latestDistribution"]["reserveAmount"] == "0"


def test_status_unknown_lot(db, issuer):
    with pytest.raises(LotNotFound):
        StatusService().status(db, issuer=issuer, token_code="NOPE")


def test_list_distributed_only_returns_distributed_lots(service, db, ledger, issuer):
    _distribute(service, db, ledger, issuer, "MALBEC21")
    _distribute(service, db, ledger, issuer, "SYRAH19")
    service.prepare(db, payload=lot_payload(issuer, token_code="PINOT20"))

    page = StatusService().list_distributed(db)

    assert page["total"] == 2
    assert page["count"] == 2
    assert {row["tokenCode"] for row in page["lots"]} == {"MALBEC21", "SYRAH19"}
    assert all(row["latestDistribution"]["wineryAmount"] == "90.0000000" for row in page["lots"])

    second = StatusService().list_distributed(db, limit=1, offset=1)
    assert second["count"] == 1
    assert second["total"] == 2
    assert second["lots"][0]["tokenCode"] != StatusService().list_distributed(db, limit=1)["lots"][0]["tokenCode"]


@pytest.mark.parametrize("limit, offset, field", [(0, 0, "limit"), (501, 0, "limit"), (10, -1, "offset")])
def test_list_distributed_bounds(db, limit, offset, field):
    with pytest.raises(ValidationError) as ei:
        StatusService().list_distributed(db, limit=limit, offset=offset)
    assert ei.value.details["field"] == field
