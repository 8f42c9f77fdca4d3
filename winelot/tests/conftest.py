import os

# Settings are read once per process; pin them before winelot is imported.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENCRYPTION_KEY", "test-master-key-for-the-wine-lot-vault")
os.environ.setdefault("STELLAR_NETWORK", "TESTNET")

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# FORCE model registration
import winelot.models  # noqa

from winelot.core.config import Settings, get_settings
from winelot.core.deps import get_funding_service, get_ledger, get_secret_vault
from winelot.core.vault import SecretVault
from winelot.db.base import Base
from winelot.db.session import get_db
from winelot.main import app
from winelot.services.funding_service import AccountFundingService
from winelot.services.lot_lifecycle_service import LotLifecycleService
from winelot.tests.fakes import FakeLedger

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def _no_sleep(_seconds: float) -> None:
    return None


@pytest.fixture(scope="function")
def db():
    Base.metadata.create_all(engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)


@pytest.fixture()
def ledger():
    return FakeLedger()


@pytest.fixture()
def funder(ledger):
    return ledger.create_funded_account(native="10000")


@pytest.fixture()
def treasury(ledger):
    return ledger.create_funded_account(native="10")


@pytest.fixture()
def issuer(ledger):
    public, _secret = ledger.create_funded_account(native="50")
    return public


@pytest.fixture()
def settings(funder, treasury):
    return Settings(
        database_url="sqlite://",
        encryption_key="test-master-key-for-the-wine-lot-vault",
        stellar_network="TESTNET",
        platform_funding_secret_key=funder[1],
        platform_treasury_public_key=treasury[0],
        platform_treasury_secret_key=treasury[1],
        funding_verify_attempts=3,
        funding_verify_backoff_seconds=0,
    )


@pytest.fixture()
def vault(settings):
    return SecretVault(settings.encryption_key)


@pytest.fixture()
def funding(settings, ledger):
    return AccountFundingService(
        settings,
        ledger,
        http_client=httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200, json={}))),
        sleep=_no_sleep,
    )


@pytest.fixture()
def service(settings, ledger, vault, funding):
    return LotLifecycleService(settings, ledger, vault, funding)


@pytest.fixture()
def client(db, settings, ledger, vault, funding):
    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_ledger] = lambda: ledger
    app.dependency_overrides[get_secret_vault] = lambda: vault
    app.dependency_overrides[get_funding_service] = lambda: funding
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()

