from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    # ─────────── APP ───────────
    app_name: str = "Wine Lot Tokenization Service"
    environment: str = "dev"
    log_level: str = "INFO"

    # ─────────── API ───────────
    api_prefix: str = "/api/v1"
    request_id_header: str = "X-Request-Id"

    # ─────────── DATABASE ───────────
    database_url: str

    # ─────────── SERVICE AUTH ───────────
    service_auth_enabled: bool = False
    jwt_secret_key: str = ""
    jwt_algorithm: str = "HS256"
    service_role: str = "service"

    # ─────────── LEDGER ───────────
    stellar_network: str = "TESTNET"  # TESTNET | FUTURENET | PUBLIC | LOCAL
    horizon_url: Optional[str] = None
    local_friendbot_url: Optional[str] = None
    base_fee: int = 100  # stroops per operation
    transaction_timeout_seconds: int = 180
    emission_timeout_seconds: int = 300
    http_timeout_seconds: float = 30.0

    # ─────────── CUSTODY ───────────
    encryption_key: Optional[str] = None
    platform_funding_secret_key: Optional[str] = None
    platform_treasury_public_key: Optional[str] = None
    platform_treasury_secret_key: Optional[str] = None

    # ─────────── ECONOMICS ───────────
    default_platform_fee_bps: int = 1000
    starting_balance: str = "2.0"
    issuer_fee_margin: str = "1"
    distribution_balance_epsilon: str = "0.000001"

    # ─────────── FUNDING VERIFICATION ───────────
    funding_verify_attempts: int = 5
    funding_verify_backoff_seconds: float = 2.0


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
