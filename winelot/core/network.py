from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote

from winelot.core.config import Settings
from winelot.core.errors import ConfigurationError

TESTNET_PASSPHRASE = "Test SDF Network ; September 2015"
FUTURENET_PASSPHRASE = "Test SDF Future Network ; October 2022"
PUBLIC_PASSPHRASE = "Public Global Stellar Network ; September 2015"
STANDALONE_PASSPHRASE = "Standalone Network ; February 2017"

EXPLORER_BASE = "https://stellar.expert/explorer"


@dataclass(frozen=True)
class NetworkConfig:
    name: str
    passphrase: str
    horizon_url: str
    friendbot_url: Optional[str]
    explorer_base: str

    @property
    def is_production(self) -> bool:
        return self.name == "PUBLIC"

    def friendbot_url_for(self, address: str) -> Optional[str]:
        if not self.friendbot_url:
            return None
        return f"{self.friendbot_url}?addr={quote(address)}"

    def explorer_tx_url(self, tx_hash: str) -> str:
        return f"{self.explorer_base}/tx/{tx_hash}"


_DEFAULTS = {
    "TESTNET": (
        TESTNET_PASSPHRASE,
        "https://horizon-testnet.stellar.org",
        "https://friendbot.stellar.org/",
        f"{EXPLORER_BASE}/testnet",
    ),
    "FUTURENET": (
        FUTURENET_PASSPHRASE,
        "https://horizon-futurenet.stellar.org",
        "https://friendbot-futurenet.stellar.org/",
        f"{EXPLORER_BASE}/futurenet",
    ),
    "PUBLIC": (
        PUBLIC_PASSPHRASE,
        "https://horizon.stellar.org",
        None,
        f"{EXPLORER_BASE}/public",
    ),
    "LOCAL": (
        STANDALONE_PASSPHRASE,
        "http://localhost:8000",
        None,
        f"{EXPLORER_BASE}/testnet",
    ),
}


def resolve_network(settings: Settings) -> NetworkConfig:
    name = (settings.stellar_network or "").strip().upper()
    if name not in _DEFAULTS:
        raise ConfigurationError(
            f"Unknown STELLAR_NETWORK '{settings.stellar_network}'",
            details={"allowed": sorted(_DEFAULTS)},
        )

    passphrase, horizon, friendbot, explorer = _DEFAULTS[name]
    if name == "LOCAL":
        friendbot = settings.local_friendbot_url or None

    return NetworkConfig(
        name=name,
        passphrase=passphrase,
        horizon_url=settings.horizon_url or horizon,
        friendbot_url=friendbot,
        explorer_base=explorer,
    )
