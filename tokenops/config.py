"""
Runtime configuration — environment variables, ``.env`` file, network profiles.

All settings use the ``XRPL_`` prefix (``XRPL_NETWORK``, ``XRPL_SOURCE_TAG``,
``XRPL_MIN_XRP``, ...). Values are validated once at load time; invalid
configuration raises ``pydantic.ValidationError`` rather than failing later
in the middle of a submission.

Network profiles are fixed data, not configuration: the operator picks a
network and may override its endpoints, but reserve figures, faucet
availability and the submission mode come from the profile.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from tokenops.intents import MAX_UINT32, validate_amount, validate_currency


class Network(StrEnum):
    TESTNET = "TESTNET"
    MAINNET = "MAINNET"


class SubmissionMode(StrEnum):
    """How a signed transaction is driven to a validated outcome."""

    FIRE_AND_POLL = "fire_and_poll"
    SUBMIT_AND_WAIT = "submit_and_wait"


@dataclass(frozen=True)
class NetworkProfile:
    """Static facts about one ledger network.

    Attributes:
        name: Display name.
        rpc_url: Default JSON-RPC endpoint.
        faucet_url: Account-creation faucet, None where there is none.
        min_reserve: Base account reserve in XRP.
        recommended_min: Balance in XRP recommended before mutating.
        submission: Submission mode used on this network.
        owner_reserve: XRP reserved per owned ledger object (trust line,
            offer, NFT page).
    """

    name: str
    rpc_url: str
    faucet_url: str | None
    min_reserve: int
    recommended_min: int
    submission: SubmissionMode
    owner_reserve: Decimal = Decimal("0.2")

    @property
    def has_faucet(self) -> bool:
        return self.faucet_url is not None


NETWORK_PROFILES: dict[Network, NetworkProfile] = {
    Network.TESTNET: NetworkProfile(
        name="Testnet",
        rpc_url="https://s.altnet.rippletest.net:51234",
        faucet_url="https://faucet.altnet.rippletest.net/accounts",
        min_reserve=10,
        recommended_min=20,
        submission=SubmissionMode.FIRE_AND_POLL,
    ),
    Network.MAINNET: NetworkProfile(
        name="Mainnet",
        rpc_url="https://xrplcluster.com",
        faucet_url=None,
        min_reserve=10,
        recommended_min=20,
        submission=SubmissionMode.SUBMIT_AND_WAIT,
    ),
}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="XRPL_",
        env_file=".env",
        extra="ignore",
    )

    # ─────────── NETWORK ───────────
    network: Network = Network.TESTNET
    rpc_url: str | None = None
    faucet_url: str | None = None

    # ─────────── LEDGER IDENTITY ───────────
    source_tag: int = Field(default=0, ge=0, le=MAX_UINT32)
    currency_code: str = "SBR"

    # ─────────── PRECONDITIONS ───────────
    min_xrp: float = Field(default=20, gt=0)
    require_auth: bool = False
    no_freeze: bool = False
    auto_faucet: bool = False

    # ─────────── AMOUNTS ───────────
    trust_limit: str = "1000000000"
    default_issue: str = "1000000"
    default_distribute: str = "100"

    # ─────────── STORAGE / LOGGING ───────────
    data_dir: Path = Path("data")
    log_level: str = "INFO"
    log_json: bool = True

    @field_validator("network", mode="before")
    @classmethod
    def _upper_network(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator("currency_code")
    @classmethod
    def _check_currency(cls, value: str) -> str:
        return validate_currency(value)

    @field_validator("trust_limit", "default_issue", "default_distribute")
    @classmethod
    def _check_amount(cls, value: str) -> str:
        return validate_amount(value)

    @property
    def profile(self) -> NetworkProfile:
        return NETWORK_PROFILES[self.network]

    @property
    def effective_rpc_url(self) -> str:
        return self.rpc_url or self.profile.rpc_url

    @property
    def effective_faucet_url(self) -> str | None:
        if not self.profile.has_faucet:
            return None
        return self.faucet_url or self.profile.faucet_url

    @property
    def auto_funding_permitted(self) -> bool:
        """Faucet funding needs both the operator's opt-in and a faucet."""
        return self.auto_faucet and self.profile.has_faucet

    @property
    def wallets_document(self) -> str:
        return "wallets.json"

    @property
    def idempotency_db_path(self) -> Path:
        return self.data_dir / "idempotency.db"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
