"""
Runtime configuration loaded from environment variables.

Every external collaborator gets its own small config dataclass so that
components only receive the settings they use.
"""

import os
from dataclasses import dataclass, field

from trinity.exceptions import ConfigurationError

BASE_MAINNET_CHAIN_ID = 8453
BASE_SEPOLIA_CHAIN_ID = 84532
USDC_BASE_ADDRESS = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
DEFAULT_FACILITATOR_URL = "https://x402.org/facilitator"

SOCIAL_WORKER_REQUIRED_ENV = (
    "FAL_KEY",
    "NEYNAR_API_KEY",
    "NEYNAR_WALLET_ID",
    "DEPLOYER_PRIVATE_KEY",
)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"Invalid boolean for {name}: {raw!r}")


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"Invalid integer for {name}: {raw!r}") from None


def _env_address(name: str) -> str | None:
    raw = os.environ.get(name)
    if not raw:
        return None
    if not (raw.startswith("0x") and len(raw) == 42):
        raise ConfigurationError(f"{name} is not a 20-byte hex address: {raw!r}")
    return raw


@dataclass
class ChainConfig:
    """Base chain access for contract reads and writes."""

    rpc_url: str | None = None
    chain_id: int = BASE_MAINNET_CHAIN_ID
    deployer_private_key: str | None = field(default=None, repr=False)
    registry_address: str | None = None
    fee_splitter_address: str | None = None
    scout_fund_address: str | None = None
    usdc_address: str = USDC_BASE_ADDRESS
    optimism_rpc_url: str = "https://mainnet.optimism.io"
    receipt_timeout: float = 120.0

    @property
    def can_write(self) -> bool:
        return bool(self.rpc_url and self.deployer_private_key)

    @classmethod
    def from_env(cls) -> "ChainConfig":
        return cls(
            rpc_url=os.environ.get("BASE_RPC_URL") or None,
            chain_id=_env_int("CHAIN_ID", BASE_MAINNET_CHAIN_ID),
            deployer_private_key=os.environ.get("DEPLOYER_PRIVATE_KEY") or None,
            registry_address=_env_address("ERC8004_REGISTRY_ADDRESS"),
            fee_splitter_address=_env_address("FEE_SPLITTER_ADDRESS"),
            scout_fund_address=_env_address("SCOUT_FUND_ADDRESS"),
            usdc_address=_env_address("USDC_ADDRESS") or USDC_BASE_ADDRESS,
            optimism_rpc_url=os.environ.get("OPTIMISM_RPC_URL", "https://mainnet.optimism.io"),
        )


@dataclass
class SocialConfig:
    """Neynar (Farcaster) API credentials."""

    api_key: str | None = field(default=None, repr=False)
    wallet_id: str | None = None
    base_url: str = "https://api.neynar.com/v2/farcaster"

    @classmethod
    def from_env(cls) -> "SocialConfig":
        return cls(
            api_key=os.environ.get("NEYNAR_API_KEY") or None,
            wallet_id=os.environ.get("NEYNAR_WALLET_ID") or None,
            base_url=os.environ.get("NEYNAR_BASE_URL", cls.base_url),
        )


@dataclass
class ImageConfig:
    """Fal image generation credentials."""

    api_key: str | None = field(default=None, repr=False)
    base_url: str = "https://fal.run"
    model: str = "fal-ai/flux/schnell"

    @classmethod
    def from_env(cls) -> "ImageConfig":
        return cls(
            api_key=os.environ.get("FAL_KEY") or None,
            base_url=os.environ.get("FAL_BASE_URL", cls.base_url),
            model=os.environ.get("FAL_MODEL", cls.model),
        )


@dataclass
class WalletConfig:
    """Custodial wallet provider API."""

    base_url: str = "https://api.cdp.coinbase.com/platform/v1"
    api_key: str | None = field(default=None, repr=False)
    network: str = "base-sepolia"

    @classmethod
    def from_env(cls) -> "WalletConfig":
        return cls(
            base_url=os.environ.get("CDP_API_URL", cls.base_url),
            api_key=os.environ.get("CDP_API_KEY") or None,
            network=os.environ.get("CDP_NETWORK", cls.network),
        )


@dataclass
class PaymentConfig:
    """x402 payment settings for paid marketplace endpoints."""

    facilitator_url: str = DEFAULT_FACILITATOR_URL
    revenue_address: str | None = None
    network: str = f"eip155:{BASE_MAINNET_CHAIN_ID}"
    asset: str = USDC_BASE_ADDRESS
    trust_upstream_verification: bool = False

    @property
    def pay_to(self) -> str:
        return self.revenue_address or ZERO_ADDRESS

    @classmethod
    def from_env(cls) -> "PaymentConfig":
        return cls(
            facilitator_url=os.environ.get("X402_FACILITATOR_URL", DEFAULT_FACILITATOR_URL),
            revenue_address=_env_address("CEOS_REVENUE_ADDRESS"),
            trust_upstream_verification=_env_bool("X402_TRUST_UPSTREAM"),
        )


@dataclass
class Settings:
    """Top-level settings shared by the API and the workers."""

    database_url: str = "sqlite:///trinity.db"
    redis_url: str = "redis://localhost:6379/0"
    demo_mode: bool = False
    api_base_url: str = "http://localhost:3000/api"
    chain: ChainConfig = field(default_factory=ChainConfig)
    social: SocialConfig = field(default_factory=SocialConfig)
    images: ImageConfig = field(default_factory=ImageConfig)
    wallets: WalletConfig = field(default_factory=WalletConfig)
    payments: PaymentConfig = field(default_factory=PaymentConfig)

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Create settings from environment variables.

        Environment variables:
            DATABASE_URL: SQLAlchemy database URL (required unless DEMO_MODE)
            REDIS_URL: Redis connection URL (optional)
            DEMO_MODE: Substitute mock providers for every external call (optional)
            BASE_RPC_URL, CHAIN_ID, DEPLOYER_PRIVATE_KEY, ERC8004_REGISTRY_ADDRESS,
            FEE_SPLITTER_ADDRESS, SCOUT_FUND_ADDRESS: chain access (optional)
            NEYNAR_API_KEY, NEYNAR_WALLET_ID, FAL_KEY: social worker credentials
            CDP_API_URL, CDP_API_KEY, CDP_NETWORK: wallet provider
            X402_FACILITATOR_URL, CEOS_REVENUE_ADDRESS: payments

        Returns:
            Settings instance

        Raises:
            ConfigurationError: If a variable is missing or malformed
        """
        demo_mode = _env_bool("DEMO_MODE")
        database_url = os.environ.get("DATABASE_URL")
        if not database_url:
            if not demo_mode:
                raise ConfigurationError("DATABASE_URL environment variable not set")
            database_url = cls.database_url

        return cls(
            database_url=database_url,
            redis_url=os.environ.get("REDIS_URL", cls.redis_url),
            demo_mode=demo_mode,
            api_base_url=os.environ.get("API_BASE_URL", cls.api_base_url),
            chain=ChainConfig.from_env(),
            social=SocialConfig.from_env(),
            images=ImageConfig.from_env(),
            wallets=WalletConfig.from_env(),
            payments=PaymentConfig.from_env(),
        )


def missing_social_credentials(environ: dict[str, str] | None = None) -> list[str]:
    """Return the social worker credentials absent from the environment."""
    env = os.environ if environ is None else environ
    return [name for name in SOCIAL_WORKER_REQUIRED_ENV if not env.get(name)]
