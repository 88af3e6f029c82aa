"""Provider clients and factories that bind them to configured transports."""

from trinity.chain.client import ChainClient
from trinity.clients.facilitator import FacilitatorClient
from trinity.clients.images import ImageClient
from trinity.clients.marketplace import JobWaitTimeout, ServiceClient
from trinity.clients.neynar import NeynarClient
from trinity.clients.wallets import WalletClient
from trinity.config import ChainConfig, ImageConfig, PaymentConfig, SocialConfig, WalletConfig
from trinity.transport import AsyncHTTPTransport, RetryConfig


def create_wallet_client(config: WalletConfig, retry_config: RetryConfig | None = None) -> WalletClient:
    headers = {"Authorization": f"Bearer {config.api_key}"} if config.api_key else {}
    transport = AsyncHTTPTransport(config.base_url, headers=headers, retry_config=retry_config)
    return WalletClient(transport, network=config.network)


def create_neynar_client(
    social: SocialConfig, chain: ChainConfig, retry_config: RetryConfig | None = None
) -> NeynarClient:
    headers = {"api_key": social.api_key} if social.api_key else {}
    transport = AsyncHTTPTransport(social.base_url, headers=headers, retry_config=retry_config)
    return NeynarClient(
        transport,
        wallet_id=social.wallet_id,
        deployer_private_key=chain.deployer_private_key,
        id_registry=ChainClient(rpc_url=chain.optimism_rpc_url),
    )


def create_image_client(config: ImageConfig, retry_config: RetryConfig | None = None) -> ImageClient:
    headers = {"Authorization": f"Key {config.api_key}"} if config.api_key else {}
    transport = AsyncHTTPTransport(config.base_url, headers=headers, timeout=120.0, retry_config=retry_config)
    return ImageClient(transport, model=config.model)


def create_facilitator_client(config: PaymentConfig) -> FacilitatorClient:
    # Runs on the request path: no retries.
    transport = AsyncHTTPTransport(config.facilitator_url, retry_config=RetryConfig(max_retries=0))
    return FacilitatorClient(transport)


__all__ = [
    "WalletClient",
    "NeynarClient",
    "ImageClient",
    "FacilitatorClient",
    "ServiceClient",
    "JobWaitTimeout",
    "create_wallet_client",
    "create_neynar_client",
    "create_image_client",
    "create_facilitator_client",
]
