"""
Async chain client over web3.py.

Every write is simulated with ``eth_call`` first so reverts surface as a
:class:`ChainError` without spending gas.
"""

from collections.abc import Sequence
from typing import Any

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import AsyncWeb3, Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception
from web3.logs import DISCARD

from trinity.config import ChainConfig
from trinity.exceptions import ChainError, ConfigurationError
from trinity.logging import get_logger, log_chain_write, truncate_hash

logger = get_logger("chain")

Abi = Sequence[dict[str, Any]]


def _checksum_args(args: Sequence[Any]) -> list[Any]:
    """Checksum address-shaped arguments; web3 rejects lowercase addresses."""
    return [
        Web3.to_checksum_address(arg) if isinstance(arg, str) and Web3.is_address(arg) else arg
        for arg in args
    ]


class ChainClient:
    """
    Contract reads, simulated writes and receipt waits for one chain.

    Args:
        rpc_url: JSON-RPC endpoint
        private_key: Hex key of the account that signs writes (optional for
            read-only use)
        chain_id: Chain id stamped on transactions
        receipt_timeout: Default seconds to wait for a receipt
        w3: Preconfigured AsyncWeb3 instance
    """

    def __init__(
        self,
        rpc_url: str | None = None,
        private_key: str | None = None,
        chain_id: int | None = None,
        receipt_timeout: float = 120.0,
        w3: AsyncWeb3 | None = None,
    ) -> None:
        if w3 is None:
            if not rpc_url:
                raise ConfigurationError("An RPC URL is required for chain access")
            w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url, request_kwargs={"timeout": 30}))
        self.w3 = w3
        self.chain_id = chain_id
        self.receipt_timeout = receipt_timeout
        self._account: LocalAccount | None = Account.from_key(private_key) if private_key else None

    @classmethod
    def from_config(cls, config: ChainConfig) -> "ChainClient":
        return cls(
            rpc_url=config.rpc_url,
            private_key=config.deployer_private_key,
            chain_id=config.chain_id,
            receipt_timeout=config.receipt_timeout,
        )

    @property
    def deployer_address(self) -> str | None:
        """Address of the signing account, or None for a read-only client."""
        return self._account.address if self._account else None

    def contract(self, address: str, abi: Abi) -> Any:
        return self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=list(abi))

    async def read_contract(
        self, address: str, abi: Abi, function: str, args: Sequence[Any] = ()
    ) -> Any:
        """
        Call a view function.

        Raises:
            ChainError: If the call reverts or the node is unreachable
        """
        fn = getattr(self.contract(address, abi).functions, function)(*_checksum_args(args))
        try:
            return await fn.call()
        except (ContractLogicError, Web3Exception, OSError) as e:
            raise ChainError("READ_FAILED", f"{function} on {address} failed: {e}") from e

    async def write_contract(
        self,
        address: str,
        abi: Abi,
        function: str,
        args: Sequence[Any] = (),
        value: int = 0,
    ) -> str:
        """
        Simulate, sign and send a contract call.

        Args:
            address: Contract address
            abi: Contract ABI containing ``function``
            function: Function name
            args: Positional call arguments
            value: Wei to attach

        Returns:
            The 0x-prefixed transaction hash

        Raises:
            ChainError: If no signing key is configured, the simulation
                reverts, or the node rejects the transaction
        """
        if self._account is None:
            raise ChainError("WALLET_NOT_INITIALIZED", "No signing key configured")

        sender = self._account.address
        fn = getattr(self.contract(address, abi).functions, function)(*_checksum_args(args))
        try:
            await fn.call({"from": sender, "value": value})
        except ContractLogicError as e:
            raise ChainError("SIMULATION_REVERTED", f"{function} would revert: {e}") from e
        except (Web3Exception, OSError) as e:
            raise ChainError("SIMULATION_FAILED", f"{function} could not be simulated: {e}") from e

        try:
            params: dict[str, Any] = {
                "from": sender,
                "value": value,
                "nonce": await self.w3.eth.get_transaction_count(sender, "pending"),
            }
            if self.chain_id is not None:
                params["chainId"] = self.chain_id
            tx = await fn.build_transaction(params)
            signed = self._account.sign_transaction(tx)
            tx_hash = Web3.to_hex(await self.w3.eth.send_raw_transaction(signed.raw_transaction))
        except (Web3Exception, ValueError, OSError) as e:
            raise ChainError("SEND_FAILED", f"{function} could not be sent: {e}") from e

        log_chain_write(function, address, tx_hash, tuple(args))
        logger.info("%s submitted: %s", function, truncate_hash(tx_hash))
        return tx_hash

    async def wait_for_transaction(
        self, tx_hash: str, timeout: float | None = None
    ) -> dict[str, Any]:
        """
        Wait for a receipt.

        Returns:
            The receipt as a plain dict

        Raises:
            ChainError: If the transaction reverted or no receipt arrived in time
        """
        try:
            receipt = await self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=timeout if timeout is not None else self.receipt_timeout
            )
        except TimeExhausted as e:
            raise ChainError("RECEIPT_TIMEOUT", f"No receipt for {tx_hash}") from e
        except (Web3Exception, OSError) as e:
            raise ChainError("RECEIPT_FAILED", f"Receipt for {tx_hash} unavailable: {e}") from e

        if receipt["status"] != 1:
            raise ChainError("TX_REVERTED", f"Transaction reverted: {tx_hash}")
        return dict(receipt)

    def decode_events(
        self, address: str, abi: Abi, event: str, receipt: dict[str, Any]
    ) -> list[dict[str, Any]]:
        """Decode ``event`` logs from a receipt, ignoring unrelated logs."""
        contract_event = self.contract(address, abi).events[event]()
        return [dict(entry["args"]) for entry in contract_event.process_receipt(receipt, errors=DISCARD)]
